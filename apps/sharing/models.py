# ==========================================
# apps/sharing/models.py
# ==========================================

from django.db import models
from django.db.models import Q
from datetime import timedelta
from django.utils import timezone
import uuid


class PostStatus(models.TextChoices):
    AVAILABLE = 'available', 'Available'
    REQUESTED = 'requested', 'Requested'
    RESERVED = 'reserved', 'Reserved'
    COLLECTED = 'collected', 'Collected'
    EXPIRED = 'expired', 'Expired'


class ClaimStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    DECLINED = 'declined', 'Declined'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


# Posts a claim can still be placed on or accepted against
CLAIMABLE_POST_STATUSES = [PostStatus.AVAILABLE, PostStatus.REQUESTED]

# Posts the sweeper is allowed to expire
EXPIRABLE_POST_STATUSES = [PostStatus.AVAILABLE, PostStatus.REQUESTED, PostStatus.RESERVED]

TERMINAL_POST_STATUSES = [PostStatus.COLLECTED, PostStatus.EXPIRED]

ACTIVE_CLAIM_STATUSES = [ClaimStatus.PENDING, ClaimStatus.ACCEPTED]

TERMINAL_CLAIM_STATUSES = [ClaimStatus.DECLINED, ClaimStatus.COMPLETED, ClaimStatus.CANCELLED]

# Terminal claims that may be removed for history cleanup
DELETABLE_CLAIM_STATUSES = [ClaimStatus.DECLINED, ClaimStatus.CANCELLED]


class LifecycleModel(models.Model):
    """Shared timestamps for rows whose status the lifecycle services own."""

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        abstract = True

    def touch(self, now=None):
        """
        Advance updated_at for a new transition.

        Never moves backwards, even if the writer's clock is behind the one
        that wrote the previous transition, so change events stay monotonic
        per entity.
        """
        now = now or timezone.now()
        if self.updated_at is not None:
            now = max(now, self.updated_at + timedelta(microseconds=1))
        self.updated_at = now
        return now


class FoodPost(LifecycleModel):
    """
    Surplus food offered by its owner.

    Status is written only by the lifecycle services; it is a function of
    the post's claims and its best-before deadline.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='food_posts',
        editable=False,
    )
    status = models.CharField(
        max_length=20,
        choices=PostStatus.choices,
        default=PostStatus.AVAILABLE,
        db_index=True,
    )
    best_before = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'sharing_food_posts'
        indexes = [
            models.Index(fields=['status', 'best_before'], name='post_status_deadline_idx'),
            models.Index(fields=['owner', 'created_at'], name='post_owner_created_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"Post {self.id} ({self.status})"

    def is_past_best_before(self, now=None):
        if self.best_before is None:
            return False
        return self.best_before <= (now or timezone.now())

    @property
    def is_claimable(self):
        return self.status in CLAIMABLE_POST_STATUSES


class Claim(LifecycleModel):
    """A requester's claim on a food post."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    post = models.ForeignKey(
        FoodPost,
        on_delete=models.PROTECT,
        related_name='claims',
    )
    requester = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='claims',
    )
    status = models.CharField(
        max_length=20,
        choices=ClaimStatus.choices,
        default=ClaimStatus.PENDING,
        db_index=True,
    )

    class Meta:
        db_table = 'sharing_claims'
        constraints = [
            models.UniqueConstraint(
                fields=['post', 'requester'],
                condition=Q(status__in=['pending', 'accepted']),
                name='unique_active_claim_per_requester',
            ),
            models.UniqueConstraint(
                fields=['post'],
                condition=Q(status='accepted'),
                name='unique_accepted_claim_per_post',
            ),
        ]
        indexes = [
            models.Index(fields=['post', 'status'], name='claim_post_status_idx'),
            models.Index(fields=['requester', 'created_at'], name='claim_requester_created_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"Claim {self.id} on {self.post_id} ({self.status})"

    @property
    def is_active(self):
        return self.status in ACTIVE_CLAIM_STATUSES

    @property
    def is_terminal(self):
        return self.status in TERMINAL_CLAIM_STATUSES
