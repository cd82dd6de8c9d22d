"""
Expiry sweeper.

Turns posts whose best-before deadline has passed into ``expired`` and
cancels every active claim on them in the same transaction, so no reader
ever sees an expired post with a pending or accepted claim.

``sweep`` is idempotent and safe to call on a timer (see the
``sweep_expired_posts`` management command) or opportunistically before
reads. ``sweep_post`` is the single-post form the lifecycle engine runs
inline before every command.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.sharing.models import (
    ACTIVE_CLAIM_STATUSES,
    EXPIRABLE_POST_STATUSES,
    Claim,
    ClaimStatus,
    FoodPost,
    PostStatus,
)

from .notifications import publish

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired_posts: List[UUID] = field(default_factory=list)
    cancelled_claims: List[UUID] = field(default_factory=list)

    def __bool__(self):
        return bool(self.expired_posts)

    def merge(self, other: 'SweepResult') -> None:
        self.expired_posts.extend(other.expired_posts)
        self.cancelled_claims.extend(other.cancelled_claims)

    def as_dict(self):
        return {
            'expired_posts': [str(post_id) for post_id in self.expired_posts],
            'cancelled_claims': [str(claim_id) for claim_id in self.cancelled_claims],
        }


def expired_posts_queryset(now: datetime):
    """Posts past their deadline that have not reached a terminal status."""
    return FoodPost.objects.filter(
        best_before__isnull=False,
        best_before__lte=now,
        status__in=EXPIRABLE_POST_STATUSES,
    )


@transaction.atomic
def sweep_post(post: FoodPost, *, now: Optional[datetime] = None) -> SweepResult:
    """
    Expire a single post if its deadline has passed.

    The caller should hold the post row lock (``select_for_update``); the
    lifecycle engine always does. A post that is not due, or is already
    collected or expired, is left alone and an empty result is returned.

    Args:
        post: Post to check, updated in place when it expires
        now: Reference time, defaults to the current time

    Returns:
        SweepResult naming the post and the claims it cancelled
    """
    now = now or timezone.now()
    result = SweepResult()

    if post.status not in EXPIRABLE_POST_STATUSES or not post.is_past_best_before(now):
        return result

    post.status = PostStatus.EXPIRED
    post.touch(now)
    post.save(update_fields=['status', 'updated_at'])
    publish(post)
    result.expired_posts.append(post.id)

    active_claims = (
        Claim.objects
        .select_for_update()
        .filter(post=post, status__in=ACTIVE_CLAIM_STATUSES)
        .order_by('created_at')
    )
    for claim in active_claims:
        claim.status = ClaimStatus.CANCELLED
        claim.touch(now)
        claim.save(update_fields=['status', 'updated_at'])
        publish(claim)
        result.cancelled_claims.append(claim.id)

    logger.info(
        "Expired post %s (best before %s), cancelled %d claim(s)",
        post.id,
        post.best_before.isoformat(),
        len(result.cancelled_claims),
    )
    return result


def sweep(now: Optional[datetime] = None, batch_size: Optional[int] = None) -> SweepResult:
    """
    Expire every overdue post and cancel its active claims.

    Works in batches, one transaction per batch. Rows locked by a
    concurrent sweeper or command are skipped and picked up by whoever
    holds them, so several sweepers can run at once without waiting on
    each other.

    Args:
        now: Reference time, defaults to the current time
        batch_size: Posts per transaction, defaults to
            ``SHARING['SWEEP_BATCH_SIZE']``

    Returns:
        SweepResult with every expired post and cancelled claim id.
        Running it again with the same ``now`` returns an empty result.
    """
    now = now or timezone.now()
    batch_size = batch_size or settings.SHARING['SWEEP_BATCH_SIZE']
    result = SweepResult()

    while True:
        with transaction.atomic():
            batch = list(
                expired_posts_queryset(now)
                .select_for_update(skip_locked=True)
                .order_by('best_before')[:batch_size]
            )
            if not batch:
                break
            for post in batch:
                result.merge(sweep_post(post, now=now))

    if result:
        logger.info(
            "Sweep at %s expired %d post(s) and cancelled %d claim(s)",
            now.isoformat(),
            len(result.expired_posts),
            len(result.cancelled_claims),
        )
    return result
