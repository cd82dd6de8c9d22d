"""
Read paths for posts and claims.

Each read runs the sweeper first so callers always see the status the
lifecycle rules give right now; nothing outside the services re-derives
status from ``best_before``.
"""

from uuid import UUID

from django.db.models import Q, QuerySet

from apps.sharing.models import (
    CLAIMABLE_POST_STATUSES,
    Claim,
    ClaimStatus,
    FoodPost,
    PostStatus,
)

from .exceptions import ClaimNotFoundError, ForbiddenError, PostNotFoundError
from .expiry import sweep
from .validation import require_id


def get_post(*, post_id: UUID) -> FoodPost:
    """
    Retrieve a post by ID.

    Raises:
        InvalidInputError: If post_id is not a valid id
        PostNotFoundError: If the post doesn't exist
    """
    post_id = require_id(post_id, 'post_id')
    sweep()
    try:
        return FoodPost.objects.select_related('owner').get(id=post_id)
    except FoodPost.DoesNotExist:
        raise PostNotFoundError(f"Food post with ID {post_id} not found")


def list_available_posts() -> QuerySet[FoodPost]:
    """Posts that can still be claimed, newest first."""
    sweep()
    return (
        FoodPost.objects
        .filter(status__in=CLAIMABLE_POST_STATUSES)
        .select_related('owner')
        .order_by('-created_at')
    )


def get_owner_posts(*, owner_id: UUID) -> QuerySet[FoodPost]:
    sweep()
    return FoodPost.objects.filter(owner_id=owner_id).order_by('-created_at')


def get_incoming_claims(*, owner_id: UUID) -> QuerySet[Claim]:
    """
    Claims on the owner's posts that still need the owner's attention.

    Declined claims are kept so the owner can clean them up; pending and
    accepted claims on posts that were already collected are left out.
    """
    sweep()
    return (
        Claim.objects
        .filter(post__owner_id=owner_id)
        .filter(
            Q(status=ClaimStatus.DECLINED)
            | (
                Q(status__in=[ClaimStatus.PENDING, ClaimStatus.ACCEPTED])
                & ~Q(post__status=PostStatus.COLLECTED)
            )
        )
        .select_related('post', 'requester')
        .order_by('-created_at')
    )


def get_outgoing_claims(*, requester_id: UUID) -> QuerySet[Claim]:
    """Every claim the user has placed, newest first."""
    sweep()
    return (
        Claim.objects
        .filter(requester_id=requester_id)
        .select_related('post', 'post__owner')
        .order_by('-created_at')
    )


def get_post_claims(*, post_id: UUID, owner_id: UUID) -> QuerySet[Claim]:
    """
    All claims on one post, visible to its owner only.

    Raises:
        InvalidInputError: If an id is not valid
        PostNotFoundError: If the post doesn't exist
        ForbiddenError: If the user does not own the post
    """
    owner_id = require_id(owner_id, 'owner_id')
    post = get_post(post_id=post_id)
    if post.owner_id != owner_id:
        raise ForbiddenError("Only the post owner can see its claims")
    return post.claims.select_related('requester').order_by('created_at')


def get_claim(*, claim_id: UUID, user_id: UUID) -> Claim:
    """
    Retrieve a claim for one of its two parties.

    Raises:
        InvalidInputError: If an id is not valid
        ClaimNotFoundError: If the claim doesn't exist
        ForbiddenError: If the user is neither owner nor requester
    """
    claim_id = require_id(claim_id, 'claim_id')
    user_id = require_id(user_id, 'user_id')
    sweep()
    try:
        claim = Claim.objects.select_related('post', 'requester').get(id=claim_id)
    except Claim.DoesNotExist:
        raise ClaimNotFoundError(f"Claim with ID {claim_id} not found")

    if user_id not in (claim.post.owner_id, claim.requester_id):
        raise ForbiddenError("You are not a party to this claim")
    return claim
