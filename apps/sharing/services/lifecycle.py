"""
Lifecycle engine - the only writer of post and claim status.

Every command runs as one transaction that locks the post row first and
then the claim rows, so concurrent commands on the same post serialise on
the post and never deadlock against each other. Each command starts by
expiring the post inline when its deadline has passed; that sweep is
committed even though the command itself then fails with
``PostExpiredError``.

Conflicts are never retried here. ``complete_claim`` is idempotent and safe
to retry; ``create_claim`` and ``accept_claim`` are not - a caller that gets
a conflict should re-read state instead of replaying the command.
"""

import functools
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.sharing.models import (
    CLAIMABLE_POST_STATUSES,
    DELETABLE_CLAIM_STATUSES,
    Claim,
    ClaimStatus,
    FoodPost,
    PostStatus,
)

from .exceptions import (
    AlreadyReservedError,
    ClaimNotFoundError,
    DuplicateClaimError,
    ForbiddenError,
    InvalidInputError,
    InvalidTransitionError,
    NotClaimableError,
    PostExpiredError,
    PostNotFoundError,
    SharingServiceError,
)
from .expiry import sweep_post
from .notifications import publish, publish_deletion
from .validation import require_id

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def _logs_rejections(command):
    """Log a rejected command at DEBUG and re-raise its error."""

    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        try:
            return command(*args, **kwargs)
        except SharingServiceError as e:
            logger.debug("%s rejected (%s): %s kwargs=%s", command.__name__, e.code, e, kwargs)
            raise

    return wrapper


def _lock_post(post_id: UUID) -> FoodPost:
    try:
        return FoodPost.objects.select_for_update().get(id=post_id)
    except FoodPost.DoesNotExist:
        raise PostNotFoundError(f"Food post with ID {post_id} not found")


def _lock_claim(claim_id: UUID) -> Claim:
    """Lock a claim and its post, post first."""
    post_id = (
        Claim.objects
        .filter(id=claim_id)
        .values_list('post_id', flat=True)
        .first()
    )
    if post_id is None:
        raise ClaimNotFoundError(f"Claim with ID {claim_id} not found")

    post = _lock_post(post_id)
    try:
        claim = Claim.objects.select_for_update().get(id=claim_id)
    except Claim.DoesNotExist:
        # Deleted between the lookup and the lock
        raise ClaimNotFoundError(f"Claim with ID {claim_id} not found")
    claim.post = post
    return claim


def _expired_message(post: FoodPost) -> str:
    return f"Food post {post.id} has expired and is no longer available"


def _require_owner(claim: Claim, user_id: UUID, action: str) -> None:
    if claim.post.owner_id != user_id:
        raise ForbiddenError(f"Only the post owner can {action} a claim")


def _require_requester(claim: Claim, user_id: UUID, action: str) -> None:
    if claim.requester_id != user_id:
        raise ForbiddenError(f"Only the requester can {action} a claim")


def _set_claim_status(claim: Claim, status: str, now: datetime) -> None:
    claim.status = status
    claim.touch(now)
    claim.save(update_fields=['status', 'updated_at'])
    publish(claim)


def _set_post_status(post: FoodPost, status: str, now: datetime) -> None:
    post.status = status
    post.touch(now)
    post.save(update_fields=['status', 'updated_at'])
    publish(post)


def _settle_post_status(post: FoodPost, now: datetime) -> None:
    """
    Bring an available/requested post in line with its pending claims.

    Reserved, collected and expired posts are decided by accept, complete
    and the sweeper and are not touched here.
    """
    if post.status not in CLAIMABLE_POST_STATUSES:
        return
    has_pending = post.claims.filter(status=ClaimStatus.PENDING).exists()
    wanted = PostStatus.REQUESTED if has_pending else PostStatus.AVAILABLE
    if post.status != wanted:
        _set_post_status(post, wanted, now)


def _reserve_post(post: FoodPost, now: datetime) -> bool:
    """
    Move the post to reserved with a status-guarded conditional write.

    Returns False when the post is no longer available or requested, which
    means another accept (or the sweeper) got there first.
    """
    updated_at = post.touch(now)
    updated = (
        FoodPost.objects
        .filter(id=post.id, status__in=CLAIMABLE_POST_STATUSES)
        .update(status=PostStatus.RESERVED, updated_at=updated_at)
    )
    if not updated:
        post.refresh_from_db(fields=['status', 'updated_at'])
        return False
    post.status = PostStatus.RESERVED
    publish(post)
    return True


def _run_claim_command(claim_id, authorize, apply):
    """
    Lock the claim, check authority, expire its post if due, then apply.

    The inline sweep commits with the block; ``PostExpiredError`` is raised
    after it, so the expiry survives the failed command.
    """
    claim_id = require_id(claim_id, 'claim_id')
    now = timezone.now()
    with transaction.atomic():
        claim = _lock_claim(claim_id)
        authorize(claim)
        sweep_post(claim.post, now=now)
        if claim.post.status != PostStatus.EXPIRED:
            return apply(claim, now)
        post = claim.post
    raise PostExpiredError(_expired_message(post))


# =============================================================================
# Posts
# =============================================================================

@_logs_rejections
@transaction.atomic
def create_post(*, owner_id: UUID, best_before: Optional[datetime] = None) -> FoodPost:
    """
    Offer a new food post.

    Args:
        owner_id: UUID of the user sharing the food
        best_before: Deadline after which the post expires, None for never

    Returns:
        Created FoodPost, status ``available``

    Raises:
        InvalidInputError: If owner_id is missing or best_before is past
    """
    owner_id = require_id(owner_id, 'owner_id')
    now = timezone.now()
    if best_before is not None and best_before <= now:
        raise InvalidInputError("best_before must be in the future")
    if not User.objects.filter(id=owner_id, is_active=True).exists():
        raise InvalidInputError(f"User with ID {owner_id} not found")

    post = FoodPost.objects.create(
        owner_id=owner_id,
        best_before=best_before,
        status=PostStatus.AVAILABLE,
        created_at=now,
        updated_at=now,
    )
    publish(post)
    logger.info("Post %s created by %s", post.id, owner_id)
    return post


# =============================================================================
# Claims
# =============================================================================

@_logs_rejections
def create_claim(*, post_id: UUID, requester_id: UUID) -> Claim:
    """
    Place a pending claim on a food post.

    Checks run in order and the first failure wins: post exists, requester
    is not the owner, post has not expired (swept inline if overdue), post
    is claimable, requester has no active claim on it yet.

    Args:
        post_id: UUID of the post being claimed
        requester_id: UUID of the claiming user

    Returns:
        Created Claim, status ``pending``. An available post becomes
        ``requested``.

    Raises:
        InvalidInputError: If either id is missing or malformed
        PostNotFoundError: If the post doesn't exist
        ForbiddenError: If the requester owns the post
        PostExpiredError: If the post's deadline has passed
        NotClaimableError: If the post is reserved or collected
        DuplicateClaimError: If the requester already has an active claim
    """
    post_id = require_id(post_id, 'post_id')
    requester_id = require_id(requester_id, 'requester_id')
    now = timezone.now()

    with transaction.atomic():
        post = _lock_post(post_id)
        if post.owner_id == requester_id:
            raise ForbiddenError("You cannot claim your own food post")

        sweep_post(post, now=now)
        if post.status != PostStatus.EXPIRED:
            return _create_claim_locked(post, requester_id, now)

    raise PostExpiredError(_expired_message(post))


def _create_claim_locked(post: FoodPost, requester_id: UUID, now: datetime) -> Claim:
    if not post.is_claimable:
        raise NotClaimableError(f"Food post {post.id} is {post.status} and cannot be claimed")

    if post.claims.filter(requester_id=requester_id, status__in=[
        ClaimStatus.PENDING, ClaimStatus.ACCEPTED,
    ]).exists():
        raise DuplicateClaimError("You have already requested this food")

    if not User.objects.filter(id=requester_id, is_active=True).exists():
        raise InvalidInputError(f"User with ID {requester_id} not found")

    try:
        with transaction.atomic():
            claim = Claim.objects.create(
                post=post,
                requester_id=requester_id,
                status=ClaimStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
    except IntegrityError:
        # Partial unique index caught a concurrent duplicate
        raise DuplicateClaimError("You have already requested this food")
    publish(claim)

    if post.status == PostStatus.AVAILABLE:
        _set_post_status(post, PostStatus.REQUESTED, now)

    logger.info("Claim %s created on post %s by %s", claim.id, post.id, requester_id)
    return claim


@_logs_rejections
def accept_claim(*, claim_id: UUID, acting_owner_id: UUID) -> Claim:
    """
    Accept a pending claim and reserve the post for its requester.

    The post is reserved with a conditional write guarded on its status
    being available or requested, so of two concurrent accepts on the same
    post exactly one wins. In the same transaction every other pending
    claim on the post is declined.

    Args:
        claim_id: UUID of the claim to accept
        acting_owner_id: UUID of the user accepting (must own the post)

    Returns:
        The accepted Claim

    Raises:
        ClaimNotFoundError: If the claim doesn't exist
        ForbiddenError: If the actor does not own the post
        PostExpiredError: If the post's deadline has passed
        AlreadyReservedError: If another claim was accepted first
        NotClaimableError: If the post is already collected
        InvalidTransitionError: If the claim is no longer pending
    """
    acting_owner_id = require_id(acting_owner_id, 'acting_owner_id')
    return _run_claim_command(
        claim_id,
        lambda claim: _require_owner(claim, acting_owner_id, 'accept'),
        _accept_locked,
    )


def _accept_locked(claim: Claim, now: datetime) -> Claim:
    post = claim.post
    if post.status == PostStatus.RESERVED:
        raise AlreadyReservedError("Someone else has already claimed this food")
    if post.status not in CLAIMABLE_POST_STATUSES:
        raise NotClaimableError(f"Food post {post.id} is {post.status} and cannot be reserved")
    if claim.status != ClaimStatus.PENDING:
        raise InvalidTransitionError(f"Only pending claims can be accepted, this one is {claim.status}")

    if not _reserve_post(post, now):
        raise AlreadyReservedError("Someone else has already claimed this food")

    declined = (
        Claim.objects
        .select_for_update()
        .filter(post=post, status=ClaimStatus.PENDING)
        .exclude(id=claim.id)
        .order_by('created_at')
    )
    declined_ids = []
    for other in declined:
        _set_claim_status(other, ClaimStatus.DECLINED, now)
        declined_ids.append(other.id)

    try:
        with transaction.atomic():
            _set_claim_status(claim, ClaimStatus.ACCEPTED, now)
    except IntegrityError:
        # Partial unique index: another claim on this post is accepted
        raise AlreadyReservedError("Someone else has already claimed this food")

    logger.info(
        "Claim %s accepted on post %s, %d sibling claim(s) declined",
        claim.id,
        post.id,
        len(declined_ids),
    )
    return claim


@_logs_rejections
def decline_claim(*, claim_id: UUID, acting_owner_id: UUID) -> Claim:
    """
    Decline a pending claim (owner only).

    A requested post with no pending claim left goes back to available.

    Raises:
        ClaimNotFoundError: If the claim doesn't exist
        ForbiddenError: If the actor does not own the post
        PostExpiredError: If the post's deadline has passed
        InvalidTransitionError: If the claim is not pending
    """
    acting_owner_id = require_id(acting_owner_id, 'acting_owner_id')
    return _run_claim_command(
        claim_id,
        lambda claim: _require_owner(claim, acting_owner_id, 'decline'),
        _decline_locked,
    )


def _decline_locked(claim: Claim, now: datetime) -> Claim:
    if claim.status != ClaimStatus.PENDING:
        raise InvalidTransitionError(f"Only pending claims can be declined, this one is {claim.status}")
    _set_claim_status(claim, ClaimStatus.DECLINED, now)
    _settle_post_status(claim.post, now)
    logger.info("Claim %s declined on post %s", claim.id, claim.post_id)
    return claim


@_logs_rejections
def complete_claim(*, claim_id: UUID, acting_party_id: UUID) -> Claim:
    """
    Mark the food as collected.

    Either the owner or the requester may call this. Completing an already
    completed claim returns it unchanged without an error, so both parties
    tapping "collected" at the same time both succeed.

    Raises:
        ClaimNotFoundError: If the claim doesn't exist
        ForbiddenError: If the actor is neither owner nor requester
        PostExpiredError: If the post expired before collection
        InvalidTransitionError: If the claim is not accepted
    """
    acting_party_id = require_id(acting_party_id, 'acting_party_id')
    return _run_claim_command(
        claim_id,
        lambda claim: _require_party(claim, acting_party_id),
        _complete_locked,
    )


def _require_party(claim: Claim, user_id: UUID) -> None:
    if user_id not in (claim.post.owner_id, claim.requester_id):
        raise ForbiddenError("Only the post owner or the requester can complete a claim")


def _complete_locked(claim: Claim, now: datetime) -> Claim:
    if claim.status == ClaimStatus.COMPLETED:
        return claim
    if claim.status != ClaimStatus.ACCEPTED:
        raise InvalidTransitionError(f"Only accepted claims can be completed, this one is {claim.status}")

    _set_claim_status(claim, ClaimStatus.COMPLETED, now)
    _set_post_status(claim.post, PostStatus.COLLECTED, now)
    logger.info("Claim %s completed, post %s collected", claim.id, claim.post_id)
    return claim


@_logs_rejections
def cancel_claim(*, claim_id: UUID, acting_requester_id: UUID) -> Claim:
    """
    Withdraw a pending claim (requester only).

    A requested post with no pending claim left goes back to available.

    Raises:
        ClaimNotFoundError: If the claim doesn't exist
        ForbiddenError: If the actor is not the requester
        PostExpiredError: If the post's deadline has passed
        InvalidTransitionError: If the claim is not pending
    """
    acting_requester_id = require_id(acting_requester_id, 'acting_requester_id')
    return _run_claim_command(
        claim_id,
        lambda claim: _require_requester(claim, acting_requester_id, 'cancel'),
        _cancel_locked,
    )


def _cancel_locked(claim: Claim, now: datetime) -> Claim:
    if claim.status != ClaimStatus.PENDING:
        raise InvalidTransitionError(f"Only pending claims can be cancelled, this one is {claim.status}")
    _set_claim_status(claim, ClaimStatus.CANCELLED, now)
    _settle_post_status(claim.post, now)
    logger.info("Claim %s cancelled by requester", claim.id)
    return claim


@_logs_rejections
def delete_claim(*, claim_id: UUID, acting_user_id: UUID) -> None:
    """
    Permanently remove a declined or cancelled claim.

    Either party may clean up their history. Claims on an overdue post are
    expired first, so a claim cancelled by expiry can be deleted in the
    same call that discovers it.

    Raises:
        ClaimNotFoundError: If the claim doesn't exist
        ForbiddenError: If the actor is neither owner nor requester
        InvalidTransitionError: If the claim is active or completed
    """
    claim_id = require_id(claim_id, 'claim_id')
    acting_user_id = require_id(acting_user_id, 'acting_user_id')
    now = timezone.now()

    with transaction.atomic():
        claim = _lock_claim(claim_id)
        if acting_user_id not in (claim.post.owner_id, claim.requester_id):
            raise ForbiddenError("Only the post owner or the requester can delete a claim")

        if claim.id in sweep_post(claim.post, now=now).cancelled_claims:
            claim.refresh_from_db(fields=['status', 'updated_at'])

        if claim.status not in DELETABLE_CLAIM_STATUSES:
            raise InvalidTransitionError(
                f"Only declined or cancelled claims can be deleted, this one is {claim.status}"
            )
        claim.touch(now)
        publish_deletion(claim)
        claim.delete()

    logger.info("Claim %s deleted by %s", claim_id, acting_user_id)
