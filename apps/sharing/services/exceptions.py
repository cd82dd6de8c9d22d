"""
Domain exceptions for the sharing app.

Raised by the lifecycle, expiry and query services and translated into
HTTP responses by the views. Every class carries a stable ``code`` so API
clients can branch on the kind of failure without parsing messages.

Exception Hierarchy:
    SharingServiceError (base)
    ├── InvalidInputError
    ├── NotFoundError
    │   ├── PostNotFoundError
    │   └── ClaimNotFoundError
    ├── ForbiddenError
    ├── PostExpiredError
    └── ConflictError
        ├── DuplicateClaimError
        ├── AlreadyReservedError
        ├── NotClaimableError
        └── InvalidTransitionError

Usage:
    from apps.sharing.services.exceptions import AlreadyReservedError

    try:
        accept_claim(claim_id=claim.id, acting_owner_id=user.id)
    except AlreadyReservedError:
        # someone else already got this food
        ...
"""


class SharingServiceError(Exception):
    """Base exception for all sharing service errors."""

    code = 'sharing_error'


class InvalidInputError(SharingServiceError):
    """Raised when a command is missing ids or carries malformed values."""

    code = 'validation_error'


class NotFoundError(SharingServiceError):
    """Raised when a referenced post or claim does not exist."""

    code = 'not_found'


class PostNotFoundError(NotFoundError):
    pass


class ClaimNotFoundError(NotFoundError):
    pass


class ForbiddenError(SharingServiceError):
    """
    Raised when the acting user lacks authority for the operation.

    Example:
        raise ForbiddenError("You cannot claim your own food post")
    """

    code = 'forbidden'


class PostExpiredError(SharingServiceError):
    """
    Raised when the post's best-before deadline has passed.

    Always reported ahead of any conflict on the same post.
    """

    code = 'expired'


class ConflictError(SharingServiceError):
    """Base for commands rejected because of the current post or claim state."""

    code = 'conflict'


class DuplicateClaimError(ConflictError):
    """Raised when the requester already has an active claim on the post."""

    code = 'conflict.duplicate_claim'


class AlreadyReservedError(ConflictError):
    """Raised when another claim on the post was accepted first."""

    code = 'conflict.already_reserved'


class NotClaimableError(ConflictError):
    """Raised when the post is reserved, collected or expired."""

    code = 'conflict.not_claimable'


class InvalidTransitionError(ConflictError):
    """
    Raised when the claim itself is not in a state the command accepts.

    Example:
        raise InvalidTransitionError("Only pending claims can be declined")
    """

    code = 'conflict.invalid_transition'
