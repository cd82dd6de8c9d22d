"""
Sharing app services layer.

The lifecycle engine is the only code allowed to change post or claim
status. Every state-changing operation is a single transaction guarded on
the current status; conflicts fail fast instead of waiting.
"""

from .exceptions import (
    SharingServiceError,
    InvalidInputError,
    NotFoundError,
    PostNotFoundError,
    ClaimNotFoundError,
    ForbiddenError,
    PostExpiredError,
    ConflictError,
    DuplicateClaimError,
    AlreadyReservedError,
    NotClaimableError,
    InvalidTransitionError,
)

from .lifecycle import (
    create_post,
    create_claim,
    accept_claim,
    decline_claim,
    complete_claim,
    cancel_claim,
    delete_claim,
)

from .expiry import (
    SweepResult,
    sweep,
    sweep_post,
)

from .notifications import (
    ChangeEvent,
    entity_changed,
)

from .queries import (
    get_post,
    list_available_posts,
    get_owner_posts,
    get_post_claims,
    get_incoming_claims,
    get_outgoing_claims,
    get_claim,
)


__all__ = [
    # Exceptions
    'SharingServiceError',
    'InvalidInputError',
    'NotFoundError',
    'PostNotFoundError',
    'ClaimNotFoundError',
    'ForbiddenError',
    'PostExpiredError',
    'ConflictError',
    'DuplicateClaimError',
    'AlreadyReservedError',
    'NotClaimableError',
    'InvalidTransitionError',

    # Lifecycle
    'create_post',
    'create_claim',
    'accept_claim',
    'decline_claim',
    'complete_claim',
    'cancel_claim',
    'delete_claim',

    # Expiry
    'SweepResult',
    'sweep',
    'sweep_post',

    # Change events
    'ChangeEvent',
    'entity_changed',

    # Reads
    'get_post',
    'list_available_posts',
    'get_owner_posts',
    'get_post_claims',
    'get_incoming_claims',
    'get_outgoing_claims',
    'get_claim',
]
