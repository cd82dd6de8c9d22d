"""Input checks shared by the lifecycle commands and the read paths."""

from uuid import UUID

from .exceptions import InvalidInputError


def require_id(value, name):
    """
    Coerce ``value`` to a UUID.

    Raises:
        InvalidInputError: If the value is missing or not a valid UUID
    """
    if not value:
        raise InvalidInputError(f"{name} is required")
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise InvalidInputError(f"{name} is not a valid id")
