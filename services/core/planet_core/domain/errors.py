"""Domain error taxonomy for Planet Core.

Services raise these; the API layer maps them to HTTP responses through
the ``http_status`` and ``code`` attributes. Plain input validation still
raises ``ValueError``.
"""

from typing import Optional


class CoreError(Exception):
    """Base class for domain errors."""

    code = "core_error"
    http_status = 500

    def __init__(self, message: str, entity_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


class NotFoundError(CoreError):
    """The referenced message, conversation or identity does not exist."""

    code = "not_found"
    http_status = 404


class ForbiddenError(CoreError):
    """The actor is not allowed to perform the operation."""

    code = "forbidden"
    http_status = 403


class AlreadyDeletedError(CoreError):
    """The message is soft-deleted."""

    code = "already_deleted"
    http_status = 409


class AlreadyErasedError(CoreError):
    """The identity has already been erased."""

    code = "already_erased"
    http_status = 409


class ConflictError(CoreError):
    """A concurrent write changed the row first."""

    code = "conflict"
    http_status = 409


class UnknownIdentityError(CoreError):
    """The identity id never existed."""

    code = "unknown_identity"
    http_status = 404


class InvalidCursorError(CoreError):
    """The pagination cursor is malformed or tampered with."""

    code = "invalid_cursor"
    http_status = 400
