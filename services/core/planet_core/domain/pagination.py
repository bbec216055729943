"""Keyset pagination primitives.

Messages are paged by ``(created_at, id)``, newest first unless asked
otherwise. The cursor is the position of a row at the edge of the page,
encoded as url-safe base64 JSON so clients treat it as opaque. A cursor
marked ``backward`` walks back towards the start of the traversal.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from planet_core.domain.errors import InvalidCursorError

T = TypeVar("T")


DEFAULT_CURSOR_LIMIT = 50
MAX_CURSOR_LIMIT = 100


@dataclass(frozen=True)
class Cursor:
    """Position in a ``(created_at, id)`` ordered stream."""

    created_at: datetime
    id: int
    backward: bool = False

    def encode(self) -> str:
        payload: dict[str, Any] = {"created_at": self.created_at.isoformat(), "id": self.id}
        if self.backward:
            payload["backward"] = True
        return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()

    @classmethod
    def decode(cls, value: str) -> "Cursor":
        """Parse an encoded cursor.

        Raises:
            InvalidCursorError: If the value is not a cursor this module produced.
        """
        try:
            data = json.loads(base64.urlsafe_b64decode(value.encode()).decode())
            created_at = datetime.fromisoformat(data["created_at"])
            row_id = data["id"]
            backward = data.get("backward", False)
        except (
            binascii.Error,
            ValueError,
            UnicodeDecodeError,
            KeyError,
            TypeError,
            AttributeError,
        ) as e:
            raise InvalidCursorError("Invalid cursor") from e

        if not isinstance(row_id, int) or isinstance(row_id, bool):
            raise InvalidCursorError("Invalid cursor")
        if not isinstance(backward, bool):
            raise InvalidCursorError("Invalid cursor")
        if created_at.tzinfo is not None:
            raise InvalidCursorError("Invalid cursor")

        return cls(created_at=created_at, id=row_id, backward=backward)


@dataclass
class CursorPaginationParams:
    """Normalized cursor pagination input.

    Attributes:
        limit: Page size, clamped to ``[1, max_limit]``
        cursor: Opaque cursor from a previous page
        max_limit: Upper bound for ``limit``
    """

    limit: int = DEFAULT_CURSOR_LIMIT
    cursor: Optional[str] = None
    max_limit: int = MAX_CURSOR_LIMIT

    def __post_init__(self):
        if self.limit < 1:
            self.limit = 1
        if self.limit > self.max_limit:
            self.limit = self.max_limit

    def decode_cursor(self) -> Optional[Cursor]:
        if not self.cursor:
            return None
        return Cursor.decode(self.cursor)


@dataclass
class CursorPaginatedResult(Generic[T]):
    """One page of results.

    Attributes:
        items: Rows of this page in traversal order
        next_cursor: Cursor for the following page, None on the last page
        prev_cursor: Cursor for the preceding page, None on the first page
    """

    items: list[T] = field(default_factory=list)
    next_cursor: Optional[str] = None
    prev_cursor: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

    @property
    def has_previous(self) -> bool:
        return self.prev_cursor is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": self.items,
            "next_cursor": self.next_cursor,
            "prev_cursor": self.prev_cursor,
            "has_more": self.has_more,
            "has_previous": self.has_previous,
        }
