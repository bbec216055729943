"""Unit tests for cursors and keyset message pagination."""

import base64
import json
from datetime import datetime, timedelta

import pytest

from planet_core.domain.errors import InvalidCursorError, NotFoundError
from planet_core.domain.models import utcnow
from planet_core.domain.pagination import (
    Cursor,
    CursorPaginatedResult,
    CursorPaginationParams,
)
from planet_core.domain.services.content_store import ContentStore
from planet_core.domain.services.message_pagination import (
    MessageFilter,
    MessagePaginationEngine,
)
from tests.factories import (
    create_message,
    create_messages,
    create_planet,
    create_planet_user,
    create_user,
)


@pytest.fixture
def conversation(db_session):
    """A conversation with five messages, oldest first."""
    sender = create_user(db_session, display_name="Sender")
    planet = create_planet(db_session)
    create_planet_user(db_session, planet, sender)
    messages = create_messages(db_session, planet, sender, 5)
    return {"planet": planet, "sender": sender, "messages": messages}


def _ids(page) -> list[int]:
    return [m.id for m in page.items]


class TestCursor:
    """Tests for the opaque cursor encoding."""

    def test_encode_decode(self):
        cursor = Cursor(created_at=datetime(2024, 5, 1, 12, 30, 15, 123456), id=77)

        assert Cursor.decode(cursor.encode()) == cursor

    def test_encoding_is_url_safe(self):
        encoded = Cursor(created_at=datetime(2024, 5, 1), id=2**40).encode()

        assert "+" not in encoded and "/" not in encoded

    @pytest.mark.parametrize("value", ["not-a-cursor", "", "%%%%", "e30="])
    def test_garbage_rejected(self, value):
        with pytest.raises(InvalidCursorError):
            Cursor.decode(value)

    def test_non_integer_id_rejected(self):
        payload = {"created_at": "2024-05-01T00:00:00", "id": "7"}
        value = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()

        with pytest.raises(InvalidCursorError):
            Cursor.decode(value)

    def test_timezone_aware_time_rejected(self):
        payload = {"created_at": "2024-05-01T00:00:00+09:00", "id": 7}
        value = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()

        with pytest.raises(InvalidCursorError):
            Cursor.decode(value)

    def test_backward_flag_round_trips(self):
        cursor = Cursor(created_at=datetime(2024, 5, 1), id=3, backward=True)

        assert Cursor.decode(cursor.encode()).backward is True
        forward = Cursor(created_at=datetime(2024, 5, 1), id=3)
        assert Cursor.decode(forward.encode()).backward is False

    def test_non_boolean_backward_rejected(self):
        payload = {"created_at": "2024-05-01T00:00:00", "id": 7, "backward": "yes"}
        value = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()

        with pytest.raises(InvalidCursorError):
            Cursor.decode(value)


class TestCursorPaginationParams:
    """Tests for limit clamping."""

    def test_limit_clamped(self):
        assert CursorPaginationParams(limit=0).limit == 1
        assert CursorPaginationParams(limit=500).limit == 100
        assert CursorPaginationParams(limit=20).limit == 20

    def test_no_cursor_decodes_to_none(self):
        assert CursorPaginationParams().decode_cursor() is None

    def test_result_has_more(self):
        assert CursorPaginatedResult(items=[1], next_cursor="abc").has_more is True
        assert CursorPaginatedResult(items=[1]).to_dict() == {
            "items": [1],
            "next_cursor": None,
            "prev_cursor": None,
            "has_more": False,
            "has_previous": False,
        }


class TestMessagePagination:
    """Tests for MessagePaginationEngine.list."""

    def test_pages_newest_first(self, db_session, conversation):
        ids = [m.id for m in conversation["messages"]]
        engine = MessagePaginationEngine(db_session)
        planet_id = conversation["planet"].id

        page1 = engine.list(planet_id, limit=2)
        page2 = engine.list(planet_id, cursor=page1.next_cursor, limit=2)
        page3 = engine.list(planet_id, cursor=page2.next_cursor, limit=2)

        assert _ids(page1) == [ids[4], ids[3]]
        assert _ids(page2) == [ids[2], ids[1]]
        assert _ids(page3) == [ids[0]]
        assert page3.next_cursor is None

    def test_delete_between_pages(self, db_session, test_settings, conversation):
        ids = [m.id for m in conversation["messages"]]
        engine = MessagePaginationEngine(db_session)
        planet_id = conversation["planet"].id

        page1 = engine.list(planet_id, limit=2)
        ContentStore(db_session, test_settings).soft_delete(ids[2], conversation["sender"].id)
        page2 = engine.list(planet_id, cursor=page1.next_cursor, limit=2)

        assert _ids(page1) == [ids[4], ids[3]]
        assert _ids(page2) == [ids[1], ids[0]]
        assert page2.next_cursor is None

    def test_new_messages_do_not_shift_later_pages(self, db_session, conversation):
        ids = [m.id for m in conversation["messages"]]
        engine = MessagePaginationEngine(db_session)
        planet_id = conversation["planet"].id

        page1 = engine.list(planet_id, limit=2)
        create_message(db_session, conversation["planet"], conversation["sender"], body="late")
        seen = _ids(page1)
        cursor = page1.next_cursor
        while cursor:
            page = engine.list(planet_id, cursor=cursor, limit=2)
            seen.extend(_ids(page))
            cursor = page.next_cursor

        assert seen == list(reversed(ids))

    def test_timestamp_ties_broken_by_id(self, db_session):
        sender = create_user(db_session, display_name="Sender")
        planet = create_planet(db_session)
        same_time = utcnow() - timedelta(minutes=5)
        messages = [
            create_message(db_session, planet, sender, body=f"tie {i}", created_at=same_time)
            for i in range(3)
        ]
        engine = MessagePaginationEngine(db_session)

        page1 = engine.list(planet.id, limit=2)
        page2 = engine.list(planet.id, cursor=page1.next_cursor, limit=2)

        assert _ids(page1) == [messages[2].id, messages[1].id]
        assert _ids(page2) == [messages[0].id]

    def test_empty_conversation(self, db_session):
        planet = create_planet(db_session, name="Empty")

        page = MessagePaginationEngine(db_session).list(planet.id)

        assert page.items == []
        assert page.next_cursor is None

    def test_other_conversations_excluded(self, db_session, conversation):
        other = create_planet(db_session, name="Other")
        create_message(db_session, other, conversation["sender"])

        page = MessagePaginationEngine(db_session).list(conversation["planet"].id, limit=100)

        assert len(page.items) == 5

    def test_invalid_cursor(self, db_session, conversation):
        with pytest.raises(InvalidCursorError):
            MessagePaginationEngine(db_session).list(conversation["planet"].id, cursor="bogus")

    def test_filter_by_type_and_system(self, db_session, conversation):
        create_message(
            db_session,
            conversation["planet"],
            conversation["sender"],
            body=None,
            type="system",
            system_metadata={"event": "joined"},
        )
        image = create_message(
            db_session,
            conversation["planet"],
            conversation["sender"],
            body=None,
            type="image",
            file_metadata={"storage_key": "k"},
        )
        engine = MessagePaginationEngine(db_session)
        planet_id = conversation["planet"].id

        images = engine.list(planet_id, filter=MessageFilter(types=["image"]))
        no_system = engine.list(planet_id, filter=MessageFilter(include_system=False))

        assert _ids(images) == [image.id]
        assert len(no_system.items) == 6
        assert all(m.type != "system" for m in no_system.items)

    def test_filter_by_sender_and_time(self, db_session, conversation):
        other = create_user(db_session, display_name="Other")
        create_planet_user(db_session, conversation["planet"], other)
        create_message(db_session, conversation["planet"], other, body="mine")
        messages = conversation["messages"]
        engine = MessagePaginationEngine(db_session)
        planet_id = conversation["planet"].id

        from_other = engine.list(planet_id, filter=MessageFilter(sender_id=other.id))
        window = engine.list(
            planet_id,
            filter=MessageFilter(since=messages[1].created_at, until=messages[3].created_at),
        )

        assert [m.body for m in from_other.items] == ["mine"]
        assert _ids(window) == [messages[2].id, messages[1].id]

    def test_unknown_type_rejected(self, db_session, conversation):
        with pytest.raises(ValueError, match="bogus"):
            MessagePaginationEngine(db_session).list(
                conversation["planet"].id, filter=MessageFilter(types=["text", "bogus"])
            )

    def test_unknown_direction_rejected(self, db_session, conversation):
        with pytest.raises(ValueError):
            MessagePaginationEngine(db_session).list(conversation["planet"].id, direction="up")


class TestBidirectionalPagination:
    """Tests for prev_cursor and oldest-first listings."""

    def test_first_page_has_no_prev_cursor(self, db_session, conversation):
        page = MessagePaginationEngine(db_session).list(conversation["planet"].id, limit=2)

        assert page.prev_cursor is None
        assert page.has_previous is False

    def test_walk_back_to_first_page(self, db_session, conversation):
        """Test that prev_cursor returns the preceding page, still newest first."""
        ids = [m.id for m in conversation["messages"]]
        engine = MessagePaginationEngine(db_session)
        planet_id = conversation["planet"].id

        page1 = engine.list(planet_id, limit=2)
        page2 = engine.list(planet_id, cursor=page1.next_cursor, limit=2)
        page3 = engine.list(planet_id, cursor=page2.next_cursor, limit=2)

        back2 = engine.list(planet_id, cursor=page3.prev_cursor, limit=2)
        back1 = engine.list(planet_id, cursor=back2.prev_cursor, limit=2)

        assert _ids(back2) == [ids[2], ids[1]]
        assert back2.next_cursor is not None
        assert _ids(back1) == [ids[4], ids[3]]
        assert back1.prev_cursor is None
        assert _ids(engine.list(planet_id, cursor=back2.next_cursor, limit=2)) == [ids[0]]

    def test_oldest_first(self, db_session, conversation):
        ids = [m.id for m in conversation["messages"]]
        engine = MessagePaginationEngine(db_session)
        planet_id = conversation["planet"].id

        seen = []
        cursor = None
        while True:
            page = engine.list(planet_id, cursor=cursor, limit=2, direction="asc")
            seen.extend(_ids(page))
            cursor = page.next_cursor
            if cursor is None:
                break

        assert seen == ids
        back = engine.list(planet_id, cursor=page.prev_cursor, limit=2, direction="asc")
        assert _ids(back) == [ids[2], ids[3]]

    def test_walk_back_skips_deleted(self, db_session, test_settings, conversation):
        ids = [m.id for m in conversation["messages"]]
        engine = MessagePaginationEngine(db_session)
        planet_id = conversation["planet"].id

        page1 = engine.list(planet_id, limit=2)
        page2 = engine.list(planet_id, cursor=page1.next_cursor, limit=2)
        ContentStore(db_session, test_settings).soft_delete(ids[3], conversation["sender"].id)

        back = engine.list(planet_id, cursor=page2.prev_cursor, limit=2)

        assert _ids(back) == [ids[4]]
        assert back.prev_cursor is None


class TestListAround:
    """Tests for MessagePaginationEngine.list_around."""

    def test_context_on_both_sides(self, db_session, conversation):
        ids = [m.id for m in conversation["messages"]]

        result = MessagePaginationEngine(db_session).list_around(
            conversation["planet"].id, ids[2], context_size=1
        )

        assert result["anchor"].id == ids[2]
        assert [m.id for m in result["before"]] == [ids[1]]
        assert [m.id for m in result["after"]] == [ids[3]]

    def test_context_at_edges(self, db_session, conversation):
        ids = [m.id for m in conversation["messages"]]

        result = MessagePaginationEngine(db_session).list_around(
            conversation["planet"].id, ids[0], context_size=10
        )

        assert result["before"] == []
        assert [m.id for m in result["after"]] == ids[1:]

    def test_deleted_anchor_not_found(self, db_session, conversation):
        message = conversation["messages"][0]
        message.deleted_at = utcnow()
        db_session.flush()

        with pytest.raises(NotFoundError):
            MessagePaginationEngine(db_session).list_around(conversation["planet"].id, message.id)

    def test_anchor_from_other_conversation(self, db_session, conversation):
        other = create_planet(db_session, name="Other")

        with pytest.raises(NotFoundError):
            MessagePaginationEngine(db_session).list_around(
                other.id, conversation["messages"][0].id
            )


class TestMessageStats:
    """Tests for MessagePaginationEngine.stats."""

    def test_stats_cover_live_messages(self, db_session, test_settings, conversation):
        messages = conversation["messages"]
        reader = create_user(db_session, display_name="Reader")
        create_planet_user(db_session, conversation["planet"], reader)
        create_message(
            db_session,
            conversation["planet"],
            conversation["sender"],
            body=None,
            type="file",
            file_metadata={"storage_key": "k", "original_name": "plan.pdf"},
            created_at=messages[-1].created_at + timedelta(seconds=1),
        )
        messages[0].deleted_at = utcnow()
        db_session.flush()

        stats = MessagePaginationEngine(db_session, test_settings).stats(
            conversation["planet"].id, user_id=reader.id
        )

        assert stats["total_messages"] == 5
        assert stats["oldest_message_at"] == messages[1].created_at
        assert stats["newest_message_at"] > messages[-1].created_at
        assert stats["message_types"] == ["file", "text"]
        assert stats["unread_count"] == 5

    def test_stats_without_user(self, db_session):
        planet = create_planet(db_session, name="Empty")

        stats = MessagePaginationEngine(db_session).stats(planet.id)

        assert stats["total_messages"] == 0
        assert stats["oldest_message_at"] is None
        assert stats["message_types"] == []
        assert stats["unread_count"] is None
