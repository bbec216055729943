"""Integration tests for the message endpoints.

Tests cover:
- GET /planets/{planet_id}/messages (cursor pagination both ways, filters)
- GET /planets/{planet_id}/stats
- GET /planets/{planet_id}/messages/{message_id}/context
- POST /planets/{planet_id}/messages
- PATCH /messages/{message_id}
- DELETE /messages/{message_id} and POST /messages/{message_id}/restore
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from planet_core.domain.models import Message, utcnow
from planet_core.domain.services.content_store import ContentStore
from tests.factories import (
    create_message,
    create_messages,
    create_planet,
    create_planet_user,
    create_user,
)


def actor(user) -> dict:
    return {"X-Actor-Id": str(user.id)}


@pytest.fixture
def room(db_session):
    """A committed conversation with two members and three messages."""
    alice = create_user(db_session, display_name="Alice")
    bob = create_user(db_session, display_name="Bob")
    planet = create_planet(db_session)
    create_planet_user(db_session, planet, alice)
    create_planet_user(db_session, planet, bob)
    # Recent enough to stay inside the edit window
    messages = create_messages(
        db_session, planet, alice, 3, start=utcnow() - timedelta(minutes=1)
    )
    db_session.commit()
    return {
        "alice": alice,
        "bob": bob,
        "planet": planet,
        "planet_id": planet.id,
        "message_ids": [m.id for m in messages],
    }


class TestAuthentication:
    """Requests must carry a usable actor header."""

    @pytest.mark.asyncio
    async def test_missing_actor_header(self, client: AsyncClient, room):
        response = await client.get(f"/planets/{room['planet_id']}/messages")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_actor(self, client: AsyncClient, room):
        response = await client.get(
            f"/planets/{room['planet_id']}/messages", headers={"X-Actor-Id": "9999"}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_erased_actor(self, client: AsyncClient, db_session, room):
        ghost = create_user(db_session, display_name="Ghost", deleted_at=utcnow())
        db_session.commit()

        response = await client.get(
            f"/planets/{room['planet_id']}/messages", headers=actor(ghost)
        )

        assert response.status_code == 403


class TestListMessages:
    """Tests for GET /planets/{planet_id}/messages."""

    @pytest.mark.asyncio
    async def test_list_newest_first_with_cursor(self, client: AsyncClient, room):
        """Test walking all pages with the returned cursor."""
        url = f"/planets/{room['planet_id']}/messages"

        first = await client.get(url, params={"limit": 2}, headers=actor(room["bob"]))
        assert first.status_code == 200
        data = first.json()
        assert [m["id"] for m in data["items"]] == room["message_ids"][:0:-1]
        assert data["has_more"] is True

        second = await client.get(
            url,
            params={"limit": 2, "cursor": data["next_cursor"]},
            headers=actor(room["bob"]),
        )
        data = second.json()
        assert [m["id"] for m in data["items"]] == [room["message_ids"][0]]
        assert data["has_more"] is False
        assert data["next_cursor"] is None

    @pytest.mark.asyncio
    async def test_invalid_cursor(self, client: AsyncClient, room):
        response = await client.get(
            f"/planets/{room['planet_id']}/messages",
            params={"cursor": "garbage"},
            headers=actor(room["bob"]),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_cursor"

    @pytest.mark.asyncio
    async def test_non_member_forbidden(self, client: AsyncClient, db_session, room):
        outsider = create_user(db_session, display_name="Outsider")
        db_session.commit()

        response = await client.get(
            f"/planets/{room['planet_id']}/messages", headers=actor(outsider)
        )

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, client: AsyncClient, room):
        response = await client.get("/planets/98765/messages", headers=actor(room["bob"]))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_filter_by_type(self, client: AsyncClient, db_session, room):
        image = create_message(
            db_session,
            room["planet"],
            room["alice"],
            body=None,
            type="image",
            file_metadata={"storage_key": "k"},
        )
        db_session.commit()

        response = await client.get(
            f"/planets/{room['planet_id']}/messages",
            params={"types": "image"},
            headers=actor(room["bob"]),
        )

        assert [m["id"] for m in response.json()["items"]] == [image.id]

    @pytest.mark.asyncio
    async def test_context(self, client: AsyncClient, room):
        ids = room["message_ids"]

        response = await client.get(
            f"/planets/{room['planet_id']}/messages/{ids[1]}/context",
            params={"size": 5},
            headers=actor(room["bob"]),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["anchor"]["id"] == ids[1]
        assert [m["id"] for m in data["before"]] == [ids[0]]
        assert [m["id"] for m in data["after"]] == [ids[2]]

    @pytest.mark.asyncio
    async def test_unknown_type_is_bad_request(self, client: AsyncClient, room):
        response = await client.get(
            f"/planets/{room['planet_id']}/messages",
            params={"types": ["text", "bogus"]},
            headers=actor(room["bob"]),
        )

        assert response.status_code == 400
        assert "bogus" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_oldest_first_and_back(self, client: AsyncClient, room):
        """Test that prev_cursor returns the preceding page in the same order."""
        url = f"/planets/{room['planet_id']}/messages"
        ids = room["message_ids"]

        first = (
            await client.get(
                url, params={"limit": 2, "direction": "asc"}, headers=actor(room["bob"])
            )
        ).json()
        assert [m["id"] for m in first["items"]] == ids[:2]
        assert first["prev_cursor"] is None

        second = (
            await client.get(
                url,
                params={"limit": 2, "direction": "asc", "cursor": first["next_cursor"]},
                headers=actor(room["bob"]),
            )
        ).json()
        assert [m["id"] for m in second["items"]] == [ids[2]]
        assert second["has_previous"] is True

        back = (
            await client.get(
                url,
                params={"limit": 2, "direction": "asc", "cursor": second["prev_cursor"]},
                headers=actor(room["bob"]),
            )
        ).json()
        assert [m["id"] for m in back["items"]] == ids[:2]
        assert back["has_previous"] is False

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient, db_session, room):
        create_message(
            db_session,
            room["planet"],
            room["alice"],
            body=None,
            type="image",
            file_metadata={"storage_key": "k"},
            deleted_at=utcnow(),
        )
        db_session.commit()

        response = await client.get(
            f"/planets/{room['planet_id']}/stats", headers=actor(room["bob"])
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_messages"] == 3
        assert data["message_types"] == ["text"]
        assert data["unread_count"] == 3
        assert data["oldest_message_at"] < data["newest_message_at"]

    @pytest.mark.asyncio
    async def test_departed_member_cannot_list(
        self, client: AsyncClient, db_session, test_settings, room
    ):
        store = ContentStore(db_session, test_settings)
        store.set_member_status(room["planet_id"], room["bob"].id, "left")
        db_session.commit()

        response = await client.get(
            f"/planets/{room['planet_id']}/messages", headers=actor(room["bob"])
        )

        assert response.status_code == 403


class TestPostMessage:
    """Tests for POST /planets/{planet_id}/messages."""

    @pytest.mark.asyncio
    async def test_post_message(self, client: AsyncClient, db_session, room):
        response = await client.post(
            f"/planets/{room['planet_id']}/messages",
            json={"body": "See you at the airport"},
            headers=actor(room["bob"]),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["body"] == "See you at the airport"
        assert data["sender_id"] == room["bob"].id
        assert data["version"] == 1

        db_session.expire_all()
        assert db_session.get(Message, data["id"]).searchable_text == "see you at the airport"

    @pytest.mark.asyncio
    async def test_post_empty_text(self, client: AsyncClient, room):
        response = await client.post(
            f"/planets/{room['planet_id']}/messages",
            json={"body": "  "},
            headers=actor(room["bob"]),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_post_publishes_event(self, client: AsyncClient, test_app, room):
        from unittest.mock import MagicMock

        from planet_core.api.deps import get_publisher

        publisher = MagicMock()
        test_app.dependency_overrides[get_publisher] = lambda: publisher

        response = await client.post(
            f"/planets/{room['planet_id']}/messages",
            json={"body": "ping"},
            headers=actor(room["bob"]),
        )

        assert response.status_code == 201
        event, payload = publisher.publish.call_args.args
        assert event == "message.created"
        assert payload["message_id"] == response.json()["id"]


class TestEditDeleteRestore:
    """Tests for edits, deletes and restores."""

    @pytest.mark.asyncio
    async def test_edit_message(self, client: AsyncClient, room):
        message_id = room["message_ids"][2]

        response = await client.patch(
            f"/messages/{message_id}",
            json={"body": "edited", "expected_version": 1},
            headers=actor(room["alice"]),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["body"] == "edited"
        assert data["is_edited"] is True
        assert data["version"] == 2

    @pytest.mark.asyncio
    async def test_edit_stale_version(self, client: AsyncClient, room):
        message_id = room["message_ids"][2]
        await client.patch(
            f"/messages/{message_id}", json={"body": "v2"}, headers=actor(room["alice"])
        )

        response = await client.patch(
            f"/messages/{message_id}",
            json={"body": "v3", "expected_version": 1},
            headers=actor(room["alice"]),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    @pytest.mark.asyncio
    async def test_edit_by_other_member(self, client: AsyncClient, room):
        response = await client.patch(
            f"/messages/{room['message_ids'][0]}",
            json={"body": "not mine"},
            headers=actor(room["bob"]),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_hides_message_from_listing(self, client: AsyncClient, room):
        message_id = room["message_ids"][1]

        response = await client.delete(
            f"/messages/{message_id}",
            params={"reason": "wrong chat"},
            headers=actor(room["alice"]),
        )
        assert response.status_code == 200
        assert response.json()["deleted_at"] is not None

        listing = await client.get(
            f"/planets/{room['planet_id']}/messages", headers=actor(room["bob"])
        )
        assert message_id not in [m["id"] for m in listing.json()["items"]]

    @pytest.mark.asyncio
    async def test_delete_twice_is_noop(self, client: AsyncClient, room):
        message_id = room["message_ids"][1]
        first = await client.delete(f"/messages/{message_id}", headers=actor(room["alice"]))
        second = await client.delete(f"/messages/{message_id}", headers=actor(room["alice"]))

        assert second.status_code == 200
        assert second.json()["deleted_at"] == first.json()["deleted_at"]

    @pytest.mark.asyncio
    async def test_delete_missing_message(self, client: AsyncClient, room):
        response = await client.delete("/messages/424242", headers=actor(room["alice"]))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_with_redact(self, client: AsyncClient, room):
        response = await client.delete(
            f"/messages/{room['message_ids'][0]}",
            params={"redact": "true"},
            headers=actor(room["alice"]),
        )

        data = response.json()
        assert data["is_redacted"] is True
        assert data["body"] is None

    @pytest.mark.asyncio
    async def test_restore(self, client: AsyncClient, room):
        message_id = room["message_ids"][0]
        await client.delete(f"/messages/{message_id}", headers=actor(room["alice"]))

        response = await client.post(
            f"/messages/{message_id}/restore", headers=actor(room["alice"])
        )

        assert response.status_code == 200
        assert response.json()["deleted_at"] is None
