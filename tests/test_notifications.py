# tests/test_notifications.py
"""Tests for notification storage, live streams and endpoints."""

from __future__ import annotations

import asyncio
import copy
import json

import pytest
from fastapi import status

from beefunded.api.v1.endpoints.notifications import _event_stream, format_sse
from beefunded.models.notification import CHANNEL_EMAIL, CHANNEL_IN_APP
from beefunded.services.notifications import (
    STREAM_CLOSED,
    NotificationContent,
    NotificationDispatcher,
    NotificationEvent,
    NotificationService,
    NotificationStreamRegistry,
)
from beefunded.services.tokenizer import format_template


def _event(name: str = "donation_received") -> NotificationEvent:
    return NotificationEvent(event=name, data={"id": "n1", "title": "New donation"})


class TestTokenizer:
    def test_named_placeholders(self) -> None:
        assert format_template("Hello {name}!", {"name": "Alice"}) == "Hello Alice!"

    def test_positional_placeholders(self) -> None:
        assert format_template("{0} has {1} new", ["Alice", 5]) == "Alice has 5 new"

    def test_missing_values_render_empty(self) -> None:
        assert format_template("Hi {name}{missing}", {"name": None}) == "Hi "


class TestRegistry:
    @pytest.mark.asyncio
    async def test_publish_reaches_registered_stream(self, registry) -> None:
        queue = await registry.register("p1")

        assert await registry.publish("p1", _event()) is True
        assert queue.get_nowait() == _event()

    @pytest.mark.asyncio
    async def test_publish_without_stream_is_dropped(self, registry) -> None:
        assert await registry.publish("nobody", _event()) is False

    @pytest.mark.asyncio
    async def test_second_registration_replaces_and_closes_first(self, registry) -> None:
        first = await registry.register("p1")
        second = await registry.register("p1")

        assert first.get_nowait() is STREAM_CLOSED
        await registry.publish("p1", _event())
        assert second.get_nowait() == _event()
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_stale_unregister_keeps_newer_stream(self, registry) -> None:
        first = await registry.register("p1")
        await registry.register("p1")

        await registry.unregister("p1", first)

        assert registry.is_connected("p1")

    @pytest.mark.asyncio
    async def test_unregister_closes_stream(self, registry) -> None:
        queue = await registry.register("p1")

        await registry.unregister("p1")

        assert not registry.is_connected("p1")
        assert queue.get_nowait() is STREAM_CLOSED

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self) -> None:
        registry = NotificationStreamRegistry(queue_size=1)
        await registry.register("p1")

        assert await registry.publish("p1", _event()) is True
        assert await registry.publish("p1", _event()) is False


class TestEventStream:
    class _Request:
        async def is_disconnected(self) -> bool:
            return False

    def test_format_sse(self) -> None:
        text = format_sse(_event())

        assert text.startswith("event: donation_received\ndata: ")
        assert text.endswith("\n\n")
        assert json.loads(text.split("data: ", 1)[1]) == {"id": "n1", "title": "New donation"}

    @pytest.mark.asyncio
    async def test_stream_yields_events_until_closed(self, registry) -> None:
        stream = _event_stream(self._Request(), registry, "p1")
        pending = asyncio.ensure_future(stream.__anext__())
        for _ in range(10):
            if registry.is_connected("p1"):
                break
            await asyncio.sleep(0)

        await registry.publish("p1", _event())
        chunk = await pending
        await registry.unregister("p1")

        assert chunk == format_sse(_event())
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert not registry.is_connected("p1")


class TestNotificationService:
    def test_pagination_is_clamped(self, db_session, test_user) -> None:
        service = NotificationService(db_session)
        for index in range(25):
            service.save(test_user.profile.id, title=f"t{index}", message="m")

        page = service.get_notifications(test_user.profile.id, offset=-5, limit=500)

        assert page.offset == 0
        assert page.limit == 20
        assert page.count == 25
        assert len(page.data) == 20

    def test_unread_count_is_per_profile(self, db_session, test_user, other_user) -> None:
        service = NotificationService(db_session)
        service.save(test_user.profile.id, title="a", message="m")
        service.save(test_user.profile.id, title="b", message="m")
        service.save(other_user.profile.id, title="c", message="m")

        assert service.get_total_unread(test_user.profile.id) == 2
        assert service.get_total_unread(other_user.profile.id) == 1

    def test_mark_as_read_requires_ownership(self, db_session, test_user, other_user) -> None:
        service = NotificationService(db_session)
        notification = service.save(test_user.profile.id, title="a", message="m")

        assert service.mark_as_read(notification.id, other_user.profile.id) is False
        assert service.get_total_unread(test_user.profile.id) == 1
        assert service.mark_as_read(notification.id, test_user.profile.id) is True
        assert service.get_total_unread(test_user.profile.id) == 0

    def test_prepare_renders_actor_and_metadata(self, db_session, test_user, other_user) -> None:
        service = NotificationService(db_session)
        notification = service.save(
            other_user.profile.id,
            title="{display_name} published {pool_title}",
            message="Go see it",
            actor_id=test_user.profile.id,
            metadata={"pool_title": "Save the bees"},
        )
        db_session.refresh(notification)

        rendered = service.prepare(notification)

        assert rendered["title"] == "Alice published Save the bees"
        assert rendered["actor"]["username"] == "alice"
        assert rendered["metadata"] == {"pool_title": "Save the bees"}
        assert rendered["is_read"] is False

    def test_followers_grouped_by_channel(self, db_session, test_user, other_user) -> None:
        test_user.profile.followers.append(other_user.profile)
        db_session.commit()
        service = NotificationService(db_session)
        document = copy.deepcopy(service.get_settings(other_user.profile.id).settings)
        document["channels"][CHANNEL_EMAIL]["enabled"] = False
        service.update_settings(other_user.profile.id, document)

        grouped = service.get_followers_for_preference(
            test_user.profile.id, "followers_pool_creation"
        )

        assert [p.id for p in grouped[CHANNEL_IN_APP]] == [other_user.profile.id]
        assert grouped[CHANNEL_EMAIL] == []


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_saves_before_publishing(
        self, session_factory, registry, db_session, test_user
    ) -> None:
        queue = await registry.register(test_user.profile.id)
        dispatcher = NotificationDispatcher(session_factory, registry=registry)

        report = await dispatcher.notify_profile(
            test_user.profile.id,
            "donation_received",
            NotificationContent(
                event="donation_received",
                title="New donation",
                message="You have received a new donation!",
            ),
        )

        pushed = queue.get_nowait()
        stored = NotificationService(db_session).get_notifications(test_user.profile.id)
        assert report.saved == report.pushed == [test_user.profile.id]
        assert pushed.data["id"] == stored.data[0]["id"]

    @pytest.mark.asyncio
    async def test_disabled_preference_is_skipped(
        self, session_factory, registry, db_session, test_user
    ) -> None:
        service = NotificationService(db_session)
        document = copy.deepcopy(service.get_settings(test_user.profile.id).settings)
        document["channels"][CHANNEL_IN_APP]["notifications"]["donation_received"] = False
        service.update_settings(test_user.profile.id, document)
        dispatcher = NotificationDispatcher(session_factory, registry=registry)

        report = await dispatcher.notify_profile(
            test_user.profile.id,
            "donation_received",
            NotificationContent(event="donation_received", title="t", message="m"),
        )

        assert report.saved == []
        assert service.get_total_unread(test_user.profile.id) == 0


class TestEndpoints:
    def test_requires_authentication(self, client) -> None:
        assert client.get("/api/v1/notification").status_code == status.HTTP_401_UNAUTHORIZED
        assert client.get("/api/v1/notification/sse").status_code == (
            status.HTTP_401_UNAUTHORIZED
        )

    def test_list_and_count(self, client, auth_token, db_session, test_user) -> None:
        service = NotificationService(db_session)
        service.save(test_user.profile.id, title="a", message="m")
        service.save(test_user.profile.id, title="b", message="m")

        listing = client.get("/api/v1/notification?limit=1", headers=auth_token)
        unread = client.get("/api/v1/notification/count-unread", headers=auth_token)

        assert listing.status_code == status.HTTP_200_OK
        body = listing.json()
        assert body["count"] == 2
        assert body["limit"] == 1
        assert len(body["data"]) == 1
        assert unread.json() == {"count": 2}

    def test_mark_as_read(self, client, auth_token, db_session, test_user, other_user) -> None:
        service = NotificationService(db_session)
        mine = service.save(test_user.profile.id, title="a", message="m")
        theirs = service.save(other_user.profile.id, title="b", message="m")

        ok = client.patch(f"/api/v1/notification/{mine.id}", headers=auth_token)
        forbidden = client.patch(f"/api/v1/notification/{theirs.id}", headers=auth_token)

        assert ok.status_code == status.HTTP_204_NO_CONTENT
        assert forbidden.status_code == status.HTTP_404_NOT_FOUND
        assert service.get_total_unread(other_user.profile.id) == 1

    def test_settings_round_trip(self, client, auth_token) -> None:
        current = client.get("/api/v1/notification/settings", headers=auth_token)
        assert current.status_code == status.HTTP_200_OK
        document = current.json()["settings"]
        assert document["channels"]["in_app"]["enabled"] is True

        document["channels"]["email"]["enabled"] = False
        updated = client.put("/api/v1/notification/settings", json=document, headers=auth_token)

        assert updated.status_code == status.HTTP_200_OK
        assert updated.json()["settings"]["channels"]["email"]["enabled"] is False
        again = client.get("/api/v1/notification/settings", headers=auth_token)
        assert again.json()["settings"]["channels"]["email"]["enabled"] is False
