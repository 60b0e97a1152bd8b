"""In-app notification persistence, live streams and fan-out.

Three pieces cooperate here:

- :class:`NotificationStreamRegistry` keeps at most one live SSE queue per
  recipient profile. It is process-wide and never persisted.
- :class:`NotificationService` is the synchronous, session-bound data access
  layer for notifications and notification settings.
- :class:`NotificationDispatcher` resolves recipients for a reconciled event,
  saves one row per recipient, and only then pushes to live streams and mail.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from beefunded.core.settings import settings
from beefunded.db.session import SessionFactory
from beefunded.models import Notification, NotificationSettings, Profile, profile_follower
from beefunded.models.notification import (
    CHANNEL_EMAIL,
    CHANNEL_IN_APP,
    CHANNELS,
    NOTIFICATION_TYPE_ON_CHAIN,
    default_notification_settings,
)
from beefunded.services.mail import LogMailer, Mailer, MailMessage
from beefunded.services.tokenizer import format_template

logger = logging.getLogger(__name__)

STREAM_QUEUE_SIZE = 100


@dataclass(frozen=True)
class NotificationEvent:
    """One server-sent event: the event name and its JSON payload."""

    event: str
    data: dict[str, Any]


# Pushed into a replaced or unregistered queue to end its SSE response.
STREAM_CLOSED: None = None


class NotificationStreamRegistry:
    """Concurrency-safe map of recipient profile id to its live event queue."""

    def __init__(self, queue_size: int = STREAM_QUEUE_SIZE) -> None:
        self._lock = asyncio.Lock()
        self._streams: dict[str, asyncio.Queue[NotificationEvent | None]] = {}
        self._queue_size = queue_size

    async def register(self, recipient_id: str) -> asyncio.Queue[NotificationEvent | None]:
        """Open a stream for ``recipient_id``, closing any stream it replaces."""
        queue: asyncio.Queue[NotificationEvent | None] = asyncio.Queue(self._queue_size)
        async with self._lock:
            previous = self._streams.get(recipient_id)
            self._streams[recipient_id] = queue
        if previous is not None:
            logger.info("Replacing notification stream for profile %s", recipient_id)
            _close(previous)
        return queue

    async def unregister(
        self,
        recipient_id: str,
        queue: asyncio.Queue[NotificationEvent | None] | None = None,
    ) -> None:
        """Drop the stream of ``recipient_id``.

        When ``queue`` is given the entry is only removed if it is still that
        queue, so a replaced connection cannot evict its successor.
        """
        async with self._lock:
            current = self._streams.get(recipient_id)
            if current is None or (queue is not None and current is not queue):
                return
            del self._streams[recipient_id]
        _close(current)

    async def publish(self, recipient_id: str, event: NotificationEvent) -> bool:
        """Push ``event`` to the recipient's live stream, if there is one."""
        async with self._lock:
            queue = self._streams.get(recipient_id)
        if queue is None:
            return False
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Dropping notification for slow stream of profile %s", recipient_id)
            return False
        return True

    def is_connected(self, recipient_id: str) -> bool:
        return recipient_id in self._streams

    def __len__(self) -> int:
        return len(self._streams)


def _close(queue: asyncio.Queue[NotificationEvent | None]) -> None:
    try:
        queue.put_nowait(STREAM_CLOSED)
    except asyncio.QueueFull:
        logger.warning("Could not signal closure to a full notification stream")


_registry = NotificationStreamRegistry()


def get_notification_registry() -> NotificationStreamRegistry:
    """Return the process-wide stream registry."""
    return _registry


@dataclass
class NotificationPage:
    data: list[dict[str, Any]]
    offset: int
    limit: int
    count: int


class NotificationService:
    """Notification and notification-settings queries for a single session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def save(
        self,
        profile_id: str,
        *,
        title: str,
        message: str,
        type: str = NOTIFICATION_TYPE_ON_CHAIN,
        actor_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Notification:
        """Persist an unread notification for ``profile_id`` and return it with its id."""
        notification = Notification(
            profile_id=profile_id,
            actor_id=actor_id,
            title=title,
            message=message,
            type=type,
            is_read=False,
            extra=dict(metadata) if metadata else None,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_as_read(self, notification_id: str, profile_id: str) -> bool:
        """Mark one notification read. Returns False when the caller does not own it."""
        result = self.db.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.profile_id == profile_id)
            .values(is_read=True)
        )
        self.db.commit()
        return bool(result.rowcount)

    def get_notifications(
        self,
        profile_id: str,
        offset: int = 0,
        limit: int = 10,
    ) -> NotificationPage:
        """Return newest-first notifications for ``profile_id``.

        ``limit`` is clamped to ``1..NOTIFICATION_PAGE_MAX_LIMIT``.
        """
        offset = max(0, offset)
        limit = max(1, min(limit, settings.notification_page_max_limit))
        count = self.db.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.profile_id == profile_id
            )
        )
        rows = self.db.scalars(
            select(Notification)
            .where(Notification.profile_id == profile_id)
            .order_by(Notification.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return NotificationPage(
            data=[self.prepare(row) for row in rows],
            offset=offset,
            limit=limit,
            count=int(count or 0),
        )

    def get_total_unread(self, profile_id: str) -> int:
        count = self.db.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.profile_id == profile_id,
                Notification.is_read.is_(False),
            )
        )
        return int(count or 0)

    def get_settings(self, profile_id: str) -> NotificationSettings:
        """Return the settings row of ``profile_id``, creating the defaults if missing."""
        row = self.db.scalar(
            select(NotificationSettings).where(NotificationSettings.profile_id == profile_id)
        )
        if row is None:
            row = NotificationSettings(
                profile_id=profile_id,
                settings=default_notification_settings(),
            )
            self.db.add(row)
            self.db.commit()
        return row

    def update_settings(self, profile_id: str, payload: Mapping[str, Any]) -> NotificationSettings:
        """Replace the settings document of ``profile_id``."""
        row = self.get_settings(profile_id)
        # JSON columns only notice reassignment, never in-place mutation.
        row.settings = copy.deepcopy(dict(payload))
        self.db.commit()
        return row

    def get_followers(self, profile_id: str) -> list[Profile]:
        return list(
            self.db.scalars(
                select(Profile)
                .join(profile_follower, profile_follower.c.follower_id == Profile.id)
                .where(profile_follower.c.profile_id == profile_id)
                .order_by(Profile.created_at)
            ).all()
        )

    def get_followers_for_preference(
        self,
        profile_id: str,
        preference: str,
    ) -> dict[str, list[Profile]]:
        """Group the followers of ``profile_id`` by the channels that allow ``preference``."""
        result: dict[str, list[Profile]] = {channel: [] for channel in CHANNELS}
        for follower in self.get_followers(profile_id):
            follower_settings = self.get_settings(follower.id)
            for channel in CHANNELS:
                if follower_settings.allows(channel, preference):
                    result[channel].append(follower)
        return result

    def prepare(self, notification: Notification) -> dict[str, Any]:
        """Render a notification for clients.

        Placeholders in the title and message are filled from the stored
        metadata plus ``{display_name}``, the actor's name.
        """
        values: dict[str, Any] = dict(notification.extra or {})
        actor = notification.actor
        if actor is not None:
            values["display_name"] = actor.name
        return {
            "id": notification.id,
            "title": format_template(notification.title, values),
            "message": format_template(notification.message, values),
            "type": notification.type,
            "is_read": notification.is_read,
            "metadata": notification.extra,
            "actor": (
                {
                    "id": actor.id,
                    "display_name": actor.display_name,
                    "username": actor.username,
                    "avatar": actor.avatar,
                }
                if actor is not None
                else None
            ),
            "created_at": notification.created_at.isoformat(),
            "updated_at": notification.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class NotificationContent:
    """What to tell a recipient; ``event`` becomes the SSE event name."""

    event: str
    title: str
    message: str
    type: str = NOTIFICATION_TYPE_ON_CHAIN
    actor_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MailContent:
    subject: str
    template: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class _Delivery:
    profile_id: str
    payload: dict[str, Any] | None = None
    email: str | None = None
    name: str | None = None


@dataclass
class DispatchReport:
    """Where a dispatch ended up; mainly useful for logging and tests."""

    saved: list[str] = field(default_factory=list)
    pushed: list[str] = field(default_factory=list)
    mailed: list[str] = field(default_factory=list)


class NotificationDispatcher:
    """Fans a reconciled event out to in-app streams and email.

    Rows are always committed (in a worker thread) before the matching event is
    published on the loop, so a client that reconnects after a push finds the
    notification by query.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        registry: NotificationStreamRegistry | None = None,
        mailer: Mailer | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.registry = registry or get_notification_registry()
        self.mailer = mailer or LogMailer()

    async def notify_profile(
        self,
        profile_id: str,
        preference: str,
        content: NotificationContent,
        mail: MailContent | None = None,
    ) -> DispatchReport:
        """Notify a single profile on every channel its settings allow."""
        delivery = await asyncio.to_thread(
            self._persist_for_profile, profile_id, preference, content
        )
        return await self._deliver([delivery], content, mail)

    async def notify_actor(
        self,
        actor_profile_id: str,
        preference: str,
        content: NotificationContent,
        mail: MailContent | None = None,
    ) -> DispatchReport:
        """Confirm an action to the profile that performed it."""
        return await self.notify_profile(actor_profile_id, preference, content, mail)

    async def notify_followers(
        self,
        actor_profile_id: str,
        preference: str,
        content: NotificationContent,
        mail: MailContent | None = None,
    ) -> DispatchReport:
        """Broadcast to the followers of the actor that opted into ``preference``."""
        deliveries = await asyncio.to_thread(
            self._persist_for_followers, actor_profile_id, preference, content
        )
        return await self._deliver(deliveries, content, mail)

    # --- Worker-thread helpers ---------------------------------------------------
    def _persist_for_profile(
        self,
        profile_id: str,
        preference: str,
        content: NotificationContent,
    ) -> _Delivery:
        with self._session_factory() as db:
            service = NotificationService(db)
            profile_settings = service.get_settings(profile_id)
            delivery = _Delivery(profile_id=profile_id)
            if profile_settings.allows(CHANNEL_IN_APP, preference):
                delivery.payload = self._save(service, profile_id, content)
            if profile_settings.allows(CHANNEL_EMAIL, preference):
                profile = db.get(Profile, profile_id)
                if profile is not None and profile.email:
                    delivery.email = profile.email
                    delivery.name = profile.name
            return delivery

    def _persist_for_followers(
        self,
        actor_profile_id: str,
        preference: str,
        content: NotificationContent,
    ) -> list[_Delivery]:
        with self._session_factory() as db:
            service = NotificationService(db)
            by_channel = service.get_followers_for_preference(actor_profile_id, preference)
            deliveries: dict[str, _Delivery] = {}
            for follower in by_channel[CHANNEL_IN_APP]:
                deliveries[follower.id] = _Delivery(
                    profile_id=follower.id,
                    payload=self._save(service, follower.id, content),
                )
            for follower in by_channel[CHANNEL_EMAIL]:
                if not follower.email:
                    continue
                delivery = deliveries.setdefault(follower.id, _Delivery(profile_id=follower.id))
                delivery.email = follower.email
                delivery.name = follower.name
            return list(deliveries.values())

    @staticmethod
    def _save(
        service: NotificationService,
        profile_id: str,
        content: NotificationContent,
    ) -> dict[str, Any]:
        notification = service.save(
            profile_id,
            title=content.title,
            message=content.message,
            type=content.type,
            actor_id=content.actor_id,
            metadata=content.metadata,
        )
        return service.prepare(notification)

    # --- Loop-side delivery -----------------------------------------------------
    async def _deliver(
        self,
        deliveries: list[_Delivery],
        content: NotificationContent,
        mail: MailContent | None,
    ) -> DispatchReport:
        report = DispatchReport()
        for delivery in deliveries:
            if delivery.payload is not None:
                report.saved.append(delivery.profile_id)
                event = NotificationEvent(event=content.event, data=delivery.payload)
                if await self.registry.publish(delivery.profile_id, event):
                    report.pushed.append(delivery.profile_id)
            if mail is not None and delivery.email:
                await self.mailer.send(
                    MailMessage(
                        to=delivery.email,
                        subject=mail.subject,
                        template=mail.template,
                        context={**mail.context, "name": delivery.name},
                    )
                )
                report.mailed.append(delivery.profile_id)
        return report
