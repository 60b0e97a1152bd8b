"""Outbound email seam used by notification fan-out."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from beefunded.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailMessage:
    """A rendered-on-delivery email: template name plus its context."""

    to: str
    subject: str
    template: str
    context: dict[str, Any] = field(default_factory=dict)
    sender: str = field(default_factory=lambda: settings.mail_from)


class Mailer(Protocol):
    async def send(self, message: MailMessage) -> None:
        ...


class LogMailer:
    """Mailer that records messages in the log instead of delivering them."""

    async def send(self, message: MailMessage) -> None:
        logger.info(
            "Mail %r to %s using template %s",
            message.subject,
            message.to,
            message.template,
        )
