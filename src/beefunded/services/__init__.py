# src/beefunded/services/__init__.py
"""Business logic services for the BeeFunded backend."""

from .nonce import NonceStore
from .notifications import NotificationDispatcher, NotificationService, NotificationStreamRegistry
from .reconciler import EventReconciler
from .tokens import CredentialIssuer

__all__ = [
    "CredentialIssuer",
    "EventReconciler",
    "NonceStore",
    "NotificationDispatcher",
    "NotificationService",
    "NotificationStreamRegistry",
]
