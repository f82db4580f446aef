"""Resending failed emails after contact changes, and the one-shot migration."""

from .contact_details import ContactDetailsService, needs_resend
from .migration import FailedNotificationMigration, MigrationResult

__all__ = [
    "ContactDetailsService",
    "needs_resend",
    "FailedNotificationMigration",
    "MigrationResult",
]
