"""Recipient resolution: trainee id -> single user account -> contact details."""

import threading
import time
from typing import Callable, Dict, Optional, Set

from trainee_notifications.clients.accounts import AccountDetails, AccountDirectory
from trainee_notifications.clients.exceptions import ClientError
from trainee_notifications.logging import get_logger

from .models import MultipleRecipientsError, RecipientLookupError, RecipientNotFoundError

logger = get_logger(__name__, component="accounts")


class UserAccountService:
    """Resolves trainees to accounts through a cached account directory.

    The subject -> account id map is loaded in full and refreshed when a
    subject is missing from it and the cache is older than ``refresh_seconds``.

    Args:
        directory: Source of account data
        refresh_seconds: Minimum cache age before a miss triggers a reload
        clock: Monotonic clock, for tests
    """

    def __init__(
        self,
        directory: AccountDirectory,
        refresh_seconds: int = 900,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.directory = directory
        self.refresh_seconds = refresh_seconds
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._accounts: Dict[str, Set[str]] = {}
        self._loaded_at: Optional[float] = None

    def _refresh(self) -> None:
        self._accounts = self.directory.list_accounts()
        self._loaded_at = self._clock()
        logger.debug(
            "Account cache refreshed",
            extra={"event": "accounts.cache.refreshed", "count": len(self._accounts)},
        )

    def get_account_ids(self, subject_id: str) -> Set[str]:
        """Return the account ids linked to a trainee (possibly empty)."""
        with self._lock:
            stale = (
                self._loaded_at is None
                or self._clock() - self._loaded_at >= self.refresh_seconds
            )
            if subject_id not in self._accounts and stale:
                self._refresh()
            return set(self._accounts.get(subject_id, set()))

    def invalidate(self) -> None:
        """Force a reload on the next lookup miss."""
        with self._lock:
            self._loaded_at = None

    def resolve(self, subject_id: str) -> AccountDetails:
        """Resolve a trainee to exactly one account with an email address.

        Raises:
            RecipientNotFoundError: If no account, or no address, exists
            MultipleRecipientsError: If more than one account is linked
            RecipientLookupError: If the account directory failed
        """
        try:
            account_ids = self.get_account_ids(subject_id)
        except ClientError as e:
            raise self._lookup_failed(subject_id, e) from e

        if not account_ids:
            raise RecipientNotFoundError(subject_id)
        if len(account_ids) > 1:
            logger.error(
                f"Subject {subject_id} has {len(account_ids)} accounts",
                extra={"event": "accounts.ambiguous", "subject_id": subject_id},
            )
            raise MultipleRecipientsError(subject_id, account_ids)

        try:
            details = self.directory.get_account(next(iter(account_ids)))
        except ClientError as e:
            raise self._lookup_failed(subject_id, e) from e
        if details is None or not details.email:
            raise RecipientNotFoundError(
                subject_id, f"No email address found for subject {subject_id}"
            )
        return details

    @staticmethod
    def _lookup_failed(subject_id: str, error: ClientError) -> RecipientLookupError:
        logger.error(
            f"Account lookup for subject {subject_id} failed: {error}",
            extra={
                "event": "accounts.lookup_failed",
                "subject_id": subject_id,
                "error_type": type(error).__name__,
            },
        )
        return RecipientLookupError(subject_id, f"Account lookup failed: {error}")
