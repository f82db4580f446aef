"""Account directory client.

Maps trainee ids to user account ids, and account ids to contact details.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Set

from trainee_notifications.logging import get_logger

from .base import BaseClient
from .exceptions import ClientResponseError

logger = get_logger(__name__, component="client")


@dataclass(frozen=True)
class AccountDetails:
    """Contact details of one user account."""

    email: Optional[str]
    family_name: Optional[str] = None
    given_name: Optional[str] = None


class AccountDirectory(Protocol):
    def list_accounts(self) -> Dict[str, Set[str]]:
        """Return subject id -> account ids for every known trainee."""
        ...

    def get_account(self, account_id: str) -> Optional[AccountDetails]:
        ...


class HttpAccountDirectory(BaseClient):
    """AccountDirectory backed by the accounts service API."""

    def list_accounts(self) -> Dict[str, Set[str]]:
        data = self._make_request("api/accounts")
        if not isinstance(data, dict):
            raise ClientResponseError(f"Expected an object of accounts, got {type(data).__name__}")

        accounts: Dict[str, Set[str]] = {}
        for subject_id, account_ids in data.items():
            if isinstance(account_ids, str):
                account_ids = [account_ids]
            accounts[str(subject_id)] = {str(a) for a in account_ids or []}

        logger.info(
            f"Loaded accounts for {len(accounts)} trainees",
            extra={"event": "client.accounts.loaded", "count": len(accounts)},
        )
        return accounts

    def get_account(self, account_id: str) -> Optional[AccountDetails]:
        data = self._make_request(f"api/accounts/{account_id}", allow_not_found=True)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ClientResponseError(f"Expected an account object, got {type(data).__name__}")
        return AccountDetails(
            email=data.get("email"),
            family_name=data.get("familyName"),
            given_name=data.get("givenName"),
        )
