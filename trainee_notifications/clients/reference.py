"""Reference data client: local office contacts."""

from typing import Dict, List, Optional
from urllib.parse import quote, urlparse

from trainee_notifications.logging import get_logger

from .base import BaseClient
from .exceptions import ClientResponseError

logger = get_logger(__name__, component="client")

CONTACT_TYPE_FIELD = "contactTypeName"
CONTACT_FIELD = "contact"
DEFAULT_NO_CONTACT = "your local deanery office"

TSS_SUPPORT = "TSS Support"
ONBOARDING_SUPPORT = "Onboarding Support"

HREF_URL = "url"
HREF_EMAIL = "email"
HREF_NONE = "NOT_HREF"


def contact_href_type(contact: Optional[str]) -> str:
    """Classify a contact for templates: ``email``, ``url`` or ``NOT_HREF``."""
    if not contact:
        return HREF_NONE
    if "@" in contact and " " not in contact.strip() and "," not in contact:
        return HREF_EMAIL
    parsed = urlparse(contact.strip())
    if parsed.scheme in ("http", "https") and parsed.netloc and " " not in contact.strip():
        return HREF_URL
    return HREF_NONE


def select_contact(
    contacts: List[Dict[str, str]],
    contact_type: str,
    fallback_type: Optional[str] = None,
    default: str = DEFAULT_NO_CONTACT,
) -> str:
    """Pick a contact by type, then by fallback type, then the default text."""
    by_type = {c.get(CONTACT_TYPE_FIELD): c.get(CONTACT_FIELD) for c in contacts}
    for wanted in (contact_type, fallback_type):
        if wanted and by_type.get(wanted):
            return by_type[wanted]
    return default


class ReferenceClient(BaseClient):
    """Client for the reference service's local office contact lookup."""

    CONTACTS_PATH = "api/local-office-contact-by-lo-name/{name}"

    def get_contacts(self, local_office: Optional[str]) -> List[Dict[str, str]]:
        """Fetch all contacts for a local office; an unknown office has none.

        Raises:
            ClientError: If the reference service cannot be reached or replies badly
        """
        if not local_office:
            return []

        data = self._make_request(
            self.CONTACTS_PATH.format(name=quote(local_office, safe="")),
            allow_not_found=True,
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise ClientResponseError(
                f"Expected a list of contacts for '{local_office}', got {type(data).__name__}"
            )
        return [c for c in data if isinstance(c, dict)]

    def get_owner_contact(
        self,
        local_office: Optional[str],
        contact_type: str = TSS_SUPPORT,
        fallback_type: Optional[str] = None,
    ) -> str:
        """Resolve the contact text shown to a trainee for their local office.

        Raises:
            ClientError: If the contact list cannot be fetched
        """
        contact = select_contact(self.get_contacts(local_office), contact_type, fallback_type)
        logger.debug(
            f"Resolved {contact_type} contact for {local_office}",
            extra={
                "event": "client.contact.resolved",
                "local_office": local_office,
                "contact_type": contact_type,
                "defaulted": contact == DEFAULT_NO_CONTACT,
            },
        )
        return contact
