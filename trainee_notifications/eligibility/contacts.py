"""Local office contact lookup shared by one evaluation pass."""

from typing import Dict, Optional, Tuple

from trainee_notifications.clients.reference import (
    DEFAULT_NO_CONTACT,
    ReferenceClient,
    contact_href_type,
)


class ContactLookup:
    """Memoises contact lookups so a pass asks the reference service once per office.

    Without a client every lookup yields the default contact text. Client
    errors propagate to the caller building template variables.
    """

    def __init__(self, client: Optional[ReferenceClient] = None):
        self.client = client
        self._cache: Dict[Tuple[Optional[str], str, Optional[str]], str] = {}

    def contact(
        self, local_office: Optional[str], contact_type: str, fallback_type: Optional[str] = None
    ) -> str:
        key = (local_office, contact_type, fallback_type)
        if key not in self._cache:
            if self.client is None:
                self._cache[key] = DEFAULT_NO_CONTACT
            else:
                self._cache[key] = self.client.get_owner_contact(
                    local_office, contact_type, fallback_type
                )
        return self._cache[key]

    def variables(
        self, local_office: Optional[str], contact_type: str, fallback_type: Optional[str] = None
    ) -> Dict[str, str]:
        """Template variables ``localOfficeContact`` and ``contactHref``."""
        contact = self.contact(local_office, contact_type, fallback_type)
        return {"localOfficeContact": contact, "contactHref": contact_href_type(contact)}
