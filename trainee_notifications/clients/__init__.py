"""HTTP clients for the reference and accounts services."""

from .accounts import AccountDetails, AccountDirectory, HttpAccountDirectory
from .base import BaseClient
from .exceptions import (
    ClientConfigurationError,
    ClientError,
    ClientHTTPError,
    ClientResponseError,
    ClientTimeoutError,
)
from .reference import (
    DEFAULT_NO_CONTACT,
    ONBOARDING_SUPPORT,
    TSS_SUPPORT,
    ReferenceClient,
    contact_href_type,
    select_contact,
)

__all__ = [
    "AccountDetails",
    "AccountDirectory",
    "HttpAccountDirectory",
    "BaseClient",
    "ReferenceClient",
    "contact_href_type",
    "select_contact",
    "DEFAULT_NO_CONTACT",
    "TSS_SUPPORT",
    "ONBOARDING_SUPPORT",
    "ClientError",
    "ClientHTTPError",
    "ClientTimeoutError",
    "ClientResponseError",
    "ClientConfigurationError",
]
