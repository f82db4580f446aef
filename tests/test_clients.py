"""Unit tests for the reference data and account service clients."""

from unittest.mock import Mock

import pytest
import requests

from trainee_notifications.clients import (
    DEFAULT_NO_CONTACT,
    ONBOARDING_SUPPORT,
    TSS_SUPPORT,
    AccountDetails,
    BaseClient,
    ClientConfigurationError,
    ClientHTTPError,
    ClientResponseError,
    ClientTimeoutError,
    HttpAccountDirectory,
    ReferenceClient,
    contact_href_type,
    select_contact,
)


# ============================================================================
# Fixtures
# ============================================================================


def make_response(status_code=200, payload=None, reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def session():
    session = Mock()
    session.headers = {}
    return session


@pytest.fixture
def contacts():
    """Recorded contact list for one local office."""
    return [
        {"contactTypeName": TSS_SUPPORT, "contact": "england.tss@example.com"},
        {"contactTypeName": ONBOARDING_SUPPORT, "contact": "https://lo.example.com/onboarding"},
        {"contactTypeName": "Deferral", "contact": ""},
    ]


# ============================================================================
# Base Client Tests
# ============================================================================


class TestBaseClient:
    """Tests for BaseClient request handling and error mapping."""

    def test_empty_base_url(self):
        with pytest.raises(ClientConfigurationError):
            BaseClient("  ")

    def test_invalid_timeout(self, session):
        with pytest.raises(ClientConfigurationError):
            BaseClient("https://reference.example.com", timeout=0, session=session)

    def test_sets_session_headers(self, session):
        BaseClient("https://reference.example.com/", user_agent="Test/1.0", session=session)

        assert session.headers["User-Agent"] == "Test/1.0"
        assert session.headers["Accept"] == "application/json"

    def test_request_builds_url_and_returns_json(self, session):
        session.request.return_value = make_response(payload={"ok": True})
        client = BaseClient("https://reference.example.com/", timeout=5, session=session)

        assert client._make_request("/api/thing") == {"ok": True}
        session.request.assert_called_once_with(
            method="GET", url="https://reference.example.com/api/thing", params=None, timeout=5
        )

    def test_http_error(self, session):
        session.request.return_value = make_response(503, reason="Service Unavailable")
        client = BaseClient("https://reference.example.com", session=session)

        with pytest.raises(ClientHTTPError) as exc_info:
            client._make_request("api/thing")

        assert exc_info.value.status_code == 503
        assert exc_info.value.url == "https://reference.example.com/api/thing"

    def test_not_found_raises_unless_allowed(self, session):
        session.request.return_value = make_response(404, reason="Not Found")
        client = BaseClient("https://reference.example.com", session=session)

        with pytest.raises(ClientHTTPError):
            client._make_request("api/thing")
        assert client._make_request("api/thing", allow_not_found=True) is None

    def test_timeout(self, session):
        session.request.side_effect = requests.exceptions.Timeout("slow")
        client = BaseClient("https://reference.example.com", session=session)

        with pytest.raises(ClientTimeoutError):
            client._make_request("api/thing")

    def test_connection_error(self, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")
        client = BaseClient("https://reference.example.com", session=session)

        with pytest.raises(ClientHTTPError) as exc_info:
            client._make_request("api/thing")

        assert exc_info.value.status_code == 0

    def test_invalid_json(self, session):
        session.request.return_value = make_response(payload=ValueError("not json"))
        client = BaseClient("https://reference.example.com", session=session)

        with pytest.raises(ClientResponseError):
            client._make_request("api/thing")


# ============================================================================
# Reference Client Tests
# ============================================================================


class TestContactSelection:
    """Tests for contact selection and href classification."""

    def test_select_by_type(self, contacts):
        assert select_contact(contacts, TSS_SUPPORT) == "england.tss@example.com"

    def test_select_uses_fallback(self, contacts):
        assert select_contact(contacts, "Deferral", ONBOARDING_SUPPORT) == (
            "https://lo.example.com/onboarding"
        )

    def test_select_defaults(self, contacts):
        assert select_contact(contacts, "LTFT") == DEFAULT_NO_CONTACT
        assert select_contact([], TSS_SUPPORT) == DEFAULT_NO_CONTACT

    @pytest.mark.parametrize(
        "contact,expected",
        [
            ("england.tss@example.com", "email"),
            ("https://lo.example.com/onboarding", "url"),
            ("Call the office on 0123", "NOT_HREF"),
            ("a@example.com, b@example.com", "NOT_HREF"),
            (None, "NOT_HREF"),
        ],
    )
    def test_contact_href_type(self, contact, expected):
        assert contact_href_type(contact) == expected


class TestReferenceClient:
    """Tests for ReferenceClient."""

    def test_get_contacts_quotes_office_name(self, session, contacts):
        session.request.return_value = make_response(payload=contacts)
        client = ReferenceClient("https://reference.example.com", session=session)

        result = client.get_contacts("London LETBs")

        assert result == contacts
        assert session.request.call_args.kwargs["url"] == (
            "https://reference.example.com/api/local-office-contact-by-lo-name/London%20LETBs"
        )

    def test_get_contacts_without_office(self, session):
        client = ReferenceClient("https://reference.example.com", session=session)

        assert client.get_contacts(None) == []
        session.request.assert_not_called()

    def test_unknown_office_has_no_contacts(self, session):
        session.request.return_value = make_response(404, reason="Not Found")
        client = ReferenceClient("https://reference.example.com", session=session)

        assert client.get_contacts("Nowhere") == []

    def test_unexpected_shape(self, session):
        session.request.return_value = make_response(payload={"contact": "x"})
        client = ReferenceClient("https://reference.example.com", session=session)

        with pytest.raises(ClientResponseError):
            client.get_contacts("London LETBs")

    def test_get_owner_contact(self, session, contacts):
        session.request.return_value = make_response(payload=contacts)
        client = ReferenceClient("https://reference.example.com", session=session)

        assert client.get_owner_contact("London LETBs") == "england.tss@example.com"
        assert client.get_owner_contact("London LETBs", "LTFT") == DEFAULT_NO_CONTACT


# ============================================================================
# Account Directory Tests
# ============================================================================


class TestHttpAccountDirectory:
    """Tests for HttpAccountDirectory."""

    def test_list_accounts(self, session):
        session.request.return_value = make_response(
            payload={"47165": ["acc-1", "acc-2"], "12345": "acc-3", "55555": None}
        )
        directory = HttpAccountDirectory("https://accounts.example.com", session=session)

        accounts = directory.list_accounts()

        assert accounts == {"47165": {"acc-1", "acc-2"}, "12345": {"acc-3"}, "55555": set()}

    def test_list_accounts_unexpected_shape(self, session):
        session.request.return_value = make_response(payload=["acc-1"])
        directory = HttpAccountDirectory("https://accounts.example.com", session=session)

        with pytest.raises(ClientResponseError):
            directory.list_accounts()

    def test_get_account(self, session):
        session.request.return_value = make_response(
            payload={"email": "trainee@example.com", "familyName": "Gilliam", "givenName": "A"}
        )
        directory = HttpAccountDirectory("https://accounts.example.com", session=session)

        assert directory.get_account("acc-1") == AccountDetails(
            email="trainee@example.com", family_name="Gilliam", given_name="A"
        )
        assert session.request.call_args.kwargs["url"] == (
            "https://accounts.example.com/api/accounts/acc-1"
        )

    def test_get_missing_account(self, session):
        session.request.return_value = make_response(404, reason="Not Found")
        directory = HttpAccountDirectory("https://accounts.example.com", session=session)

        assert directory.get_account("acc-9") is None
