"""Shared HTTP handling for the reference and account service clients."""

import logging
from typing import Any, Dict, Optional

import requests

from trainee_notifications.logging import get_logger

from .exceptions import (
    ClientConfigurationError,
    ClientHTTPError,
    ClientResponseError,
    ClientTimeoutError,
)

logger = get_logger(__name__, component="client")


class BaseClient:
    """JSON-over-HTTP client with uniform error mapping.

    Attributes:
        base_url: Service root, without trailing slash
        timeout: HTTP request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 10,
        user_agent: str = "TraineeNotifications/1.0",
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize client.

        Raises:
            ClientConfigurationError: If base_url is empty or timeout is outside 1-120 seconds
        """
        if not base_url or not base_url.strip():
            raise ClientConfigurationError("base_url cannot be empty")
        if not 1 <= timeout <= 120:
            raise ClientConfigurationError(
                f"Timeout must be between 1 and 120 seconds, got: {timeout}"
            )

        self.base_url = base_url.strip().rstrip("/")
        self.timeout = timeout

        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _make_request(
        self,
        path: str,
        method: str = "GET",
        params: Optional[Dict[str, str]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        """Make an HTTP request and parse the JSON response.

        Args:
            path: Path relative to base_url
            method: HTTP method (default "GET")
            params: Query parameters
            allow_not_found: Return None on 404 instead of raising

        Returns:
            Parsed JSON (dict or list), or None for an allowed 404

        Raises:
            ClientHTTPError: On 4xx or 5xx HTTP status, or connection failure
            ClientTimeoutError: On request timeout
            ClientResponseError: On invalid JSON
        """
        url = self._url(path)

        try:
            logger.debug(
                f"HTTP {method} request to {url}",
                extra={"event": "client.request", "method": method, "url": url},
            )

            response = self._session.request(
                method=method, url=url, params=params, timeout=self.timeout
            )

            if response.status_code == 404 and allow_not_found:
                logger.debug(
                    f"No resource at {url}",
                    extra={"event": "client.not_found", "url": url},
                )
                return None

            if response.status_code >= 400:
                is_retryable = response.status_code >= 500
                logger.log(
                    logging.WARNING if is_retryable else logging.ERROR,
                    f"HTTP {response.status_code} error from {url}",
                    extra={
                        "event": "client.retryable_error" if is_retryable else "client.error",
                        "status_code": response.status_code,
                        "url": url,
                    },
                )
                raise ClientHTTPError(
                    f"HTTP {response.status_code}: {response.reason}",
                    status_code=response.status_code,
                    url=url,
                )

            try:
                return response.json()
            except (ValueError, requests.exceptions.JSONDecodeError) as e:
                logger.error(
                    f"Failed to parse JSON response from {url}",
                    extra={"event": "client.error", "error_type": "JSONDecodeError", "url": url},
                )
                raise ClientResponseError(f"Failed to parse JSON response from {url}: {e}") from e

        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={"event": "client.retryable_error", "error_type": "Timeout", "url": url},
            )
            raise ClientTimeoutError(
                f"Request to {url} timed out after {self.timeout} seconds", url=url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Request to {url} failed: {e}",
                extra={"event": "client.error", "error_type": type(e).__name__, "url": url},
            )
            raise ClientHTTPError(f"Request to {url} failed: {e}", status_code=0, url=url) from e

    def close(self) -> None:
        self._session.close()
