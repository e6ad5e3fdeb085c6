"""
Shared HTTP plumbing for the provider clients.

Every provider client subclasses BaseAPIClient and sets its own
``provider`` name and ``error_class``. Requests go through httpx; a
client may be handed an existing ``httpx.Client`` (tests pass one backed
by ``httpx.MockTransport``), otherwise a short-lived client is opened
per request.
"""

import logging
from typing import Any, Dict, Optional, Type

import httpx

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Custom exception for third-party API errors."""

    provider = "Remote"

    def __init__(self, status_code: int, message: str, endpoint: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"{self.provider} API Error {status_code}: {message}")


class BaseAPIClient:
    """
    Base class for the JSON REST clients.

    Subclasses set ``base_url`` and ``headers`` in their constructor and
    call ``_make_request`` from their typed methods.
    """

    provider = "Remote"
    error_class: Type[APIError] = APIError

    # Status codes that are an expected outcome of a lookup.
    quiet_status_codes = (404,)

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
        auth: Optional[httpx.Auth] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.http_client = http_client
        self.timeout = timeout
        self.auth = auth

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        kwargs.setdefault("timeout", self.timeout)
        if self.auth is not None:
            kwargs.setdefault("auth", self.auth)

        if self.http_client is not None:
            return self.http_client.request(method=method, url=url, **kwargs)

        with httpx.Client() as client:
            return client.request(method=method, url=url, **kwargs)

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_data: Optional[Any] = None,
        data: Optional[dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Make an HTTP request to the provider.

        Args:
            method: HTTP method
            endpoint: Path relative to the client's base URL, or a full URL
            params: Query parameters
            json_data: JSON body for POST/PUT/PATCH requests
            data: Form-encoded body
            headers: Extra headers for this request only

        Returns:
            The decoded JSON body ({} when the body is empty)

        Raises:
            APIError subclass: If the request fails
        """
        url = self._build_url(endpoint)
        request_headers = {**self.headers, **(headers or {})}

        logger.debug(f"{self.provider} API: {method} {url}")

        response = self._send(
            method,
            url,
            headers=request_headers,
            params=params,
            json=json_data,
            data=data,
        )

        if response.status_code >= 400:
            self._raise_for_response(response, endpoint)

        return self._decode(response)

    def _decode(self, response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    def _error_message(self, response: httpx.Response) -> str:
        try:
            error_data = response.json()
        except ValueError:
            return response.text or "Unknown error"

        if isinstance(error_data, dict):
            return str(error_data.get("message") or error_data.get("error") or error_data)
        return str(error_data)

    def _raise_for_response(self, response: httpx.Response, endpoint: str):
        message = self._error_message(response)
        log = logger.debug if response.status_code in self.quiet_status_codes else logger.error
        log(f"❌ {self.provider} API error ({endpoint}): {response.status_code} {message}")
        raise self.error_class(response.status_code, message, endpoint)
