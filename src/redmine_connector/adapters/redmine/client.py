"""
Redmine API Client - Low-level HTTP client for the Redmine REST API.

This handles the raw HTTP communication with Redmine.
The RedmineDataService uses this to implement the IssueTrackerPort.
"""

import logging
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ...core.ports.config_provider import APP_NAME, APP_VERSION
from ...core.ports.issue_tracker import (
    IssueTrackerError,
    AuthenticationError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    TransientError,
    ValidationError,
)


class RedmineApiClient:
    """
    Low-level Redmine REST API client.

    Handles authentication, request/response, error mapping and retries.
    Bodies are exchanged as text; decoding is left to the codec.
    """

    GATEWAY_ERRORS = (502, 503, 504)
    RETRY_STATUSES = (429, *GATEWAY_ERRORS)

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        max_retry_attempts: int = 3,
        retry_delay: float = 1.0,
        user_agent: str = f"{APP_NAME}/{APP_VERSION}",
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the Redmine client.

        Args:
            base_url: Redmine instance URL (e.g., https://redmine.example.com)
            api_key: API access key, sent as the ``key`` query parameter
            timeout: Per-request timeout in seconds
            max_retry_attempts: Total attempts for idempotent GET requests
            retry_delay: Backoff factor between GET attempts (doubles each time)
            user_agent: User-Agent header value
            session: Pre-built session (tests inject a fake one)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retry_attempts = max(1, max_retry_attempts)
        self.retry_delay = retry_delay
        self.logger = logging.getLogger("RedmineApiClient")

        self.headers = {
            "Accept": "application/json",
            "User-Agent": user_agent,
        }

        self._session = session if session is not None else requests.Session()
        self._session.headers.update(self.headers)

        # Only GETs are replayed on a failed status; 429 waits for Retry-After
        self.retry = Retry(
            total=self.max_retry_attempts - 1,
            backoff_factor=retry_delay,
            status_forcelist=list(self.RETRY_STATUSES),
            allowed_methods=["GET"],
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=self.retry)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

    # -------------------------------------------------------------------------
    # Core Request Methods
    # -------------------------------------------------------------------------

    def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        data: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> requests.Response:
        """
        Make an authenticated request to the Redmine API.

        GET requests answered with 429 or a gateway error are retried by the
        session's adapter with exponential backoff; the last answer is mapped
        to an exception here.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            endpoint: API endpoint (e.g., 'issues/42.json') or absolute URL
            params: Query parameters
            data: Request body
            content_type: Content-Type of the body

        Returns:
            The successful response

        Raises:
            IssueTrackerError: On API or transport errors
        """
        url = self.url_for(endpoint)
        query = dict(params or {})
        if not self._has_key(url):
            query["key"] = self.api_key

        headers = {"Content-Type": content_type} if content_type else None

        self.logger.debug(f"{method} {self._masked(url, query)}")
        try:
            response = self._session.request(
                method,
                url,
                params=query,
                data=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            raise TransientError(f"Connection failed: {e}", issue_key=endpoint, cause=e)
        except requests.exceptions.Timeout as e:
            raise TransientError(f"Request timed out: {e}", issue_key=endpoint, cause=e)
        except requests.exceptions.RetryError as e:
            raise TransientError(f"Retries exhausted: {e}", issue_key=endpoint, cause=e)
        except requests.exceptions.RequestException as e:
            raise IssueTrackerError(f"Request failed: {e}", issue_key=endpoint, cause=e)

        return self._handle_response(response, endpoint)

    def get(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> str:
        """GET request, returning the body text."""
        return self.request("GET", endpoint, params=params).text

    def post(self, endpoint: str, body: str, params: Optional[dict[str, Any]] = None) -> str:
        """POST a JSON body, returning the response text."""
        self.logger.info(f"POST {endpoint}")
        response = self.request(
            "POST", endpoint, params=params,
            data=body.encode("utf-8"), content_type="application/json; charset=utf-8",
        )
        return response.text

    def put(self, endpoint: str, body: str) -> str:
        """PUT a JSON body, returning the response text."""
        self.logger.info(f"PUT {endpoint}")
        response = self.request(
            "PUT", endpoint,
            data=body.encode("utf-8"), content_type="application/json; charset=utf-8",
        )
        return response.text

    def delete(self, endpoint: str) -> None:
        """DELETE request."""
        self.logger.info(f"DELETE {endpoint}")
        self.request("DELETE", endpoint)

    def post_binary(self, endpoint: str, data: bytes) -> str:
        """POST raw bytes (file uploads), returning the response text."""
        self.logger.info(f"POST {endpoint} ({len(data)} bytes)")
        response = self.request(
            "POST", endpoint, data=data, content_type="application/octet-stream"
        )
        return response.text

    def download(self, endpoint: str) -> bytes:
        """GET raw content (attachments)."""
        return self.request("GET", endpoint).content

    # -------------------------------------------------------------------------
    # Response Handling
    # -------------------------------------------------------------------------

    def _handle_response(
        self,
        response: requests.Response,
        endpoint: str
    ) -> requests.Response:
        """Handle API response and errors."""
        if response.ok:
            return response

        # Handle specific error codes
        status = response.status_code
        error_body = response.text[:500] if response.text else ""

        if status == 401:
            raise AuthenticationError(
                "Authentication failed. Check REDMINE_API_KEY.",
                issue_key=endpoint
            )

        if status == 403:
            raise PermissionError(
                f"Permission denied for {endpoint}",
                issue_key=endpoint
            )

        if status == 404:
            raise NotFoundError(
                f"Not found: {endpoint}",
                issue_key=endpoint
            )

        if status == 422:
            errors = self._parse_errors(response)
            raise ValidationError(
                f"Validation failed for {endpoint}: {'; '.join(errors) or error_body}",
                errors=errors,
                issue_key=endpoint
            )

        if status == 429:
            raise RateLimitError(
                f"Rate limited on {endpoint}",
                retry_after=self._parse_retry_after(response),
                issue_key=endpoint
            )

        if status in self.GATEWAY_ERRORS:
            raise TransientError(
                f"Server unavailable ({status}) for {endpoint}",
                issue_key=endpoint
            )

        # Generic error
        raise IssueTrackerError(
            f"API error {status}: {error_body}",
            issue_key=endpoint
        )

    def _parse_errors(self, response: requests.Response) -> list[str]:
        """Messages of a ``{"errors": [...]}`` body."""
        try:
            body = response.json()
        except ValueError:
            return []
        errors = body.get("errors") if isinstance(body, dict) else None
        if not isinstance(errors, list):
            return []
        return [str(e) for e in errors]

    def _parse_retry_after(self, response: requests.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        if not value:
            return None
        try:
            return max(0.0, float(value))
        except ValueError:
            return None

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    def url_for(self, endpoint: str) -> str:
        """Absolute URL of an endpoint; absolute URLs are returned as-is."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _has_key(self, url: str) -> bool:
        return any(name == "key" for name, _ in parse_qsl(urlsplit(url).query))

    def _masked(self, url: str, query: dict[str, Any]) -> str:
        shown = {k: ("***" if k == "key" else v) for k, v in query.items()}
        if "key=" in url:
            parts = urlsplit(url)
            masked_query = urlencode(
                [(k, "***" if k == "key" else v) for k, v in parse_qsl(parts.query)],
                safe="*",
            )
            url = parts._replace(query=masked_query).geturl()
        if not shown:
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{urlencode(shown, safe='*')}"

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()
