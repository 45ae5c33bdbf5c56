"""
WhatsApp gateway API wrapper for group discovery.

Provides a thin interface to the gateway's REST API for:
- Listing groups page by page (count/offset)
- Fetching a single group with its participants
- Resolving the connected account's own phone number
- Exponential backoff retry for detail and identity lookups
"""

import logging
import time
from collections.abc import Callable
from typing import Any, Optional

import requests
from requests.exceptions import RequestException

# Gateway base URL
DEFAULT_BASE_URL = "https://gate.whapi.cloud"

# HTTP timeout per request
DEFAULT_TIMEOUT = 30.0  # seconds

# Retry configuration defaults (detail and identity lookups)
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_RETRY_DELAY = 1.0  # seconds
DEFAULT_MAX_RETRY_DELAY = 30.0  # seconds

# Largest page the gateway accepts
MAX_PAGE_SIZE = 500

USER_AGENT = "wa-group-sync/0.1.0"

logger = logging.getLogger(__name__)


class GatewayAPIError(Exception):
    """
    Raised when a gateway operation fails.

    Attributes:
        status_code: HTTP status, or None for network-level failures
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """429, 5xx and network failures are worth retrying; other 4xx are not."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class RateLimitError(GatewayAPIError):
    """Raised when the gateway answers 429 Too Many Requests."""

    pass


class GatewayNetworkError(GatewayAPIError):
    """Raised on connection failures and timeouts (no HTTP status)."""

    pass


class GatewayAPI:
    """
    Gateway API wrapper scoped to one user's channel token.

    Attributes:
        token: Bearer token issued when the channel was connected
        base_url: Gateway root URL
        timeout: Per-request timeout in seconds

    Usage:
        api = GatewayAPI(token)

        # One page of groups
        groups = api.list_groups(count=100, offset=0)

        # Group detail with participants
        group = api.get_group("120363025246125888@g.us")

        # Own phone number
        phone = api.get_self_phone()
    """

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_retry_delay: float = DEFAULT_INITIAL_RETRY_DELAY,
        max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY,
        session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Initialize the gateway wrapper.

        Args:
            token: Channel bearer token
            base_url: Gateway root URL (default https://gate.whapi.cloud)
            timeout: Per-request timeout in seconds (default 30)
            max_retries: Attempts for retried operations (default 3)
            initial_retry_delay: Initial backoff delay in seconds (default 1.0)
            max_retry_delay: Maximum backoff delay in seconds (default 30.0)
            session: Optional pre-built requests.Session
            sleep: Sleep function used between retries (default time.sleep)
        """
        if not token:
            raise GatewayAPIError("Gateway token is required", status_code=401)

        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self._session = session
        self._sleep = sleep or time.sleep

    @property
    def session(self) -> requests.Session:
        """Get or create the authenticated HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(
                {
                    "Authorization": f"Bearer {self.token}",
                    "Content-Type": "application/json",
                    "User-Agent": USER_AGENT,
                }
            )
        return self._session

    def _request(
        self, path: str, params: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Perform one GET request and decode the JSON body.

        Raises:
            RateLimitError: On HTTP 429
            GatewayNetworkError: On connection errors and timeouts
            GatewayAPIError: On any other non-2xx status or invalid JSON
        """
        url = f"{self.base_url}{path}"

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except RequestException as e:
            raise GatewayNetworkError(f"GET {path} failed: {e}") from e

        status_code = response.status_code
        if status_code == 429:
            raise RateLimitError(f"GET {path} rate limited", status_code=429)
        if status_code >= 400:
            raise GatewayAPIError(
                f"GET {path} failed with status {status_code}: "
                f"{response.text[:200]}",
                status_code=status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayAPIError(
                f"GET {path} returned invalid JSON", status_code=status_code
            ) from e

        if not isinstance(data, dict):
            raise GatewayAPIError(
                f"GET {path} returned {type(data).__name__}, expected object",
                status_code=status_code,
            )
        return data

    def _retry_with_backoff(
        self, operation: Callable[[], Any], operation_name: str
    ) -> Any:
        """
        Execute an operation with exponential backoff retry.

        Args:
            operation: Callable to execute
            operation_name: Name for logging purposes

        Returns:
            Result of the operation

        Raises:
            GatewayAPIError: When the error is not retryable or attempts
                             are exhausted (the last error is re-raised)
        """
        delay = self.initial_retry_delay

        for attempt in range(self.max_retries):
            try:
                return operation()

            except GatewayAPIError as e:
                if not e.retryable or attempt >= self.max_retries - 1:
                    logger.error(f"{operation_name} failed: {e}")
                    raise

                logger.warning(
                    f"{operation_name} failed ({e.status_code or 'network'}), "
                    f"retrying in {delay:.1f}s "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                self._sleep(delay)
                delay = min(delay * 2, self.max_retry_delay)

        raise GatewayAPIError(f"{operation_name} failed after all retries")

    def list_groups(self, count: int, offset: int = 0) -> list[dict[str, Any]]:
        """
        Fetch one page of the user's groups.

        Single attempt; the caller owns the retry policy for paging.

        Args:
            count: Page size (capped at MAX_PAGE_SIZE)
            offset: Number of groups to skip

        Returns:
            List of raw group records (empty when the page is empty)
        """
        params = {"count": min(count, MAX_PAGE_SIZE), "offset": offset}
        logger.debug(f"Listing groups count={params['count']} offset={offset}")

        data = self._request("/groups", params=params)
        groups = data.get("groups") or []
        if not isinstance(groups, list):
            raise GatewayAPIError("GET /groups returned a non-list 'groups' field")
        return [g for g in groups if isinstance(g, dict)]

    def get_group(self, group_id: str) -> dict[str, Any]:
        """
        Fetch one group including its participants.

        Args:
            group_id: Gateway chat id

        Returns:
            Raw group record
        """
        return self._retry_with_backoff(
            lambda: self._request(f"/groups/{group_id}"), f"get_group({group_id})"
        )

    def get_self_phone(self) -> Optional[str]:
        """
        Resolve the connected account's own phone number.

        Tries GET /health (me.phone) first, then GET /me (phone).

        Returns:
            Phone string as reported by the gateway, or None if unknown
        """
        try:
            health = self._retry_with_backoff(
                lambda: self._request("/health"), "health"
            )
        except GatewayAPIError as e:
            if e.retryable:
                raise
            logger.debug(f"/health unavailable ({e}), trying /me")
            health = {}

        me = health.get("me")
        if isinstance(me, dict) and me.get("phone"):
            return str(me["phone"])

        profile = self._retry_with_backoff(lambda: self._request("/me"), "me")
        phone = profile.get("phone")
        return str(phone) if phone else None

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return f"GatewayAPI(base_url={self.base_url!r}, timeout={self.timeout})"
