"""
HTTP infrastructure layer with throttling and bounded retries.

Provides:
- RetryConfig: Backoff configuration with a fixed attempt budget
- HTTPClient: Async HTTP client with a minimum interval between calls,
  automatic retry on 429/5xx and transport errors, and JSON decoding

This layer separates HTTP concerns (throttle, retries, backoff) from the
Awario payload handling in ``src.awario.client``.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Backoff configuration for HTTP retries.

    ``max_attempts`` counts the first call, so ``max_attempts=4`` means
    at most three retries. Delay grows linearly with the attempt number,
    capped at ``max_backoff_seconds``, with random jitter added.

    Formula: min(max_backoff, base_delay * attempt) + random(0, jitter_seconds)
    """

    max_attempts: int = 4
    base_delay: float = 0.3
    max_backoff_seconds: float = 10.0
    jitter_seconds: float = 0.25

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration after a failed attempt.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Backoff duration in seconds with jitter applied
        """
        delay = min(self.base_delay * attempt, self.max_backoff_seconds)
        return delay + random.random() * self.jitter_seconds

    def is_retryable_status(self, status_code: int) -> bool:
        """Retry on rate limiting (429) and any server error (5xx)."""
        return status_code == 429 or status_code >= 500

    def is_retryable_exception(self, exc: Exception) -> bool:
        """Retry on timeouts and connection-level failures."""
        return isinstance(
            exc,
            (
                httpx.TimeoutException,
                httpx.ConnectError,
                httpx.ReadError,
            ),
        )


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when rate limit is hit and all retries exhausted."""

    pass


class HTTPClient:
    """
    Async HTTP client with throttling and retry logic.

    Features:
    - Minimum interval between consecutive requests (shared by all callers
      of this instance)
    - Linear backoff with jitter on retryable errors
    - Bounded attempt count; exhaustion raises HTTPClientError
    - Context manager for proper resource cleanup

    Example:
        async with HTTPClient(RetryConfig(max_attempts=4), throttle_seconds=0.25) as client:
            payload = await client.get_json(
                "https://api.awario.com/v1/alerts/list",
                params={"access_token": token},
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 20.0,
        throttle_seconds: float = 0.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            retry_config: Configuration for retry behavior. Uses defaults if None.
            timeout: Request timeout in seconds.
            throttle_seconds: Minimum spacing between requests.
            transport: Optional httpx transport (used by tests).
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.throttle_seconds = max(0.0, throttle_seconds)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._last_request_at = 0.0
        self._throttle_lock = asyncio.Lock()

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"accept": "application/json"},
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client."""
        await self.close()

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _throttle(self) -> None:
        """Sleep until ``throttle_seconds`` have passed since the last request."""
        if self.throttle_seconds <= 0:
            return

        async with self._throttle_lock:
            elapsed = time.monotonic() - self._last_request_at
            if elapsed < self.throttle_seconds:
                await asyncio.sleep(self.throttle_seconds - elapsed)
            self._last_request_at = time.monotonic()

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Perform a GET request with retry logic and decode the JSON body.

        Args:
            url: Request URL; an existing query string (e.g. a next-page
                cursor) is kept
            params: Query parameters merged into the URL query (None values
                are dropped)

        Returns:
            Decoded JSON body (empty body decodes to ``{}``)

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        request_params = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        request_url = httpx.URL(url)
        if request_params:
            request_url = request_url.copy_merge_params(request_params)
        max_attempts = max(1, self.retry_config.max_attempts)

        for attempt in range(1, max_attempts + 1):
            try:
                await self._throttle()
                response = await self._client.get(request_url)
            except (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError) as e:
                if attempt < max_attempts:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable error {type(e).__name__} for {_redact(url)}, "
                        f"attempt {attempt}/{max_attempts}, backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue

                raise HTTPClientError(
                    f"Request failed after {attempt} attempts: {type(e).__name__}: {e}",
                ) from e

            if self.retry_config.is_retryable_status(response.status_code):
                if attempt < max_attempts:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable status {response.status_code} from {_redact(url)}, "
                        f"attempt {attempt}/{max_attempts}, backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue

                error_cls = RateLimitError if response.status_code == 429 else HTTPClientError
                raise error_cls(
                    f"Request failed with status {response.status_code} after {attempt} attempts: "
                    f"{_error_message(response)}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            if response.status_code >= 400:
                raise HTTPClientError(
                    f"Request failed with status {response.status_code}: {_error_message(response)}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise HTTPClientError(
                    "Response body is not valid JSON",
                    status_code=response.status_code,
                    response_body=response.text,
                ) from e

        # Should not reach here, but just in case
        raise HTTPClientError(f"Request failed after {max_attempts} attempts")


def _error_message(response: httpx.Response) -> str:
    """Extract a provider error message, falling back to the reason phrase."""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.reason_phrase or "unknown error"


def _redact(url: str) -> str:
    """Drop the query string so access tokens never reach the logs."""
    return url.split("?", 1)[0]
