"""
Awario API client.

Wraps the two endpoints the sync engine needs:
- ``alerts/list``: every alert visible to the access token
- ``alerts/{id}/mentions``: paginated mentions for one alert

Transport concerns (throttle, retries) are delegated to HTTPClient.
Errors surface as HTTPClientError/AwarioClientError; callers decide
whether that is a soft validation failure or a sync failure.
"""

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

from src.awario.config import AwarioConfig
from src.awario.http_client import HTTPClient, HTTPClientError, RetryConfig
from src.awario.parser import parse_alerts, parse_mentions, parse_next
from src.awario.schemas import MentionsPage, RemoteAlert
from src.config.settings import get_settings
from src.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

# Safety bound on alert-list pagination.
MAX_ALERT_LIST_PAGES = 50


class AwarioClientError(HTTPClientError):
    """Raised when the API answers with a payload that is not a JSON object."""

    pass


class AwarioClient:
    """
    Async client for the Awario REST API.

    The access token travels as the ``access_token`` query parameter,
    including on provider-issued next-page URLs.

    Usage:
        async with AwarioClient(token) as client:
            alerts = await client.list_alerts()
            page = await client.list_mentions_page(alerts[0].id, limit=100)
    """

    def __init__(
        self,
        access_token: str,
        base_url: str | None = None,
        config: AwarioConfig | None = None,
        http_client: HTTPClient | None = None,
    ):
        if not access_token or not access_token.strip():
            raise ValueError("access_token must be a non-empty string")

        self._config = config or AwarioConfig()
        self._access_token = access_token.strip()
        self._base_url = (base_url or get_settings().awario_api_base_url).rstrip("/")
        self._http = http_client or HTTPClient(
            retry_config=RetryConfig(
                max_attempts=self._config.max_retries,
                base_delay=self._config.base_delay,
                max_backoff_seconds=self._config.max_backoff_seconds,
            ),
            timeout=self._config.timeout_seconds,
            throttle_seconds=self._config.throttle_ms / 1000.0,
        )

    async def __aenter__(self) -> "AwarioClient":
        await self._http.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self._http.__aexit__(exc_type, exc_val, exc_tb)

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        endpoint: str,
        path: str | None = None,
        next_url: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """GET a JSON object, either from an API path or a next-page URL."""
        request_params: dict[str, Any] = {"access_token": self._access_token}
        if next_url:
            url = next_url
        else:
            url = self._url(path or "")
            request_params.update(params or {})

        metrics = get_metrics()
        try:
            payload = await self._http.get_json(url, params=request_params)
        except HTTPClientError:
            metrics.record_remote_request(endpoint, success=False)
            raise
        if not isinstance(payload, dict):
            metrics.record_remote_request(endpoint, success=False)
            raise AwarioClientError("Awario response is not a JSON object")
        metrics.record_remote_request(endpoint, success=True)
        return payload

    async def list_alerts(self) -> list[RemoteAlert]:
        """
        List every alert visible to the token.

        Follows next-page links when the API paginates, and returns a flat
        list deduplicated by alert id.

        Returns:
            Remote alerts in API order
        """
        alerts: list[RemoteAlert] = []
        seen: set[str] = set()
        next_url: str | None = None

        for _ in range(MAX_ALERT_LIST_PAGES):
            payload = await self._request("alerts", "alerts/list", next_url=next_url)
            for alert in parse_alerts(payload):
                if alert.id not in seen:
                    seen.add(alert.id)
                    alerts.append(alert)

            next_url = parse_next(payload)
            if not next_url:
                break
        else:
            logger.warning(
                "Alert list pagination stopped after %d pages", MAX_ALERT_LIST_PAGES
            )

        logger.debug("Listed %d Awario alerts", len(alerts))
        return alerts

    async def list_mentions_page(
        self,
        alert_id: str,
        cursor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> MentionsPage:
        """
        Fetch one page of mentions for an alert.

        Args:
            alert_id: Remote alert id
            cursor: Next-page URL from a previous page. When set, window
                and limit are already encoded in it and are not re-sent.
            since: Window start
            until: Window end
            limit: Page size, clamped to 1..page_limit_max

        Returns:
            MentionsPage with mentions and the next cursor (None when exhausted)
        """
        params: dict[str, Any] = {}
        if not cursor:
            if since:
                params["since"] = since.isoformat()
            if until:
                params["until"] = until.isoformat()
            if limit:
                params["limit"] = max(1, min(self._config.page_limit_max, int(limit)))

        payload = await self._request(
            "mentions",
            f"alerts/{quote(alert_id, safe='')}/mentions",
            next_url=cursor,
            params=params,
        )
        return MentionsPage(mentions=parse_mentions(payload), next_cursor=parse_next(payload))


def create_awario_client(config: AwarioConfig | None = None) -> AwarioClient | None:
    """Build a client from settings, or None when no access token is configured."""
    settings = get_settings()
    if not settings.awario_configured:
        return None
    return AwarioClient(
        access_token=settings.awario_access_token or "",
        base_url=settings.awario_api_base_url,
        config=config,
    )
