"""Remote alert validation with an explicit, injectable alert-list cache.

Validation is a soft check: it never raises. A missing credential or a
failed remote call yields ``unknown`` so local writes proceed, while the
outcome is still recorded on the binding for visibility.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from src.awario.client import AwarioClient
from src.awario.schemas import RemoteAlert, ValidationResult

logger = logging.getLogger(__name__)

MISSING_CREDENTIAL_ERROR = "Awario access token is not configured"


class RemoteAlertCache:
    """TTL cache for the remote alert list.

    Scoped to whoever constructs it (typically one orchestrator or one
    service instance); there is no module-level state. ``ttl_seconds=0``
    disables caching.
    """

    def __init__(self, ttl_seconds: float = 60.0) -> None:
        self._ttl = ttl_seconds
        self._alerts: list[RemoteAlert] | None = None
        self._cached_at: float = 0.0

    @property
    def is_fresh(self) -> bool:
        if self._alerts is None or self._ttl <= 0:
            return False
        return (time.monotonic() - self._cached_at) < self._ttl

    async def get(self, fetch: Callable[[], Awaitable[list[RemoteAlert]]]) -> list[RemoteAlert]:
        """Return cached alerts, fetching when empty or expired."""
        if self.is_fresh:
            return self._alerts or []
        return await self.refresh(fetch)

    async def refresh(self, fetch: Callable[[], Awaitable[list[RemoteAlert]]]) -> list[RemoteAlert]:
        """Fetch unconditionally and replace the cached list."""
        alerts = await fetch()
        self._alerts = alerts
        self._cached_at = time.monotonic()
        return alerts

    def invalidate(self) -> None:
        """Force the next ``get`` to hit the API."""
        self._alerts = None
        self._cached_at = 0.0


class AlertValidator:
    """Checks remote alert ids against the Awario alert list.

    Args:
        client: Connected AwarioClient, or None when no credential exists.
        cache: Alert-list cache; a private one is created when omitted.
    """

    def __init__(
        self,
        client: AwarioClient | None,
        cache: RemoteAlertCache | None = None,
    ) -> None:
        self._client = client
        self._cache = cache or RemoteAlertCache()

    @property
    def configured(self) -> bool:
        return self._client is not None

    @property
    def cache(self) -> RemoteAlertCache:
        return self._cache

    async def list_alerts(self, refresh: bool = False) -> list[RemoteAlert]:
        """List remote alerts through the cache.

        Raises:
            RuntimeError: If no client is configured.
            HTTPClientError: On remote failures.
        """
        if self._client is None:
            raise RuntimeError(MISSING_CREDENTIAL_ERROR)
        if refresh:
            return await self._cache.refresh(self._client.list_alerts)
        return await self._cache.get(self._client.list_alerts)

    async def validate(self, remote_alert_id: str, refresh: bool = False) -> ValidationResult:
        """Validate one alert id.

        Args:
            remote_alert_id: Provider alert id.
            refresh: Bypass the cache and fetch a fresh alert list.

        Returns:
            ValidationResult; never raises.
        """
        if self._client is None:
            return ValidationResult(status="unknown", error=MISSING_CREDENTIAL_ERROR)

        validated_at = datetime.now(timezone.utc)
        try:
            alerts = await self.list_alerts(refresh=refresh)
        except Exception as e:
            logger.warning("Awario validation failed for alert %s: %s", remote_alert_id, e)
            return ValidationResult(
                status="unknown",
                validated_at=validated_at,
                error=f"Awario validation request failed: {e}",
            )

        match = next((alert for alert in alerts if alert.id == remote_alert_id), None)
        if match is None:
            return ValidationResult(
                status="invalid",
                validated_at=validated_at,
                error=f"Awario alert {remote_alert_id} was not found",
            )
        if not match.is_active:
            return ValidationResult(
                status="invalid",
                validated_at=validated_at,
                error=f"Awario alert {remote_alert_id} is inactive",
                alert=match,
            )
        return ValidationResult(status="valid", validated_at=validated_at, alert=match)
