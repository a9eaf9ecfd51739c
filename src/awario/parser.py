"""Parsing helpers for Awario API payloads.

The API is not consistent about envelopes: alert lists and mention pages
show up at the top level, under ``data`` or under ``alert_data``, and
the next-page link can sit in ``next`` or ``paging.next`` at either
level. These functions accept all observed shapes and ignore anything
that is not a JSON object.
"""

import hashlib
from datetime import datetime, timezone
from typing import Any

from src.awario.schemas import RemoteAlert

INACTIVE_STATUSES = frozenset({"inactive", "disabled"})


def _as_object(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


def _as_records(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def as_string(value: Any) -> str | None:
    """Coerce scalars to a trimmed string; empty or non-scalar becomes None."""
    if isinstance(value, bool):
        raw = str(value).lower()
    elif isinstance(value, (str, int, float)):
        raw = str(value)
    else:
        return None
    raw = raw.strip()
    return raw or None


def _next_from(container: dict[str, Any]) -> str | None:
    direct = as_string(container.get("next"))
    if direct:
        return direct
    paging = _as_object(container.get("paging"))
    if paging:
        return as_string(paging.get("next"))
    return None


def parse_next(payload: dict[str, Any]) -> str | None:
    """Extract the next-page cursor from a mentions payload."""
    found = _next_from(payload)
    if found:
        return found
    alert_data = _as_object(payload.get("alert_data"))
    if alert_data is None:
        return None
    return _next_from(alert_data)


def parse_mentions(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Extract mention records from a mentions payload."""
    direct = _as_records(payload.get("mentions"))
    if direct:
        return direct
    alert_data = _as_object(payload.get("alert_data"))
    if alert_data is None:
        return []
    return _as_records(alert_data.get("mentions"))


def _alert_records(payload: dict[str, Any]) -> list[dict[str, Any]]:
    direct = _as_records(payload.get("alerts"))
    if direct:
        return direct
    data = _as_object(payload.get("data"))
    if data:
        nested = _as_records(data.get("alerts"))
        if nested:
            return nested
    alert_data = _as_object(payload.get("alert_data"))
    if alert_data is None:
        return []
    return _as_records(alert_data.get("alerts"))


def parse_alerts(payload: dict[str, Any]) -> list[RemoteAlert]:
    """Extract alerts from a list payload, deduplicated by id (first wins)."""
    alerts: list[RemoteAlert] = []
    seen: set[str] = set()

    for item in _alert_records(payload):
        alert_id = as_string(item.get("id")) or as_string(item.get("alert_id"))
        if not alert_id or alert_id in seen:
            continue
        seen.add(alert_id)

        raw_status = (as_string(item.get("status")) or "").lower()
        alerts.append(
            RemoteAlert(
                id=alert_id,
                name=as_string(item.get("name")),
                is_active=raw_status not in INACTIVE_STATUSES,
                raw=item,
            )
        )

    return alerts


def _parse_epoch(value: float) -> datetime | None:
    if value <= 0:
        return None
    if value >= 1_000_000_000_000:
        value = value / 1000
    elif value < 1_000_000_000:
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_datetime(value: Any) -> datetime | None:
    """Parse ISO-8601 strings or epoch seconds/milliseconds into aware datetimes."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _parse_epoch(float(value))
    text = as_string(value)
    if text is None:
        return None
    try:
        return _parse_epoch(float(text))
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def mention_url(mention: dict[str, Any]) -> str | None:
    for key in ("url", "link", "post_url", "source_url"):
        found = as_string(mention.get(key))
        if found:
            return found
    return None


def mention_text(mention: dict[str, Any]) -> str | None:
    for key in ("text", "content", "snippet", "title"):
        found = as_string(mention.get(key))
        if found:
            return found
    return None


def mention_published_at(mention: dict[str, Any]) -> datetime | None:
    for key in ("published_at", "date", "created_at"):
        found = parse_datetime(mention.get(key))
        if found:
            return found
    return None


def mention_id(mention: dict[str, Any], binding_id: str, remote_alert_id: str) -> str:
    """Return the provider mention id, or a deterministic fallback.

    The fallback hashes the fields that identify a mention so that
    re-fetching the same mention yields the same id and dedups.
    """
    for key in ("id", "mention_id", "mentionId"):
        found = as_string(mention.get(key))
        if found:
            return found

    published = mention_published_at(mention)
    seed = "|".join(
        part
        for part in (
            as_string(mention.get(key))
            for key in ("source", "network", "platform", "author_name", "username", "title", "snippet")
        )
        if part
    )
    stable = "|".join([
        binding_id,
        remote_alert_id,
        mention_url(mention) or "",
        published.isoformat() if published else "",
        mention_text(mention) or "",
        seed,
    ])
    digest = hashlib.sha256(stable.encode("utf-8")).hexdigest()[:24]
    return f"{remote_alert_id}:fallback:{digest}"
