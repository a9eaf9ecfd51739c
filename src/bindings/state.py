"""Sync-state rules for alert bindings.

Pure functions with no I/O. ``derive_sync_state`` computes the state an
administrative status change implies; ``is_allowed_transition`` guards
explicit sync_state requests.

State diagram::

    pending_backfill -> backfilling -> active <-> error
    any -> paused | archived (follows status)
    error -> pending_backfill (status set back to active)
"""

from src.bindings.schemas import VALID_SYNC_STATES

# Targets reachable by an explicit request from each state. Staying in
# the same state is always allowed.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending_backfill": frozenset({"backfilling", "paused", "archived"}),
    "backfilling": frozenset({"active", "error", "pending_backfill", "paused", "archived"}),
    "active": frozenset({"error", "pending_backfill", "paused", "archived"}),
    "error": frozenset({"pending_backfill", "backfilling", "active", "paused", "archived"}),
    "paused": frozenset({"pending_backfill", "active", "archived"}),
    "archived": frozenset({"pending_backfill", "active", "paused"}),
}

# Entering ``active`` from these states skips a backfill, so it needs one
# to have completed already.
_REQUIRES_COMPLETED_BACKFILL = frozenset({"error", "paused", "archived"})


def derive_sync_state(
    current: str | None,
    new_status: str,
    has_completed_backfill: bool,
) -> str:
    """Compute sync_state for a binding whose status is (re)applied.

    Args:
        current: Current sync_state, or None for a new binding.
        new_status: Administrative status after the change.
        has_completed_backfill: Whether a backfill ever completed.

    Returns:
        The resulting sync_state.
    """
    if new_status == "paused":
        return "paused"
    if new_status == "archived":
        return "archived"
    if new_status != "active":
        raise ValueError(f"Invalid status {new_status!r}")

    if current is None or current == "error":
        return "pending_backfill"
    if current in ("paused", "archived"):
        return "active" if has_completed_backfill else "pending_backfill"
    return current


def is_allowed_transition(
    current: str | None,
    target: str,
    has_completed_backfill: bool = False,
) -> bool:
    """Check whether an explicit sync_state request is legal."""
    if target not in VALID_SYNC_STATES:
        return False
    if current is None:
        return target in ("pending_backfill", "paused", "archived")
    if target == current:
        return True
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        return False
    if target == "active" and current in _REQUIRES_COMPLETED_BACKFILL:
        return has_completed_backfill
    return True


def is_consistent_with_status(sync_state: str, status: str) -> bool:
    """A paused/archived status pins sync_state; active excludes both."""
    if status in ("paused", "archived"):
        return sync_state == status
    return sync_state not in ("paused", "archived")


def retain_cursor(sync_state: str, cursor: str | None) -> str | None:
    """Return the cursor only while backfilling, otherwise None."""
    return cursor if sync_state == "backfilling" else None
