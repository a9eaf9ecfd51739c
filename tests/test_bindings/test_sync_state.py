"""Tests for the pure sync-state rules."""

import pytest

from src.bindings.schemas import VALID_SYNC_STATES
from src.bindings.state import (
    derive_sync_state,
    is_allowed_transition,
    is_consistent_with_status,
    retain_cursor,
)


class TestDeriveSyncState:
    """Status changes imply a sync_state."""

    def test_new_active_binding_starts_pending(self):
        assert derive_sync_state(None, "active", False) == "pending_backfill"

    @pytest.mark.parametrize("status", ["paused", "archived"])
    def test_paused_and_archived_pin_state(self, status):
        for current in [None, *VALID_SYNC_STATES]:
            assert derive_sync_state(current, status, True) == status

    def test_error_recovers_to_pending_backfill(self):
        assert derive_sync_state("error", "active", True) == "pending_backfill"

    def test_resume_after_completed_backfill(self):
        assert derive_sync_state("paused", "active", True) == "active"
        assert derive_sync_state("archived", "active", True) == "active"

    def test_resume_without_completed_backfill(self):
        assert derive_sync_state("paused", "active", False) == "pending_backfill"
        assert derive_sync_state("archived", "active", False) == "pending_backfill"

    @pytest.mark.parametrize("current", ["pending_backfill", "backfilling", "active"])
    def test_active_keeps_running_states(self, current):
        assert derive_sync_state(current, "active", False) == current

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            derive_sync_state("active", "deleted", False)


class TestIsAllowedTransition:
    """Explicit sync_state requests."""

    def test_new_binding_targets(self):
        assert is_allowed_transition(None, "pending_backfill")
        assert is_allowed_transition(None, "paused")
        assert is_allowed_transition(None, "archived")
        assert not is_allowed_transition(None, "active")
        assert not is_allowed_transition(None, "backfilling")

    def test_same_state_is_allowed(self):
        for state in VALID_SYNC_STATES:
            assert is_allowed_transition(state, state)

    def test_pending_cannot_jump_to_active(self):
        assert not is_allowed_transition("pending_backfill", "active", True)

    def test_backfilling_to_active(self):
        assert is_allowed_transition("backfilling", "active")

    def test_active_from_error_requires_completed_backfill(self):
        assert not is_allowed_transition("error", "active", False)
        assert is_allowed_transition("error", "active", True)

    def test_active_from_paused_requires_completed_backfill(self):
        assert not is_allowed_transition("paused", "active", False)
        assert is_allowed_transition("paused", "active", True)

    def test_paused_cannot_go_to_backfilling(self):
        assert not is_allowed_transition("paused", "backfilling")

    def test_unknown_target_rejected(self):
        assert not is_allowed_transition("active", "syncing")


class TestConsistencyAndCursor:

    def test_paused_status_requires_paused_state(self):
        assert is_consistent_with_status("paused", "paused")
        assert not is_consistent_with_status("active", "paused")

    def test_active_status_excludes_pinned_states(self):
        assert is_consistent_with_status("backfilling", "active")
        assert not is_consistent_with_status("archived", "active")

    def test_cursor_kept_only_while_backfilling(self):
        assert retain_cursor("backfilling", "https://next") == "https://next"
        for state in VALID_SYNC_STATES - {"backfilling"}:
            assert retain_cursor(state, "https://next") is None
