"""Bindings: the alert binding lifecycle and its sync-state machine."""

from src.bindings.config import BindingsConfig
from src.bindings.repository import BindingRepository
from src.bindings.schemas import (
    VALID_BINDING_STATUSES,
    VALID_SYNC_MODES,
    VALID_SYNC_STATES,
    AlertBinding,
    BindingPatch,
    LinkResult,
    SyncCandidate,
)
from src.bindings.service import BindingService
from src.bindings.state import derive_sync_state, is_allowed_transition

__all__ = [
    "AlertBinding",
    "BindingPatch",
    "BindingRepository",
    "BindingService",
    "BindingsConfig",
    "LinkResult",
    "SyncCandidate",
    "VALID_BINDING_STATUSES",
    "VALID_SYNC_MODES",
    "VALID_SYNC_STATES",
    "derive_sync_state",
    "is_allowed_transition",
]
