"""Tests for BindingService against in-memory repositories."""

import uuid
from unittest.mock import AsyncMock

import pytest

from src.awario.http_client import HTTPClientError
from src.awario.validation import MISSING_CREDENTIAL_ERROR
from src.bindings.config import BindingsConfig
from src.bindings.schemas import BindingPatch
from src.bindings.service import LINK_METADATA_KEY, PAGES_TOTAL_KEY, SYNC_METRICS_KEY
from src.storage.errors import (
    ConflictError,
    InternalStoreError,
    NotFoundError,
    StoreValidationError,
)


def _actions(audit_repo, resource_id):
    return [e.action for e in audit_repo.entries_for(resource_id)]


class TestCreateBinding:
    """Creating a binding for an existing profile."""

    @pytest.mark.asyncio
    async def test_create_starts_pending_backfill(self, binding_service, profile, actor_id):
        binding = await binding_service.create_binding(
            profile.id, " A1 ", actor_user_id=actor_id,
        )

        assert binding.remote_alert_id == "A1"
        assert binding.status == "active"
        assert binding.sync_state == "pending_backfill"
        assert binding.backfill_cursor is None
        assert binding.validation_status == "valid"
        assert binding.last_validated_at is not None
        assert binding.created_by_user_id == actor_id

    @pytest.mark.asyncio
    async def test_create_writes_one_audit_entry(self, binding_service, profile, audit_repo, actor_id):
        binding = await binding_service.create_binding(
            profile.id, "A1", actor_user_id=actor_id, request_id="req-1",
        )

        entries = audit_repo.entries_for(binding.id)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == "binding_created"
        assert entry.resource_type == "alert_binding"
        assert entry.actor_user_id == actor_id
        assert entry.request_id == "req-1"
        assert entry.before is None
        assert entry.after["sync_state"] == "pending_backfill"

    @pytest.mark.asyncio
    async def test_paused_binding_starts_paused(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1", status="paused")
        assert binding.sync_state == "paused"

    @pytest.mark.asyncio
    async def test_duplicate_remote_alert_conflicts(self, binding_service, profile, store):
        await binding_service.create_binding(profile.id, "A1")

        with pytest.raises(ConflictError):
            await binding_service.create_binding(profile.id, "A1")
        assert len(store.bindings) == 1

    @pytest.mark.asyncio
    async def test_missing_profile_not_found(self, binding_service):
        with pytest.raises(NotFoundError):
            await binding_service.create_binding(str(uuid.uuid4()), "A1")

    @pytest.mark.asyncio
    async def test_malformed_profile_id_rejected(self, binding_service):
        with pytest.raises(StoreValidationError, match="profile_id"):
            await binding_service.create_binding("not-a-uuid", "A1")

    @pytest.mark.asyncio
    async def test_blank_remote_alert_id_rejected(self, binding_service, profile):
        with pytest.raises(StoreValidationError):
            await binding_service.create_binding(profile.id, "   ")

    @pytest.mark.asyncio
    async def test_bad_status_rejected(self, binding_service, profile):
        with pytest.raises(StoreValidationError, match="status"):
            await binding_service.create_binding(profile.id, "A1", status="deleted")


class TestValidationIsSoft:
    """Remote validation outcomes are recorded but never block writes."""

    @pytest.mark.asyncio
    async def test_missing_credential_records_unknown(self, make_binding_service, make_validator, profile):
        service = make_binding_service(make_validator(alerts=None))

        binding = await service.create_binding(profile.id, "A1")

        assert binding.validation_status == "unknown"
        assert binding.last_validation_error == MISSING_CREDENTIAL_ERROR
        assert binding.last_validated_at is None

    @pytest.mark.asyncio
    async def test_remote_failure_records_unknown(self, make_binding_service, make_validator, profile):
        service = make_binding_service(
            make_validator(alerts=[], error=HTTPClientError("timeout")),
        )

        binding = await service.create_binding(profile.id, "A1")

        assert binding.validation_status == "unknown"
        assert "timeout" in binding.last_validation_error

    @pytest.mark.asyncio
    async def test_unknown_remote_alert_is_invalid_but_saved(self, binding_service, profile, store):
        binding = await binding_service.create_binding(profile.id, "ZZZ")

        assert binding.validation_status == "invalid"
        assert "not found" in binding.last_validation_error
        assert binding.id in store.bindings

    @pytest.mark.asyncio
    async def test_inactive_remote_alert_is_invalid(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A3")
        assert binding.validation_status == "invalid"
        assert "inactive" in binding.last_validation_error


class TestUpdateBinding:
    """Patch semantics and sync_state derivation."""

    @pytest.mark.asyncio
    async def test_empty_patch_conflicts(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        with pytest.raises(ConflictError):
            await binding_service.update_binding(binding.id, BindingPatch())

    @pytest.mark.asyncio
    async def test_missing_binding_not_found(self, binding_service):
        with pytest.raises(NotFoundError):
            await binding_service.update_binding(
                str(uuid.uuid4()), BindingPatch(status="paused"),
            )

    @pytest.mark.asyncio
    async def test_pause_drops_cursor(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_historical_progress(binding.id, "https://next/2")

        paused = await binding_service.update_binding(binding.id, BindingPatch(status="paused"))

        assert paused.status == "paused"
        assert paused.sync_state == "paused"
        assert paused.backfill_cursor is None

    @pytest.mark.asyncio
    async def test_resume_without_completed_backfill_restarts(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.update_binding(binding.id, BindingPatch(status="paused"))

        resumed = await binding_service.update_binding(binding.id, BindingPatch(status="active"))

        assert resumed.sync_state == "pending_backfill"
        assert resumed.backfill_started_at is None

    @pytest.mark.asyncio
    async def test_resume_after_completed_backfill_keeps_progress(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        completed = await binding_service.mark_historical_completed(binding.id)
        await binding_service.update_binding(binding.id, BindingPatch(status="paused"))

        resumed = await binding_service.update_binding(binding.id, BindingPatch(status="active"))

        assert resumed.sync_state == "active"
        assert resumed.backfill_completed_at == completed.backfill_completed_at

    @pytest.mark.asyncio
    async def test_reactivating_error_binding_restarts_backfill(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_sync_failed(binding.id, "historical", "boom")

        updated = await binding_service.update_binding(binding.id, BindingPatch(status="active"))

        assert updated.sync_state == "pending_backfill"
        assert updated.last_sync_error is None

    @pytest.mark.asyncio
    async def test_remote_alert_change_resets_progress(self, binding_service, profile, validator):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_historical_progress(
            binding.id, "https://next/2", {"pages_fetched": 3},
        )

        updated = await binding_service.update_binding(
            binding.id, BindingPatch(remote_alert_id="A2"),
        )

        assert updated.remote_alert_id == "A2"
        assert updated.sync_state == "pending_backfill"
        assert updated.backfill_cursor is None
        assert updated.backfill_started_at is None
        assert PAGES_TOTAL_KEY not in updated.metadata
        assert ("A2", False) in validator.calls

    @pytest.mark.asyncio
    async def test_connector_change_keeps_progress(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_historical_progress(binding.id, "https://next/2")
        connector_id = str(uuid.uuid4())

        updated = await binding_service.update_binding(
            binding.id, BindingPatch(connector_id=connector_id),
        )

        assert updated.connector_id == connector_id
        assert updated.sync_state == "backfilling"
        assert updated.backfill_cursor == "https://next/2"

    @pytest.mark.asyncio
    async def test_remote_alert_change_to_bound_id_conflicts(self, binding_service, profile):
        first = await binding_service.create_binding(profile.id, "A1")
        await binding_service.create_binding(profile.id, "A2")

        with pytest.raises(ConflictError):
            await binding_service.update_binding(first.id, BindingPatch(remote_alert_id="A2"))

    @pytest.mark.asyncio
    async def test_profile_change_requires_existing_profile(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        with pytest.raises(NotFoundError):
            await binding_service.update_binding(
                binding.id, BindingPatch(profile_id=str(uuid.uuid4())),
            )

    @pytest.mark.asyncio
    async def test_profile_change(self, binding_service, profile_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        other = await profile_service.create_profile("Other", "globex")

        updated = await binding_service.update_binding(binding.id, BindingPatch(profile_id=other.id))

        assert updated.profile_id == other.id

    @pytest.mark.asyncio
    async def test_sync_state_contradicting_status_rejected(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        with pytest.raises(StoreValidationError):
            await binding_service.update_binding(binding.id, BindingPatch(sync_state="paused"))

    @pytest.mark.asyncio
    async def test_illegal_explicit_transition_conflicts(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        with pytest.raises(ConflictError):
            await binding_service.update_binding(binding.id, BindingPatch(sync_state="active"))

    @pytest.mark.asyncio
    async def test_explicit_pause_with_status(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        updated = await binding_service.update_binding(
            binding.id, BindingPatch(status="paused", sync_state="paused"),
        )
        assert updated.sync_state == "paused"

    @pytest.mark.asyncio
    async def test_update_audits_before_and_after(self, binding_service, profile, audit_repo, actor_id):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.update_binding(
            binding.id, BindingPatch(status="archived"), actor_user_id=actor_id,
        )

        entry = audit_repo.entries_for(binding.id)[-1]
        assert entry.action == "binding_updated"
        assert entry.before["status"] == "active"
        assert entry.after["status"] == "archived"
        assert entry.after["sync_state"] == "archived"
        assert entry.actor_user_id == actor_id


class TestLinkRemoteAlert:
    """Idempotent linking of remote alerts."""

    @pytest.mark.asyncio
    async def test_first_link_creates_profile_and_binding(self, binding_service, store, audit_repo, validator):
        result = await binding_service.link_remote_alert("A1")

        assert result.created is True
        assert result.profile.name == "Brand mentions"
        assert result.profile.query_text == 'acme OR "acme corp"'
        assert result.binding.profile_id == result.profile.id
        assert result.binding.sync_state == "pending_backfill"
        assert result.binding.validation_status == "valid"
        assert result.binding.metadata[LINK_METADATA_KEY]["remote_alert_name"] == "Brand mentions"
        assert ("A1", True) in validator.calls
        assert _actions(audit_repo, result.profile.id) == ["profile_created"]
        assert _actions(audit_repo, result.binding.id) == ["binding_linked"]
        assert len(store.profiles) == 1

    @pytest.mark.asyncio
    async def test_alias_names_the_profile(self, binding_service):
        result = await binding_service.link_remote_alert("A2", alias="Brand Watch")

        assert result.profile.name == "Brand Watch"
        assert result.profile.query_text == "Competitor watch"
        assert result.binding.metadata[LINK_METADATA_KEY]["alias"] == "Brand Watch"

    @pytest.mark.asyncio
    async def test_relink_is_idempotent_and_resets_progress(self, binding_service, store, audit_repo):
        first = await binding_service.link_remote_alert("A1", alias="Brand Watch")
        await binding_service.mark_sync_started(first.binding.id, "historical")
        await binding_service.mark_historical_progress(
            first.binding.id, "https://next/2", {"pages_fetched": 2},
        )

        second = await binding_service.link_remote_alert("A1", metadata={"team": "growth"})

        assert second.created is False
        assert second.binding.id == first.binding.id
        assert second.profile.id == first.profile.id
        assert second.profile.name == "Brand Watch"
        assert second.binding.sync_state == "pending_backfill"
        assert second.binding.backfill_cursor is None
        assert second.binding.backfill_started_at is None
        assert second.binding.metadata["team"] == "growth"
        assert SYNC_METRICS_KEY in second.binding.metadata
        assert PAGES_TOTAL_KEY not in second.binding.metadata
        assert len(store.profiles) == 1
        assert len(store.bindings) == 1
        assert _actions(audit_repo, first.binding.id)[-1] == "binding_relinked"

    @pytest.mark.asyncio
    async def test_relink_keeps_paused_status(self, binding_service):
        first = await binding_service.link_remote_alert("A1", status="paused")
        second = await binding_service.link_remote_alert("A1")

        assert second.binding.status == "paused"
        assert second.binding.sync_state == "paused"
        assert first.binding.id == second.binding.id

    @pytest.mark.asyncio
    async def test_unknown_remote_alert_not_found(self, binding_service, store):
        with pytest.raises(NotFoundError):
            await binding_service.link_remote_alert("ZZZ")
        assert store.profiles == {}
        assert store.bindings == {}
        assert store.audit == []

    @pytest.mark.asyncio
    async def test_link_without_credential_still_links(self, make_binding_service, make_validator):
        service = make_binding_service(make_validator(alerts=None))

        result = await service.link_remote_alert("A9")

        assert result.created is True
        assert result.profile.name == "Awario alert A9"
        assert result.binding.validation_status == "unknown"


class TestRequeueBackfill:

    @pytest.mark.asyncio
    async def test_requeue_resets_completed_backfill(self, binding_service, profile, audit_repo):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_historical_completed(binding.id)

        requeued = await binding_service.requeue_backfill(binding.id)

        assert requeued.sync_state == "pending_backfill"
        assert requeued.backfill_completed_at is None
        assert requeued.last_sync_at is None
        assert _actions(audit_repo, binding.id)[-1] == "binding_backfill_requeued"

    @pytest.mark.asyncio
    async def test_requeue_paused_binding_conflicts(self, binding_service, profile, audit_repo):
        binding = await binding_service.create_binding(profile.id, "A1", status="paused")

        with pytest.raises(ConflictError):
            await binding_service.requeue_backfill(binding.id)
        assert _actions(audit_repo, binding.id) == ["binding_created"]


class TestSyncProgress:
    """System-actor progress writes used by the orchestrator."""

    @pytest.mark.asyncio
    async def test_historical_start_stamps_once(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")

        first = await binding_service.mark_sync_started(binding.id, "historical")
        second = await binding_service.mark_sync_started(binding.id, "historical")

        assert first.sync_state == "backfilling"
        assert first.backfill_started_at is not None
        assert second.backfill_started_at == first.backfill_started_at

    @pytest.mark.asyncio
    async def test_start_on_paused_binding_conflicts(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1", status="paused")
        with pytest.raises(ConflictError):
            await binding_service.mark_sync_started(binding.id, "historical")

    @pytest.mark.asyncio
    async def test_invalid_mode_rejected(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        with pytest.raises(StoreValidationError):
            await binding_service.mark_sync_started(binding.id, "full")

    @pytest.mark.asyncio
    async def test_progress_stores_cursor_and_page_total(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")

        await binding_service.mark_historical_progress(binding.id, "c1", {"pages_fetched": 4})
        updated = await binding_service.mark_historical_progress(
            binding.id, "c2", {"pages_fetched": 3, "persisted": 10},
        )

        assert updated.backfill_cursor == "c2"
        assert updated.metadata[PAGES_TOTAL_KEY] == 7
        assert updated.metadata[SYNC_METRICS_KEY]["persisted"] == 10

    @pytest.mark.asyncio
    async def test_empty_cursor_rejected(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        with pytest.raises(StoreValidationError):
            await binding_service.mark_historical_progress(binding.id, "")

    @pytest.mark.asyncio
    async def test_progress_on_paused_binding_keeps_paused(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.update_binding(binding.id, BindingPatch(status="paused"))

        updated = await binding_service.mark_historical_progress(binding.id, "c1")

        assert updated.sync_state == "paused"
        assert updated.backfill_cursor is None

    @pytest.mark.asyncio
    async def test_historical_completed(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_historical_progress(binding.id, "c1")

        done = await binding_service.mark_historical_completed(binding.id, {"pages_fetched": 1})

        assert done.sync_state == "active"
        assert done.backfill_cursor is None
        assert done.backfill_completed_at is not None
        assert done.last_sync_at == done.backfill_completed_at
        assert done.has_completed_backfill

    @pytest.mark.asyncio
    async def test_incremental_completed_stamps_last_sync(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_historical_completed(binding.id)

        updated = await binding_service.mark_incremental_completed(binding.id, {"persisted": 2})

        assert updated.sync_state == "active"
        assert updated.last_sync_at is not None

    @pytest.mark.asyncio
    async def test_failure_truncates_and_clears_cursor(self, make_binding_service, validator, profile, audit_repo):
        service = make_binding_service(validator, config=BindingsConfig(sync_error_max_length=64))
        binding = await service.create_binding(profile.id, "A1")
        await service.mark_sync_started(binding.id, "historical")
        await service.mark_historical_progress(binding.id, "c1")

        failed = await service.mark_sync_failed(binding.id, "historical", "x" * 500)

        assert failed.sync_state == "error"
        assert failed.backfill_cursor is None
        assert failed.last_sync_error == "x" * 64
        assert _actions(audit_repo, binding.id)[-1] == "binding_backfill_failed"

    @pytest.mark.asyncio
    async def test_historical_failure_resets_page_total(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_historical_progress(binding.id, "c1", {"pages_fetched": 3})

        failed = await binding_service.mark_sync_failed(binding.id, "historical", "503")

        assert failed.backfill_cursor is None
        assert PAGES_TOTAL_KEY not in failed.metadata

    @pytest.mark.asyncio
    async def test_failure_can_keep_page_total(self, binding_service, profile):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_historical_progress(binding.id, "c1", {"pages_fetched": 3})

        failed = await binding_service.mark_sync_failed(
            binding.id, "historical", "cap", keep_backfill_pages=True,
        )

        assert failed.metadata[PAGES_TOTAL_KEY] == 3

    @pytest.mark.asyncio
    async def test_incremental_failure_action(self, binding_service, profile, audit_repo):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_failed(binding.id, "incremental", "")

        entry = audit_repo.entries_for(binding.id)[-1]
        assert entry.action == "binding_incremental_failed"
        assert entry.after["last_sync_error"] == "Unknown sync error"

    @pytest.mark.asyncio
    async def test_every_mutation_is_audited(self, binding_service, profile, audit_repo):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        await binding_service.mark_historical_progress(binding.id, "c1")
        await binding_service.mark_historical_completed(binding.id)
        await binding_service.mark_sync_started(binding.id, "incremental")
        await binding_service.mark_incremental_completed(binding.id)

        assert _actions(audit_repo, binding.id) == [
            "binding_created",
            "binding_sync_started",
            "binding_backfill_progress",
            "binding_backfill_completed",
            "binding_sync_started",
            "binding_incremental_completed",
        ]


class TestRollback:
    """A failing audit insert rolls back the whole mutation."""

    @pytest.mark.asyncio
    async def test_create_rolled_back(self, binding_service, profile, store, fake_db, audit_repo, monkeypatch):
        monkeypatch.setattr(audit_repo, "append", AsyncMock(side_effect=RuntimeError("audit down")))

        with pytest.raises(RuntimeError):
            await binding_service.create_binding(profile.id, "A1")

        assert store.bindings == {}
        assert fake_db.rollbacks == 1

    @pytest.mark.asyncio
    async def test_link_rolls_back_profile_too(self, binding_service, store, audit_repo, monkeypatch):
        monkeypatch.setattr(audit_repo, "append", AsyncMock(side_effect=RuntimeError("audit down")))

        with pytest.raises(RuntimeError):
            await binding_service.link_remote_alert("A1")

        assert store.profiles == {}
        assert store.bindings == {}

    @pytest.mark.asyncio
    async def test_progress_rolled_back(self, binding_service, profile, store, audit_repo, monkeypatch):
        binding = await binding_service.create_binding(profile.id, "A1")
        await binding_service.mark_sync_started(binding.id, "historical")
        monkeypatch.setattr(audit_repo, "append", AsyncMock(side_effect=RuntimeError("audit down")))

        with pytest.raises(RuntimeError):
            await binding_service.mark_historical_progress(binding.id, "c1")

        assert store.bindings[binding.id].backfill_cursor is None
        assert store.bindings[binding.id].sync_state == "backfilling"


class TestReads:

    @pytest.mark.asyncio
    async def test_get_missing_binding(self, binding_service):
        with pytest.raises(NotFoundError):
            await binding_service.get_binding(str(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_list_bindings_filters(self, binding_service, profile):
        await binding_service.create_binding(profile.id, "A1")
        await binding_service.create_binding(profile.id, "A2", status="paused")

        items, total = await binding_service.list_bindings(status="paused")

        assert total == 1
        assert items[0].remote_alert_id == "A2"

    @pytest.mark.asyncio
    async def test_list_bindings_rejects_bad_sync_state(self, binding_service):
        with pytest.raises(StoreValidationError):
            await binding_service.list_bindings(sync_state="running")

    @pytest.mark.asyncio
    async def test_sync_candidates_exclude_paused(self, binding_service, profile):
        active = await binding_service.create_binding(profile.id, "A1")
        await binding_service.create_binding(profile.id, "A2", status="paused")

        candidates = await binding_service.list_sync_candidates(10)

        assert [c.id for c in candidates] == [active.id]
        assert candidates[0].sync_state == "pending_backfill"


class TestListRemoteAlerts:

    @pytest.mark.asyncio
    async def test_hides_inactive_and_bound_by_default(self, binding_service):
        await binding_service.link_remote_alert("A1")

        options = await binding_service.list_remote_alerts()

        assert [o.alert.id for o in options] == ["A2"]
        assert options[0].is_bound is False

    @pytest.mark.asyncio
    async def test_include_bound_and_inactive(self, binding_service):
        linked = await binding_service.link_remote_alert("A1")

        options = await binding_service.list_remote_alerts(include_bound=True, include_inactive=True)

        assert [o.alert.id for o in options] == ["A1", "A2", "A3"]
        assert options[0].binding_id == linked.binding.id

    @pytest.mark.asyncio
    async def test_query_matches_name_case_insensitively(self, binding_service):
        options = await binding_service.list_remote_alerts(query="COMPETITOR")
        assert [o.alert.id for o in options] == ["A2"]

    @pytest.mark.asyncio
    async def test_limit(self, binding_service):
        options = await binding_service.list_remote_alerts(limit=1)
        assert len(options) == 1

    @pytest.mark.asyncio
    async def test_missing_credential(self, make_binding_service, make_validator):
        service = make_binding_service(make_validator(alerts=None))
        with pytest.raises(StoreValidationError, match="not configured"):
            await service.list_remote_alerts()

    @pytest.mark.asyncio
    async def test_remote_failure_is_internal(self, make_binding_service, make_validator):
        service = make_binding_service(
            make_validator(alerts=[], error=HTTPClientError("bad gateway", status_code=502)),
        )
        with pytest.raises(InternalStoreError):
            await service.list_remote_alerts()
