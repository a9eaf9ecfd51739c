"""Alert binding service: lifecycle, linking and sync progress.

Every mutation is one ``Database.transaction()``: the row is read with
``SELECT ... FOR UPDATE`` (the audit "before"), written back with
``RETURNING *`` and audited on the same connection. A failure anywhere
rolls all three back, so a binding's state and its audit trail never
diverge. Remote validation runs before the transaction opens and is
soft: it records an outcome but never blocks the write.
"""

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog

from src.audit.repository import AuditRepository
from src.audit.schemas import AuditEntry
from src.awario.http_client import HTTPClientError
from src.awario.schemas import RemoteAlert, RemoteAlertOption, ValidationResult
from src.awario.validation import MISSING_CREDENTIAL_ERROR, AlertValidator
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
from src.bindings.state import (
    derive_sync_state,
    is_allowed_transition,
    is_consistent_with_status,
    retain_cursor,
)
from src.observability.metrics import get_metrics
from src.profiles.repository import ProfileRepository
from src.profiles.schemas import QueryProfile
from src.profiles.service import (
    RESOURCE_TYPE as PROFILE_RESOURCE_TYPE,
    clamp_limit,
    optional_text,
    require_metadata,
    require_status,
    require_text,
)
from src.storage.database import Database, is_unique_violation
from src.storage.errors import (
    ConflictError,
    InternalStoreError,
    NotFoundError,
    StoreValidationError,
)
from src.storage.patch import parse_optional_uuid, parse_uuid, supplied_fields

logger = structlog.get_logger(__name__)

RESOURCE_TYPE = "alert_binding"
LINK_METADATA_KEY = "awario_link"
SYNC_METRICS_KEY = "sync_metrics"
PAGES_TOTAL_KEY = "backfill_pages_total"


def truncate(text: str | None, max_length: int) -> str | None:
    if text is None:
        return None
    return text if len(text) <= max_length else text[:max_length]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _reset_progress(binding: AlertBinding) -> None:
    """Clear everything tied to the previous sync history."""
    binding.backfill_cursor = None
    binding.backfill_started_at = None
    binding.backfill_completed_at = None
    binding.last_sync_at = None
    binding.last_sync_error = None
    binding.metadata.pop(PAGES_TOTAL_KEY, None)


def _merge_sync_metrics(binding: AlertBinding, metrics: Mapping[str, Any] | None) -> None:
    if not metrics:
        return
    merged = dict(binding.metadata.get(SYNC_METRICS_KEY) or {})
    merged.update(metrics)
    binding.metadata[SYNC_METRICS_KEY] = merged


def _add_backfill_pages(binding: AlertBinding, metrics: Mapping[str, Any] | None) -> int:
    pages = int((metrics or {}).get("pages_fetched", 0) or 0)
    total = int(binding.metadata.get(PAGES_TOTAL_KEY, 0) or 0) + pages
    binding.metadata[PAGES_TOTAL_KEY] = total
    return total


def _profile_query_text(alert: RemoteAlert | None, name: str, remote_alert_id: str) -> str:
    """Best available query text for a profile created from a remote alert."""
    if alert is not None:
        for key in ("query", "keywords", "search_query"):
            value = alert.raw.get(key)
            if isinstance(value, list):
                value = " OR ".join(str(v).strip() for v in value if str(v).strip())
            if isinstance(value, str) and value.strip():
                return value.strip()
        if alert.name:
            return alert.name
    return name or f"awario:{remote_alert_id}"


class BindingService:
    """Owns the alert binding lifecycle.

    Args:
        database: Connected Database.
        profile_repo: Profile repository override.
        binding_repo: Binding repository override.
        audit_repo: Audit repository override.
        validator: Remote alert validator; an unconfigured one (no client)
            is used when omitted, so validation reports ``unknown``.
        config: Store configuration.
    """

    def __init__(
        self,
        database: Database,
        profile_repo: ProfileRepository | None = None,
        binding_repo: BindingRepository | None = None,
        audit_repo: AuditRepository | None = None,
        validator: AlertValidator | None = None,
        config: BindingsConfig | None = None,
    ) -> None:
        self._db = database
        self._profiles = profile_repo or ProfileRepository(database)
        self._bindings = binding_repo or BindingRepository(database)
        self._audit = audit_repo or AuditRepository(database)
        self._validator = validator or AlertValidator(None)
        self._config = config or BindingsConfig()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _apply_validation(self, binding: AlertBinding, result: ValidationResult) -> None:
        binding.validation_status = result.status
        binding.last_validated_at = result.validated_at
        binding.last_validation_error = truncate(
            result.error, self._config.validation_error_max_length
        )

    async def _write(
        self,
        conn: Any,
        binding: AlertBinding,
        *,
        insert: bool = False,
    ) -> AlertBinding:
        """Persist a binding, mapping a unique violation to a conflict."""
        binding.backfill_cursor = retain_cursor(binding.sync_state, binding.backfill_cursor)
        try:
            if insert:
                return await self._bindings.insert(conn, binding)
            return await self._bindings.update(conn, binding)
        except Exception as e:
            if is_unique_violation(e):
                raise ConflictError(
                    f"Remote alert {binding.remote_alert_id} is already bound"
                ) from e
            raise

    async def _audit_binding(
        self,
        conn: Any,
        action: str,
        binding: AlertBinding,
        before: dict[str, Any] | None,
        actor_user_id: str | None,
        request_id: str | None,
    ) -> None:
        await self._audit.append(conn, AuditEntry(
            action=action,
            resource_type=RESOURCE_TYPE,
            resource_id=binding.id,
            actor_user_id=actor_user_id,
            request_id=request_id,
            before=before,
            after=binding.to_dict(),
        ))

    def _record(self, action: str, binding: AlertBinding, **extra: Any) -> None:
        get_metrics().record_binding_transition(action)
        logger.info(
            action,
            binding_id=binding.id,
            remote_alert_id=binding.remote_alert_id,
            sync_state=binding.sync_state,
            **extra,
        )

    async def _transition(
        self,
        binding_id: str,
        action: str,
        apply: Callable[[AlertBinding], None],
        *,
        actor_user_id: str | None = None,
        request_id: str | None = None,
    ) -> AlertBinding:
        """Locked read, in-memory change, write and audit in one transaction."""
        binding_id = parse_uuid(binding_id, "binding_id")
        async with self._db.transaction() as conn:
            current = await self._bindings.get_for_update(conn, binding_id)
            if current is None:
                raise NotFoundError(f"Alert binding {binding_id} not found")
            before = current.to_dict()
            apply(current)
            if actor_user_id is not None:
                current.updated_by_user_id = actor_user_id
            updated = await self._write(conn, current)
            await self._audit_binding(
                conn, action, updated, before, actor_user_id, request_id,
            )
        self._record(action, updated)
        return updated

    # ------------------------------------------------------------------
    # Operator mutations
    # ------------------------------------------------------------------

    async def create_binding(
        self,
        profile_id: str,
        remote_alert_id: str,
        *,
        status: str = "active",
        metadata: dict[str, Any] | None = None,
        connector_id: str | None = None,
        actor_user_id: str | None = None,
        request_id: str | None = None,
    ) -> AlertBinding:
        """Bind a profile to a remote alert.

        Raises:
            StoreValidationError: On malformed ids, status or metadata.
            NotFoundError: If the profile does not exist.
            ConflictError: If the remote alert is already bound.
        """
        profile_id = parse_uuid(profile_id, "profile_id")
        connector_id = parse_optional_uuid(connector_id, "connector_id")
        actor = parse_optional_uuid(actor_user_id, "actor_user_id")
        remote_alert_id = require_text(remote_alert_id, "remote_alert_id")
        status = require_status(status, VALID_BINDING_STATUSES)
        metadata = require_metadata(metadata)

        validation = await self._validator.validate(remote_alert_id)

        async with self._db.transaction() as conn:
            if not await self._profiles.exists(conn, profile_id):
                raise NotFoundError(f"Query profile {profile_id} not found")
            if await self._bindings.get_by_remote_alert_id(conn, remote_alert_id):
                raise ConflictError(f"Remote alert {remote_alert_id} is already bound")

            binding = AlertBinding(
                profile_id=profile_id,
                remote_alert_id=remote_alert_id,
                connector_id=connector_id,
                status=status,
                sync_state=derive_sync_state(None, status, False),
                metadata=metadata,
                created_by_user_id=actor,
                updated_by_user_id=actor,
            )
            self._apply_validation(binding, validation)
            created = await self._write(conn, binding, insert=True)
            await self._audit_binding(conn, "binding_created", created, None, actor, request_id)

        self._record("binding_created", created, validation_status=created.validation_status)
        return created

    async def update_binding(
        self,
        binding_id: str,
        patch: BindingPatch,
        *,
        actor_user_id: str | None = None,
        request_id: str | None = None,
    ) -> AlertBinding:
        """Apply the supplied patch fields to a binding.

        sync_state is derived from a status change unless supplied
        explicitly. Changing remote_alert_id resets progress and
        re-validates; changing only connector_id keeps progress.

        Raises:
            StoreValidationError: On malformed references or values, or an
                explicit sync_state contradicting the status.
            NotFoundError: If the binding or new profile does not exist.
            ConflictError: On an empty patch, a duplicate remote alert id or
                an illegal explicit transition.
        """
        binding_id = parse_uuid(binding_id, "binding_id")
        actor = parse_optional_uuid(actor_user_id, "actor_user_id")
        changes = supplied_fields(patch)
        if not changes:
            raise ConflictError("No fields supplied to update")

        if "profile_id" in changes:
            changes["profile_id"] = parse_uuid(changes["profile_id"], "profile_id")
        if "connector_id" in changes:
            changes["connector_id"] = parse_optional_uuid(changes["connector_id"], "connector_id")
        if "remote_alert_id" in changes:
            changes["remote_alert_id"] = require_text(changes["remote_alert_id"], "remote_alert_id")
        if "status" in changes:
            require_status(changes["status"], VALID_BINDING_STATUSES)
        if "sync_state" in changes and changes["sync_state"] not in VALID_SYNC_STATES:
            raise StoreValidationError(
                f"sync_state must be one of: {', '.join(sorted(VALID_SYNC_STATES))}"
            )
        if "metadata" in changes:
            changes["metadata"] = require_metadata(changes["metadata"])

        validation: ValidationResult | None = None
        if "remote_alert_id" in changes:
            validation = await self._validator.validate(changes["remote_alert_id"])

        async with self._db.transaction() as conn:
            current = await self._bindings.get_for_update(conn, binding_id)
            if current is None:
                raise NotFoundError(f"Alert binding {binding_id} not found")
            before = current.to_dict()
            previous_state = current.sync_state

            if "profile_id" in changes and changes["profile_id"] != current.profile_id:
                if not await self._profiles.exists(conn, changes["profile_id"]):
                    raise NotFoundError(f"Query profile {changes['profile_id']} not found")
                current.profile_id = changes["profile_id"]

            if "connector_id" in changes:
                current.connector_id = changes["connector_id"]

            if "metadata" in changes:
                current.metadata = changes["metadata"]

            identity_changed = (
                "remote_alert_id" in changes
                and changes["remote_alert_id"] != current.remote_alert_id
            )
            if identity_changed:
                new_id = changes["remote_alert_id"]
                owner = await self._bindings.get_by_remote_alert_id(conn, new_id)
                if owner is not None and owner.id != current.id:
                    raise ConflictError(f"Remote alert {new_id} is already bound")
                current.remote_alert_id = new_id
                _reset_progress(current)
                if validation is not None:
                    self._apply_validation(current, validation)

            new_status = changes.get("status", current.status)
            base_state = None if identity_changed else current.sync_state

            if "sync_state" in changes:
                target = changes["sync_state"]
                if not is_consistent_with_status(target, new_status):
                    raise StoreValidationError(
                        f"sync_state {target} contradicts status {new_status}"
                    )
                origin = "pending_backfill" if identity_changed else current.sync_state
                if not is_allowed_transition(origin, target, current.has_completed_backfill):
                    raise ConflictError(f"Cannot move sync_state from {origin} to {target}")
            elif identity_changed or "status" in changes:
                target = derive_sync_state(base_state, new_status, current.has_completed_backfill)
            else:
                target = current.sync_state

            if target == "pending_backfill" and previous_state != "pending_backfill":
                _reset_progress(current)

            current.status = new_status
            current.sync_state = target
            current.updated_by_user_id = actor

            updated = await self._write(conn, current)
            await self._audit_binding(conn, "binding_updated", updated, before, actor, request_id)

        self._record("binding_updated", updated, fields=sorted(changes))
        return updated

    async def link_remote_alert(
        self,
        remote_alert_id: str,
        *,
        connector_id: str | None = None,
        alias: str | None = None,
        status: str | None = None,
        metadata: dict[str, Any] | None = None,
        actor_user_id: str | None = None,
        request_id: str | None = None,
    ) -> LinkResult:
        """Idempotently bind a remote alert, creating its profile if needed.

        A relink keeps the binding id and profile, merges metadata and
        resets sync progress. Validation always uses a fresh alert list.

        Raises:
            StoreValidationError: On malformed input.
            NotFoundError: If no binding exists and the remote alert
                genuinely does not exist.
        """
        remote_alert_id = require_text(remote_alert_id, "remote_alert_id")
        connector_id = parse_optional_uuid(connector_id, "connector_id")
        actor = parse_optional_uuid(actor_user_id, "actor_user_id")
        alias = optional_text(alias, "alias")
        if status is not None:
            status = require_status(status, VALID_BINDING_STATUSES)
        extra_metadata = require_metadata(metadata)

        validation = await self._validator.validate(remote_alert_id, refresh=True)
        alert = validation.alert
        provenance = {
            "provider": "awario",
            "remote_alert_id": remote_alert_id,
            "remote_alert_name": alert.name if alert else None,
            "alias": alias,
            "linked_at": _now().isoformat(),
            "linked_by_user_id": actor,
        }

        async with self._db.transaction() as conn:
            existing = await self._bindings.get_by_remote_alert_id(
                conn, remote_alert_id, for_update=True,
            )

            if existing is None:
                if validation.not_found:
                    raise NotFoundError(f"Awario alert {remote_alert_id} was not found")

                name = alias or (alert.name if alert else None) or f"Awario alert {remote_alert_id}"
                profile = await self._profiles.insert(conn, QueryProfile(
                    name=name,
                    query_text=_profile_query_text(alert, name, remote_alert_id),
                    metadata={"provider": "awario", "remote_alert_id": remote_alert_id},
                    created_by_user_id=actor,
                    updated_by_user_id=actor,
                ))
                await self._audit.append(conn, AuditEntry(
                    action="profile_created",
                    resource_type=PROFILE_RESOURCE_TYPE,
                    resource_id=profile.id,
                    actor_user_id=actor,
                    request_id=request_id,
                    after=profile.to_dict(),
                ))

                effective_status = status or "active"
                binding = AlertBinding(
                    profile_id=profile.id,
                    remote_alert_id=remote_alert_id,
                    connector_id=connector_id,
                    status=effective_status,
                    sync_state=derive_sync_state(None, effective_status, False),
                    metadata={**extra_metadata, LINK_METADATA_KEY: provenance},
                    created_by_user_id=actor,
                    updated_by_user_id=actor,
                )
                self._apply_validation(binding, validation)
                linked = await self._write(conn, binding, insert=True)
                await self._audit_binding(conn, "binding_linked", linked, None, actor, request_id)
                created = True
            else:
                before = existing.to_dict()
                if connector_id is not None:
                    existing.connector_id = connector_id
                if status is not None:
                    existing.status = status
                existing.metadata = {
                    **existing.metadata,
                    **extra_metadata,
                    LINK_METADATA_KEY: provenance,
                }
                _reset_progress(existing)
                existing.sync_state = derive_sync_state(None, existing.status, False)
                existing.updated_by_user_id = actor
                self._apply_validation(existing, validation)
                linked = await self._write(conn, existing)
                await self._audit_binding(
                    conn, "binding_relinked", linked, before, actor, request_id,
                )
                profile = await self._profiles.get_for_update(conn, linked.profile_id)
                if profile is None:
                    raise InternalStoreError(
                        f"Binding {linked.id} references missing profile {linked.profile_id}"
                    )
                created = False

        self._record(
            "binding_linked" if created else "binding_relinked",
            linked,
            validation_status=linked.validation_status,
        )
        return LinkResult(binding=linked, profile=profile, created=created)

    async def requeue_backfill(
        self,
        binding_id: str,
        *,
        actor_user_id: str | None = None,
        request_id: str | None = None,
    ) -> AlertBinding:
        """Force a full re-ingestion of an active binding.

        Raises:
            NotFoundError: If the binding does not exist.
            ConflictError: If the binding status is not active.
        """
        actor = parse_optional_uuid(actor_user_id, "actor_user_id")

        def apply(binding: AlertBinding) -> None:
            if binding.status != "active":
                raise ConflictError(
                    f"Cannot requeue backfill for a {binding.status} binding"
                )
            _reset_progress(binding)
            binding.sync_state = "pending_backfill"

        return await self._transition(
            binding_id, "binding_backfill_requeued", apply,
            actor_user_id=actor, request_id=request_id,
        )

    # ------------------------------------------------------------------
    # Sync progress (system actor)
    # ------------------------------------------------------------------

    async def mark_sync_started(self, binding_id: str, mode: str) -> AlertBinding:
        """Record the start of a sync pass.

        Raises:
            ConflictError: If the binding is no longer active, so a racing
                pause is not overwritten.
        """
        if mode not in VALID_SYNC_MODES:
            raise StoreValidationError(f"Invalid sync mode {mode!r}")

        def apply(binding: AlertBinding) -> None:
            if binding.status != "active":
                raise ConflictError(f"Binding {binding.id} is {binding.status}")
            if mode == "historical":
                binding.sync_state = "backfilling"
                if binding.backfill_started_at is None:
                    binding.backfill_started_at = _now()
            binding.last_sync_error = None

        return await self._transition(binding_id, "binding_sync_started", apply)

    async def mark_historical_progress(
        self,
        binding_id: str,
        next_cursor: str,
        metrics: Mapping[str, Any] | None = None,
    ) -> AlertBinding:
        """Store the resume cursor after a bounded historical pass."""
        if not isinstance(next_cursor, str) or not next_cursor:
            raise StoreValidationError("next_cursor must be a non-empty string")

        def apply(binding: AlertBinding) -> None:
            _merge_sync_metrics(binding, metrics)
            _add_backfill_pages(binding, metrics)
            if binding.status == "active":
                binding.sync_state = "backfilling"
                binding.backfill_cursor = next_cursor

        return await self._transition(binding_id, "binding_backfill_progress", apply)

    async def mark_historical_completed(
        self,
        binding_id: str,
        metrics: Mapping[str, Any] | None = None,
    ) -> AlertBinding:
        """Finish a backfill: clear the cursor and move to ``active``."""

        def apply(binding: AlertBinding) -> None:
            now = _now()
            _merge_sync_metrics(binding, metrics)
            _add_backfill_pages(binding, metrics)
            binding.backfill_cursor = None
            binding.backfill_completed_at = now
            binding.last_sync_at = now
            binding.last_sync_error = None
            if binding.status == "active":
                binding.sync_state = "active"

        return await self._transition(binding_id, "binding_backfill_completed", apply)

    async def mark_incremental_completed(
        self,
        binding_id: str,
        metrics: Mapping[str, Any] | None = None,
    ) -> AlertBinding:
        """Stamp ``last_sync_at``; an active binding is forced to ``active``."""

        def apply(binding: AlertBinding) -> None:
            _merge_sync_metrics(binding, metrics)
            binding.last_sync_at = _now()
            binding.last_sync_error = None
            if binding.status == "active":
                binding.sync_state = "active"

        return await self._transition(binding_id, "binding_incremental_completed", apply)

    async def mark_sync_failed(
        self,
        binding_id: str,
        mode: str,
        error_message: str,
        *,
        keep_backfill_pages: bool = False,
    ) -> AlertBinding:
        """Record a failed pass with a bounded error message.

        The ``error`` state drops the backfill cursor, so a historical
        retry starts again from the first page. The accumulated page
        total is reset with it unless ``keep_backfill_pages`` is set,
        which the page-cap failure uses to stay failed.
        """
        if mode not in VALID_SYNC_MODES:
            raise StoreValidationError(f"Invalid sync mode {mode!r}")
        message = truncate(
            error_message or "Unknown sync error", self._config.sync_error_max_length,
        )
        action = (
            "binding_backfill_failed" if mode == "historical"
            else "binding_incremental_failed"
        )

        def apply(binding: AlertBinding) -> None:
            binding.last_sync_error = message
            if mode == "historical" and not keep_backfill_pages:
                binding.metadata.pop(PAGES_TOTAL_KEY, None)
            if binding.status == "active":
                binding.sync_state = "error"

        return await self._transition(binding_id, action, apply)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_binding(self, binding_id: str) -> AlertBinding:
        binding_id = parse_uuid(binding_id, "binding_id")
        binding = await self._bindings.get_by_id(binding_id)
        if binding is None:
            raise NotFoundError(f"Alert binding {binding_id} not found")
        return binding

    async def list_bindings(
        self,
        *,
        status: str | None = None,
        sync_state: str | None = None,
        profile_id: str | None = None,
        connector_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[AlertBinding], int]:
        """List bindings with optional filters.

        Returns:
            Tuple of (page of bindings, total matching count).
        """
        if status is not None:
            require_status(status, VALID_BINDING_STATUSES)
        if sync_state is not None and sync_state not in VALID_SYNC_STATES:
            raise StoreValidationError(f"Invalid sync_state {sync_state!r}")
        return await self._bindings.list_bindings(
            status=status,
            sync_state=sync_state,
            profile_id=parse_optional_uuid(profile_id, "profile_id"),
            connector_id=parse_optional_uuid(connector_id, "connector_id"),
            limit=clamp_limit(limit, self._config.default_list_limit, self._config.max_list_limit),
            offset=max(0, offset),
        )

    async def list_sync_candidates(
        self,
        limit: int,
        connector_id: str | None = None,
    ) -> list[SyncCandidate]:
        """Active bindings eligible for a sync pass, starved ones first."""
        return await self._bindings.list_sync_candidates(
            max(1, int(limit)),
            connector_id=parse_optional_uuid(connector_id, "connector_id"),
        )

    async def list_remote_alerts(
        self,
        *,
        query: str | None = None,
        include_inactive: bool = False,
        include_bound: bool = False,
        limit: int | None = None,
    ) -> list[RemoteAlertOption]:
        """Pick-list of remote alerts annotated with their binding.

        Raises:
            StoreValidationError: If no Awario credential is configured.
            InternalStoreError: If the remote call fails.
        """
        if not self._validator.configured:
            raise StoreValidationError(MISSING_CREDENTIAL_ERROR)
        try:
            alerts = await self._validator.list_alerts()
        except HTTPClientError as e:
            raise InternalStoreError(f"Awario request failed: {e}") from e

        needle = (query or "").strip().lower()
        if needle:
            alerts = [
                a for a in alerts
                if needle in a.id.lower() or needle in (a.name or "").lower()
            ]
        if not include_inactive:
            alerts = [a for a in alerts if a.is_active]

        bound = await self._bindings.bound_alert_ids([a.id for a in alerts])
        options = [RemoteAlertOption(alert=a, binding_id=bound.get(a.id)) for a in alerts]
        if not include_bound:
            options = [o for o in options if not o.is_bound]

        max_items = clamp_limit(limit, self._config.default_list_limit, self._config.max_list_limit)
        return options[:max_items]
