"""Query profile service: validated, audited CRUD.

Each mutation runs in one transaction covering the locked read, the
write and the audit insert.
"""

from typing import Any

import structlog

from src.audit.repository import AuditRepository
from src.audit.schemas import AuditEntry
from src.profiles.repository import ProfileRepository
from src.profiles.schemas import VALID_PROFILE_STATUSES, ProfilePatch, QueryProfile
from src.storage.database import Database
from src.storage.errors import ConflictError, NotFoundError, StoreValidationError
from src.storage.patch import parse_optional_uuid, parse_uuid, supplied_fields

logger = structlog.get_logger(__name__)

RESOURCE_TYPE = "query_profile"
MAX_LIST_LIMIT = 500


def require_text(value: Any, field_name: str) -> str:
    """Trim a required string field, rejecting blanks."""
    if not isinstance(value, str) or not value.strip():
        raise StoreValidationError(f"{field_name} must be a non-empty string")
    return value.strip()


def optional_text(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise StoreValidationError(f"{field_name} must be a string")
    return value.strip() or None


def normalize_list(value: Any, field_name: str) -> list[str]:
    """Trim, drop blanks and de-duplicate a string list, keeping order."""
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise StoreValidationError(f"{field_name} must be a list of strings")
    seen: dict[str, None] = {}
    for item in value:
        if not isinstance(item, str):
            raise StoreValidationError(f"{field_name} must be a list of strings")
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return list(seen)


def require_metadata(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise StoreValidationError("metadata must be an object")
    return dict(value)


def require_status(value: Any, valid: frozenset[str] = VALID_PROFILE_STATUSES) -> str:
    if value not in valid:
        raise StoreValidationError(
            f"status must be one of: {', '.join(sorted(valid))}"
        )
    return value


def clamp_limit(limit: int | None, default: int, maximum: int) -> int:
    if limit is None:
        return default
    return max(1, min(int(limit), maximum))


class ProfileService:
    """Create, update and read query profiles.

    Args:
        database: Connected Database.
        profile_repo: Repository override (defaults to one on ``database``).
        audit_repo: Audit repository override.
    """

    def __init__(
        self,
        database: Database,
        profile_repo: ProfileRepository | None = None,
        audit_repo: AuditRepository | None = None,
    ) -> None:
        self._db = database
        self._profiles = profile_repo or ProfileRepository(database)
        self._audit = audit_repo or AuditRepository(database)

    async def create_profile(
        self,
        name: str,
        query_text: str,
        *,
        objective: str | None = None,
        sources: list[str] | None = None,
        language: str | None = None,
        countries: list[str] | None = None,
        status: str = "active",
        metadata: dict[str, Any] | None = None,
        actor_user_id: str | None = None,
        request_id: str | None = None,
    ) -> QueryProfile:
        """Validate and persist a new profile.

        Raises:
            StoreValidationError: On blank name/query text, bad status,
                malformed lists or actor id.
        """
        actor = parse_optional_uuid(actor_user_id, "actor_user_id")
        profile = QueryProfile(
            name=require_text(name, "name"),
            query_text=require_text(query_text, "query_text"),
            objective=optional_text(objective, "objective"),
            sources=normalize_list(sources, "sources"),
            language=optional_text(language, "language"),
            countries=normalize_list(countries, "countries"),
            status=require_status(status),
            metadata=require_metadata(metadata),
            created_by_user_id=actor,
            updated_by_user_id=actor,
        )

        async with self._db.transaction() as conn:
            created = await self._profiles.insert(conn, profile)
            await self._audit.append(conn, AuditEntry(
                action="profile_created",
                resource_type=RESOURCE_TYPE,
                resource_id=created.id,
                actor_user_id=actor,
                request_id=request_id,
                after=created.to_dict(),
            ))

        logger.info("Query profile created", profile_id=created.id, name=created.name)
        return created

    async def update_profile(
        self,
        profile_id: str,
        patch: ProfilePatch,
        *,
        actor_user_id: str | None = None,
        request_id: str | None = None,
    ) -> QueryProfile:
        """Apply the supplied patch fields to a profile.

        Raises:
            StoreValidationError: On malformed ids or field values.
            ConflictError: If the patch supplies no fields.
            NotFoundError: If the profile does not exist.
        """
        profile_id = parse_uuid(profile_id, "profile_id")
        actor = parse_optional_uuid(actor_user_id, "actor_user_id")
        changes = supplied_fields(patch)
        if not changes:
            raise ConflictError("No fields supplied to update")

        async with self._db.transaction() as conn:
            current = await self._profiles.get_for_update(conn, profile_id)
            if current is None:
                raise NotFoundError(f"Query profile {profile_id} not found")
            before = current.to_dict()

            if "name" in changes:
                current.name = require_text(changes["name"], "name")
            if "query_text" in changes:
                current.query_text = require_text(changes["query_text"], "query_text")
            if "objective" in changes:
                current.objective = optional_text(changes["objective"], "objective")
            if "language" in changes:
                current.language = optional_text(changes["language"], "language")
            if "sources" in changes:
                current.sources = normalize_list(changes["sources"], "sources")
            if "countries" in changes:
                current.countries = normalize_list(changes["countries"], "countries")
            if "status" in changes:
                current.status = require_status(changes["status"])
            if "metadata" in changes:
                current.metadata = require_metadata(changes["metadata"])
            current.updated_by_user_id = actor

            updated = await self._profiles.update(conn, current)
            await self._audit.append(conn, AuditEntry(
                action="profile_updated",
                resource_type=RESOURCE_TYPE,
                resource_id=updated.id,
                actor_user_id=actor,
                request_id=request_id,
                before=before,
                after=updated.to_dict(),
            ))

        logger.info(
            "Query profile updated",
            profile_id=updated.id,
            fields=sorted(changes),
        )
        return updated

    async def get_profile(self, profile_id: str) -> QueryProfile:
        """Fetch one profile or raise NotFoundError."""
        profile_id = parse_uuid(profile_id, "profile_id")
        profile = await self._profiles.get_by_id(profile_id)
        if profile is None:
            raise NotFoundError(f"Query profile {profile_id} not found")
        return profile

    async def list_profiles(
        self,
        *,
        status: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[QueryProfile], int]:
        if status is not None:
            require_status(status)
        return await self._profiles.list_profiles(
            status=status,
            limit=clamp_limit(limit, 200, MAX_LIST_LIMIT),
            offset=max(0, offset),
        )
