"""Profiles: the named listening configurations bindings belong to."""

from src.profiles.repository import ProfileRepository
from src.profiles.schemas import VALID_PROFILE_STATUSES, ProfilePatch, QueryProfile
from src.profiles.service import ProfileService

__all__ = [
    "ProfilePatch",
    "ProfileRepository",
    "ProfileService",
    "QueryProfile",
    "VALID_PROFILE_STATUSES",
]
