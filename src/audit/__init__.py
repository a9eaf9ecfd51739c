"""Audit: append-only mutation history."""

from src.audit.repository import AuditRepository
from src.audit.schemas import AuditEntry

__all__ = ["AuditEntry", "AuditRepository"]
