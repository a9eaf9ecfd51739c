"""Sync: orchestrated backfill and incremental polling of bound alerts."""

from src.sync.config import SyncConfig
from src.sync.ingestion import ContentIngestor, IngestResult, MentionIngestor
from src.sync.orchestrator import SyncOrchestrator, choose_mode
from src.sync.repository import SyncRunRepository
from src.sync.runner import ConnectorSyncRunner
from src.sync.schemas import CandidateResult, ConnectorSyncRun, SyncBatchResult, SyncMetrics

__all__ = [
    "CandidateResult",
    "ConnectorSyncRun",
    "ConnectorSyncRunner",
    "ContentIngestor",
    "IngestResult",
    "MentionIngestor",
    "SyncBatchResult",
    "SyncConfig",
    "SyncMetrics",
    "SyncOrchestrator",
    "SyncRunRepository",
    "choose_mode",
]
