"""Sync orchestrator: advances each candidate binding by one bounded pass.

Candidates run sequentially. For a single binding every progress call
is awaited before the next page is requested, so cursor writes land in
fetch order. A failure is recorded on that binding and the batch moves
on; nothing raised for one candidate escapes ``run``.
"""

import time
from datetime import datetime, timedelta, timezone

import structlog

from src.awario.client import AwarioClient
from src.bindings.schemas import SyncCandidate
from src.bindings.service import PAGES_TOTAL_KEY, BindingService
from src.observability.metrics import get_metrics
from src.storage.errors import ConflictError, NotFoundError
from src.sync.config import SyncConfig
from src.sync.ingestion import ContentIngestor
from src.sync.schemas import CandidateResult, SyncBatchResult, SyncMetrics

logger = structlog.get_logger(__name__)

MAX_PAGES_EXCEEDED_PREFIX = "backfill_max_pages_total_exceeded"


def choose_mode(candidate: SyncCandidate) -> str:
    """Pick historical or incremental for a candidate.

    ``error`` bindings retry incrementally once a backfill has completed,
    otherwise they restart the backfill.
    """
    if candidate.sync_state in ("pending_backfill", "backfilling"):
        return "historical"
    if candidate.sync_state == "error" and not candidate.has_completed_backfill:
        return "historical"
    return "incremental"


class SyncOrchestrator:
    """Drives historical backfill and incremental polling for candidates.

    Args:
        bindings: Binding service used for every progress write.
        client: Connected Awario client.
        ingestor: Idempotent content sink.
        config: Paging and window bounds.
    """

    def __init__(
        self,
        bindings: BindingService,
        client: AwarioClient,
        ingestor: ContentIngestor,
        config: SyncConfig | None = None,
    ) -> None:
        self._bindings = bindings
        self._client = client
        self._ingestor = ingestor
        self._config = config or SyncConfig()

    def incremental_window(
        self,
        last_sync_at: datetime | None,
        now: datetime,
    ) -> tuple[datetime, datetime]:
        """Window for an incremental pass, overlapping the previous one."""
        overlap = timedelta(minutes=self._config.incremental_overlap_minutes)
        if last_sync_at is not None:
            return last_sync_at - overlap, now
        fallback = max(
            overlap, timedelta(minutes=self._config.incremental_min_window_minutes),
        )
        return now - fallback, now

    def historical_window(self, now: datetime) -> tuple[datetime, datetime]:
        return now - timedelta(days=self._config.backfill_window_days), now

    async def run(self, candidates: list[SyncCandidate]) -> SyncBatchResult:
        """Process candidates one by one and fold their results."""
        batch = SyncBatchResult()
        for candidate in candidates:
            batch.add(await self._sync_candidate(candidate))

        logger.info("Sync batch finished", **batch.to_dict())
        return batch

    async def _sync_candidate(self, candidate: SyncCandidate) -> CandidateResult:
        mode = choose_mode(candidate)
        log = logger.bind(
            binding_id=candidate.id,
            remote_alert_id=candidate.remote_alert_id,
            mode=mode,
        )
        metrics = SyncMetrics()
        started_at = time.monotonic()

        try:
            started = await self._bindings.mark_sync_started(candidate.id, mode)
        except (ConflictError, NotFoundError) as e:
            log.info("Skipping binding", reason=str(e))
            get_metrics().record_binding_synced(mode, "skipped")
            return CandidateResult(candidate.id, mode, "skipped", metrics, str(e))
        except Exception as e:
            return await self._fail(candidate, mode, metrics, e, log, started_at)

        try:
            if mode == "historical":
                outcome = await self._run_historical(
                    candidate,
                    cursor=started.backfill_cursor,
                    prior_pages=int(started.metadata.get(PAGES_TOTAL_KEY, 0) or 0),
                    metrics=metrics,
                )
            else:
                outcome = await self._run_incremental(
                    candidate, started.last_sync_at, metrics,
                )
        except Exception as e:
            return await self._fail(candidate, mode, metrics, e, log, started_at)

        latency = time.monotonic() - started_at
        get_metrics().record_binding_synced(mode, outcome, latency=latency)
        log.info(
            "Binding sync finished",
            outcome=outcome,
            latency_ms=round(latency * 1000),
            **metrics.to_dict(),
        )
        error = None
        if outcome == "failed":
            error = f"{MAX_PAGES_EXCEEDED_PREFIX}:{self._config.backfill_max_pages_total}"
        return CandidateResult(candidate.id, mode, outcome, metrics, error)

    async def _fetch_pages(
        self,
        candidate: SyncCandidate,
        *,
        mode: str,
        cursor: str | None,
        since: datetime,
        until: datetime,
        max_pages: int,
        metrics: SyncMetrics,
    ) -> tuple[str | None, bool]:
        """Fetch and ingest up to ``max_pages`` pages.

        Returns:
            Tuple of (next cursor, whether the source is exhausted).
        """
        for _ in range(max_pages):
            page = await self._client.list_mentions_page(
                candidate.remote_alert_id,
                cursor=cursor,
                since=since,
                until=until,
                limit=self._config.page_limit,
            )
            metrics.pages_fetched += 1
            metrics.mentions_seen += len(page.mentions)
            get_metrics().record_pages(mode)

            ingested = await self._ingestor.ingest(
                candidate.id, page, remote_alert_id=candidate.remote_alert_id,
            )
            metrics.persisted += ingested.persisted
            metrics.skipped += ingested.skipped
            get_metrics().record_mentions(ingested.persisted, ingested.skipped)

            cursor = page.next_cursor
            if not cursor:
                return None, True
        return cursor, False

    async def _run_historical(
        self,
        candidate: SyncCandidate,
        *,
        cursor: str | None,
        prior_pages: int,
        metrics: SyncMetrics,
    ) -> str:
        max_total = self._config.backfill_max_pages_total
        remaining_total = max(0, max_total - prior_pages)
        budget = min(self._config.backfill_pages_per_invocation, remaining_total)
        since, until = self.historical_window(datetime.now(timezone.utc))

        next_cursor, exhausted = (cursor, False)
        if budget > 0:
            next_cursor, exhausted = await self._fetch_pages(
                candidate,
                mode="historical",
                cursor=cursor,
                since=since,
                until=until,
                max_pages=budget,
                metrics=metrics,
            )

        if exhausted:
            await self._bindings.mark_historical_completed(candidate.id, metrics.to_dict())
            return "completed"

        if prior_pages + metrics.pages_fetched >= max_total:
            await self._bindings.mark_sync_failed(
                candidate.id,
                "historical",
                f"{MAX_PAGES_EXCEEDED_PREFIX}:{max_total}",
                keep_backfill_pages=True,
            )
            return "failed"

        await self._bindings.mark_historical_progress(
            candidate.id, next_cursor, metrics.to_dict(),
        )
        return "progress"

    async def _run_incremental(
        self,
        candidate: SyncCandidate,
        last_sync_at: datetime | None,
        metrics: SyncMetrics,
    ) -> str:
        since, until = self.incremental_window(last_sync_at, datetime.now(timezone.utc))
        await self._fetch_pages(
            candidate,
            mode="incremental",
            cursor=None,
            since=since,
            until=until,
            max_pages=self._config.incremental_pages_per_invocation,
            metrics=metrics,
        )
        await self._bindings.mark_incremental_completed(candidate.id, metrics.to_dict())
        return "completed"

    async def _fail(
        self,
        candidate: SyncCandidate,
        mode: str,
        metrics: SyncMetrics,
        exc: Exception,
        log: structlog.stdlib.BoundLogger,
        started_at: float,
    ) -> CandidateResult:
        message = str(exc) or type(exc).__name__
        log.warning("Binding sync failed", error=message)
        try:
            await self._bindings.mark_sync_failed(candidate.id, mode, message)
        except Exception as mark_error:
            log.error("Could not record sync failure", error=str(mark_error))
        get_metrics().record_binding_synced(
            mode, "failed", latency=time.monotonic() - started_at,
        )
        return CandidateResult(candidate.id, mode, "failed", metrics, message)
