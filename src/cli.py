"""
Command-line interface for listening-sync.

Operator entry point for linking Awario alerts, inspecting bindings and
triggering connector syncs (manually or from a scheduler such as cron).

Usage:
    listening-sync init-db                    # Create tables
    listening-sync health                     # Check dependencies
    listening-sync sync run                   # Sync every active binding
    listening-sync sync runs                  # Recent connector runs
    listening-sync alerts list                # Unbound remote alerts
    listening-sync alerts link ALERT_ID       # Bind a remote alert
    listening-sync bindings list              # Local bindings
    listening-sync bindings requeue ID        # Force a full re-backfill
"""

import asyncio
import json
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics
from src.storage.errors import StoreError


@asynccontextmanager
async def _awario_client() -> AsyncIterator[Any]:
    """Yield a connected AwarioClient, or None without a credential."""
    from src.awario.client import create_awario_client

    client = create_awario_client()
    if client is None:
        yield None
        return
    async with client:
        yield client


def _binding_service(db: Any, client: Any) -> Any:
    from src.awario.config import AwarioConfig
    from src.awario.validation import AlertValidator, RemoteAlertCache
    from src.bindings.service import BindingService

    cache = RemoteAlertCache(ttl_seconds=AwarioConfig().alert_cache_ttl_seconds)
    return BindingService(db, validator=AlertValidator(client, cache=cache))


def _fail(error: StoreError) -> None:
    click.echo(click.style(f"Error ({error.code}): {error.message}", fg="red"), err=True)
    sys.exit(1)


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """listening-sync - Awario alert binding and sync engine."""
    setup_logging(level="DEBUG" if debug else None)


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from src.audit.repository import AuditRepository
    from src.bindings.repository import BindingRepository
    from src.profiles.repository import ProfileRepository
    from src.storage.database import Database
    from src.sync.ingestion import MentionIngestor
    from src.sync.repository import SyncRunRepository

    async def run():
        db = Database()
        await db.connect()

        try:
            # Dependency order: bindings reference profiles, mentions reference bindings
            await ProfileRepository(db).create_table()
            await BindingRepository(db).create_table()
            await AuditRepository(db).create_table()
            await MentionIngestor(db).create_table()
            await SyncRunRepository(db).create_table()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--check-awario", is_flag=True, help="Also call the Awario API")
def health(check_awario: bool) -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from src.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        settings = get_settings()
        results["awario_configured"] = settings.awario_configured

        if check_awario and settings.awario_configured:
            try:
                async with _awario_client() as client:
                    await client.list_alerts()
                results["awario_api"] = True
            except Exception as e:
                results["awario_api"] = False
                logger.error("Awario health check failed", error=str(e))

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("postgres", "awario_api") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


@main.group()
def sync() -> None:
    """Connector sync commands."""


@sync.command("run")
@click.option("--connector-id", default=None, help="Only sync bindings of this connector")
@click.option("--user-id", default=None, help="Operator triggering the run")
@click.option("--request-id", default=None, help="Correlation id for the audit trail")
@click.option("--metrics-port", default=None, type=int, help="Expose Prometheus metrics while running")
def sync_run(
    connector_id: str | None,
    user_id: str | None,
    request_id: str | None,
    metrics_port: int | None,
) -> None:
    """Run one sync invocation over active bindings.

    Example:
        listening-sync sync run
        listening-sync sync run --connector-id 7d0c...
    """
    from src.storage.database import Database
    from src.sync.config import SyncConfig
    from src.sync.ingestion import MentionIngestor
    from src.sync.orchestrator import SyncOrchestrator
    from src.sync.runner import ConnectorSyncRunner

    if metrics_port:
        get_metrics().start_server(port=metrics_port)

    async def run() -> int:
        db = Database()
        await db.connect()

        try:
            async with _awario_client() as client:
                if client is None:
                    click.echo(click.style(
                        "Error: AWARIO_ACCESS_TOKEN is not configured", fg="red",
                    ), err=True)
                    return 1

                config = SyncConfig()
                bindings = _binding_service(db, client)
                orchestrator = SyncOrchestrator(
                    bindings, client, MentionIngestor(db), config=config,
                )
                runner = ConnectorSyncRunner(db, bindings, orchestrator, config=config)
                try:
                    result = await runner.run_connector_sync(
                        connector_id,
                        triggered_by_user_id=user_id,
                        request_id=request_id,
                    )
                except StoreError as e:
                    _fail(e)

            click.echo("\nSync Results:")
            click.echo(f"  run id:              {result.id}")
            click.echo(f"  status:              {result.status}")
            for key in (
                "bindings_touched", "pages_fetched", "persisted", "skipped",
                "errors", "completed_backfills", "latency_ms",
            ):
                click.echo(f"  {key + ':':20s} {result.metrics.get(key, 0)}")
            return 0
        finally:
            await db.close()

    sys.exit(asyncio.run(run()))


@sync.command("runs")
@click.option("--connector-id", default=None, help="Filter by connector")
@click.option("--limit", default=20, type=int, help="Number of runs to show")
def sync_runs(connector_id: str | None, limit: int) -> None:
    """Show recent connector runs."""
    from src.storage.database import Database
    from src.storage.patch import parse_optional_uuid
    from src.sync.repository import SyncRunRepository

    async def run():
        db = Database()
        await db.connect()

        try:
            runs = await SyncRunRepository(db).list_runs(
                parse_optional_uuid(connector_id, "connector_id"), limit,
            )
        except StoreError as e:
            _fail(e)
        finally:
            await db.close()

        if not runs:
            click.echo("No connector runs recorded.")
            return
        for r in runs:
            color = {"completed": "green", "failed": "red"}.get(r.status, "yellow")
            click.echo(
                f"{r.started_at:%Y-%m-%d %H:%M:%S}  "
                + click.style(f"{r.status:9s}", fg=color)
                + f"  {r.id}  touched={r.metrics.get('bindings_touched', 0)}"
                f" errors={r.metrics.get('errors', 0)}"
                + (f"  {r.error_message}" if r.error_message else "")
            )

    asyncio.run(run())


@main.group()
def alerts() -> None:
    """Remote Awario alert commands."""


@alerts.command("list")
@click.option("--query", default=None, help="Case-insensitive filter on id and name")
@click.option("--include-inactive", is_flag=True, help="Include inactive alerts")
@click.option("--include-bound", is_flag=True, help="Include alerts that already have a binding")
@click.option("--limit", default=None, type=int, help="Maximum alerts to show")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def alerts_list(
    query: str | None,
    include_inactive: bool,
    include_bound: bool,
    limit: int | None,
    as_json: bool,
) -> None:
    """Pick-list of remote alerts available for linking."""
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            async with _awario_client() as client:
                service = _binding_service(db, client)
                options = await service.list_remote_alerts(
                    query=query,
                    include_inactive=include_inactive,
                    include_bound=include_bound,
                    limit=limit,
                )
        except StoreError as e:
            _fail(e)
        finally:
            await db.close()

        if as_json:
            _echo_json([o.to_dict() for o in options])
            return
        if not options:
            click.echo("No remote alerts found.")
            return
        for option in options:
            state = "active" if option.alert.is_active else "inactive"
            bound = f"  bound={option.binding_id}" if option.is_bound else ""
            click.echo(f"  {option.alert.id:12s}  {state:8s}  {option.alert.name or '-'}{bound}")

    asyncio.run(run())


@alerts.command("link")
@click.argument("remote_alert_id")
@click.option("--alias", default=None, help="Profile name for a new link")
@click.option("--connector-id", default=None, help="Connector grouping")
@click.option("--status", default=None, type=click.Choice(["active", "paused", "archived"]))
@click.option("--user-id", default=None, help="Operator performing the link")
def alerts_link(
    remote_alert_id: str,
    alias: str | None,
    connector_id: str | None,
    status: str | None,
    user_id: str | None,
) -> None:
    """Bind a remote alert, creating its profile when it is new.

    Re-linking an already bound alert resets its sync progress.
    """
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            async with _awario_client() as client:
                service = _binding_service(db, client)
                result = await service.link_remote_alert(
                    remote_alert_id,
                    connector_id=connector_id,
                    alias=alias,
                    status=status,
                    actor_user_id=user_id,
                )
        except StoreError as e:
            _fail(e)
        finally:
            await db.close()

        verb = "Linked" if result.created else "Re-linked"
        click.echo(click.style(f"{verb} {remote_alert_id}", fg="green"))
        click.echo(f"  binding:     {result.binding.id}")
        click.echo(f"  profile:     {result.profile.id} ({result.profile.name})")
        click.echo(f"  sync state:  {result.binding.sync_state}")
        click.echo(f"  validation:  {result.binding.validation_status}")
        if result.binding.last_validation_error:
            click.echo(f"               {result.binding.last_validation_error}")

    asyncio.run(run())


@main.group()
def bindings() -> None:
    """Alert binding commands."""


@bindings.command("list")
@click.option("--status", default=None, type=click.Choice(["active", "paused", "archived"]))
@click.option("--sync-state", default=None, help="Filter by sync state")
@click.option("--connector-id", default=None, help="Filter by connector")
@click.option("--profile-id", default=None, help="Filter by profile")
@click.option("--limit", default=None, type=int, help="Page size")
@click.option("--offset", default=0, type=int, help="Page offset")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def bindings_list(
    status: str | None,
    sync_state: str | None,
    connector_id: str | None,
    profile_id: str | None,
    limit: int | None,
    offset: int,
    as_json: bool,
) -> None:
    """List local alert bindings."""
    from src.bindings.service import BindingService
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            items, total = await BindingService(db).list_bindings(
                status=status,
                sync_state=sync_state,
                connector_id=connector_id,
                profile_id=profile_id,
                limit=limit,
                offset=offset,
            )
        except StoreError as e:
            _fail(e)
        finally:
            await db.close()

        if as_json:
            _echo_json({"items": [b.to_dict() for b in items], "total": total})
            return
        click.echo(f"{total} binding(s)")
        for b in items:
            last_sync = f"{b.last_sync_at:%Y-%m-%d %H:%M}" if b.last_sync_at else "never"
            click.echo(
                f"  {b.id}  {b.remote_alert_id:12s}  {b.status:8s}  "
                f"{b.sync_state:16s}  last sync: {last_sync}"
            )
            if b.last_sync_error:
                click.echo(click.style(f"      {b.last_sync_error}", fg="red"))

    asyncio.run(run())


@bindings.command("requeue")
@click.argument("binding_id")
@click.option("--user-id", default=None, help="Operator requesting the requeue")
def bindings_requeue(binding_id: str, user_id: str | None) -> None:
    """Reset an active binding to pending_backfill for a full re-ingestion."""
    from src.bindings.service import BindingService
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            binding = await BindingService(db).requeue_backfill(
                binding_id, actor_user_id=user_id,
            )
        except StoreError as e:
            _fail(e)
        finally:
            await db.close()

        click.echo(click.style(
            f"Binding {binding.id} requeued ({binding.sync_state})", fg="green",
        ))

    asyncio.run(run())
