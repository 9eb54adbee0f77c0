"""
SafeVenue - CLI Admin Commands
Command-line interface for operators and administration
"""

import asyncio
import json
import logging
import signal
import subprocess
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()
logger = logging.getLogger(__name__)

LEVEL_STYLES = {
    "low": "green",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
    "info": "cyan",
    "warning": "yellow",
}


def _setup_logging():
    from safevenue.core.config import get_settings

    logging.basicConfig(
        level=getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def _styled(value: str) -> str:
    style = LEVEL_STYLES.get(value, "white")
    return f"[{style}]{value}[/{style}]"


async def _open_backends():
    from safevenue.core.cache import get_response_cache
    from safevenue.core.config import get_settings
    from safevenue.core.database import get_database_manager

    if get_settings().DATA_BACKEND == "database":
        await get_database_manager().initialize()
    await get_response_cache().initialize()


async def _close_backends():
    from safevenue.core.cache import get_response_cache
    from safevenue.core.database import get_database_manager

    await get_response_cache().close()
    await get_database_manager().close()


@click.group()
def cli():
    """SafeVenue - Predictive Risk & Crowd Analytics Engine"""
    _setup_logging()


# ============== Analytics Commands ==============

@cli.command()
@click.argument("event_id")
def score(event_id: str):
    """Calculate and store the overall risk score for an event"""

    async def run():
        from safevenue.services.analytics import RiskScoringEngine
        from safevenue.services.data import get_event_repository
        from safevenue.services.weather import get_weather_provider

        await _open_backends()
        try:
            engine = RiskScoringEngine(
                event_id, get_event_repository(), weather_provider=get_weather_provider()
            )
            result = await engine.calculate_overall_risk_score()
        finally:
            await _close_backends()

        console.print(Panel.fit(
            f"Score: [bold]{result.overall_score}[/bold]  "
            f"Level: {_styled(result.risk_level.value)}  "
            f"Confidence: {result.confidence:.2f}",
            title=f"Risk score for {event_id}"
        ))

        tbl = Table(title="Contributing Factors")
        tbl.add_column("Factor", style="cyan")
        tbl.add_column("Score", justify="right")
        tbl.add_column("Weight", justify="right")
        tbl.add_column("Level")
        tbl.add_column("Description")
        for factor in result.contributing_factors:
            tbl.add_row(
                factor.factor_type.value,
                f"{factor.score:.1f}",
                f"{factor.weight:.2f}",
                _styled(factor.risk_level.value),
                factor.description,
            )
        console.print(tbl)

    asyncio.run(run())


@cli.command()
@click.argument("event_id")
@click.option("--refresh", is_flag=True, help="Bypass the insights cache")
@click.option("--user", "user_id", default="cli", help="User id the result is cached under")
def insights(event_id: str, refresh: bool, user_id: str):
    """Print the predictive insights payload for an event as JSON"""

    async def run():
        from safevenue.core.cache import get_response_cache
        from safevenue.core.exceptions import EventNotFoundError
        from safevenue.services.alerting import get_alert_dispatcher
        from safevenue.services.analytics import PredictiveInsightsService
        from safevenue.services.data import get_event_repository
        from safevenue.services.weather import get_weather_provider

        await _open_backends()
        try:
            service = PredictiveInsightsService(
                get_event_repository(),
                get_response_cache(),
                weather_provider=get_weather_provider(),
                dispatcher=get_alert_dispatcher(),
            )
            payload = await service.get_predictive_insights(event_id, user_id, force_refresh=refresh)
        except EventNotFoundError as e:
            console.print(f"[red]✗[/red] {e.message}")
            sys.exit(1)
        finally:
            await _close_backends()

        console.print_json(json.dumps(payload, default=str))

    asyncio.run(run())


@cli.command()
@click.argument("event_id")
@click.option("--generate", is_flag=True, help="Run the alert checks before listing")
def alerts(event_id: str, generate: bool):
    """List active alerts for an event"""

    async def run():
        from safevenue.services.analytics import PredictiveAlertSystem
        from safevenue.services.data import get_event_repository
        from safevenue.services.weather import get_weather_provider

        await _open_backends()
        try:
            system = PredictiveAlertSystem(
                event_id, get_event_repository(), weather_provider=get_weather_provider()
            )
            if generate:
                generated = await system.generate_proactive_alerts()
                console.print(f"[green]✓[/green] Generated {len(generated)} alerts")
            active = system.prioritize_alerts(await system.get_active_alerts())
        finally:
            await _close_backends()

        if not active:
            console.print("[yellow]No active alerts[/yellow]")
            return

        tbl = Table(title=f"Active alerts for {event_id}")
        tbl.add_column("ID", style="cyan")
        tbl.add_column("Type")
        tbl.add_column("Severity")
        tbl.add_column("Message")
        tbl.add_column("Expires")
        for alert in active:
            tbl.add_row(
                alert.id,
                alert.alert_type.value,
                _styled(alert.severity.value),
                alert.message,
                alert.expires_at.strftime("%H:%M"),
            )
        console.print(tbl)

    asyncio.run(run())


# ============== Worker Command ==============

@cli.command()
def worker():
    """
    Run the background alert poller.

    Generates proactive alerts for every live event every
    ALERT_POLL_INTERVAL_SECONDS until interrupted.
    """
    from safevenue.core.config import get_settings

    settings = get_settings()

    console.print(Panel.fit(
        "[bold green]SafeVenue[/bold green]\n"
        "Background Worker Service",
        title="Worker Starting"
    ))
    console.print(f"Environment: {settings.ENVIRONMENT}")
    console.print(f"Poll interval: {settings.ALERT_POLL_INTERVAL_SECONDS}s")

    async def run_worker():
        from safevenue.services.scheduling import get_scheduler_service

        scheduler = get_scheduler_service()
        scheduler.enabled = True

        try:
            await _open_backends()
            console.print("[green]✓[/green] Backends ready")

            await scheduler.initialize()
            await scheduler.start()
            console.print("[green]✓[/green] Scheduler started")

            console.print("\n[bold green]Worker is running![/bold green]")
            console.print("Press Ctrl+C to stop\n")

            stop_event = asyncio.Event()

            def signal_handler():
                console.print("\n[yellow]Shutdown signal received...[/yellow]")
                stop_event.set()

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                try:
                    loop.add_signal_handler(sig, signal_handler)
                except NotImplementedError:
                    # Windows doesn't support add_signal_handler
                    pass

            await stop_event.wait()

        except Exception as e:
            console.print(f"[red]✗[/red] Worker error: {e}")
            logger.exception("Worker failed")
            raise
        finally:
            console.print("[yellow]Shutting down worker...[/yellow]")
            try:
                await scheduler.stop()
                await _close_backends()
            except Exception as e:
                logger.error(f"Error during shutdown: {e}")
            console.print("[green]Worker stopped[/green]")

    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        console.print("\n[yellow]Worker interrupted[/yellow]")


# ============== Database Commands ==============

@cli.group()
def db():
    """Database management commands"""
    pass


@db.command()
def init():
    """Create database tables"""
    console.print("[yellow]Initializing database tables...[/yellow]")

    async def run():
        from safevenue.core.database import get_database_manager

        db_manager = get_database_manager()
        await db_manager.create_all()
        await db_manager.close()
        console.print("[green]✓[/green] Database tables created successfully")

    asyncio.run(run())


@db.command()
def migrate():
    """Run database migrations"""
    console.print("[yellow]Running database migrations...[/yellow]")

    result = subprocess.run(["alembic", "upgrade", "head"], capture_output=True, text=True)
    if result.returncode == 0:
        console.print("[green]✓[/green] Migrations applied successfully")
        if result.stdout:
            console.print(result.stdout)
    else:
        console.print("[red]✗[/red] Migration failed")
        console.print(result.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
