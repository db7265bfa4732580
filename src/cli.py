"""
Command-line interface for metric-alerts.

Provides commands to run the API server, initialize the database, and
run diagnostic checks.

Usage:
    metric-alerts serve     # Run the API server with the alert engine
    metric-alerts init-db   # Create alert tables
    metric-alerts health    # Check database connectivity
    metric-alerts defaults  # Show the default threshold catalogue
"""

import asyncio
import json
import sys

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Metric Alerts - threshold alerting for AI processing metrics."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    settings = get_settings()
    if settings.tracing_enabled:
        from src.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
            sample_ratio=settings.otel_sample_ratio,
        )


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the alert API server and monitoring loop."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    if settings.metrics_enabled:
        get_metrics().start_server(port=metrics_port)
        click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")

    if not settings.database_configured:
        click.echo(click.style(
            "DATABASE_URL not set: alert state is kept in memory only", fg="yellow",
        ))

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command("init-db")
def init_db() -> None:
    """Create the threshold, rule, and alert tables."""
    from src.alerts.repository import AlertRepository
    from src.storage.database import Database

    settings = get_settings()
    if not settings.database_configured:
        click.echo(click.style("DATABASE_URL is not set", fg="red"))
        sys.exit(1)

    async def run():
        async with Database() as db:
            await AlertRepository(db).create_tables()
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of the configured dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        settings = get_settings()
        results: dict[str, bool] = {}

        if settings.database_configured:
            try:
                from src.storage.database import Database
                async with Database() as db:
                    results["postgres"] = await db.health_check()
            except Exception as e:
                results["postgres"] = False
                logger.error("Postgres health check failed", error=str(e))

        from src.alerts.channels import ChannelConfig
        channels = ChannelConfig()
        configured = {
            "webhook_configured": bool(channels.webhook_url),
            "slack_configured": bool(channels.slack_webhook_url),
            "teams_configured": bool(channels.teams_webhook_url),
            "email_configured": bool(channels.default_recipients),
        }

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        if not settings.database_configured:
            click.echo(click.style("  - postgres: not configured (in-memory)", fg="yellow"))
        for name, status in {**results, **configured}.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))

        click.echo("-" * 40)

        if all(results.values()):
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


@main.command()
@click.option("--category", default=None, help="Only show one category (cost, performance, usage, compliance)")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
def defaults(category: str | None, as_json: bool) -> None:
    """Show the default threshold catalogue."""
    from src.alerts.defaults import default_thresholds

    thresholds = [
        t for t in default_thresholds()
        if category is None or t.metadata.get("category") == category
    ]
    if not thresholds:
        click.echo(f"No default thresholds for category {category!r}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(
            [{k: v for k, v in t.to_dict().items()
              if k not in ("threshold_id", "created_at", "updated_at")}
             for t in thresholds],
            indent=2,
        ))
        return

    for t in thresholds:
        click.echo(
            f"[{t.metadata.get('category', '-'):<11}] {t.severity.upper():<9} "
            f"{t.name}: {t.metric} {t.operator} {t.value}"
        )


if __name__ == "__main__":
    main()
