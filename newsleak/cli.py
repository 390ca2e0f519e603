"""
Newsleak Command Line Interface
===============================

Management and ingestion commands.

Usage:
    newsleak --help                          # Show all commands
    newsleak check-config                    # Validate configuration
    newsleak init-db                         # Initialize database
    newsleak add-feed URL --source NAME      # Register a feed
    newsleak list-feeds                      # Show registered feeds
    newsleak refresh                         # Run one ingestion pass
    newsleak schedule                        # Refresh periodically
    newsleak articles --category Politics    # Browse stored articles
"""

import sys
import json
import asyncio
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from .config.settings import NewsleakSettings, StorageBackend, get_settings
from .database.connection import get_db_manager
from .database.models import Feed
from .database.schema import DatabaseSchema
from .ingestion.orchestrator import IngestionOrchestrator, RunSummary, FeedState
from .ingestion.transport import create_transport
from .scheduler.refresh_scheduler import RefreshScheduler
from .storage import (
    RecordStore,
    InMemoryRecordStore,
    SQLiteRecordStore,
    FeedRepository,
    ArticleRepository,
)
from .utils.logging import configure_application_logging
from .utils.validators import URLValidator
from .utils.exceptions import (
    NewsleakError,
    ConfigurationError,
    DuplicateFeedError,
    StoreUnavailableError,
    get_user_friendly_message,
)

console = Console()


def _shorten(text: Optional[str], width: int) -> str:
    text = text or ""
    return text[: width - 3] + "..." if len(text) > width else text


def _load_settings(ctx) -> NewsleakSettings:
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if ctx.obj.get('debug') else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging and not ctx.obj.get('quiet'),
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )
    return settings


def build_store(settings: NewsleakSettings) -> RecordStore:
    """Record store selected by ``storage.backend``."""
    if settings.storage.backend == StorageBackend.MEMORY:
        return InMemoryRecordStore()

    schema = DatabaseSchema(settings.storage.path)
    schema.create_tables()
    return SQLiteRecordStore(get_db_manager(settings.storage.path, settings.storage.pool_size))


def build_repositories(settings: NewsleakSettings) -> Tuple[FeedRepository, ArticleRepository]:
    store = build_store(settings)
    return FeedRepository(store), ArticleRepository(store)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--quiet', '-q', is_flag=True, help='Disable console logging')
@click.pass_context
def cli(ctx, debug, quiet):
    """Newsleak - RSS/Atom news ingestion."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    ctx.obj['quiet'] = quiet

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate environment configuration."""
    console.print("[bold blue]🔧 Checking Newsleak Configuration[/bold blue]")

    try:
        settings = _load_settings(ctx)
    except ConfigurationError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details")

    checks = [
        ("Storage", _check_storage_config),
        ("Transport", _check_transport_config),
        ("Classification", _check_classification_config),
        ("Images", _check_image_config),
        ("Logging", _check_logging_config),
    ]

    all_passed = True
    for name, check_func in checks:
        try:
            status, details = check_func(settings)
        except (OSError, NewsleakError) as e:
            status, details = False, str(e)
        table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
        all_passed = all_passed and status

    console.print(table)

    if all_passed:
        console.print("[bold green]✅ All configuration checks passed![/bold green]")
    else:
        console.print("[bold red]❌ Configuration validation failed[/bold red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def init_db(ctx):
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing Newsleak Database[/bold blue]")

    try:
        settings = _load_settings(ctx)
        if settings.storage.backend != StorageBackend.SQLITE:
            console.print("[yellow]⚠️ Storage backend is not sqlite, nothing to initialize[/yellow]")
            return

        schema = DatabaseSchema(settings.storage.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]✅ Database initialized successfully![/bold green]")

        info = get_db_manager(settings.storage.path, settings.storage.pool_size).get_database_info()
        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")
        info_table.add_row("Database Path", settings.storage.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        info_table.add_row("Feeds", str(info['table_counts']['feeds']))
        info_table.add_row("Articles", str(info['table_counts']['articles']))
        console.print(info_table)

    except NewsleakError as e:
        console.print(f"[bold red]❌ Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('url')
@click.option('--source', '-s', required=True, help='Publisher display name')
@click.option('--category', help='Feed category (used as-is in trust mode)')
@click.option('--description', help='Feed description')
@click.option('--website', help='Publisher homepage URL')
@click.option('--disabled', is_flag=True, help='Register without polling it')
@click.pass_context
def add_feed(ctx, url, source, category, description, website, disabled):
    """Register a new RSS/Atom feed."""
    try:
        settings = _load_settings(ctx)
        feeds, _ = build_repositories(settings)
        feed = feeds.create_feed(
            Feed(
                url=url,
                source=source,
                category=category,
                description=description,
                website_url=website,
                enabled=not disabled,
            )
        )
    except DuplicateFeedError as e:
        console.print(f"[bold red]❌ {e.user_message} (feed #{e.existing_id})[/bold red]")
        sys.exit(1)
    except NewsleakError as e:
        console.print(f"[bold red]❌ {get_user_friendly_message(e)}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ Feed #{feed.id} registered: {feed.url}[/bold green]")
    if not URLValidator.is_likely_feed_url(feed.url):
        console.print("[yellow]⚠️ URL does not look like an RSS/Atom feed; check it with refresh[/yellow]")


@cli.command()
@click.option('--enabled-only', is_flag=True, help='Hide disabled feeds')
@click.pass_context
def list_feeds(ctx, enabled_only):
    """Show registered feeds with their fetch status."""
    console.print("[bold blue]📊 Feed Status Report[/bold blue]")

    try:
        settings = _load_settings(ctx)
        feeds, _ = build_repositories(settings)
        registered = feeds.list_feeds(enabled_only=enabled_only)
        stats = feeds.get_feed_statistics()
    except NewsleakError as e:
        console.print(f"[bold red]❌ Error listing feeds: {e}[/bold red]")
        sys.exit(1)

    if not registered:
        console.print("[yellow]⚠️ No feeds registered[/yellow]")
        return

    feeds_table = Table(title="RSS Feeds")
    feeds_table.add_column("ID", style="cyan")
    feeds_table.add_column("Status", style="green")
    feeds_table.add_column("Source", style="cyan")
    feeds_table.add_column("Category", style="yellow")
    feeds_table.add_column("URL", style="blue")
    feeds_table.add_column("Errors", style="red")
    feeds_table.add_column("Last Fetch")

    for feed in registered:
        if not feed.enabled:
            status = "⚪"
        elif feed.consecutive_error_count == 0:
            status = "🟢"
        else:
            status = "🟡" if feed.is_healthy() else "🔴"

        feeds_table.add_row(
            str(feed.id),
            status,
            _shorten(feed.source, 30),
            feed.category or "-",
            _shorten(feed.url, 50),
            str(feed.consecutive_error_count),
            feed.last_fetched_at.strftime("%Y-%m-%d %H:%M") if feed.last_fetched_at else "Never",
        )

    console.print(feeds_table)
    console.print(
        f"Total: {stats['total_feeds']} | enabled: {stats['enabled_feeds']} | "
        f"with errors: {stats['feeds_with_errors']} | never fetched: {stats['never_fetched']}"
    )


@cli.command()
@click.argument('feed_id', type=int)
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def remove_feed(ctx, feed_id, yes):
    """Delete a feed (its articles are kept)."""
    try:
        settings = _load_settings(ctx)
        feeds, _ = build_repositories(settings)
        feed = feeds.get_feed(feed_id)
        if feed is None:
            console.print(f"[bold red]❌ No feed with ID {feed_id}[/bold red]")
            sys.exit(1)

        if not yes and not click.confirm(f"Remove feed #{feed_id} ({feed.url})?"):
            console.print("[yellow]Removal cancelled[/yellow]")
            return

        feeds.delete_feed(feed_id)
    except NewsleakError as e:
        console.print(f"[bold red]❌ Error removing feed: {e}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ Feed #{feed_id} removed[/bold green]")


@cli.command()
@click.option('--feed-id', 'feed_ids', type=int, multiple=True, help='Only refresh these feeds (repeatable)')
@click.option('--json', 'as_json', is_flag=True, help='Print the run summary as JSON')
@click.pass_context
def refresh(ctx, feed_ids, as_json):
    """Run one ingestion pass over the registered feeds."""
    settings = _load_settings(ctx)

    async def run_refresh() -> RunSummary:
        feeds, articles = build_repositories(settings)
        selected = None
        if feed_ids:
            selected = [feed for feed in (feeds.get_feed(i) for i in feed_ids) if feed]
            missing = set(feed_ids) - {feed.id for feed in selected}
            if missing:
                console.print(f"[yellow]⚠️ Unknown feed IDs ignored: {sorted(missing)}[/yellow]")

        async with create_transport(settings.transport) as transport:
            orchestrator = IngestionOrchestrator.from_settings(settings, feeds, articles, transport)
            return await orchestrator.run(selected)

    try:
        summary = asyncio.run(run_refresh())
    except StoreUnavailableError as e:
        console.print(f"[bold red]❌ Store unavailable, run aborted: {e}[/bold red]")
        sys.exit(2)
    except NewsleakError as e:
        console.print(f"[bold red]❌ Refresh error: {e}[/bold red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2))
    else:
        _print_summary(summary)

    if summary.feeds_failed:
        sys.exit(1)


@cli.command()
@click.option('--interval', type=float, help='Minutes between runs (default: from settings)')
@click.option('--max-runs', type=int, help='Exit after this many runs')
@click.pass_context
def schedule(ctx, interval, max_runs):
    """Refresh all feeds periodically until interrupted."""
    settings = _load_settings(ctx)
    interval = interval or settings.schedule.refresh_interval_minutes

    console.print(f"[bold blue]⏰ Refreshing every {interval:g} minutes (Ctrl+C to stop)[/bold blue]")

    async def run_schedule() -> None:
        feeds, articles = build_repositories(settings)
        async with create_transport(settings.transport) as transport:
            orchestrator = IngestionOrchestrator.from_settings(settings, feeds, articles, transport)
            scheduler = RefreshScheduler(orchestrator, interval_minutes=interval)
            await scheduler.run_forever(max_runs=max_runs)

    try:
        asyncio.run(run_schedule())
    except KeyboardInterrupt:
        console.print("\n[yellow]Scheduler stopped[/yellow]")


@cli.command()
@click.option('--category', help='Only show this category')
@click.option('--search', 'text', help='Case-insensitive title/summary search')
@click.option('--hours', type=int, help='Only articles published in the last N hours')
@click.option('--limit', default=20, show_default=True, help='Maximum articles shown')
@click.pass_context
def articles(ctx, category, text, hours, limit):
    """Browse stored articles, newest first."""
    try:
        settings = _load_settings(ctx)
        _, repo = build_repositories(settings)

        if text:
            found = repo.search(text, limit=limit)
            if category:
                found = [a for a in found if a.category == category]
        elif category:
            found = repo.list_by_category(category, limit=limit)
        elif hours:
            found = repo.list_recent(hours=hours, limit=limit)
        else:
            found = repo.list_all(limit=limit)
        counts = repo.count_by_category()
    except NewsleakError as e:
        console.print(f"[bold red]❌ Error reading articles: {e}[/bold red]")
        sys.exit(1)

    if not found:
        console.print("[yellow]⚠️ No articles found[/yellow]")
        return

    table = Table(title=f"Articles ({len(found)})")
    table.add_column("Published", style="cyan")
    table.add_column("Category", style="yellow")
    table.add_column("Source", style="green")
    table.add_column("Title")
    table.add_column("Image")

    for article in found:
        table.add_row(
            article.published_at.strftime("%Y-%m-%d %H:%M"),
            article.category,
            _shorten(article.source, 20),
            _shorten(article.title, 70),
            "🖼" if article.image else "-",
        )

    console.print(table)
    console.print(" | ".join(f"{name}: {count}" for name, count in sorted(counts.items(), key=str)))


def _print_summary(summary: RunSummary) -> None:
    results_table = Table(title=f"Ingestion Run {summary.run_id}")
    results_table.add_column("Feed", style="cyan")
    results_table.add_column("Status", style="green")
    results_table.add_column("Found", style="yellow")
    results_table.add_column("Upserted", style="yellow")
    results_table.add_column("New", style="yellow")
    results_table.add_column("Skipped", style="red")
    results_table.add_column("Details")

    for result in summary.feeds:
        status = "✅ Done" if result.state == FeedState.DONE else "❌ Failed"
        results_table.add_row(
            _shorten(result.source, 25),
            status,
            str(result.items_found),
            str(result.items_upserted),
            str(result.items_created),
            str(result.items_skipped),
            _shorten(result.error or "", 50),
        )

    console.print(results_table)
    console.print(
        f"\n[bold blue]📊 Summary: {summary.feeds_processed} feeds, {summary.feeds_failed} failed, "
        f"{summary.items_upserted} articles ({summary.items_created} new)[/bold blue]"
    )
    console.print(f"⏱️ Processing time: {summary.duration_seconds:.2f} seconds")


# Helper functions for configuration checks

def _check_storage_config(settings: NewsleakSettings) -> Tuple[bool, str]:
    if settings.storage.backend == StorageBackend.MEMORY:
        return True, "In-memory store (nothing persisted)"

    db_path = Path(settings.storage.path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return True, f"SQLite: {db_path} (pool {settings.storage.pool_size})"


def _check_transport_config(settings: NewsleakSettings) -> Tuple[bool, str]:
    transport = settings.transport
    if transport.base_delay > transport.max_delay:
        return False, "base_delay exceeds max_delay"

    mode = f"relay {transport.relay_url_template}" if transport.use_relay else "direct"
    return True, f"{mode}, timeout {transport.request_timeout:g}s, {transport.max_attempts} attempts"


def _check_classification_config(settings: NewsleakSettings) -> Tuple[bool, str]:
    classification = settings.classification
    rules = "custom rules" if classification.keyword_rules else "built-in rules"
    return True, f"mode {classification.mode.value}, default '{classification.default_category}', {rules}"


def _check_image_config(settings: NewsleakSettings) -> Tuple[bool, str]:
    images = settings.images
    if not images.page_scrape_enabled:
        return True, "Item heuristics only (page scraping off)"
    return True, f"Page scraping on, budget {images.page_scrape_budget}/run"


def _check_logging_config(settings: NewsleakSettings) -> Tuple[bool, str]:
    if settings.logging.file_path:
        Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
    return True, f"Level {settings.get_effective_log_level()}, file {settings.logging.file_path or 'disabled'}"


if __name__ == '__main__':
    cli()
