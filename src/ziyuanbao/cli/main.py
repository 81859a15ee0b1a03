"""
CLI Main - Typer command-line interface.
========================================

Commands:
- init-db: Create database tables
- discover: Discover categories from the site navigation
- categories: List staging categories
- parse-category: Crawl one category listing
- parse-all: Crawl categories and parse every detail page (job)
- fetch-resource: Re-parse one detail page
- extract-outline: Build a resource's course outline (heuristic or AI)
- cloud-disk: Save a share link pasted as text
- import-resource: Promote one staged resource into the catalog
- batch-import: Promote a whole category (job)
- import-categories: Copy staging categories into the catalog
- fix-markdown: Repair mis-fenced catalog descriptions
- jobs / cancel-job: Inspect and stop batch jobs
- serve: Run the HTTP API
- info: Show configuration
"""

from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ziyuanbao.shared.errors import ZiyuanbaoError
from ziyuanbao.shared.logging import get_logger

logger = get_logger(__name__)

app = typer.Typer(
    name="ziyuanbao",
    help="""资源宝 Feifei import pipeline

Scrape course listings from the Feifei source site into staging tables,
parse detail pages and outlines, and import them into the 资源宝 catalog.

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

QUICK START:

  ziyuanbao init-db                  # Create tables
  ziyuanbao discover                 # Find categories in the site menu
  ziyuanbao parse-all -c 3           # Crawl category 3 and parse every page
  ziyuanbao extract-outline 42       # Outline for resource 42 (heuristic)
  ziyuanbao batch-import 3           # Import category 3 into the catalog
  ziyuanbao serve                    # Start the admin API

Use 'ziyuanbao <command> --help' for detailed command options.
""",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _context():
    """Build the pipeline context with logging configured from settings."""
    from ziyuanbao.pipeline.context import build_context
    from ziyuanbao.shared.config import get_settings
    from ziyuanbao.shared.logging import configure_logging

    settings = get_settings()
    configure_logging(settings)
    return build_context(settings)


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Print pipeline errors and exit non-zero."""
    try:
        yield
    except ZiyuanbaoError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Setup Commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command("init-db")
def init_db():
    """
    🗄️ Create all database tables.

    Safe to run repeatedly; existing tables are left alone.
    """
    ctx = _context()
    console.print(
        f"[green]✓ Database ready:[/green] "
        f"{ctx.engine.url.render_as_string(hide_password=True)}"
    )
    ctx.close()


@app.command()
def info():
    """
    ℹ️ Show configuration and staging counts.
    """
    from ziyuanbao import __version__
    from ziyuanbao.shared.config import get_settings

    settings = get_settings()

    console.print(Panel(
        f"[bold]Ziyuanbao Import Pipeline[/bold]\n"
        f"Version: {__version__}\n"
        f"Config: config/settings.yaml\n"
        f"Source site: {settings.scraping.base_url}\n"
        f"Database: {settings.get_effective_database_url()}\n"
        f"AI model: {settings.get_effective_model()} "
        f"({'key set' if settings.gemini_api_key else 'no GEMINI_API_KEY'})",
        title="ℹ️ Info",
    ))

    table = Table(title="Pipeline Delays")
    table.add_column("Setting")
    table.add_column("Seconds", justify="right")
    table.add_row("Between requests", f"{settings.scraping.rate_limit:.1f}")
    table.add_row("Between resources", f"{settings.pipeline.item_delay:.1f}")
    table.add_row("Between categories", f"{settings.pipeline.category_delay:.1f}")
    console.print(table)


# ─────────────────────────────────────────────────────────────────────────────
# Category Commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def discover(
    url: Optional[str] = typer.Option(
        None, "--url", "-u", help="Page whose navigation to scan (default: site home)."
    ),
):
    """
    🌐 Discover category listing URLs from the site navigation.

    Existing categories get their titles refreshed; invalid flags are kept.
    """
    ctx = _context()
    with _handle_errors():
        result = ctx.service.discover_categories(url)
    console.print(
        f"[green]✓ Found {result.found} categories[/green] "
        f"({result.created} new, {result.updated} renamed)"
    )
    ctx.close()


@app.command()
def categories(
    invalid: Optional[bool] = typer.Option(
        None, "--invalid/--valid", help="Only invalid or only valid categories."
    ),
):
    """📋 List staging categories."""
    ctx = _context()
    rows, total = ctx.staging.list_categories(invalid=invalid)

    table = Table(title=f"Categories ({total})")
    table.add_column("ID", justify="right")
    table.add_column("Title")
    table.add_column("URL")
    table.add_column("Invalid")
    for category in rows:
        table.add_row(
            str(category.id), category.title, category.url, "✗" if category.is_invalid else ""
        )
    console.print(table)
    ctx.close()


@app.command("parse-category")
def parse_category(category_id: int = typer.Argument(..., help="Staging category id.")):
    """
    📄 Crawl one category listing (all pages) and upsert its resources.
    """
    ctx = _context()
    with _handle_errors():
        result = ctx.service.parse_category(category_id)
    console.print(Panel(
        f"Links found: {result.links_found}\n"
        f"New rows: {result.created}\n"
        f"Refreshed rows: {result.updated}\n"
        f"Pages crawled: {result.pages_crawled} ({result.stopped_reason})",
        title=f"📄 Category {category_id}",
    ))
    ctx.close()


# ─────────────────────────────────────────────────────────────────────────────
# Resource Commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command("fetch-resource")
def fetch_resource(resource_id: int = typer.Argument(..., help="Staged resource id.")):
    """🔄 Re-fetch one detail page and overwrite its extracted fields."""
    ctx = _context()
    with _handle_errors():
        resource = ctx.service.fetch_and_parse_resource(resource_id)
    console.print(f"[green]✓ Parsed:[/green] {resource.chinese_title}")
    ctx.close()


@app.command("extract-outline")
def extract_outline(
    resource_id: int = typer.Argument(..., help="Staged resource id."),
    mode: str = typer.Option("heuristic", "--mode", "-m", help="heuristic or ai."),
    save: bool = typer.Option(True, "--save/--dry-run", help="Store the outline."),
):
    """
    📚 Build a course outline from the stored course content.

    On failure the stored outline is left untouched.
    """
    from ziyuanbao.shared.schemas import OutlineMode

    try:
        outline_mode = OutlineMode(mode.lower())
    except ValueError:
        console.print(f"[red]Unknown mode: {mode}[/red] (use heuristic or ai)")
        raise typer.Exit(1)

    ctx = _context()
    with _handle_errors():
        if save:
            outline = ctx.service.extract_outline(resource_id, outline_mode)
        else:
            outline = ctx.service.compute_outline(resource_id, outline_mode)

    summary = outline.summary()
    table = Table(title=f"Outline ({summary.total_lectures} lectures, {summary.total_duration})")
    table.add_column("#", justify="right")
    table.add_column("Chapter")
    table.add_column("Lectures", justify="right")
    table.add_column("Duration")
    for index, chapter in enumerate(outline.chapters, start=1):
        table.add_row(str(index), chapter.title, str(len(chapter.lectures)), chapter.duration)
    console.print(table)
    if not save:
        console.print("[dim]Dry run: outline not stored[/dim]")
    ctx.close()


@app.command("cloud-disk")
def cloud_disk(
    resource_id: int = typer.Argument(..., help="Staged resource id."),
    text: str = typer.Argument(..., help="Pasted share text, e.g. '链接: ... 提取码: ...'."),
):
    """☁️ Extract and save a cloud-disk share link."""
    ctx = _context()
    with _handle_errors():
        resource = ctx.service.save_cloud_disk_text(resource_id, text)
    console.print(
        f"[green]✓ Saved:[/green] {resource.cloud_disk_url} "
        f"(code: {resource.cloud_disk_code or '-'}, provider: {resource.cloud_disk_provider})"
    )
    ctx.close()


@app.command("import-resource")
def import_resource(resource_id: int = typer.Argument(..., help="Staged resource id.")):
    """📥 Promote one staged resource into the catalog."""
    ctx = _context()
    with _handle_errors():
        result = ctx.importer.import_resource(resource_id)
    if result.skipped:
        console.print(
            f"[yellow]Skipped:[/yellow] already imported as {result.catalog_resource_id}"
        )
    else:
        console.print(
            f"[green]✓ Catalog resource {result.catalog_resource_id}[/green] ({result.message})"
        )
    ctx.close()


# ─────────────────────────────────────────────────────────────────────────────
# Batch Commands
# ─────────────────────────────────────────────────────────────────────────────


def _run_job(ctx, job) -> None:  # type: ignore[no-untyped-def]
    console.print(f"[dim]Job {job.id} ({job.kind}) started[/dim]")
    result = ctx.runner.run(job.id)
    finished = ctx.jobs.get(job.id)

    table = Table(title=f"Job {job.id}: {finished.status}")
    table.add_column("Total", justify="right")
    table.add_column("Succeeded", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")
    if result is not None:
        table.add_row(
            str(result.total), str(result.succeeded), str(result.skipped), str(result.failed)
        )
    console.print(table)
    if finished.error:
        console.print(f"[red]{finished.error}[/red]")
        raise typer.Exit(1)


@app.command("parse-all")
def parse_all(
    category_id: Optional[int] = typer.Option(
        None, "--category", "-c", help="One category id. Omit for every valid category."
    ),
):
    """
    🕷️ Crawl categories and parse every resource detail page.

    Runs as a job; one failing page never stops the rest.
    """
    ctx = _context()
    with _handle_errors():
        job = ctx.runner.submit_parse_resources(category_id)
    _run_job(ctx, job)
    ctx.close()


@app.command("batch-import")
def batch_import(category_id: int = typer.Argument(..., help="Staging category id.")):
    """
    📦 Import every staged resource of a category into the catalog.

    Already-imported rows are skipped; failures are logged and counted.
    """
    ctx = _context()
    with _handle_errors():
        job = ctx.runner.submit_batch_import(category_id)
    _run_job(ctx, job)
    ctx.close()


@app.command("import-categories")
def import_categories():
    """🗂️ Copy valid staging categories into catalog categories."""
    ctx = _context()
    result = ctx.importer.import_categories()
    console.print(f"[green]✓ {result.created} created, {result.updated} updated[/green]")
    ctx.close()


@app.command("fix-markdown")
def fix_markdown():
    """🩹 Repair catalog descriptions holding HTML inside a ```markdown fence."""
    ctx = _context()
    fixed = ctx.importer.fix_catalog_descriptions()
    console.print(f"[green]✓ Repaired {fixed} description(s)[/green]")
    ctx.close()


# ─────────────────────────────────────────────────────────────────────────────
# Job Commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def jobs(
    active_only: bool = typer.Option(False, "--active", "-a", help="Only pending/running."),
    limit: int = typer.Option(20, "--limit", "-n", help="Rows to show."),
):
    """📊 List recent batch jobs."""
    ctx = _context()
    rows = ctx.jobs.list_jobs(limit=limit, active_only=active_only)

    table = Table(title="Jobs")
    table.add_column("ID", justify="right")
    table.add_column("Kind")
    table.add_column("Category", justify="right")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Failed", justify="right")
    for job in rows:
        table.add_row(
            str(job.id),
            job.kind,
            str(job.category_id or "all"),
            job.status,
            f"{job.processed}/{job.total}",
            str(job.failed),
        )
    console.print(table)
    ctx.close()


@app.command("cancel-job")
def cancel_job(job_id: int = typer.Argument(..., help="Job id.")):
    """⏹️ Request cancellation of a running job."""
    ctx = _context()
    with _handle_errors():
        job = ctx.runner.cancel(job_id)
    console.print(f"Job {job.id}: {job.status} (cancel requested: {job.cancel_requested})")
    ctx.close()


# ─────────────────────────────────────────────────────────────────────────────
# Server Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port."),
):
    """
    🚀 Run the admin HTTP API with uvicorn.

    Endpoints are served under /api; interactive docs at /docs.
    """
    import uvicorn

    from ziyuanbao.api.app import create_app

    ctx = _context()
    api_config = ctx.settings.api
    host = host or api_config.host
    port = port or api_config.port

    console.print(f"[bold]🚀 Serving on http://{host}:{port}[/bold]")
    uvicorn.run(create_app(context=ctx), host=host, port=port, log_config=None)


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def cli():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    cli()
