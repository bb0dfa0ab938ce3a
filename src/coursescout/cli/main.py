"""
CLI Main - Typer command-line interface.
========================================

Commands:
- search: Run the oracle search pipeline over the catalog
- legacy: Run the deterministic keyword search only
- directives: Show how directive tokens in a query are interpreted
- enrich: Fill the keyword annotation cache through the oracle
- info: Show configuration and data file status
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from coursescout.shared.logging import get_console, get_logger

logger = get_logger(__name__)

app = typer.Typer(
    name="coursescout",
    help="""🔎 Course Scout - natural-language course search

Describe the course you want in free text; a reasoning oracle turns it into a
structured query, screens the catalog shard by shard, scores the survivors and
applies your directives.

Directives:
  {free}          only courses in my free periods     {空堂}
  {exclude}X      drop courses mentioning X           {除了}
  {morning} {afternoon} {evening}                     {上午} {下午} {晚上}
  {required} {elective} {general}                     {必修} {選修} {通識}
  {low-credit} {high-credit}                          {低學分} {高學分}

QUICK START:

  coursescout search "Monday afternoon databases {exclude}Wang"
  coursescout search "machine learning {high-credit}" --mode precise
  coursescout legacy "calculus"
""",
    add_completion=False,
    rich_markup_mode="rich",
)

console = get_console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """Configure logging from settings before any command runs."""
    from coursescout.shared.config import get_settings
    from coursescout.shared.logging import configure_from_settings

    configure_from_settings(get_settings(), verbose=verbose)


def _load_inputs(catalog: Optional[Path], timetable: Optional[Path]):
    from coursescout.enrichment.cache import AnnotationCache
    from coursescout.shared.config import get_settings
    from coursescout.shared.utils import load_catalog, load_timetable_codes

    paths = get_settings().resolved_paths
    catalog_path = catalog or paths.catalog_file
    if not catalog_path.exists():
        console.print(f"[red]Catalog not found: {catalog_path}[/red]")
        raise typer.Exit(1)

    annotations = AnnotationCache.load(paths.annotations_file)
    courses = load_catalog(catalog_path)
    codes = load_timetable_codes(timetable or paths.timetable_file)
    return courses, codes, annotations


async def _closing_clients(awaitable):
    from coursescout.oracle.client import close_oracle_clients

    try:
        return await awaitable
    finally:
        await close_oracle_clients()


def _results_table(courses, scores=None, limit: int = 20) -> Table:
    table = Table(show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Course", style="cyan")
    table.add_column("Teacher")
    table.add_column("Time")
    table.add_column("Credits", justify="right")
    if scores is not None:
        for label in ("Total", "Quality", "Time", "Path", "Bonus"):
            table.add_column(label, justify="right")

    for i, course in enumerate(courses[:limit], 1):
        row = [str(i), f"{course.code} {course.name}".strip(), course.teacher, course.time, course.credits_label()]
        if scores is not None:
            score = scores.get(course.id)
            row += (
                [str(score.total), str(score.quality), str(score.time), str(score.path), str(score.bonus)]
                if score
                else ["-"] * 5
            )
        table.add_row(*row)
    return table


# ─────────────────────────────────────────────────────────────────────────────
# Search Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def search(
    query: str = typer.Argument(
        ...,
        help="What you are looking for (wrap in quotes). May contain directives.",
    ),
    mode: Optional[str] = typer.Option(
        None,
        "--mode", "-m",
        help="loose (coarse filter only) or precise (adds strict matching). Defaults to config.",
    ),
    catalog: Optional[Path] = typer.Option(
        None,
        "--catalog", "-c",
        help="Catalog JSON file. Defaults to paths.catalog_file.",
    ),
    timetable: Optional[Path] = typer.Option(
        None,
        "--timetable", "-t",
        help="Personal timetable JSON used by {free}. Defaults to paths.timetable_file.",
    ),
    limit: int = typer.Option(
        20,
        "--limit", "-n",
        help="Number of results to display.",
    ),
):
    """
    🔎 Search the catalog with the oracle pipeline.

    Examples:
        coursescout search "Tuesday morning law or management courses"
        coursescout search "{free} {general} no exams" --mode precise
    """
    from coursescout.search.orchestrator import Orchestrator
    from coursescout.shared.errors import BackendConfigError

    courses, codes, annotations = _load_inputs(catalog, timetable)
    by_id = {c.id: c for c in courses}

    console.print(f"\n[bold]Query:[/bold] {query}\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Searching...", total=100)

        def on_progress(stage, percent):
            progress.update(task, completed=percent, description=stage.value.replace("_", " "))

        orchestrator = Orchestrator(
            courses,
            timetable_codes=codes,
            annotations=annotations,
            progress_callback=on_progress,
        )
        try:
            result = asyncio.run(_closing_clients(orchestrator.search(query, mode=mode)))
        except BackendConfigError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        except ValueError as e:
            console.print(f"[red]Invalid option: {e}[/red]")
            raise typer.Exit(1)

    ranked = [by_id[cid] for cid in result.course_ids if cid in by_id]

    if result.used_legacy:
        console.print(f"[yellow]⚠ Fell back to keyword search ({result.error})[/yellow]")
    if result.precise_fallback:
        console.print("[yellow]⚠ Precise matching found nothing; showing coarse results[/yellow]")

    if not ranked:
        console.print("[yellow]No matching courses found.[/yellow]")
        raise typer.Exit(0)

    console.print(_results_table(ranked, result.scores if result.scores else None, limit))
    console.print(
        f"\n[dim]{len(ranked)} course(s) in {result.elapsed_seconds:.1f}s "
        f"({result.mode.value} mode)[/dim]"
    )


# ─────────────────────────────────────────────────────────────────────────────
# Legacy Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def legacy(
    query: str = typer.Argument(..., help="Keywords to search for."),
    catalog: Optional[Path] = typer.Option(None, "--catalog", "-c", help="Catalog JSON file."),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of results to display."),
):
    """
    📇 Deterministic keyword search (no oracle calls).
    """
    from coursescout.search.legacy import rank_courses
    from coursescout.search.preprocessor import preprocess_query

    courses, _codes, annotations = _load_inputs(catalog, None)
    matches = rank_courses(annotations.annotate(courses), preprocess_query(query).legacy_text)

    if not matches:
        console.print("[yellow]No matching courses found.[/yellow]")
        raise typer.Exit(0)

    table = Table(show_header=True)
    table.add_column("Course", style="cyan")
    table.add_column("Teacher")
    table.add_column("Time")
    table.add_column("Score", justify="right")
    table.add_column("Matched")
    for match in matches[:limit]:
        c = match.course
        table.add_row(
            f"{c.code} {c.name}".strip(),
            c.teacher,
            c.time,
            str(match.score),
            ", ".join(sorted(match.matched_fields)),
        )
    console.print(table)


# ─────────────────────────────────────────────────────────────────────────────
# Directives Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def directives(
    query: str = typer.Argument(..., help="Query containing directive tokens."),
    timetable: Optional[Path] = typer.Option(None, "--timetable", "-t", help="Personal timetable JSON."),
):
    """
    🧩 Show how directive tokens are rewritten and what they filter.
    """
    from coursescout.search.preprocessor import preprocess_query
    from coursescout.shared.config import get_settings
    from coursescout.shared.utils import load_timetable_codes

    codes = load_timetable_codes(timetable or get_settings().resolved_paths.timetable_file)
    result = preprocess_query(query, codes)
    ins = result.instructions

    console.print(Panel(result.text or "(empty)", title="Rewritten query", border_style="green"))

    table = Table(show_header=True)
    table.add_column("Instruction")
    table.add_column("Value")
    table.add_row("Free time", result.free_time_code if ins.free_time_requested else "-")
    table.add_row("Exclude", ", ".join(ins.exclude_keywords) or "-")
    table.add_row("Periods", "".join(sorted(ins.time_of_day_periods)) or "-")
    table.add_row("Course type", ", ".join(sorted(f.value for f in ins.course_type_filters)) or "-")
    table.add_row("Credits", ", ".join(sorted(t.value for t in ins.credit_tier_filters)) or "-")
    table.add_row("Keyword query", result.legacy_text or "-")
    console.print(table)


# ─────────────────────────────────────────────────────────────────────────────
# Enrich Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def enrich(
    catalog: Optional[Path] = typer.Option(None, "--catalog", "-c", help="Catalog JSON file."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum courses to annotate."),
):
    """
    🏷️ Extract search keywords for courses that have none yet.
    """
    from coursescout.enrichment.enricher import KeywordEnricher
    from coursescout.oracle.client import get_oracle_client
    from coursescout.shared.config import get_settings
    from coursescout.shared.errors import BackendConfigError

    settings = get_settings()
    courses, _codes, annotations = _load_inputs(catalog, None)

    try:
        oracle = get_oracle_client(settings=settings)
    except BackendConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    enricher = KeywordEnricher(
        oracle,
        annotations,
        config=settings.enrichment,
        sampling=settings.sampling.enrichment,
    )
    added = asyncio.run(_closing_clients(enricher.run(courses, limit=limit)))
    console.print(f"[green]✓ Added {added} annotation(s); {len(annotations)} cached[/green]")


# ─────────────────────────────────────────────────────────────────────────────
# Info Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def info():
    """
    ℹ️ Show system information and configuration.
    """
    from coursescout import __version__
    from coursescout.oracle.backends import create_backend
    from coursescout.shared.config import get_settings
    from coursescout.shared.errors import BackendConfigError

    settings = get_settings()
    provider = settings.get_effective_provider()

    try:
        backend_info = create_backend(provider, settings).get_info()
    except BackendConfigError as e:
        backend_info = {"provider": provider, "model": f"[red]{e}[/red]"}

    console.print(Panel(
        f"[bold]Course Scout[/bold]\n"
        f"Version: {__version__}\n"
        f"Config: config/settings.yaml",
        title="ℹ️ Info",
    ))

    table = Table(title="Oracle & Pipeline")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Provider", backend_info["provider"])
    table.add_row("Model", backend_info["model"])
    table.add_row("API key", "set" if settings.get_api_key(provider) else "-")
    table.add_row("Timeout", f"{settings.oracle.timeout_seconds}s")
    table.add_row("Retries", str(settings.oracle.max_retries))
    table.add_row("Mode", settings.get_effective_mode())
    table.add_row("Batch size", str(settings.pipeline.batch_size or "all at once"))
    table.add_row("Overall timeout", f"{settings.pipeline.overall_timeout_seconds}s")
    console.print(table)

    console.print("\n[bold]Data Paths:[/bold]")
    resolved = settings.resolved_paths
    for name, path in {
        "catalog_file": resolved.catalog_file,
        "timetable_file": resolved.timetable_file,
        "annotations_file": resolved.annotations_file,
    }.items():
        exists = "✓" if path.exists() else "✗"
        console.print(f"  {name}: {path} [{exists}]")


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def cli():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    cli()
