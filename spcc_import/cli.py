"""
Command-line interface for the SPCC plan bulk import.

Picks plan PDFs from disk, extracts and matches them against the tenant's
facilities, lets the user review the matches and applies the batch.
"""

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from spcc_import.matching.dates import format_date, normalize_date_input, parse_date
from spcc_import.models import ApplySummary, MatchConfidence, MatchResult, MatchStatus, ProgressUpdate, RawDocument
from spcc_import.review import ReviewSession, is_ready
from spcc_import.utils.errors import SPCCImportError
from spcc_import.utils.logging import setup_logging
from spcc_import.workflow import ImportWorkflow, create_import_workflow

# Initialize Typer app and Rich console
app = typer.Typer(
    name="spcc-import",
    help="Bulk import of SPCC plan PDFs onto facility records",
    add_completion=False,
)
console = Console()

REVIEW_HELP = (
    "Commands: [bold]apply[/bold], [bold]select[/bold] <#> <facility-id>, [bold]clear[/bold] <#>, "
    "[bold]date[/bold] <#|all> <date>, [bold]remove[/bold] <#>, [bold]facilities[/bold], "
    "[bold]discard[/bold], [bold]cancel[/bold]"
)


def _collect_documents(paths: List[Path]) -> List[RawDocument]:
    """Read the given files, expanding directories one level deep."""
    documents = []
    for path in paths:
        if path.is_dir():
            files = sorted(p for p in path.iterdir() if p.is_file())
        elif path.is_file():
            files = [path]
        else:
            console.print(f"[red]Error:[/red] File not found: {path}")
            raise typer.Exit(1)
        documents.extend(RawDocument.from_path(f) for f in files)
    return documents


def _select(workflow: ImportWorkflow, paths: List[Path]) -> None:
    selection = workflow.select_files(_collect_documents(paths))
    for rejection in selection.rejected:
        console.print(f"[yellow]⚠[/yellow] {rejection}")
    if not selection.accepted:
        console.print("[red]Error:[/red] No files to import")
        raise typer.Exit(1)
    console.print(f"Selected {len(selection.accepted)} file(s)")


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
    )


async def _process(workflow: ImportWorkflow) -> Optional[ReviewSession]:
    with _progress() as progress:
        task = progress.add_task("Extracting text...", total=None)

        def on_progress(update: ProgressUpdate) -> None:
            progress.update(task, completed=update.completed, total=update.total)

        return await workflow.process(on_progress)


async def _apply(workflow: ImportWorkflow) -> ApplySummary:
    with _progress() as progress:
        task = progress.add_task("Uploading plans...", total=None)

        def on_progress(update: ProgressUpdate) -> None:
            progress.update(task, completed=update.completed, total=update.total)

        return await workflow.apply(on_progress)


def _confidence_label(row: MatchResult) -> str:
    if row.manually_selected:
        return "manual"
    confidence = row.effective_confidence
    if confidence == MatchConfidence.PARTIAL and row.matched_fragment:
        return f"partial ({row.matched_fragment})"
    return confidence.value


def _render_review(session: ReviewSession) -> None:
    summary = session.summary()
    table = Table(title=f"Review ({summary.total} documents)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Document", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Facility")
    table.add_column("Confidence")
    table.add_column("Date")
    table.add_column("Ready", justify="center")

    status_styles = {
        MatchStatus.MATCHED: "green",
        MatchStatus.UNMATCHED: "yellow",
        MatchStatus.ERROR: "red",
    }

    for index, row in enumerate(session.rows, start=1):
        facility = session.entity_name(row.selected_entity_id) or ""
        if row.status == MatchStatus.ERROR:
            facility = f"[red]{row.extraction_error}[/red]"
        style = status_styles[row.status]
        table.add_row(
            str(index),
            row.document_name,
            f"[{style}]{row.status.value}[/{style}]",
            facility,
            _confidence_label(row) if row.status != MatchStatus.ERROR else "",
            row.override_date,
            "✓" if is_ready(row) else "○",
        )

    console.print(table)
    console.print(
        f"{summary.matched} matched ({summary.partial} partial), {summary.unmatched} unmatched, "
        f"{summary.error} error(s), {summary.ready} ready to apply"
    )


def _render_facilities(session: ReviewSession) -> None:
    table = Table(title="Facilities")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    for candidate in sorted(session.candidates, key=lambda c: c.name.lower()):
        table.add_row(candidate.id, candidate.name)
    console.print(table)


def _render_summary(summary: ApplySummary) -> None:
    console.print(f"[green]✓[/green] Applied {summary.succeeded} of {summary.total} plan(s)")
    if not summary.failures:
        return

    table = Table(title=f"Failed ({summary.failed})")
    table.add_column("Document", style="cyan")
    table.add_column("Stage")
    table.add_column("Message")
    for outcome in summary.failures:
        stage = outcome.failed_stage.value if outcome.failed_stage else ""
        table.add_row(outcome.document_name, stage, outcome.message or "")
    console.print(table)

    for outcome in summary.orphaned:
        console.print(f"[yellow]⚠[/yellow] Orphaned object: {outcome.storage_reference}")


def _fill_missing_dates(session: ReviewSession, date: str) -> None:
    for row in session.rows:
        if row.status != MatchStatus.ERROR and parse_date(row.override_date) is None:
            session.update(row.row_id, override_date=date)


def _row_id(session: ReviewSession, number: str) -> str:
    rows = session.rows
    try:
        index = int(number)
    except ValueError:
        raise ValueError(f"Not a row number: {number}")
    if not 1 <= index <= len(rows):
        raise ValueError(f"No row {index}")
    return rows[index - 1].row_id


def _review_loop(workflow: ImportWorkflow) -> bool:
    """
    Let the user correct the batch. Returns True to apply, False to stop.
    """
    session = workflow.session
    while True:
        _render_review(session)
        console.print(REVIEW_HELP)
        command = typer.prompt(">", default="apply").strip()
        action, _, rest = command.partition(" ")
        args = rest.split(maxsplit=1)

        try:
            if action == "apply":
                if workflow.can_apply:
                    return True
                console.print("[yellow]No rows are ready to apply[/yellow]")
            elif action == "select" and len(args) == 2:
                session.update(_row_id(session, args[0]), selected_entity_id=args[1])
            elif action == "clear" and len(args) == 1:
                session.update(_row_id(session, args[0]), selected_entity_id=None)
            elif action == "date" and len(args) == 2:
                date = normalize_date_input(args[1])
                if args[0] == "all":
                    _fill_missing_dates(session, date)
                else:
                    session.update(_row_id(session, args[0]), override_date=date)
                if parse_date(date) is None:
                    console.print(f"[yellow]⚠[/yellow] Not a valid date: {args[1]}")
            elif action == "remove" and len(args) == 1:
                session.remove(_row_id(session, args[0]))
            elif action == "facilities":
                _render_facilities(session)
            elif action == "discard":
                workflow.discard_batch()
                return False
            elif action in ("cancel", "quit"):
                workflow.cancel()
                return False
            else:
                console.print(f"[red]Unknown command:[/red] {command}")
        except (SPCCImportError, ValueError) as e:
            console.print(f"[red]Error:[/red] {e}")


@app.command()
def run(
    paths: List[Path] = typer.Argument(..., help="PDF files or directories"),
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant id (defaults to settings)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply without interactive review"),
    date: Optional[str] = typer.Option(
        None,
        "--date",
        "-d",
        help="PE stamp date for rows without a detected date (M/D/YY)",
    ),
):
    """Import a batch of SPCC plans."""

    if date is not None and parse_date(date) is None:
        console.print(f"[red]Error:[/red] Not a valid date: {date}")
        raise typer.Exit(1)

    async def _run():
        try:
            workflow = create_import_workflow(tenant)
            _select(workflow, paths)

            session = await _process(workflow)
            if session is None:
                return

            if date is not None:
                _fill_missing_dates(session, format_date(parse_date(date)))

            if yes:
                _render_review(session)
                if not workflow.can_apply:
                    console.print("[red]Error:[/red] No rows are ready to apply")
                    workflow.cancel()
                    raise typer.Exit(1)
            elif not _review_loop(workflow):
                console.print("Batch discarded")
                return

            summary = await _apply(workflow)
            _render_summary(summary)
            if summary.failed:
                raise typer.Exit(1)

        except SPCCImportError as e:
            console.print(f"[red]Error:[/red] {e.message}")
            raise typer.Exit(1)

    asyncio.run(_run())


@app.command()
def scan(
    paths: List[Path] = typer.Argument(..., help="PDF files or directories"),
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant id (defaults to settings)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the matches to a JSON file"),
):
    """Extract and match without applying anything."""

    async def _scan():
        try:
            workflow = create_import_workflow(tenant)
            _select(workflow, paths)

            session = await _process(workflow)
            if session is None:
                return
            _render_review(session)

            if output:
                rows = [
                    {"document_name": row.document_name, **row.model_dump(mode="json", exclude={"document"})}
                    for row in session.rows
                ]
                output.write_text(json.dumps(rows, indent=2), encoding="utf-8")
                console.print(f"[green]✓[/green] Matches written to {output}")

            workflow.cancel()

        except SPCCImportError as e:
            console.print(f"[red]Error:[/red] {e.message}")
            raise typer.Exit(1)

    asyncio.run(_scan())


@app.command("parse-date")
def parse_date_command(
    value: str = typer.Argument(..., help="Date as typed, e.g. 3/4/25"),
):
    """Show how a typed PE stamp date is read."""
    parsed = parse_date(value)
    if parsed is None:
        console.print(f"[red]✗[/red] Not a valid date: {value}")
        raise typer.Exit(1)
    console.print(f"{format_date(parsed)} (stored as {parsed.isoformat()})")


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """SPCC plan bulk import - match plan PDFs to facilities."""
    # Setup logging
    log_level = "DEBUG" if debug else "INFO"
    setup_logging(log_level=log_level)


if __name__ == "__main__":
    app()
