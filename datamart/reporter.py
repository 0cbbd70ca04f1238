from __future__ import annotations

from typing import Iterable, List, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from datamart.domain.models import Record, ReportDefinition
from datamart.orchestrator import ReportResult
from datamart.schema.registry import Schema

MAX_RECORD_ROWS = 50


def _console(console: Optional[Console]) -> Console:
    return console or Console()


def print_schema(schema: Schema, console: Optional[Console] = None) -> None:
    """
    Render the report catalogue: one row per section, grouped by report.
    """
    console = _console(console)

    if not len(schema):
        console.print("[yellow]No reports defined.[/yellow]")
        return

    sections_total = sum(len(report.section_list) for report in schema)
    table = Table(
        title="Datamart Reports",
        box=box.ROUNDED,
        caption=f"{len(schema)} reports, {sections_total} sections",
    )
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Name", style="magenta", no_wrap=True)
    table.add_column("Section", style="green")
    table.add_column("Alias", style="bold green")
    table.add_column("Key fields", style="yellow")
    table.add_column("Values", justify="right", style="blue")

    for report in sorted(schema, key=lambda r: r.id):
        for position, section in enumerate(report.section_list):
            first = position == 0
            table.add_row(
                str(report.id) if first else "",
                report.name if first else "",
                section.display_name,
                section.alias or "",
                ", ".join(section.independent),
                str(len(section.dependent)),
            )
        table.add_section()

    console.print(table)


def print_report(report: ReportDefinition, console: Optional[Console] = None) -> None:
    """Render one report's sections with their full field lists."""
    console = _console(console)

    table = Table(
        title=f"{report.id} {report.name}\n[dim]{escape(report.description)}[/dim]",
        box=box.ROUNDED,
    )
    table.add_column("Section", style="cyan")
    table.add_column("Independent", style="yellow")
    table.add_column("Dependent", style="blue")

    for section in report.section_list:
        table.add_row(section.name, "\n".join(section.independent), "\n".join(section.dependent))

    console.print(table)


def print_records(
    section: str,
    records: List[Record],
    console: Optional[Console] = None,
    limit: int = MAX_RECORD_ROWS,
    columns: Optional[Iterable[str]] = None,
) -> None:
    """
    Render mapped records of one section.

    Only the first `limit` records are shown; columns default to the key
    fields followed by every dependent field of the first record.
    """
    console = _console(console)

    if not records:
        console.print(f"[yellow]{section}: no records.[/yellow]")
        return

    first = records[0]
    names = list(columns) if columns is not None else [*first.key_fields, *first.values]
    caption = f"{len(records):,} records"
    if len(records) > limit:
        caption = f"{caption} (showing first {limit})"

    table = Table(title=section, box=box.ROUNDED, caption=caption)
    for name in names:
        table.add_column(name, style="cyan" if name in first.key_fields else None, overflow="fold")

    for record in records[:limit]:
        flat = record.as_dict()
        table.add_row(*[escape(flat.get(name) or "") for name in names])

    console.print(table)


def print_fetch_summary(result: ReportResult, console: Optional[Console] = None) -> None:
    """Render the per-section outcome of a fetch."""
    console = _console(console)

    table = Table(
        title=f"Fetch {result.report_id} {result.report_name}",
        box=box.ROUNDED,
    )
    table.add_column("Section", style="cyan", no_wrap=True)
    table.add_column("Rows", justify="right", style="magenta")
    table.add_column("Records", justify="right", style="bold green")
    table.add_column("Duration (s)", justify="right", style="green")
    table.add_column("Status")

    for name, section in result.sections.items():
        if section.ok:
            status = "[yellow]truncated[/yellow]" if section.truncated else "[green]ok[/green]"
        else:
            retry = " (retryable)" if section.retryable else ""
            status = f"[red]{section.error_type}{retry}[/red]"
        table.add_row(
            name,
            f"{section.rows:,}",
            f"{len(section.records):,}",
            f"{section.duration_seconds:.2f}",
            status,
        )

    console.print(table)
    for name, section in result.failed.items():
        console.print(f"[red]{name}:[/red] {escape(section.error or '')}")


__all__ = ["print_schema", "print_report", "print_records", "print_fetch_summary"]
