from __future__ import annotations

from rich.console import Console

from datamart.reporter import print_records, print_report, print_schema
from datamart.response.mapper import map_rows

RECORD_LIMIT = 2


def _console() -> Console:
    return Console(record=True, width=200)


def test_print_schema_lists_every_report(schema) -> None:
    console = _console()

    print_schema(schema, console=console)

    text = console.export_text()
    for report in schema:
        assert report.name in text
    assert "7 reports, 15 sections" in text


def test_print_report_shows_aliases(report_2480) -> None:
    console = _console()

    print_report(report_2480, console=console)

    assert "packer_owned_slaughter" in console.export_text()


def test_print_records_caps_rows(report_2466) -> None:
    rows = [{"report_date": f"03/{day:02d}/2024", "previous_day_head_count": "[bold]1[/bold]"} for day in range(1, 6)]
    records = map_rows(report_2466, "Summary", rows)
    console = _console()

    print_records("Summary", records, console=console, limit=RECORD_LIMIT)

    text = console.export_text()
    assert "showing first 2" in text
    assert "03/02/2024" in text
    assert "03/03/2024" not in text
    assert "[bold]1[/bold]" in text


def test_print_records_without_records() -> None:
    console = _console()

    print_records("Detail", [], console=console)

    assert "Detail: no records." in console.export_text()
