from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import requests
import typer

from datamart.config import get_settings
from datamart.errors import DatamartError
from datamart.infrastructure.http_client import DatamartClient
from datamart.orchestrator import fetch_report
from datamart.query.builder import DateRange, build, since
from datamart.query.dates import coerce_date
from datamart.reporter import print_fetch_summary, print_records, print_report, print_schema
from datamart.response.demux import DemuxMode
from datamart.schema.registry import BUNDLED_SCHEMA_PATH, get_schema, load_schema_file
from datamart.utils.logging import configure_logging

app = typer.Typer(help="USDA datamart ingestion CLI.")

REPORT_LEVEL = "-"


@contextmanager
def _cli_errors() -> Iterator[None]:
    """Turn engine and transport errors into a one-line message and exit code 1."""
    try:
        yield
    except DatamartError as exc:
        typer.echo(f"{type(exc).__name__}: {exc}", err=True)
        raise typer.Exit(code=1)
    except requests.RequestException as exc:
        typer.echo(f"Datamart request failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _parse_filter(text: str) -> Tuple[str, str]:
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise typer.BadParameter(f"Expected FIELD=VALUE, got {text!r}.")
    return name, value


@app.callback()
def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"url={settings.datamart_base_url} | "
        f"schema={settings.schema_path or BUNDLED_SCHEMA_PATH} | "
        f"timeouts={settings.http_connect_timeout}/{settings.http_read_timeout}s "
        f"retries={settings.http_retry_attempts} concurrency={settings.fetch_concurrency} | "
        f"demux={settings.demux_mode} duplicates={settings.duplicate_policy} "
        f"null_keys={settings.null_key_policy} fail_fast={settings.fail_fast}"
    )


@app.command()
def reports(
    report: Optional[str] = typer.Argument(None, help="Report ID or name to show in detail."),
) -> None:
    """
    List the reports known to the schema.
    """
    with _cli_errors():
        schema = get_schema()
        if report is None:
            print_schema(schema)
        else:
            print_report(schema.get(report))


@app.command()
def validate(
    path: Optional[Path] = typer.Argument(None, help="Schema TOML file (default: bundled schema)."),
) -> None:
    """
    Load a schema file and report the first violation, if any.
    """
    target = path or BUNDLED_SCHEMA_PATH
    with _cli_errors():
        schema = load_schema_file(target)
    sections = sum(len(report.section_list) for report in schema)
    typer.echo(f"{target}: OK ({len(schema)} reports, {sections} sections)")


@app.command()
def query(
    report: str = typer.Argument(..., help="Report ID or name."),
    section: str = typer.Argument(..., help=f"Section alias, or '{REPORT_LEVEL}' for a report-level query."),
    when: str = typer.Argument(..., metavar="DATE", help="MM/DD/YYYY or YYYY-MM-DD."),
    filters: Optional[List[str]] = typer.Argument(None, metavar="[FIELD=VALUE]..."),
) -> None:
    """
    Print the request URL for a report section without fetching it.
    """
    extra = [_parse_filter(text) for text in filters or []]
    with _cli_errors():
        definition = get_schema().get(report)
        alias = None if section == REPORT_LEVEL else section
        date_field = definition.default_independent if alias is None else definition.section(alias).date_field
        wire = build(definition, alias, [(date_field, when), *extra])
    base_url = get_settings().datamart_base_url
    prepared = requests.Request("GET", wire.url(base_url), params=wire.params()).prepare()
    typer.echo(prepared.url)


@app.command()
def ping() -> None:
    """
    Check that the datamart answers a fast query.
    """
    with _cli_errors(), DatamartClient() as client:
        client.check()
    typer.echo(f"Datamart reachable at {client.base_url}")


@app.command()
def fetch(
    report: str = typer.Argument(..., help="Report ID or name."),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Single report date."),
    start: Optional[str] = typer.Option(None, "--since", help="Fetch from this date through today."),
    sections: Optional[List[str]] = typer.Option(
        None, "--section", "-s", help="Section alias to fetch (repeatable; default all)."
    ),
    lenient: bool = typer.Option(False, "--lenient", help="Tolerate unknown or missing sections."),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON instead of tables."),
    limit: int = typer.Option(20, "--limit", "-n", help="Records shown per section in table output."),
) -> None:
    """
    Fetch one report, map its sections and print the records.
    """
    if (on is None) == (start is None):
        raise typer.BadParameter("Give exactly one of --date or --since.")

    with _cli_errors():
        when: Union[date, DateRange] = coerce_date(on) if on is not None else since(start)
        result = fetch_report(
            report,
            when=when,
            sections=sections or None,
            demux_mode=DemuxMode.LENIENT if lenient else None,
        )

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        print_fetch_summary(result)
        for name, records in result.records.items():
            print_records(name, records, limit=limit)

    if not result.ok:
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
