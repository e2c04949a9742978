"""
Command-line interface for the bank / cash register reconciliation tool.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional
import json
import logging
import sys

import click
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import load_config, generate_default_config, ReconConfig
from .conference.session import ConferenceSession
from .matching.engine import ReconciliationEngine
from .matching.fuzzy import FuzzyMatch, highlight_match, smart_search
from .matching.value_search import SearchOutcome, ValueSearch
from .models.reconciliation import (
    ReconciliationReport,
    ReconciliationSource,
    SourceType,
)
from .parsers.row_parser import RowParser
from .reports.excel_generator import ExcelReportGenerator
from .utils.exceptions import ReconciliationError
from .utils.logging_config import setup_logging

console = Console()

PREVIEW_ROWS = 20

OUTCOME_STYLES = {
    SearchOutcome.MATCHED: "green",
    SearchOutcome.AMBIGUOUS: "yellow",
    SearchOutcome.ALREADY_CONSUMED: "magenta",
    SearchOutcome.NOT_FOUND: "red",
    SearchOutcome.INVALID_INPUT: "red",
}

config_option = click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
verbose_option = click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")


@click.group()
@click.version_option(version=__version__)
def main():
    """Bank statement and cash register reconciliation tool."""
    pass


@main.command()
@click.argument("value")
@click.argument("rows_file", type=click.Path(exists=True, path_type=Path))
@config_option
@verbose_option
def search(value: str, rows_file: Path, config: Optional[Path], verbose: bool):
    """
    Find records whose amount equals a typed value.

    VALUE: Amount as typed, e.g. "150,00" or "R$ 1.234,56"
    ROWS_FILE: CSV/XLSX file of normalized rows
    """
    try:
        recon_config = _load(config, verbose)
        records = RowParser(recon_config).parse_file(rows_file)

        result = ValueSearch().search(value, records)
        style = OUTCOME_STYLES[result.outcome]
        console.print(f"[{style}]{result.outcome.value}[/{style}]: {result.message}")

        if result.matches:
            console.print(_records_table(f"Matches for {value}", result.matches))

    except ReconciliationError as e:
        _fail(e, verbose)


@main.command("fuzzy-search")
@click.argument("query")
@click.argument("rows_file", type=click.Path(exists=True, path_type=Path))
@config_option
@verbose_option
def fuzzy_search_command(query: str, rows_file: Path, config: Optional[Path], verbose: bool):
    """
    Tiered search (exact / close / fuzzy) with value suggestions.

    QUERY: Value, description fragment, CPF digits or dd/mm date
    ROWS_FILE: CSV/XLSX file of normalized rows
    """
    try:
        recon_config = _load(config, verbose)
        records = RowParser(recon_config).parse_file(rows_file)

        result = smart_search(query, records, config=recon_config.search)

        for title, matches in (
            ("Exact", result.exact),
            ("Close", result.close),
            ("Fuzzy", result.fuzzy),
        ):
            if matches:
                console.print(_fuzzy_table(f"{title} matches", matches, query))

        if result.total == 0:
            console.print(f"[red]No matches for {query!r}[/red]")

        if result.suggestions:
            console.print(f"\nSuggestions: {', '.join(result.suggestions)}")

    except ReconciliationError as e:
        _fail(e, verbose)


@main.command()
@click.argument("rows_file", type=click.Path(exists=True, path_type=Path))
@click.argument("values", nargs=-1, required=True)
@config_option
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), help="Export conferred items (XLSX)"
)
@verbose_option
def confer(
    rows_file: Path,
    values: tuple[str, ...],
    config: Optional[Path],
    output: Optional[Path],
    verbose: bool,
):
    """
    Confer typed values against a bank rows file.

    A value matching exactly one record is confirmed; ambiguous values list
    their candidates and are left for the operator.

    ROWS_FILE: CSV/XLSX file of normalized rows
    VALUES: One or more typed amounts
    """
    try:
        recon_config = _load(config, verbose)
        records = RowParser(recon_config).parse_file(rows_file)
        session = ConferenceSession(records)

        table = Table(title=f"Conference: {rows_file.name}")
        table.add_column("Value")
        table.add_column("Outcome")
        table.add_column("Record")
        table.add_column("Detail")

        for value in values:
            result = session.confer(value)
            style = OUTCOME_STYLES[result.status]
            record_ref = result.item.record.ref if result.item else "-"
            detail = result.message
            if result.candidates:
                detail = ", ".join(r.ref for r in result.candidates)
            table.add_row(value, f"[{style}]{result.status.value}[/{style}]", record_ref, detail)

        console.print(table)
        _display_daily_summary(session)

        if output is not None:
            report_path = ExcelReportGenerator(recon_config).generate_conference_report(
                session.conferred_items, session.events, output
            )
            console.print(f"\n[green]Conference report generated: {report_path}[/green]")

    except ReconciliationError as e:
        _fail(e, verbose)


@main.command()
@click.option(
    "-s",
    "--source",
    "source_specs",
    multiple=True,
    required=True,
    help="Source as ID=PATH (repeat for each source)",
)
@click.option(
    "-t",
    "--source-type",
    "type_specs",
    multiple=True,
    help="Source type as ID=TYPE (bank_statement, cash_register, pos_system, ...)",
)
@config_option
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@click.option("--json", "json_output", type=click.Path(path_type=Path), help="Output JSON file path")
@click.option("--date-tolerance", type=int, default=None, help="Override date tolerance in days")
@click.option(
    "--value-tolerance",
    type=float,
    default=None,
    help="Override relative value tolerance (0.05 = 5%)",
)
@click.option("--bucket-width", type=float, default=None, help="Override value bucket width")
@click.option("--workers", type=int, default=None, help="Threads used to score candidate pairs")
@verbose_option
@click.option(
    "--dry-run", is_flag=True, help="Run reconciliation and show summary without writing reports"
)
def reconcile(
    source_specs: tuple[str, ...],
    type_specs: tuple[str, ...],
    config: Optional[Path],
    output: Optional[Path],
    json_output: Optional[Path],
    date_tolerance: Optional[int],
    value_tolerance: Optional[float],
    bucket_width: Optional[float],
    workers: Optional[int],
    verbose: bool,
    dry_run: bool,
):
    """
    Reconcile records across two or more sources.

    Example: bank-cash-recon reconcile -s bank=extrato.csv -s caixa=caixa.csv
    """
    try:
        recon_config = _load(config, verbose)
        _apply_overrides(recon_config, date_tolerance, value_tolerance, bucket_width, workers)

        paths = _parse_pairs(source_specs, "--source")
        types = _parse_pairs(type_specs, "--source-type")
        unknown = set(types) - set(paths)
        if unknown:
            raise click.BadParameter(
                f"unknown source id(s): {', '.join(sorted(unknown))}", param_hint="--source-type"
            )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            parser = RowParser(recon_config)
            sources = []
            for source_id, path in paths.items():
                task = progress.add_task(f"Parsing {source_id}...", total=None)
                sources.append(
                    ReconciliationSource(
                        id=source_id,
                        name=Path(path).name,
                        records=parser.parse_file(Path(path), source_id),
                        type=_source_type(types.get(source_id)),
                    )
                )
                progress.update(task, completed=True)

            task = progress.add_task("Running reconciliation...", total=None)
            engine = ReconciliationEngine(recon_config)
            report = engine.reconcile(sources)
            progress.update(task, completed=True)

        _display_summary(report)

        if dry_run:
            console.print("\n[yellow]Dry run - no report generated[/yellow]")
            return

        if json_output is not None:
            json_output.parent.mkdir(parents=True, exist_ok=True)
            json_output.write_text(
                json.dumps(report.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8"
            )
            console.print(f"\n[green]JSON report generated: {json_output}[/green]")

        if output is None and json_output is None:
            now = datetime.now()
            output = Path(
                recon_config.output.filename_template.format(
                    date=now.strftime("%Y%m%d"), time=now.strftime("%H%M%S")
                )
            )

        if output is not None:
            report_path = ExcelReportGenerator(recon_config).generate_report(report, output)
            console.print(f"\n[green]Report generated: {report_path}[/green]")

    except ReconciliationError as e:
        _fail(e, verbose)


@main.command("parse-rows")
@click.argument("rows_file", type=click.Path(exists=True, path_type=Path))
@config_option
@click.option("--source-id", default=None, help="Source id stamped on records (file stem by default)")
def parse_rows(rows_file: Path, config: Optional[Path], source_id: Optional[str]):
    """
    Parse a rows file and display its records.

    ROWS_FILE: CSV/XLSX file of normalized rows
    """
    recon_config = load_config(config)
    parser = RowParser(recon_config)

    try:
        records = parser.parse_file(rows_file, source_id)
    except ReconciliationError as e:
        console.print(f"[red]Error parsing file: {e}[/red]")
        sys.exit(1)

    console.print(_records_table(f"Records: {rows_file.name}", records[:PREVIEW_ROWS]))

    if len(records) > PREVIEW_ROWS:
        console.print(f"\n... and {len(records) - PREVIEW_ROWS} more records")

    total = sum((r.amount for r in records), Decimal("0.00"))
    console.print(f"\nTotal records: {len(records)} (value {total:,.2f})")
    if parser.skipped_rows:
        console.print(f"[yellow]Skipped rows: {len(parser.skipped_rows)}[/yellow]")


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _load(config: Optional[Path], verbose: bool) -> ReconConfig:
    """Configure logging and load the configuration."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)
    recon_config = load_config(config)
    if not verbose:
        setup_logging(recon_config.logging.level, log_format=recon_config.logging.format)
    return recon_config


def _fail(error: Exception, verbose: bool) -> None:
    console.print(f"[red]Error: {error}[/red]")
    if verbose:
        console.print_exception()
    sys.exit(1)


def _parse_pairs(specs: tuple[str, ...], option: str) -> dict[str, str]:
    """Parse repeated ``ID=VALUE`` options, keeping their order."""
    pairs: dict[str, str] = {}
    for spec in specs:
        key, sep, value = spec.partition("=")
        if not sep or not key or not value:
            raise click.BadParameter(f"expected ID=VALUE, got {spec!r}", param_hint=option)
        if key in pairs:
            raise click.BadParameter(f"duplicate id {key!r}", param_hint=option)
        pairs[key] = value
    return pairs


def _source_type(value: Optional[str]) -> SourceType:
    if value is None:
        return SourceType.CUSTOM
    try:
        return SourceType(value)
    except ValueError as e:
        choices = ", ".join(t.value for t in SourceType)
        raise click.BadParameter(
            f"{value!r} is not one of {choices}", param_hint="--source-type"
        ) from e


def _apply_overrides(
    config: ReconConfig,
    date_tolerance: Optional[int],
    value_tolerance: Optional[float],
    bucket_width: Optional[float],
    workers: Optional[int],
) -> None:
    """Apply command-line overrides to the reconciliation settings."""
    updates = {}
    if date_tolerance is not None:
        updates["date_tolerance_days"] = date_tolerance
    if value_tolerance is not None:
        updates["value_tolerance"] = Decimal(str(value_tolerance))
    if bucket_width is not None:
        updates["value_bucket_width"] = Decimal(str(bucket_width))
    if workers is not None:
        updates["max_workers"] = workers

    if updates:
        settings = config.reconciliation.model_dump()
        settings.update(updates)
        try:
            config.reconciliation = type(config.reconciliation).model_validate(settings)
        except PydanticValidationError as e:
            raise click.BadParameter(f"Invalid override: {e}") from e


def _records_table(title: str, records) -> Table:
    table = Table(title=title)
    table.add_column("Record")
    table.add_column("Date")
    table.add_column("Type")
    table.add_column("Identifier")
    table.add_column("Amount", justify="right")
    table.add_column("Text")

    for record in records:
        table.add_row(
            record.ref,
            record.date.strftime("%d/%m/%Y"),
            record.payment_type or "-",
            record.identifier or "-",
            f"{record.amount:,.2f}",
            _truncate(record.original_text),
        )
    return table


def _fuzzy_table(title: str, matches: tuple[FuzzyMatch, ...], query: str) -> Table:
    table = Table(title=title)
    table.add_column("Record")
    table.add_column("Amount", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Reason")
    table.add_column("Text")

    for match in matches:
        table.add_row(
            match.record.ref,
            f"{match.record.amount:,.2f}",
            f"{match.confidence:.2%}",
            match.reason,
            highlight_match(
                _truncate(match.record.original_text), query, markers=("[bold]", "[/bold]")
            ),
        )
    return table


def _truncate(text: str, width: int = 40) -> str:
    return text[:width] + "..." if len(text) > width else text


def _display_daily_summary(session: ConferenceSession) -> None:
    summary = session.daily_summary()

    table = Table(title=f"Daily Summary {summary.operation_date:%d/%m/%Y}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Records", str(summary.total_records))
    table.add_row("Conferred", f"{summary.conferred_count} ({summary.conferred_value:,.2f})")
    table.add_row("Pending", f"{summary.pending_count} ({summary.pending_value:,.2f})")
    table.add_row("Not Found", str(summary.not_found_count))
    table.add_row("Already Conferred", str(summary.already_conferred_count))

    console.print(table)


def _display_summary(report: ReconciliationReport) -> None:
    """Display reconciliation summary in console."""
    summary = report.summary

    table = Table(title="Reconciliation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    for source_id, count in report.source_record_counts.items():
        table.add_row(f"Records ({source_id})", str(count))
    table.add_row("Matches", str(len(report.matches)))
    for match_type, count in summary.matches_by_type.items():
        table.add_row(f"  {match_type}", str(count))
    table.add_row("Matched Records", str(summary.matched_records))
    table.add_row("Unmatched Records", str(summary.unmatched_records))
    table.add_row("With Discrepancies", str(summary.conflicting_records))
    table.add_row("Matched Value", f"{summary.matched_value:,.2f}")
    table.add_row("Unmatched Value", f"{summary.unmatched_value:,.2f}")
    table.add_row("Match Rate", f"{summary.match_rate:.1f}%")
    table.add_row("Processing Time", f"{report.processing_time_seconds:.2f}s")

    console.print(table)


if __name__ == "__main__":
    main()
