"""
Normalized rows parser.
Reads CSV/XLSX exports of already-normalized bank or cash-register rows
and converts them to Record objects.
"""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
import logging

import pandas as pd

from ..config import ReconConfig
from ..models.record import Record
from ..utils.exceptions import InvalidInputError, RecordParseError, ValidationError

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


class RowParser:
    """
    Parser for files of normalized rows (one record per line).

    Column names come from ``input.column_mappings``; rows with an invalid
    date or amount are skipped with a warning.
    """

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the parser with configuration.

        Args:
            config: Application configuration object
        """
        self.config = config or ReconConfig()
        self.input_config = self.config.input
        self.columns = self.input_config.column_mappings
        self.skipped_rows: list[int] = []

    def parse_file(self, file_path: Path, source_id: Optional[str] = None) -> list[Record]:
        """
        Parse a CSV or XLSX file and return its records.

        Args:
            file_path: Path to the rows file
            source_id: Source stamped on every record (file stem by default)

        Returns:
            List of records, in file order

        Raises:
            RecordParseError: If the file cannot be read or lacks required columns
        """
        logger.info(f"Parsing rows file: {file_path}")
        source_id = source_id or file_path.stem

        df = self.read_dataframe(file_path)
        self._check_columns(df, file_path)

        records = self._process_dataframe(df, source_id)
        logger.info(
            f"Extracted {len(records)} records from {file_path.name} "
            f"({len(self.skipped_rows)} skipped)"
        )
        return records

    def read_dataframe(self, file_path: Path) -> pd.DataFrame:
        """Load the raw table, keeping text cells as typed."""
        if not file_path.exists():
            raise RecordParseError(f"File not found: {file_path}")

        try:
            if file_path.suffix.lower() in EXCEL_SUFFIXES:
                return pd.read_excel(
                    file_path,
                    sheet_name=self.input_config.sheet_name or 0,
                    dtype=object,
                )
            return pd.read_csv(
                file_path,
                encoding=self.input_config.encoding,
                delimiter=self.input_config.delimiter,
                dtype=str,
                keep_default_na=False,
            )
        except (OSError, ValueError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read rows file: {e}")
            raise RecordParseError(f"Failed to read rows file {file_path}: {e}") from e

    def _check_columns(self, df: pd.DataFrame, file_path: Path) -> None:
        required = [self.columns.date, self.columns.amount]
        missing = [col for col in required if col not in df.columns]
        if missing:
            raise RecordParseError(
                f"{file_path.name}: missing required column(s) {', '.join(missing)}; "
                f"found {', '.join(map(str, df.columns))}"
            )

    def _process_dataframe(self, df: pd.DataFrame, source_id: str) -> list[Record]:
        records: list[Record] = []
        seen_ids: set[str] = set()
        self.skipped_rows = []

        for idx, row in df.iterrows():
            try:
                record = self._normalize_row(row, int(idx), source_id)
            except (InvalidInputError, ValidationError) as e:
                logger.warning(f"Row {idx}: {e}, skipping")
                self.skipped_rows.append(int(idx))
                continue

            if record is None:
                self.skipped_rows.append(int(idx))
                continue

            if record.record_id in seen_ids:
                logger.warning(f"Row {idx}: duplicate id {record.record_id!r}, skipping")
                self.skipped_rows.append(int(idx))
                continue

            seen_ids.add(record.record_id)
            records.append(record)

        return records

    def _normalize_row(self, row: pd.Series, idx: int, source_id: str) -> Optional[Record]:
        """
        Convert a DataFrame row to a Record.

        Returns:
            Record or None if the row has no date or no amount
        """
        record_date = self._parse_date(row.get(self.columns.date))
        if not record_date:
            logger.warning(f"Row {idx}: Invalid date, skipping")
            return None

        raw_amount = self._cell(row, self.columns.amount)
        if raw_amount is None:
            logger.warning(f"Row {idx}: No amount found, skipping")
            return None

        record_id = self._cell(row, self.columns.record_id) or f"{source_id}_{idx + 1:05d}"

        return Record(
            record_id=str(record_id),
            source_id=source_id,
            date=record_date,
            amount=raw_amount,
            payment_type=str(self._cell(row, self.columns.payment_type) or ""),
            identifier=self._identifier(self._cell(row, self.columns.identifier)),
            original_text=str(self._cell(row, self.columns.original_text) or ""),
        )

    @staticmethod
    def _cell(row: pd.Series, column: str) -> Any:
        """Cell value, or None for missing columns and blank cells."""
        value = row.get(column)
        if value is None:
            return None
        if isinstance(value, str):
            return value.strip() or None
        if pd.isna(value):
            return None
        return value

    @staticmethod
    def _identifier(value: Any) -> Optional[str]:
        # Spreadsheets store unformatted CPFs as numbers
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return None if value is None else str(value)

    def _parse_date(self, date_value: Any) -> Optional[date]:
        """
        Parse a date cell.

        Tries the configured format first, then pandas' day-first parser.
        """
        if date_value is None or (not isinstance(date_value, str) and pd.isna(date_value)):
            return None

        if isinstance(date_value, datetime):
            return date_value.date()
        if isinstance(date_value, date):
            return date_value

        text = str(date_value).strip()
        if not text:
            return None

        try:
            return datetime.strptime(text, self.input_config.date_format).date()
        except ValueError:
            pass

        try:
            parsed = pd.to_datetime(text, dayfirst=True)
        except (ValueError, TypeError):
            return None
        return None if pd.isna(parsed) else parsed.date()

    def get_file_summary(self, file_path: Path) -> dict[str, Any]:
        """
        Get summary information from a rows file.

        Args:
            file_path: Path to the rows file

        Returns:
            Dictionary with row counts, date range, total value and payment types
        """
        records = self.parse_file(file_path)
        dates = [r.date for r in records]

        payment_types: dict[str, int] = {}
        for record in records:
            key = record.payment_type or "-"
            payment_types[key] = payment_types.get(key, 0) + 1

        return {
            "record_count": len(records),
            "skipped_rows": len(self.skipped_rows),
            "date_range": {
                "start": min(dates).isoformat() if dates else None,
                "end": max(dates).isoformat() if dates else None,
            },
            "total_value": str(sum((r.amount for r in records), Decimal("0.00"))),
            "payment_types": payment_types,
        }
