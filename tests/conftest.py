"""Shared fixtures and helpers for the reconciliation test suite."""

import logging
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from bank_cash_recon.models.reconciliation import (
    ReconciliationSource,
    SourceType,
    create_reconciliation_source,
)
from bank_cash_recon.models.record import Record
from bank_cash_recon.utils.logging_config import ROOT_LOGGER_NAME

ROWS_HEADER = "ID;Data;Tipo;CPF;Valor;Historico"


def _make_record(**kwargs) -> Record:
    """Helper to create a Record with defaults."""
    defaults = {
        "record_id": "r1",
        "source_id": "bank",
        "date": date(2024, 1, 15),
        "amount": Decimal("150.00"),
    }
    defaults.update(kwargs)
    return Record(**defaults)


def _source(source_id: str, rows: list[dict], source_type=SourceType.CUSTOM) -> ReconciliationSource:
    """Build a source from row dicts."""
    return create_reconciliation_source(source_id, source_id.title(), rows, source_type)


def _write_rows(path: Path, lines: list[str]) -> Path:
    """Write a semicolon-separated rows file with the default header."""
    path.write_text("\n".join([ROWS_HEADER, *lines]) + "\n", encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def reset_app_logger():
    """CLI commands install handlers bound to captured streams; drop them."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers = []
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def bank_records() -> list[Record]:
    """A small bank statement: one PIX, one close value, one value in text."""
    return [
        _make_record(
            record_id="1",
            amount=Decimal("150.00"),
            payment_type="PIX",
            identifier="123.456.789-01",
            original_text="PIX recebido",
        ),
        _make_record(record_id="2", amount=Decimal("152.00")),
        _make_record(
            record_id="3",
            amount=Decimal("500.00"),
            original_text="Pagamento ref 150,00",
        ),
    ]


@pytest.fixture
def rows_file(tmp_path) -> Path:
    """Bank rows file in the default (Brazilian) layout."""
    return _write_rows(
        tmp_path / "extrato.csv",
        [
            "1;15/01/2024;PIX;123.456.789-01;150,00;PIX recebido",
            "2;15/01/2024;DINHEIRO;;80,50;Venda balcao",
            "3;16/01/2024;CARTAO;;1.234,56;Cartao credito",
        ],
    )
