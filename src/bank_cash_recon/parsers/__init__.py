"""Parsers for files of normalized bank and cash-register rows."""

from .row_parser import RowParser

__all__ = ["RowParser"]
