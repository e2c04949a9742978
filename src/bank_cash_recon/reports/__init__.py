"""Export adapters for reconciliation and conference results."""

from .excel_generator import ExcelReportGenerator

__all__ = ["ExcelReportGenerator"]
