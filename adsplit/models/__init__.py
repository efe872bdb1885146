from adsplit.models.item import Item, OutcomeCounts
from adsplit.models.report import REPORT_COLUMNS, ReportRow, format_percent

__all__ = [
    "Item",
    "OutcomeCounts",
    "REPORT_COLUMNS",
    "ReportRow",
    "format_percent",
]
