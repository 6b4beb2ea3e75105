"""Monthly tax-exempt / taxable breakdowns from heterogeneous mall spreadsheet exports."""

__version__ = "0.3.0"

from mall_tax.aggregation import CalculationResult, MonthlyTotal, YearlyTotal, calculate_totals
from mall_tax.exporter import export_results, read_summary
from mall_tax.extraction import MonthlyRecord, read_mall_file, read_tabular_data
from mall_tax.header_detection import HeaderDetection, detect_header_row, get_column_headers
from mall_tax.header_dialects import HeaderSet, combine_multi_row_headers
from mall_tax.merges import MergeRegion, resolve_merges
from mall_tax.options import ProcessingOptions

__all__ = [
    "__version__",
    "CalculationResult",
    "HeaderDetection",
    "HeaderSet",
    "MergeRegion",
    "MonthlyRecord",
    "MonthlyTotal",
    "ProcessingOptions",
    "YearlyTotal",
    "calculate_totals",
    "combine_multi_row_headers",
    "detect_header_row",
    "export_results",
    "get_column_headers",
    "read_mall_file",
    "read_summary",
    "read_tabular_data",
    "resolve_merges",
]
