"""
exporter.py — write calculation results for the accountant.

xlsx: one summary sheet (요약) with a row per mall, then one detail sheet per
mall listing the monthly totals. csv: the summary only.
"""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import Iterable

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from mall_tax.aggregation import CalculationResult, YearlyTotal
from mall_tax.errors import UnsupportedFormatError
from mall_tax.normalization import cell_text, parse_amount

logger = logging.getLogger(__name__)

SUMMARY_SHEET = "요약"
SUMMARY_HEADERS = ["쇼핑몰", "연간 면세 합계", "연간 과세 합계", "연간 총 합계"]
DETAIL_HEADERS = ["년도", "월", "면세금액", "과세금액", "합계"]
EXPORT_FORMATS = ("xlsx", "csv")

SHEET_TITLE_MAX = 31
FORBIDDEN_TITLE_RE = re.compile(r"[\[\]:*?/\\]")

SUMMARY_COLOR = "4472C4"
DETAIL_COLOR = "70AD47"
AMOUNT_FORMAT = "#,##0"


def _style_sheet(ws, col_widths: list[int], header_color: str) -> None:
    """Bold coloured header, frozen first row, fixed column widths."""
    fill = PatternFill("solid", fgColor=header_color)
    font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _format_amounts(ws, first_col: int) -> None:
    for row in ws.iter_rows(min_row=2, min_col=first_col):
        for cell in row:
            cell.number_format = AMOUNT_FORMAT


def sheet_title(name: str, taken: set[str]) -> str:
    """Excel-safe, unique sheet title: forbidden characters replaced, 31 characters at most."""
    base = FORBIDDEN_TITLE_RE.sub("_", name).strip().strip("'") or "Sheet"
    base = base[:SHEET_TITLE_MAX]
    title = base
    counter = 2
    while title.lower() in {item.lower() for item in taken}:
        suffix = f" ({counter})"
        title = base[: SHEET_TITLE_MAX - len(suffix)] + suffix
        counter += 1
    taken.add(title)
    return title


def summary_rows(results: Iterable[CalculationResult]) -> list[list]:
    return [
        [result.mall_name, result.yearly_total.tax_exempt, result.yearly_total.taxable, result.yearly_total.total]
        for result in results
    ]


def _write_xlsx(results: list[CalculationResult], path: Path) -> None:
    wb = openpyxl.Workbook()
    summary = wb.active
    summary.title = SUMMARY_SHEET
    summary.append(SUMMARY_HEADERS)
    for row in summary_rows(results):
        summary.append(row)
    _style_sheet(summary, [24, 18, 18, 18], SUMMARY_COLOR)
    _format_amounts(summary, first_col=2)

    taken = {SUMMARY_SHEET}
    for result in results:
        ws = wb.create_sheet(sheet_title(result.mall_name, taken))
        ws.append(DETAIL_HEADERS)
        for item in result.monthly_totals:
            ws.append([item.year, item.month, item.tax_exempt, item.taxable, item.total])
        _style_sheet(ws, [10, 8, 16, 16, 16], DETAIL_COLOR)
        _format_amounts(ws, first_col=3)
    wb.save(path)


def _write_csv(results: list[CalculationResult], path: Path) -> None:
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(SUMMARY_HEADERS)
        writer.writerows(summary_rows(results))


def export_results(results: Iterable[CalculationResult], path: Path, format: str = "xlsx") -> Path:
    fmt = (format or "xlsx").lower().lstrip(".")
    if fmt not in EXPORT_FORMATS:
        raise UnsupportedFormatError(f"Unsupported export format '{format}'. Use one of: {', '.join(EXPORT_FORMATS)}")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    results = list(results)
    if fmt == "xlsx":
        _write_xlsx(results, path)
    else:
        _write_csv(results, path)
    logger.info("Exported %d mall result(s) to %s", len(results), path)
    return path


def _summary_tuple(row) -> tuple[str, YearlyTotal]:
    name = cell_text(row[0])
    values = [parse_amount(value) for value in list(row[1:4]) + [None] * (3 - len(row[1:4]))]
    return name, YearlyTotal(*values)


def read_summary(path: Path) -> list[tuple[str, YearlyTotal]]:
    """Read back ``(mall_name, YearlyTotal)`` pairs from an exported xlsx or csv file."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        with path.open("r", encoding="utf-8-sig", newline="") as handle:
            rows = list(csv.reader(handle))
    elif suffix in {".xlsx", ".xlsm"}:
        wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
        try:
            if SUMMARY_SHEET not in wb.sheetnames:
                raise UnsupportedFormatError(f"{path.name} has no '{SUMMARY_SHEET}' sheet")
            rows = [list(row) for row in wb[SUMMARY_SHEET].iter_rows(values_only=True)]
        finally:
            wb.close()
    else:
        raise UnsupportedFormatError(f"Cannot read a summary from '{suffix}' files")
    return [_summary_tuple(row) for row in rows[1:] if row and cell_text(row[0])]
