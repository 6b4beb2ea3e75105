"""
analysis.py — structure report for a mall export before processing it.

Tells the user where the header was found, how sure the detector is, which
merged ranges exist, what the first data rows look like, and which columns
are probably amounts.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable, Optional

from mall_tax.header_detection import locate_header
from mall_tax.header_dialects import combine_multi_row_headers
from mall_tax.loader import file_timestamp, load_workbook_grid
from mall_tax.merges import MergeRegion, resolve_merges
from mall_tax.normalization import cell_text, is_blank

LOW_CONFIDENCE_THRESHOLD = 80
PREVIEW_ROWS = 5

AMOUNT_COLUMN_TOKENS = ("금액", "amount", "신용카드", "현금", "기타", "가격", "price", "판매", "환불", "리워드")
AMOUNT_COLUMN_EXCLUDE = ("전체", "합계")
AMOUNT_SUFFIX_RE = re.compile(r"(만원|원)\s*\)?$")
AUTO_SELECT_TOKENS = ("신용카드", "현금", "기타", "판매")
KOREAN_RE = re.compile(r"[가-힣]")


def suggest_amount_columns(columns: Iterable[str]) -> dict[str, list[str]]:
    """Amount-looking columns, and the subset worth pre-selecting for a multi-column sum."""
    candidates = []
    for column in columns:
        lowered = column.lower()
        if any(token in column for token in AMOUNT_COLUMN_EXCLUDE):
            continue
        if any(token in lowered for token in AMOUNT_COLUMN_TOKENS) or AMOUNT_SUFFIX_RE.search(column):
            candidates.append(column)
    selected = [column for column in candidates if any(token in column for token in AUTO_SELECT_TOKENS)]
    return {"candidates": candidates, "auto_selected": selected}


def _recommendations(confidence: int, merges: list[MergeRegion], is_empty: bool, headers: list[str]) -> list[str]:
    notes = []
    if confidence < LOW_CONFIDENCE_THRESHOLD:
        notes.append(
            f"Low header detection confidence ({confidence}%). Consider passing --header-row explicitly."
        )
    if merges:
        notes.append(f"File contains {len(merges)} merged ranges; they are filled from their top-left value.")
    if is_empty:
        notes.append("No data rows found after headers. Check if file contains actual data.")
    korean = [header for header in headers if KOREAN_RE.search(header)]
    if korean:
        notes.append(f"File contains Korean headers: {', '.join(korean)}. Ensure proper encoding.")
    if any("날짜" in header or "date" in header.lower() for header in headers):
        notes.append("Date columns detected; mixed date formats are normalised per row.")
    if any("금액" in header or "amount" in header.lower() for header in headers):
        notes.append("Amount columns detected; currency symbols and separators are stripped.")
    return notes


def analyze_grid(grid: list[list[Any]], merges: Iterable[MergeRegion] = (), sheet_hint: Optional[str] = None) -> dict:
    merges = list(merges)
    resolved = resolve_merges(grid, merges)
    detection = locate_header(resolved, sheet_hint=sheet_hint)
    headers = combine_multi_row_headers(resolved, detection.header_rows, detection.dialect)

    first_data_row = detection.data_start_row
    sample = [[cell_text(value) for value in row or []] for row in grid[first_data_row : first_data_row + PREVIEW_ROWS]]
    is_empty = not sample or all(all(is_blank(value) for value in row) for row in sample)

    merged_cells = []
    for region in merges:
        origin_row = grid[region.start_row] if region.start_row < len(grid) else []
        value = origin_row[region.start_col] if region.start_col < len(origin_row or []) else None
        merged_cells.append({"range": region.a1, "start_cell": region.a1.split(":")[0], "value": cell_text(value)})

    return {
        "header_detection": {
            **detection.to_dict(),
            "headers": headers,
        },
        "structure": {
            "total_rows": len(grid),
            "total_columns": max((len(row or []) for row in grid), default=0),
            "has_merged_cells": bool(merges),
            "merged_cells": merged_cells,
        },
        "data_preview": {
            "first_data_row": first_data_row,
            "sample_data": sample,
            "is_empty": is_empty,
        },
        "amount_columns": suggest_amount_columns(headers),
        "recommendations": _recommendations(detection.confidence, merges, is_empty, headers),
    }


def analyze_file(path: Path, sheet_name: Optional[str] = None) -> dict:
    path = Path(path)
    loaded = load_workbook_grid(path, sheet_name)
    report = analyze_grid(loaded.grid, loaded.merges, sheet_hint=loaded.sheet_name or path.name)
    return {
        "file_info": {
            "name": path.name,
            "path": str(path),
            "size": path.stat().st_size,
            "modified": file_timestamp(path),
            "format": loaded.detected_format,
            "sheet_name": loaded.sheet_name,
            "sheet_names": loaded.sheet_names,
        },
        **report,
        "warnings": list(loaded.warnings),
    }
