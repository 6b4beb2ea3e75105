"""
loader.py — read a mall export into a raw cell grid.

Supports: .xlsx .xlsm (openpyxl, merge regions kept) .xls .ods (pandas)
.csv .tsv .txt (chardet + delimiter sniffing)

Public API:
    sheet = load_workbook_grid("path/to/export.xlsx", sheet_name=None)
    sheet.grid      list of rows, header rows included, nothing inferred
    sheet.merges    MergeRegion list (xlsx/xlsm only; empty otherwise)

No header handling happens here; the grid is exactly what the file holds.
"""

from __future__ import annotations

import csv
import io
import logging
import re
import zipfile
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import chardet
import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from mall_tax.errors import SheetNotFoundError, UnsupportedFormatError
from mall_tax.merges import MergeRegion, merge_regions_from_ranges
from mall_tax.normalization import is_blank

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS = {".csv", ".tsv", ".txt"}
OPENPYXL_FORMATS = {".xlsx", ".xlsm"}
XLS_FORMATS = {".xls"}
ODS_FORMATS = {".ods"}
ALL_FORMATS = TEXT_FORMATS | OPENPYXL_FORMATS | XLS_FORMATS | ODS_FORMATS

DELIMITER_CANDIDATES = [",", ";", "\t", "|"]
PERCENT_PLACES_RE = re.compile(r"0\.(0+)%")


@dataclass
class LoadedSheet:
    grid: list[list[Any]]
    merges: list[MergeRegion] = field(default_factory=list)
    sheet_name: Optional[str] = None
    sheet_names: list[str] = field(default_factory=list)
    detected_format: str = ""
    detected_encoding: Optional[str] = None
    delimiter: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.grid)

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.grid), default=0)


# ══════════════════════════════════════════════════════════════════════════════
# CELL CLEANUP
# ══════════════════════════════════════════════════════════════════════════════

def _clean_cell(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if is_blank(value):
        return None
    if isinstance(value, str):
        return value.replace("\x00", "")
    return value


def _trim_grid(rows: list[list[Any]]) -> list[list[Any]]:
    """Drop trailing empty rows; keep leading ones so row indexes match the sheet."""
    grid = [[_clean_cell(value) for value in row] for row in rows]
    while grid and all(value is None for value in grid[-1]):
        grid.pop()
    return grid


def _frame_to_grid(df: pd.DataFrame) -> list[list[Any]]:
    return _trim_grid(df.astype(object).values.tolist())


def _choose_sheet(all_sheets: list[str], sheet_name: Optional[str], warnings: list[str]) -> str:
    if not all_sheets:
        raise UnsupportedFormatError("Workbook contains no sheets")
    if sheet_name is not None:
        if sheet_name not in all_sheets:
            raise SheetNotFoundError(sheet_name, all_sheets)
        return sheet_name
    if len(all_sheets) > 1:
        warnings.append(
            f"Multiple sheets found ({len(all_sheets)} total); "
            f"used '{all_sheets[0]}'. Ignored: {all_sheets[1:]}"
        )
    return all_sheets[0]


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING AND DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    detected = result.get("encoding") or "utf-8"
    logger.debug("chardet guessed %s (confidence %.2f)", detected, result.get("confidence") or 0.0)
    return detected


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode line by line: UTF-8, then the detected encoding, then CP949 (the
    usual Korean back-office export), then CP1252 with replacement.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8-sig", preferred_encoding, "cp949"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", "").rstrip("\r"))
    return "\n".join(decoded_lines)


def _detect_delimiter(text: str) -> str:
    """csv.Sniffer first; otherwise the candidate giving the most consistent column count."""
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters="".join(DELIMITER_CANDIDATES)).delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in DELIMITER_CANDIDATES:
        rows = [row for row in csv.reader(io.StringIO(sample), delimiter=delim) if any(cell.strip() for cell in row)]
        if len(rows) < 2:
            continue
        mode_width, mode_count = Counter(len(row) for row in rows).most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(path: Path, suffix: str) -> LoadedSheet:
    raw = path.read_bytes()
    encoding = _detect_encoding(raw)
    text = _read_text_safely(raw, encoding)
    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)

    rows = list(csv.reader(io.StringIO(text), delimiter=delimiter))
    width = max((len(row) for row in rows), default=0)
    grid = _trim_grid([row + [None] * (width - len(row)) for row in rows])
    return LoadedSheet(
        grid=grid,
        detected_format=suffix.lstrip("."),
        detected_encoding=encoding,
        delimiter=delimiter,
    )


def _percent_places(number_format: str) -> int:
    match = PERCENT_PLACES_RE.search(number_format)
    return len(match.group(1)) if match else 0


def _cell_value(cell: Any) -> Any:
    """Numeric cells formatted as percentages come back as the text Excel shows, e.g. ``"10%"``."""
    value = cell.value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    number_format = str(getattr(cell, "number_format", "") or "")
    if "%" not in number_format:
        return value
    return f"{value * 100:.{_percent_places(number_format)}f}%"


def _load_openpyxl(path: Path, suffix: str, sheet_name: Optional[str]) -> LoadedSheet:
    warnings: list[str] = []
    try:
        workbook = load_workbook(path, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError) as exc:
        raise UnsupportedFormatError(f"Could not open workbook: {exc}") from exc
    try:
        all_sheets = list(workbook.sheetnames)
        chosen = _choose_sheet(all_sheets, sheet_name, warnings)
        sheet = workbook[chosen]
        rows = [[_cell_value(cell) for cell in row] for row in sheet.iter_rows()]
        merges = merge_regions_from_ranges(sheet.merged_cells.ranges)
    finally:
        workbook.close()
    return LoadedSheet(
        grid=_trim_grid(rows),
        merges=merges,
        sheet_name=chosen,
        sheet_names=all_sheets,
        detected_format=suffix.lstrip("."),
        warnings=warnings,
    )


def _load_pandas_workbook(path: Path, suffix: str, sheet_name: Optional[str], engine: Optional[str]) -> LoadedSheet:
    warnings: list[str] = []
    try:
        with pd.ExcelFile(path, engine=engine) as xf:
            all_sheets = [str(name) for name in xf.sheet_names]
            chosen = _choose_sheet(all_sheets, sheet_name, warnings)
            df = pd.read_excel(xf, sheet_name=chosen, header=None)
    except (ImportError, SheetNotFoundError, UnsupportedFormatError):
        raise
    except Exception as exc:
        raise UnsupportedFormatError(f"Could not open {suffix} file: {exc}") from exc
    warnings.append(f"{suffix} files carry no merge information; merged headers are read as-is")
    return LoadedSheet(
        grid=_frame_to_grid(df),
        sheet_name=chosen,
        sheet_names=all_sheets,
        detected_format=suffix.lstrip("."),
        warnings=warnings,
    )


def load_workbook_grid(path: Path, sheet_name: Optional[str] = None) -> LoadedSheet:
    """
    Load one sheet of a spreadsheet (first sheet unless ``sheet_name`` is
    given) as a raw grid.

    Raises:
        FileNotFoundError       path does not exist
        UnsupportedFormatError  unknown extension or unreadable/protected workbook
        SheetNotFoundError      ``sheet_name`` is not in the workbook
        ImportError             .xls without xlrd, .ods without odfpy
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in ALL_FORMATS:
        raise UnsupportedFormatError(
            f"Unsupported file format: '{suffix}'. Supported: {', '.join(sorted(ALL_FORMATS))}"
        )

    if suffix in TEXT_FORMATS:
        loaded = _load_text(path, suffix)
    elif suffix in OPENPYXL_FORMATS:
        loaded = _load_openpyxl(path, suffix, sheet_name)
    elif suffix in XLS_FORMATS:
        loaded = _load_pandas_workbook(path, suffix, sheet_name, engine="xlrd")
    else:
        loaded = _load_pandas_workbook(path, suffix, sheet_name, engine="odf")

    for warning in loaded.warnings:
        logger.warning("%s: %s", path.name, warning)
    logger.info(
        "Loaded %s (%s): %d rows x %d columns, %d merge regions",
        path.name,
        loaded.sheet_name or loaded.detected_format,
        loaded.row_count,
        loaded.column_count,
        len(loaded.merges),
    )
    return loaded


def file_timestamp(path: Path) -> str:
    return datetime.fromtimestamp(Path(path).stat().st_mtime).isoformat(timespec="seconds")
