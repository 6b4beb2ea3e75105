"""
extraction.py — turn a mall sheet into monthly tax-exempt / taxable records.

Pipeline for one grid:
    resolve merges -> locate header -> combine header names -> match the
    configured columns -> walk data rows in the configured mode

Row-level problems (bad date, summary line, unusable amount) drop the row and
never fail the file. Structural and configuration problems raise.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

from mall_tax.column_matching import resolve_columns
from mall_tax.header_detection import HeaderDetection, locate_header
from mall_tax.header_dialects import combine_header_columns
from mall_tax.loader import load_workbook_grid
from mall_tax.merges import MergeRegion, resolve_merges
from mall_tax.normalization import (
    DateContext,
    cell_text,
    extract_date_context,
    is_blank,
    is_summary_marker,
    is_unparsable_amount,
    maybe_parse_date,
    parse_amount,
)
from mall_tax.options import ProcessingOptions

logger = logging.getLogger(__name__)

TAX_EXEMPT = "tax_exempt"
TAXABLE = "taxable"


@dataclass
class MonthlyRecord:
    year: int
    month: int
    tax_exempt_amount: float = 0
    taxable_amount: float = 0


@dataclass
class ExtractionOutcome:
    records: list[MonthlyRecord]
    detection: Optional[HeaderDetection] = None
    columns: list[str] = field(default_factory=list)
    column_mapping: dict[str, str] = field(default_factory=dict)
    date_context: Optional[DateContext] = None
    data_rows: int = 0
    skipped: Counter = field(default_factory=Counter)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "header": self.detection.to_dict() if self.detection else None,
            "columns": list(self.columns),
            "column_mapping": dict(self.column_mapping),
            "date_context": (
                {"year": self.date_context.year, "month": self.date_context.month} if self.date_context else None
            ),
            "data_rows": self.data_rows,
            "records": len(self.records),
            "skipped": dict(self.skipped),
            "warnings": list(self.warnings),
        }


# ══════════════════════════════════════════════════════════════════════════════
# CLASSIFICATION
# ══════════════════════════════════════════════════════════════════════════════

def classify_tax_type(value: Any, exempt_values: Iterable[str], taxable_values: Iterable[str]) -> Optional[str]:
    """
    ``TAX_EXEMPT``, ``TAXABLE`` or ``None`` for an unrecognised tag.

    Exact matches are checked before substring matches so that ``"10%"`` is
    not swallowed by the exempt keyword ``"0%"``.
    """
    tag = cell_text(value)
    lowered = tag.lower()
    exempt = [str(item) for item in exempt_values if str(item)]
    taxable = [str(item) for item in taxable_values if str(item)]

    if any(tag == item or lowered == item.lower() for item in exempt):
        return TAX_EXEMPT
    if any(tag == item or lowered == item.lower() for item in taxable):
        return TAXABLE
    if lowered and any(item.lower() in lowered for item in exempt):
        return TAX_EXEMPT
    if lowered and any(item.lower() in lowered for item in taxable):
        return TAXABLE
    return None


# ══════════════════════════════════════════════════════════════════════════════
# ROW WALKERS
# ══════════════════════════════════════════════════════════════════════════════

def _row_date(row: dict[str, Any], column: str, context: Optional[DateContext], skipped: Counter):
    value = row.get(column)
    if is_summary_marker(value):
        skipped["summary_row"] += 1
        logger.debug("Skipping summary row marked %r", value)
        return None
    parsed = maybe_parse_date(value, context)
    if parsed is None:
        skipped["unparsable_date"] += 1
        if not is_blank(value):
            logger.debug("Skipping row due to invalid date: %r", value)
    return parsed


def extract_traditional(
    rows: list[dict[str, Any]],
    date_column: str,
    tax_exempt_column: str,
    taxable_column: str,
    context: Optional[DateContext] = None,
    skipped: Optional[Counter] = None,
) -> list[MonthlyRecord]:
    """One record per row; tax-exempt and taxable amounts come from their own columns."""
    skipped = skipped if skipped is not None else Counter()
    records = []
    for row in rows:
        when = _row_date(row, date_column, context, skipped)
        if when is None:
            continue
        exempt_raw = row.get(tax_exempt_column)
        taxable_raw = row.get(taxable_column)
        if is_unparsable_amount(exempt_raw) or is_unparsable_amount(taxable_raw):
            skipped["unparsable_amount"] += 1
            logger.debug("Skipping row with unusable amounts %r / %r", exempt_raw, taxable_raw)
            continue
        records.append(MonthlyRecord(when.year, when.month, parse_amount(exempt_raw), parse_amount(taxable_raw)))
    return records


def extract_tax_type(
    rows: list[dict[str, Any]],
    date_column: str,
    tax_type_column: str,
    amount_columns: list[str],
    exempt_values: Iterable[str],
    taxable_values: Iterable[str],
    context: Optional[DateContext] = None,
    skipped: Optional[Counter] = None,
    warnings: Optional[list[str]] = None,
) -> list[MonthlyRecord]:
    """Sum the amount columns per row and file the sum under the row's tax-type tag, one record per month."""
    skipped = skipped if skipped is not None else Counter()
    warnings = warnings if warnings is not None else []
    exempt_values = list(exempt_values)
    taxable_values = list(taxable_values)
    buckets: dict[tuple[int, int], MonthlyRecord] = {}
    unknown_tags: Counter = Counter()

    for row in rows:
        when = _row_date(row, date_column, context, skipped)
        if when is None:
            continue
        amount = sum(parse_amount(row.get(column)) for column in amount_columns)
        if amount == 0:
            skipped["zero_amount"] += 1
            continue

        key = (when.year, when.month)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = MonthlyRecord(when.year, when.month)

        tag = row.get(tax_type_column)
        kind = classify_tax_type(tag, exempt_values, taxable_values)
        if kind is None:
            unknown_tags[cell_text(tag)] += 1
            kind = TAXABLE
        if kind == TAX_EXEMPT:
            bucket.tax_exempt_amount += amount
        else:
            bucket.taxable_amount += amount
        logger.debug("Added %s to %s for %04d-%02d (type: %r)", amount, kind, when.year, when.month, tag)

    for tag, count in unknown_tags.items():
        message = f"Unknown tax type {tag!r} on {count} row(s), treated as taxable"
        logger.warning("%s", message)
        warnings.append(message)
    return list(buckets.values())


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def _project_rows(grid: list[list[Any]], start: int, columns: list[tuple[int, str]]) -> list[dict[str, Any]]:
    projected = []
    for row in grid[start:]:
        row = row or []
        if all(is_blank(value) for value in row):
            continue
        projected.append({name: (row[index] if index < len(row) else None) for index, name in columns})
    return projected


def extract_records(
    grid: list[list[Any]],
    merges: Iterable[MergeRegion] = (),
    options: Optional[ProcessingOptions] = None,
    sheet_hint: Optional[str] = None,
) -> ExtractionOutcome:
    if options is None:
        options = ProcessingOptions()
    options.validate()

    resolved = resolve_merges(grid, merges)
    detection = locate_header(resolved, options.header_row, options.auto_detect_header, sheet_hint)
    header_columns = combine_header_columns(resolved, detection.header_rows, detection.dialect)
    names = [name for _, name in header_columns]
    rows = _project_rows(resolved, detection.data_start_row, header_columns)

    outcome = ExtractionOutcome(records=[], detection=detection, columns=names, data_rows=len(rows))
    if not rows:
        message = f"No data found after header row {detection.data_start_row - 1}"
        logger.warning("%s", message)
        outcome.warnings.append(message)
        return outcome

    mapping = resolve_columns(options.required_columns(), names)
    outcome.column_mapping = mapping
    context = extract_date_context(resolved)
    outcome.date_context = context

    if options.use_tax_type_classification:
        outcome.records = extract_tax_type(
            rows,
            mapping[options.date_column],
            mapping[options.tax_type_column],
            [mapping[name] for name in options.amount_sources()],
            options.tax_exempt_values,
            options.taxable_values,
            context=context,
            skipped=outcome.skipped,
            warnings=outcome.warnings,
        )
    else:
        outcome.records = extract_traditional(
            rows,
            mapping[options.date_column],
            mapping[options.tax_exempt_column],
            mapping[options.taxable_column],
            context=context,
            skipped=outcome.skipped,
        )
    logger.info(
        "Extracted %d records from %d data rows (%s mode, skipped: %s)",
        len(outcome.records),
        len(rows),
        options.mode,
        dict(outcome.skipped) or "none",
    )
    return outcome


def read_tabular_data(
    grid: list[list[Any]],
    merges: Iterable[MergeRegion] = (),
    options: Optional[ProcessingOptions] = None,
) -> list[MonthlyRecord]:
    return extract_records(grid, merges, options).records


def extract_mall_file(path: Path, options: ProcessingOptions) -> ExtractionOutcome:
    options.validate()
    loaded = load_workbook_grid(Path(path), options.sheet_name)
    outcome = extract_records(loaded.grid, loaded.merges, options, sheet_hint=loaded.sheet_name or Path(path).name)
    outcome.warnings[:0] = loaded.warnings
    return outcome


def read_mall_file(path: Path, options: ProcessingOptions) -> list[MonthlyRecord]:
    return extract_mall_file(path, options).records
