"""
header_dialects.py — two-row header layouts used by mall back-offices.

A dialect matcher looks at the detected header row and its neighbours and
returns a scored ``HeaderSet`` or ``None``. Matchers are tried in
``DIALECT_MATCHERS`` order; the first hit wins, otherwise the header is a
single row.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from mall_tax.normalization import cell_text, is_blank, looks_numeric, maybe_parse_date

logger = logging.getLogger(__name__)

SINGLE_ROW = "single-row"
REPEATING_SUBTYPE = "repeating-subtype"
MERGED_PARENT_CHILD = "merged-parent-child"
SIMPLE_TWO_ROW = "simple-two-row"

PARENT_CHILD_SEPARATOR = " > "

TAX_TYPE_TOKENS = ("면세", "과세", "영세", "부가세", "exempt", "taxable", "tax", "vat")
CATEGORY_TOKENS = (
    "주문", "쿠폰", "정산", "결제", "카드", "현금", "포인트", "적립금", "할인",
    "order", "coupon", "settlement", "payment", "card", "cash", "point", "discount",
)
PARENT_TOKENS = ("결제", "정산", "주문", "판매", "매출", "payment", "settlement", "order", "sales")
STRONG_KEYWORDS = ("면세금액", "과세금액", "결제금액", "tax-exempt amount", "taxable amount", "payment amount")
GENERIC_KEYWORDS = ("금액", "수량", "건수", "합계", "amount", "qty", "quantity", "count", "total")
SEPARATOR_RE = re.compile(r"[>/|]")
DATE_NAME_RE = re.compile(r"(날짜|일자|일시|date|[가-힣]일$)", re.IGNORECASE)

MAX_INDICATOR_COLUMNS = 20
MIN_CATEGORY_LABELS = 2
MIN_TAX_TYPE_LABELS = 3
INDICATOR_RATIO_THRESHOLD = 0.3
MIN_STRONG_HITS = 2
MERGED_RATIO_THRESHOLD = 0.4
MERGED_MIN_RAW_HITS = 2
KEYWORD_DENSITY_THRESHOLD = 0.2
KEYWORD_MIN_RAW_HITS = 1
FLAT_ROW_COMPLETENESS = 0.6
FLAT_MAX_TAX_TOKEN_COVERAGE = 0.5
HEADER_ROW_MAX_VALUE_RATIO = 0.3
DATE_COLUMN_FIXUP_THRESHOLD = 2


@dataclass(frozen=True)
class HeaderSet:
    rows: tuple[int, ...]
    dialect: str
    confidence: int

    @property
    def is_multi_row(self) -> bool:
        return len(self.rows) > 1


def _has_token(text: str, tokens: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(token in lowered for token in tokens)


def _row(grid: list[list[Any]], index: int) -> list[str]:
    if index < 0 or index >= len(grid):
        return []
    return [cell_text(value) for value in grid[index] or []]


def _cell(row: list[str], col: int) -> str:
    return row[col] if col < len(row) else ""


def _last_filled(row: list[str]) -> int:
    for index in range(len(row) - 1, -1, -1):
        if row[index]:
            return index
    return -1


def _column_span(first: list[str], second: list[str]) -> int:
    return max(_last_filled(first), _last_filled(second)) + 1


def _looks_like_header_row(grid: list[list[Any]], index: int) -> bool:
    """A row of labels: something filled and hardly any amounts or dates."""
    if index < 0 or index >= len(grid):
        return False
    values = [value for value in grid[index] or [] if not is_blank(value)]
    if not values:
        return False
    value_like = sum(1 for value in values if looks_numeric(value) or maybe_parse_date(value) is not None)
    return value_like / len(values) <= HEADER_ROW_MAX_VALUE_RATIO


@dataclass
class ParentChildIndicators:
    columns: int = 0
    merged_pairs: int = 0
    strong_hits: int = 0
    generic_hits: int = 0
    separator_hits: int = 0

    @property
    def raw_hits(self) -> int:
        return self.merged_pairs + self.strong_hits + self.generic_hits + self.separator_hits

    @property
    def score(self) -> int:
        return self.merged_pairs + 3 * self.strong_hits + self.generic_hits + self.separator_hits

    @property
    def indicator_ratio(self) -> float:
        return self.score / self.columns if self.columns else 0.0

    @property
    def merged_ratio(self) -> float:
        return self.merged_pairs / self.columns if self.columns else 0.0

    @property
    def keyword_density(self) -> float:
        return (self.strong_hits + self.generic_hits) / self.columns if self.columns else 0.0

    def cleared(self) -> bool:
        if self.indicator_ratio > INDICATOR_RATIO_THRESHOLD and self.strong_hits >= MIN_STRONG_HITS:
            return True
        if self.merged_ratio > MERGED_RATIO_THRESHOLD and self.raw_hits > MERGED_MIN_RAW_HITS:
            return True
        return self.keyword_density > KEYWORD_DENSITY_THRESHOLD and self.raw_hits > KEYWORD_MIN_RAW_HITS


def collect_indicators(primary: list[str], below: list[str]) -> ParentChildIndicators:
    indicators = ParentChildIndicators()
    indicators.columns = min(MAX_INDICATOR_COLUMNS, max(len(primary), len(below)))
    for col in range(indicators.columns):
        top = _cell(primary, col)
        bottom = _cell(below, col)
        if top and not bottom:
            indicators.merged_pairs += 1
        if bottom and _has_token(bottom, STRONG_KEYWORDS):
            indicators.strong_hits += 1
        elif bottom and _has_token(bottom, GENERIC_KEYWORDS):
            indicators.generic_hits += 1
        if SEPARATOR_RE.search(top) or SEPARATOR_RE.search(bottom):
            indicators.separator_hits += 1
    return indicators


def _completeness(row: list[str], span: int) -> float:
    if span <= 0:
        return 0.0
    return sum(1 for col in range(span) if _cell(row, col)) / span


def is_flat_two_row_layout(primary: list[str], below: list[str]) -> bool:
    """
    Second row fully labelled on its own, first row carries few tax labels and
    no label repeats in either row: the rows are alternatives, not a
    parent/child pair. A repeated first-row label is a resolved merge parent.
    """
    span = _column_span(primary, below)
    if span == 0:
        return False
    if _completeness(below, span) < FLAT_ROW_COMPLETENESS:
        return False
    tax_tokens = sum(1 for col in range(span) if _has_token(_cell(primary, col), TAX_TYPE_TOKENS))
    if tax_tokens / span >= FLAT_MAX_TAX_TOKEN_COVERAGE:
        return False
    for row in (primary, below):
        labels = [label for label in row[:span] if label]
        if len(labels) != len(set(labels)):
            return False
    return True


# ══════════════════════════════════════════════════════════════════════════════
# DIALECT MATCHERS
# ══════════════════════════════════════════════════════════════════════════════

class RepeatingSubtypeMatcher:
    """Category labels above a row of repeating 면세/과세 sub-labels."""

    name = REPEATING_SUBTYPE

    def match(self, grid: list[list[Any]], primary_row: int) -> Optional[HeaderSet]:
        if primary_row < 1:
            return None
        above = _row(grid, primary_row - 1)
        primary = _row(grid, primary_row)
        categories = sum(1 for label in above if label and _has_token(label, CATEGORY_TOKENS))
        tax_labels = sum(1 for label in primary if label and _has_token(label, TAX_TYPE_TOKENS))
        if categories < MIN_CATEGORY_LABELS or tax_labels < MIN_TAX_TYPE_LABELS:
            return None
        confidence = min(100, 50 + 10 * categories + 5 * tax_labels)
        return HeaderSet((primary_row - 1, primary_row), self.name, confidence)


class MergedParentChildMatcher:
    """Parent labels in the header row, sub-labels such as 면세금액 in the row below."""

    name = MERGED_PARENT_CHILD

    def match(self, grid: list[list[Any]], primary_row: int) -> Optional[HeaderSet]:
        if not _looks_like_header_row(grid, primary_row + 1):
            return None
        primary = _row(grid, primary_row)
        below = _row(grid, primary_row + 1)
        indicators = collect_indicators(primary, below)
        if not indicators.cleared() or is_flat_two_row_layout(primary, below):
            return None
        confidence = min(100, 50 + 5 * indicators.score)
        return HeaderSet((primary_row, primary_row + 1), self.name, confidence)


class SimpleTwoRowMatcher:
    """Two label rows where the more complete one already names every column."""

    name = SIMPLE_TWO_ROW

    def match(self, grid: list[list[Any]], primary_row: int) -> Optional[HeaderSet]:
        if not _looks_like_header_row(grid, primary_row + 1):
            return None
        primary = _row(grid, primary_row)
        below = _row(grid, primary_row + 1)
        if not collect_indicators(primary, below).cleared():
            return None
        if not is_flat_two_row_layout(primary, below):
            return None
        span = _column_span(primary, below)
        confidence = int(round(100 * max(_completeness(primary, span), _completeness(below, span))))
        return HeaderSet((primary_row, primary_row + 1), self.name, confidence)


DIALECT_MATCHERS = (RepeatingSubtypeMatcher(), MergedParentChildMatcher(), SimpleTwoRowMatcher())


def detect_parent_row_above(grid: list[list[Any]], child_row: int) -> Optional[HeaderSet]:
    """
    Merged parent labels one row above a sub-label row that won the scoring.
    The parent row needs two distinct labels and at least one column labelled
    only there (a leaf such as 날짜), so a merged title line is not taken for
    a parent row.
    """
    parent_row = child_row - 1
    if parent_row < 0 or not _looks_like_header_row(grid, parent_row):
        return None
    parent = _row(grid, parent_row)
    child = _row(grid, child_row)
    if len({label for label in parent if label}) < 2:
        return None
    if not any(label and not _cell(child, col) for col, label in enumerate(parent)):
        return None
    return MergedParentChildMatcher().match(grid, parent_row)


def detect_multi_row_header(grid: list[list[Any]], primary_row: int, matchers=DIALECT_MATCHERS) -> HeaderSet:
    for matcher in matchers:
        header_set = matcher.match(grid, primary_row)
        if header_set is not None:
            logger.info("Header rows %s match the %s dialect", list(header_set.rows), header_set.dialect)
            return header_set
    return HeaderSet((primary_row,), SINGLE_ROW, 100)


# ══════════════════════════════════════════════════════════════════════════════
# COMBINING
# ══════════════════════════════════════════════════════════════════════════════

Column = tuple[int, str]


def dedupe_columns(columns: list[Column]) -> list[Column]:
    seen = set()
    unique = []
    for index, name in columns:
        if name in seen:
            logger.debug("Dropping duplicate column name %r at column %d", name, index)
            continue
        seen.add(name)
        unique.append((index, name))
    return unique


def dedupe_names(names: list[str]) -> list[str]:
    return [name for _, name in dedupe_columns(list(enumerate(names)))]


def _confirmed_parent(first: list[str], col: int, child: str) -> str:
    """Nearest filled parent to the left, kept only when it pairs with a tax sub-label."""
    if not _has_token(child, TAX_TYPE_TOKENS):
        return ""
    for prev in range(col - 1, -1, -1):
        parent = _cell(first, prev)
        if parent:
            return parent if _has_token(parent, PARENT_TOKENS) else ""
    return ""


def combine_header_columns(grid: list[list[Any]], header_rows, dialect: Optional[str] = None) -> list[Column]:
    """Combined header names paired with the grid column each one labels."""
    rows = list(header_rows)
    if not rows:
        return []
    if len(rows) == 1:
        return dedupe_columns([(col, name) for col, name in enumerate(_row(grid, rows[0])) if name])

    first = _row(grid, rows[0])
    second = _row(grid, rows[1])
    span = _column_span(first, second)

    if dialect == SIMPLE_TWO_ROW:
        source = second if _completeness(second, span) > _completeness(first, span) else first
        return dedupe_columns([(col, _cell(source, col)) for col in range(span) if _cell(source, col)])

    columns = []
    for col in range(span):
        top = _cell(first, col)
        bottom = _cell(second, col)
        if top and bottom:
            columns.append((col, f"{top}{PARENT_CHILD_SEPARATOR}{bottom}"))
        elif top:
            columns.append((col, top))
        elif bottom:
            parent = _confirmed_parent(first, col, bottom)
            columns.append((col, f"{parent}{PARENT_CHILD_SEPARATOR}{bottom}" if parent else bottom))
    return repair_date_columns(dedupe_columns(columns))


def combine_multi_row_headers(grid: list[list[Any]], header_rows, dialect: Optional[str] = None) -> list[str]:
    return [name for _, name in combine_header_columns(grid, header_rows, dialect)]


def looks_like_date_name(name: str) -> bool:
    return bool(DATE_NAME_RE.search(name.strip()))


def child_part(name: str) -> str:
    if PARENT_CHILD_SEPARATOR not in name:
        return name
    return name.split(PARENT_CHILD_SEPARATOR, 1)[1]


def repair_date_columns(columns: list[Column], max_date_columns: int = DATE_COLUMN_FIXUP_THRESHOLD) -> list[Column]:
    date_names = [name for _, name in columns if looks_like_date_name(name)]
    if len(date_names) <= max_date_columns:
        return columns
    repaired = []
    for index, name in columns:
        child = child_part(name)
        if child != name and looks_like_date_name(child):
            logger.info("Stripping parent from date column %r", name)
            repaired.append((index, child))
        else:
            repaired.append((index, name))
    return dedupe_columns(repaired)


def repair_date_mappings(names: list[str], max_date_columns: int = DATE_COLUMN_FIXUP_THRESHOLD) -> list[str]:
    """
    More than ``max_date_columns`` date-looking names after combining means
    parents were attached to unrelated date columns. Strip the parent from
    every combined name whose child part is a date label.
    """
    return [name for _, name in repair_date_columns(list(enumerate(names)), max_date_columns)]
