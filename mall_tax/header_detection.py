"""
header_detection.py — locate the header row of a mall export.

The first ``HEADER_SCAN_ROWS`` rows are scored on fill ratio, header keywords,
text ratio, a text-to-number pattern change, a blank row above and the absence
of punctuation. The best row is then handed to the dialect matchers to decide
whether the header spans two rows.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from mall_tax.errors import EmptySheetError, HeaderRowOutOfRangeError
from mall_tax.header_dialects import (
    SINGLE_ROW,
    HeaderSet,
    combine_multi_row_headers,
    detect_multi_row_header,
    detect_parent_row_above,
)
from mall_tax.merges import MergeRegion, resolve_merges
from mall_tax.normalization import cell_text, is_blank, is_text_like, looks_numeric

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 10
FILL_RATIO_THRESHOLD = 0.5
TEXT_RATIO_THRESHOLD = 0.7
NEXT_ROW_NUMERIC_THRESHOLD = 0.5

FILL_RATIO_WEIGHT = 20
KEYWORD_WEIGHT = 15
TEXT_RATIO_WEIGHT = 25
PATTERN_CHANGE_WEIGHT = 30
BLANK_ABOVE_WEIGHT = 10
NO_PUNCTUATION_WEIGHT = 5

DEFAULT_CONFIDENCE = 30
DEFAULT_REASON = "No clear header pattern detected, defaulting to first row"

HEADER_KEYWORDS = (
    "날짜", "일자", "date",
    "금액", "면세", "과세", "amount",
    "총액", "합계", "total",
    "상품", "제품", "product",
    "주문", "번호", "order",
    "배송", "배송비", "shipping",
    "구분", "분류", "type",
    "매출", "수익", "sales",
)
PUNCTUATION_RE = re.compile(r"[!@#$%^&*()+=\[\]{};':\"\\|,.<>/?]")


@dataclass(frozen=True)
class HeaderCandidate:
    row_index: int
    score: int
    reasons: tuple[str, ...] = ()


@dataclass
class HeaderDetection:
    header_row: int
    confidence: int
    reasons: list[str] = field(default_factory=list)
    is_multi_row_header: bool = False
    header_rows: list[int] = field(default_factory=list)
    dialect: str = SINGLE_ROW
    candidates: list[HeaderCandidate] = field(default_factory=list)

    @property
    def data_start_row(self) -> int:
        return max(self.header_rows or [self.header_row]) + 1

    def to_dict(self) -> dict:
        return {
            "header_row": self.header_row,
            "confidence": self.confidence,
            "reasons": list(self.reasons),
            "is_multi_row_header": self.is_multi_row_header,
            "header_rows": list(self.header_rows),
            "dialect": self.dialect,
        }


def _filled(row: list[Any]) -> list[Any]:
    return [value for value in row or [] if not is_blank(value)]


def _keyword_hits(values: list[Any]) -> int:
    hits = 0
    for value in values:
        lowered = cell_text(value).lower()
        if any(keyword in lowered for keyword in HEADER_KEYWORDS):
            hits += 1
    return hits


def score_row(grid: list[list[Any]], index: int) -> Optional[HeaderCandidate]:
    row = grid[index] or []
    values = _filled(row)
    if not values:
        return None

    score = 0
    reasons = []

    fill_ratio = len(values) / len(row)
    if fill_ratio > FILL_RATIO_THRESHOLD:
        score += FILL_RATIO_WEIGHT
        reasons.append(f"High non-empty ratio: {fill_ratio:.0%}")

    keywords = _keyword_hits(values)
    if keywords:
        score += keywords * KEYWORD_WEIGHT
        reasons.append(f"Found {keywords} header keywords")

    text_ratio = sum(1 for value in values if is_text_like(value)) / len(values)
    if text_ratio > TEXT_RATIO_THRESHOLD:
        score += TEXT_RATIO_WEIGHT
        reasons.append(f"High text ratio: {text_ratio:.0%}")

        if index + 1 < len(grid):
            next_values = _filled(grid[index + 1])
            if next_values:
                numeric_ratio = sum(1 for value in next_values if looks_numeric(value)) / len(next_values)
                if numeric_ratio > NEXT_ROW_NUMERIC_THRESHOLD:
                    score += PATTERN_CHANGE_WEIGHT
                    reasons.append("Pattern change: text row followed by numeric row")

    if index > 0 and not _filled(grid[index - 1]):
        score += BLANK_ABOVE_WEIGHT
        reasons.append("Preceded by empty row")

    if not any(PUNCTUATION_RE.search(cell_text(value)) for value in values):
        score += NO_PUNCTUATION_WEIGHT
        reasons.append("No unusual punctuation")

    if score <= 0:
        return None
    return HeaderCandidate(index, score, tuple(reasons))


def detect_header_row(grid: list[list[Any]], sheet_hint: Optional[str] = None) -> HeaderDetection:
    if not grid or not any(_filled(row) for row in grid):
        raise EmptySheetError(f"No data found in sheet {sheet_hint!r}" if sheet_hint else "No data found in sheet")

    candidates = []
    for index in range(min(HEADER_SCAN_ROWS, len(grid))):
        candidate = score_row(grid, index)
        if candidate is not None:
            candidates.append(candidate)
    candidates.sort(key=lambda item: (-item.score, item.row_index))

    if not candidates:
        logger.info("No header candidate in %s, defaulting to the first row", sheet_hint or "sheet")
        return HeaderDetection(
            header_row=0,
            confidence=DEFAULT_CONFIDENCE,
            reasons=[DEFAULT_REASON],
            header_rows=[0],
        )

    best = candidates[0]
    header_set = detect_multi_row_header(grid, best.row_index)
    if not header_set.is_multi_row:
        header_set = detect_parent_row_above(grid, best.row_index) or header_set
    logger.info(
        "Header row %d detected in %s (score %d, dialect %s)",
        best.row_index,
        sheet_hint or "sheet",
        best.score,
        header_set.dialect,
    )
    return HeaderDetection(
        header_row=best.row_index,
        confidence=min(100, best.score),
        reasons=list(best.reasons),
        is_multi_row_header=header_set.is_multi_row,
        header_rows=list(header_set.rows),
        dialect=header_set.dialect,
        candidates=candidates,
    )


def locate_header(
    grid: list[list[Any]],
    header_row: Optional[int] = None,
    auto_detect: bool = True,
    sheet_hint: Optional[str] = None,
) -> HeaderDetection:
    """Detection result for an already merge-resolved grid, honouring a fixed header row."""
    if header_row is None:
        if auto_detect:
            return detect_header_row(grid, sheet_hint)
        header_row = 0
    if header_row < 0 or header_row >= len(grid):
        raise HeaderRowOutOfRangeError(header_row, len(grid))

    header_set = detect_multi_row_header(grid, header_row) if auto_detect else HeaderSet((header_row,), SINGLE_ROW, 100)
    return HeaderDetection(
        header_row=header_row,
        confidence=100,
        reasons=["Header row set explicitly"],
        is_multi_row_header=header_set.is_multi_row,
        header_rows=list(header_set.rows),
        dialect=header_set.dialect,
    )


def get_column_headers(
    grid: list[list[Any]],
    merges: Iterable[MergeRegion] = (),
    header_row: Optional[int] = None,
    auto_detect: bool = True,
) -> list[str]:
    resolved = resolve_merges(grid, merges)
    detection = locate_header(resolved, header_row, auto_detect)
    return combine_multi_row_headers(resolved, detection.header_rows, detection.dialect)
