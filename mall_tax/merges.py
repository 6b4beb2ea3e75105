from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from openpyxl.utils.cell import get_column_letter, range_boundaries

from mall_tax.normalization import is_blank

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeRegion:
    """Merged rectangle, 0-based and inclusive. The origin is (start_row, start_col)."""

    start_row: int
    start_col: int
    end_row: int
    end_col: int

    def contains(self, row: int, col: int) -> bool:
        return self.start_row <= row <= self.end_row and self.start_col <= col <= self.end_col

    def overlaps(self, other: "MergeRegion") -> bool:
        return not (
            other.start_row > self.end_row
            or other.end_row < self.start_row
            or other.start_col > self.end_col
            or other.end_col < self.start_col
        )

    @property
    def a1(self) -> str:
        start = f"{get_column_letter(self.start_col + 1)}{self.start_row + 1}"
        end = f"{get_column_letter(self.end_col + 1)}{self.end_row + 1}"
        return f"{start}:{end}"


def merge_region_from_range(cell_range: Any) -> MergeRegion:
    """Accepts an openpyxl ``CellRange`` or an A1 range string such as ``"B2:D3"``."""
    if hasattr(cell_range, "bounds"):
        min_col, min_row, max_col, max_row = cell_range.bounds
    else:
        min_col, min_row, max_col, max_row = range_boundaries(str(cell_range))
    return MergeRegion(min_row - 1, min_col - 1, max_row - 1, max_col - 1)


def merge_regions_from_ranges(ranges: Iterable[Any]) -> list[MergeRegion]:
    return [merge_region_from_range(item) for item in ranges]


def find_overlaps(merges: Iterable[MergeRegion]) -> list[tuple[MergeRegion, MergeRegion]]:
    regions = list(merges)
    overlaps = []
    for i, first in enumerate(regions):
        for second in regions[i + 1:]:
            if first.overlaps(second):
                overlaps.append((first, second))
    return overlaps


def resolve_merges(grid: list[list[Any]], merges: Iterable[MergeRegion] = ()) -> list[list[Any]]:
    """
    Copy ``grid`` and push each region's origin value into the empty cells of
    that region. Cells that already held a value are left alone, so running
    the resolver twice gives the same grid. Where regions overlap, a cell
    filled by an earlier region takes the value of the later one.
    """
    regions = list(merges)
    resolved = [list(row or []) for row in grid]
    if not regions:
        return resolved

    for first, second in find_overlaps(regions):
        logger.warning("Merge regions %s and %s overlap; the later one wins", first.a1, second.a1)

    merge_filled = set()
    for region in regions:
        while len(resolved) <= region.end_row:
            resolved.append([])
        origin_row = resolved[region.start_row]
        value = origin_row[region.start_col] if region.start_col < len(origin_row) else None
        if is_blank(value):
            continue
        for r in range(region.start_row, region.end_row + 1):
            row = resolved[r]
            if len(row) <= region.end_col:
                row.extend([None] * (region.end_col + 1 - len(row)))
            for c in range(region.start_col, region.end_col + 1):
                if is_blank(row[c]) or (r, c) in merge_filled:
                    row[c] = value
                    merge_filled.add((r, c))
    return resolved
