from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from mall_tax.extraction import MonthlyRecord


@dataclass(frozen=True)
class MonthlyTotal:
    year: int
    month: int
    tax_exempt: float
    taxable: float
    total: float

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "tax_exempt": self.tax_exempt,
            "taxable": self.taxable,
            "total": self.total,
        }


@dataclass(frozen=True)
class YearlyTotal:
    tax_exempt: float = 0
    taxable: float = 0
    total: float = 0

    def to_dict(self) -> dict:
        return {"tax_exempt": self.tax_exempt, "taxable": self.taxable, "total": self.total}


@dataclass(frozen=True)
class CalculationResult:
    mall_name: str
    monthly_totals: tuple[MonthlyTotal, ...]
    yearly_total: YearlyTotal

    def to_dict(self) -> dict:
        return {
            "mall_name": self.mall_name,
            "monthly_totals": [item.to_dict() for item in self.monthly_totals],
            "yearly_total": self.yearly_total.to_dict(),
        }


def calculate_totals(mall_name: str, records: Iterable[MonthlyRecord]) -> CalculationResult:
    """Group records by (year, month); months come back in calendar order whatever the input order."""
    grouped: dict[tuple[int, int], list[float]] = {}
    for record in records:
        sums = grouped.setdefault((record.year, record.month), [0, 0])
        sums[0] += record.tax_exempt_amount
        sums[1] += record.taxable_amount

    monthly = tuple(
        MonthlyTotal(year, month, exempt, taxable, exempt + taxable)
        for (year, month), (exempt, taxable) in sorted(grouped.items())
    )
    yearly_exempt = sum(item.tax_exempt for item in monthly)
    yearly_taxable = sum(item.taxable for item in monthly)
    return CalculationResult(
        mall_name=mall_name,
        monthly_totals=monthly,
        yearly_total=YearlyTotal(yearly_exempt, yearly_taxable, yearly_exempt + yearly_taxable),
    )


def calculate_growth_rate(current: float, previous: float) -> float:
    """Percent change from ``previous`` to ``current``; 0 when there is nothing to compare against."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100
