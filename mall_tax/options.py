"""
options.py — how one mall export should be read.

Two modes:
  traditional   date column plus separate tax-exempt and taxable amount columns
  tax-type      date column, a tax-type tag column and one (or several summed)
                amount columns; the tag decides the bucket

Options can come from keyword arguments, a JSON file (``load_options``) or a
named preset. JSON keys may be snake_case or the camelCase names used by the
desktop tool's settings files.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

from mall_tax.errors import OptionsError

DEFAULT_TAX_EXEMPT_VALUES = ["면세", "면세상품", "0%", "영세율", "FREE"]
DEFAULT_TAXABLE_VALUES = ["과세", "과세상품", "10%", "부가세", "TAX"]

MODE_TRADITIONAL = "traditional"
MODE_TAX_TYPE = "tax-type"

SUPPORTED_OPTION_SUFFIXES = {".json", ".yml", ".yaml"}
CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass
class ProcessingOptions:
    use_tax_type_classification: bool = False
    use_multi_column_sum: bool = False
    date_column: Optional[str] = None
    tax_exempt_column: Optional[str] = None
    taxable_column: Optional[str] = None
    tax_type_column: Optional[str] = None
    amount_column: Optional[str] = None
    amount_columns: list[str] = field(default_factory=list)
    tax_exempt_values: list[str] = field(default_factory=lambda: list(DEFAULT_TAX_EXEMPT_VALUES))
    taxable_values: list[str] = field(default_factory=lambda: list(DEFAULT_TAXABLE_VALUES))
    sheet_name: Optional[str] = None
    header_row: Optional[int] = None
    auto_detect_header: bool = True

    @property
    def mode(self) -> str:
        return MODE_TAX_TYPE if self.use_tax_type_classification else MODE_TRADITIONAL

    def problems(self) -> list[str]:
        problems = []
        if not self.date_column:
            problems.append("date_column is not set")
        if self.use_tax_type_classification:
            if not self.tax_type_column:
                problems.append("tax_type_column is required in tax-type mode")
            if self.use_multi_column_sum:
                if not [name for name in self.amount_columns if name]:
                    problems.append("multi-column sum needs at least one entry in amount_columns")
            elif not self.amount_column:
                problems.append("amount_column is required in single-column tax-type mode")
        else:
            if not self.tax_exempt_column:
                problems.append("tax_exempt_column is required in traditional mode")
            if not self.taxable_column:
                problems.append("taxable_column is required in traditional mode")
        if self.header_row is not None and self.header_row < 0:
            problems.append(f"header_row must be 0 or greater, got {self.header_row}")
        return problems

    def validate(self) -> "ProcessingOptions":
        problems = self.problems()
        if problems:
            raise OptionsError(problems)
        return self

    def amount_sources(self) -> list[str]:
        if self.use_multi_column_sum:
            return [name for name in self.amount_columns if name]
        return [self.amount_column] if self.amount_column else []

    def required_columns(self) -> list[str]:
        """Column names the active mode reads, date column first."""
        if self.use_tax_type_classification:
            columns = [self.date_column, self.tax_type_column, *self.amount_sources()]
        else:
            columns = [self.date_column, self.tax_exempt_column, self.taxable_column]
        seen = []
        for name in columns:
            if name and name not in seen:
                seen.append(name)
        return seen

    def with_overrides(self, **changes: Any) -> "ProcessingOptions":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ProcessingOptions":
        if not isinstance(payload, dict):
            raise OptionsError(["options must be a JSON object"])
        known = {item.name for item in fields(cls)}
        values = {}
        unknown = []
        for key, value in payload.items():
            name = CAMEL_RE.sub("_", str(key)).lower()
            if name not in known:
                unknown.append(str(key))
                continue
            values[name] = value
        if unknown:
            raise OptionsError([f"unknown option '{key}'" for key in unknown])
        for name in ("amount_columns", "tax_exempt_values", "taxable_values"):
            if name in values and not isinstance(values[name], list):
                raise OptionsError([f"{name} must be a list"])
        return cls(**values)


PRESETS: dict[str, dict[str, Any]] = {
    "traditional": {
        "date_column": "날짜",
        "tax_exempt_column": "면세금액",
        "taxable_column": "과세금액",
    },
    "coupang": {
        "use_tax_type_classification": True,
        "date_column": "매출인식일",
        "tax_type_column": "과세유형",
        "amount_column": "신용카드(판매)",
    },
    "coupang-multi": {
        "use_tax_type_classification": True,
        "use_multi_column_sum": True,
        "date_column": "매출인식일",
        "tax_type_column": "과세유형",
        "amount_columns": ["신용카드(판매)", "현금(판매)", "기타(판매)"],
    },
}


def preset_options(name: str) -> ProcessingOptions:
    if name not in PRESETS:
        raise OptionsError([f"unknown preset '{name}' (available: {', '.join(sorted(PRESETS))})"])
    return ProcessingOptions.from_dict(PRESETS[name])


def load_options(path: Path) -> ProcessingOptions:
    path = Path(path)
    if not path.exists():
        raise OptionsError([f"options file not found: {path}"])
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_OPTION_SUFFIXES:
        raise OptionsError(["options file must be .json, .yml, or .yaml"])
    if suffix in {".yml", ".yaml"}:
        raise OptionsError(["YAML options are not supported yet. Use JSON for now."])
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise OptionsError([f"could not read options file: {exc}"]) from exc
    return ProcessingOptions.from_dict(payload)


def starter_options_payload() -> dict[str, Any]:
    return {
        "use_tax_type_classification": False,
        "use_multi_column_sum": False,
        "date_column": "날짜",
        "tax_exempt_column": "면세금액",
        "taxable_column": "과세금액",
        "tax_type_column": None,
        "amount_column": None,
        "amount_columns": [],
        "tax_exempt_values": list(DEFAULT_TAX_EXEMPT_VALUES),
        "taxable_values": list(DEFAULT_TAXABLE_VALUES),
        "sheet_name": None,
        "header_row": None,
    }
