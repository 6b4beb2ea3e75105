"""Exception types raised by the mall-tax pipeline.

Every error derives from ``ValueError`` so callers that only distinguish
"unreadable input" from "bad command" keep working.
"""

from __future__ import annotations


class MallTaxError(ValueError):
    pass


class UnsupportedFormatError(MallTaxError):
    pass


class SheetNotFoundError(MallTaxError):
    def __init__(self, sheet_name: str, available: list[str] | None = None) -> None:
        self.sheet_name = sheet_name
        self.available = list(available or [])
        message = f"Sheet '{sheet_name}' not found in file"
        if self.available:
            message += f". Available: {self.available}"
        super().__init__(message)


class EmptySheetError(MallTaxError):
    pass


class HeaderRowOutOfRangeError(MallTaxError):
    def __init__(self, header_row: int, row_count: int) -> None:
        self.header_row = header_row
        self.row_count = row_count
        super().__init__(f"Header row {header_row} exceeds data length {row_count}")


class OptionsError(MallTaxError):
    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("Invalid processing options: " + "; ".join(self.problems))


class MissingColumnsError(MallTaxError):
    def __init__(self, missing: list[str], available: list[str]) -> None:
        self.missing = list(missing)
        self.available = list(available)
        super().__init__(
            "Could not find the following columns: "
            + ", ".join(self.missing)
            + f". Available columns: {self.available}"
        )


class DateParseError(MallTaxError):
    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Unable to parse date: {value!r}")
