import unittest
from datetime import date, datetime

import pandas as pd

from mall_tax.errors import DateParseError
from mall_tax.normalization import (
    DateContext,
    cell_text,
    extract_date_context,
    is_summary_marker,
    is_unparsable_amount,
    looks_numeric,
    maybe_parse_amount,
    maybe_parse_date,
    parse_amount,
    parse_date,
)


class AmountParsingTests(unittest.TestCase):
    def test_currency_symbols_and_separators_are_stripped(self):
        self.assertEqual(parse_amount("₩1,234,567"), 1234567)
        self.assertEqual(parse_amount("$1,234,567"), 1234567)
        self.assertEqual(parse_amount("12,000원"), 12000)
        self.assertEqual(parse_amount(" 3 500 "), 3500)

    def test_absent_values_are_zero(self):
        self.assertEqual(parse_amount(""), 0)
        self.assertEqual(parse_amount(None), 0)
        self.assertEqual(parse_amount(float("nan")), 0)
        self.assertEqual(parse_amount("-"), 0)

    def test_numbers_pass_through_unchanged(self):
        self.assertEqual(parse_amount(1500), 1500)
        self.assertEqual(parse_amount(1500.75), 1500.75)
        self.assertIsInstance(parse_amount(1500), int)

    def test_parentheses_mean_negative(self):
        self.assertEqual(parse_amount("(5,000)"), -5000)
        self.assertEqual(parse_amount("-5,000"), -5000)

    def test_decimal_strings_keep_fraction(self):
        self.assertEqual(parse_amount("1,234.50"), 1234.5)

    def test_garbage_is_zero_but_flagged(self):
        self.assertEqual(parse_amount("abc"), 0)
        self.assertIsNone(maybe_parse_amount("abc"))
        self.assertTrue(is_unparsable_amount("abc"))
        self.assertFalse(is_unparsable_amount(""))
        self.assertFalse(is_unparsable_amount(None))
        self.assertFalse(is_unparsable_amount("N/A"))
        self.assertFalse(is_unparsable_amount("1,000"))

    def test_booleans_are_not_amounts(self):
        self.assertIsNone(maybe_parse_amount(True))


class DateParsingTests(unittest.TestCase):
    def test_excel_serial(self):
        self.assertEqual(parse_date(45306), datetime(2024, 1, 15))
        self.assertEqual(parse_date(45306.5), datetime(2024, 1, 15, 12, 0))

    def test_serial_out_of_range_is_rejected(self):
        self.assertIsNone(maybe_parse_date(0))
        self.assertIsNone(maybe_parse_date(3_000_000))

    def test_native_values_pass_through(self):
        value = datetime(2024, 3, 15, 9, 30)
        self.assertIs(parse_date(value), value)
        self.assertEqual(parse_date(date(2024, 3, 15)), datetime(2024, 3, 15))
        self.assertEqual(parse_date(pd.Timestamp("2024-03-15")), datetime(2024, 3, 15))

    def test_korean_and_iso_dates(self):
        self.assertEqual(parse_date("2024년 3월 15일"), datetime(2024, 3, 15))
        self.assertEqual(parse_date("2024-03-15"), datetime(2024, 3, 15))
        self.assertEqual(parse_date("2024/03/15"), datetime(2024, 3, 15))
        self.assertEqual(parse_date("2024.03.15"), datetime(2024, 3, 15))
        self.assertEqual(parse_date("2024. 3. 15."), datetime(2024, 3, 15))

    def test_ranges_use_the_start_date(self):
        self.assertEqual(parse_date("2024.07.01 ~ 2024.07.31"), datetime(2024, 7, 1))
        self.assertEqual(parse_date("2024-07-01 - 2024-07-31"), datetime(2024, 7, 1))
        self.assertEqual(parse_date("2024년 7월 1일 ~ 2024년 7월 31일"), datetime(2024, 7, 1))

    def test_year_month_values(self):
        self.assertEqual(parse_date("2024.07"), datetime(2024, 7, 1))
        self.assertEqual(parse_date("2024년 7월"), datetime(2024, 7, 1))

    def test_us_and_european_dates(self):
        self.assertEqual(parse_date("03/15/2024"), datetime(2024, 3, 15))
        self.assertEqual(parse_date("15/03/2024"), datetime(2024, 3, 15))
        self.assertEqual(parse_date("04/05/2024"), datetime(2024, 4, 5))

    def test_datetimes_with_korean_meridiem(self):
        self.assertEqual(parse_date("2024-03-15 14:05:09"), datetime(2024, 3, 15, 14, 5, 9))
        self.assertEqual(parse_date("2024.03.15 오후 2:05"), datetime(2024, 3, 15, 14, 5))
        self.assertEqual(parse_date("2024.03.15 오전 12:30"), datetime(2024, 3, 15, 0, 30))
        self.assertEqual(parse_date("2024-03-15 9:00 PM"), datetime(2024, 3, 15, 21, 0))

    def test_day_only_needs_context(self):
        self.assertIsNone(maybe_parse_date("15일"))
        self.assertEqual(parse_date("15일", DateContext(2024, 3)), datetime(2024, 3, 15))

    def test_years_outside_supported_range(self):
        self.assertIsNone(maybe_parse_date("1800-01-01"))
        self.assertIsNone(maybe_parse_date("2300-01-01"))

    def test_invalid_calendar_dates(self):
        self.assertIsNone(maybe_parse_date("2024-02-30"))

    def test_generic_fallback_needs_year_and_month(self):
        self.assertEqual(parse_date("March 5, 2024"), datetime(2024, 3, 5))
        self.assertEqual(parse_date("20240105"), datetime(2024, 1, 5))
        with self.assertRaises(DateParseError):
            parse_date("2024")

    def test_unparsable_text(self):
        self.assertIsNone(maybe_parse_date("합계"))
        self.assertIsNone(maybe_parse_date("not a date"))
        self.assertIsNone(maybe_parse_date("2024"))
        self.assertIsNone(maybe_parse_date("2024년"))
        self.assertIsNone(maybe_parse_date(""))
        self.assertIsNone(maybe_parse_date(None))
        with self.assertRaises(DateParseError):
            parse_date("not a date")


class DateContextTests(unittest.TestCase):
    def test_title_cell_gives_context(self):
        grid = [["", "2024년 3월 매출 현황"], [], ["날짜", "금액"]]
        self.assertEqual(extract_date_context(grid), DateContext(2024, 3))

    def test_only_first_rows_are_scanned(self):
        grid = [[""] for _ in range(5)] + [["2024년 3월"]]
        self.assertIsNone(extract_date_context(grid))

    def test_invalid_month_is_ignored(self):
        self.assertIsNone(extract_date_context([["2024년 13월"]]))


class CellHelperTests(unittest.TestCase):
    def test_summary_markers(self):
        for value in ("합계", "월 소계", "총계", "누계", "Total", "Grand Total", "Subtotal", "SUM"):
            self.assertTrue(is_summary_marker(value), value)
        for value in ("2024-01-01", "Totally", "", None):
            self.assertFalse(is_summary_marker(value), value)

    def test_cell_text(self):
        self.assertEqual(cell_text(1500.0), "1500")
        self.assertEqual(cell_text(datetime(2024, 1, 2)), "2024-01-02")
        self.assertEqual(cell_text(None), "")
        self.assertEqual(cell_text("  a  "), "a")

    def test_looks_numeric(self):
        self.assertTrue(looks_numeric(10))
        self.assertTrue(looks_numeric("10.5"))
        self.assertTrue(looks_numeric(datetime(2024, 1, 1)))
        self.assertFalse(looks_numeric("1,000"))
        self.assertFalse(looks_numeric(True))
        self.assertFalse(looks_numeric(""))


if __name__ == "__main__":
    unittest.main()
