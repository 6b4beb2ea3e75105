import unittest
from datetime import datetime

from mall_tax.errors import EmptySheetError, HeaderRowOutOfRangeError
from mall_tax.header_detection import (
    DEFAULT_CONFIDENCE,
    DEFAULT_REASON,
    detect_header_row,
    get_column_headers,
    locate_header,
)
from mall_tax.header_dialects import MERGED_PARENT_CHILD, REPEATING_SUBTYPE, SINGLE_ROW
from mall_tax.merges import MergeRegion


CLEAN_GRID = [
    ["날짜", "면세금액", "과세금액"],
    [datetime(2024, 1, 5), 1000, 2000],
    [datetime(2024, 1, 6), 1500, 2500],
]


class DetectHeaderRowTests(unittest.TestCase):
    def test_clean_header_on_first_row(self):
        detection = detect_header_row(CLEAN_GRID)
        self.assertEqual(detection.header_row, 0)
        self.assertGreaterEqual(detection.confidence, 80)
        self.assertFalse(detection.is_multi_row_header)
        self.assertEqual(detection.dialect, SINGLE_ROW)
        self.assertEqual(detection.data_start_row, 1)
        self.assertTrue(any("Pattern change" in reason for reason in detection.reasons))
        self.assertNotIn("Preceded by empty row", detection.reasons)

    def test_title_and_blank_rows_are_skipped(self):
        grid = [
            ["2024년 1월 매출 현황", None, None],
            [None, None, None],
        ] + CLEAN_GRID
        detection = detect_header_row(grid)
        self.assertEqual(detection.header_row, 2)
        self.assertIn("Preceded by empty row", detection.reasons)

    def test_unscorable_rows_default_to_first_row(self):
        grid = [["1.5", None, None], ["2.5", None, None]]
        detection = detect_header_row(grid)
        self.assertEqual(detection.header_row, 0)
        self.assertEqual(detection.confidence, DEFAULT_CONFIDENCE)
        self.assertEqual(detection.reasons, [DEFAULT_REASON])
        self.assertEqual(detection.header_rows, [0])

    def test_empty_grid_raises(self):
        with self.assertRaises(EmptySheetError):
            detect_header_row([])
        with self.assertRaises(EmptySheetError):
            detect_header_row([[None, ""], ["  "]])

    def test_repeating_subtype_header_spans_two_rows(self):
        grid = [
            ["결제 카드", None, "결제 현금", None],
            ["면세", "과세", "면세", "과세"],
            [1000, 2000, 3000, 4000],
        ]
        detection = detect_header_row(grid)
        self.assertEqual(detection.header_row, 1)
        self.assertTrue(detection.is_multi_row_header)
        self.assertEqual(detection.header_rows, [0, 1])
        self.assertEqual(detection.dialect, REPEATING_SUBTYPE)
        self.assertEqual(detection.data_start_row, 2)

    def test_merged_parent_row_above_sub_labels(self):
        grid = [
            ["날짜", "결제", "결제"],
            [None, "면세금액", "과세금액"],
            [datetime(2024, 6, 1), 1000, 2000],
        ]
        detection = detect_header_row(grid)
        self.assertEqual(detection.header_row, 1)
        self.assertEqual(detection.header_rows, [0, 1])
        self.assertEqual(detection.dialect, MERGED_PARENT_CHILD)
        self.assertEqual(detection.data_start_row, 2)

    def test_merged_title_above_header_stays_single_row(self):
        grid = [["2024년 3월 매출"] * 3] + CLEAN_GRID
        detection = detect_header_row(grid)
        self.assertEqual(detection.header_row, 1)
        self.assertEqual(detection.header_rows, [1])
        self.assertEqual(detection.dialect, SINGLE_ROW)

    def test_to_dict_has_no_candidates(self):
        payload = detect_header_row(CLEAN_GRID).to_dict()
        self.assertEqual(payload["header_rows"], [0])
        self.assertNotIn("candidates", payload)


class LocateHeaderTests(unittest.TestCase):
    def test_explicit_header_row(self):
        grid = [["title"], []] + CLEAN_GRID
        detection = locate_header(grid, header_row=2)
        self.assertEqual(detection.header_row, 2)
        self.assertEqual(detection.confidence, 100)
        self.assertEqual(detection.reasons, ["Header row set explicitly"])

    def test_explicit_header_row_out_of_range(self):
        with self.assertRaises(HeaderRowOutOfRangeError):
            locate_header(CLEAN_GRID, header_row=10)
        with self.assertRaises(HeaderRowOutOfRangeError):
            locate_header(CLEAN_GRID, header_row=-1)

    def test_auto_detect_off_uses_first_row(self):
        detection = locate_header(CLEAN_GRID, auto_detect=False)
        self.assertEqual(detection.header_rows, [0])
        self.assertEqual(detection.dialect, SINGLE_ROW)


class ColumnHeaderTests(unittest.TestCase):
    def test_single_row_headers(self):
        self.assertEqual(get_column_headers(CLEAN_GRID), ["날짜", "면세금액", "과세금액"])

    def test_merged_parent_with_explicit_header_row(self):
        grid = [
            ["주문번호", "결제", None, "배송비"],
            [None, "면세금액", "과세금액", None],
            [1, 1000, 2000, 3000],
        ]
        headers = get_column_headers(grid, merges=[MergeRegion(0, 1, 0, 2)], header_row=0)
        self.assertEqual(headers, ["주문번호", "결제 > 면세금액", "결제 > 과세금액", "배송비"])


if __name__ == "__main__":
    unittest.main()
