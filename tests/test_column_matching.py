import unittest

from mall_tax.column_matching import match_column, normalize_column_name, resolve_columns
from mall_tax.errors import MissingColumnsError


class ColumnMatchingTests(unittest.TestCase):
    def test_exact_match_wins(self):
        self.assertEqual(match_column("면세금액", ["면세 금액", "면세금액"]), "면세금액")

    def test_whitespace_and_case_are_ignored(self):
        self.assertEqual(match_column("Tax Type", ["  tax\ntype "]), "  tax\ntype ")
        self.assertEqual(normalize_column_name(" A\r\n  B "), "a b")

    def test_child_part_of_combined_header(self):
        self.assertEqual(match_column("면세금액", ["결제 > 면세금액"]), "결제 > 면세금액")
        self.assertEqual(match_column("결제 > 과세금액", ["과세금액"]), "과세금액")

    def test_token_subset_match(self):
        self.assertEqual(match_column("신용카드", ["신용카드(판매)", "현금(판매)"]), "신용카드(판매)")

    def test_no_match(self):
        self.assertIsNone(match_column("배송비", ["면세금액", "과세금액"]))


class ResolveColumnsTests(unittest.TestCase):
    def test_mapping(self):
        mapping = resolve_columns(["날짜", "면세금액"], ["날짜", "결제 > 면세금액"])
        self.assertEqual(mapping, {"날짜": "날짜", "면세금액": "결제 > 면세금액"})

    def test_all_missing_columns_are_reported(self):
        with self.assertRaises(MissingColumnsError) as ctx:
            resolve_columns(["날짜", "면세금액", "과세금액"], ["일자", "면세금액"])
        self.assertEqual(ctx.exception.missing, ["날짜", "과세금액"])
        self.assertEqual(ctx.exception.available, ["일자", "면세금액"])
        self.assertIn("Could not find the following columns", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
