import unittest

from mall_tax.aggregation import MonthlyTotal, YearlyTotal, calculate_growth_rate, calculate_totals
from mall_tax.extraction import MonthlyRecord


class CalculateTotalsTests(unittest.TestCase):
    def test_groups_and_sorts_by_month(self):
        records = [
            MonthlyRecord(2024, 2, 100, 200),
            MonthlyRecord(2023, 12, 10, 20),
            MonthlyRecord(2024, 2, 50, 0),
            MonthlyRecord(2024, 1, 0, 300),
        ]
        result = calculate_totals("쿠팡", records)
        self.assertEqual(result.mall_name, "쿠팡")
        self.assertEqual(
            list(result.monthly_totals),
            [
                MonthlyTotal(2023, 12, 10, 20, 30),
                MonthlyTotal(2024, 1, 0, 300, 300),
                MonthlyTotal(2024, 2, 150, 200, 350),
            ],
        )
        self.assertEqual(result.yearly_total, YearlyTotal(160, 520, 680))

    def test_two_months_of_mall_sales(self):
        records = [
            MonthlyRecord(2024, 2, 1_500_000, 750_000),
            MonthlyRecord(2024, 1, 1_000_000, 500_000),
            MonthlyRecord(2024, 1, 2_000_000, 1_000_000),
        ]
        result = calculate_totals("mall", records)
        self.assertEqual(result.monthly_totals[0], MonthlyTotal(2024, 1, 3_000_000, 1_500_000, 4_500_000))
        self.assertEqual(result.monthly_totals[1], MonthlyTotal(2024, 2, 1_500_000, 750_000, 2_250_000))
        self.assertEqual(result.yearly_total, YearlyTotal(4_500_000, 2_250_000, 6_750_000))

    def test_no_records(self):
        result = calculate_totals("empty", [])
        self.assertEqual(result.monthly_totals, ())
        self.assertEqual(result.yearly_total, YearlyTotal(0, 0, 0))

    def test_to_dict(self):
        payload = calculate_totals("A", [MonthlyRecord(2024, 3, 1, 2)]).to_dict()
        self.assertEqual(payload["monthly_totals"][0], {"year": 2024, "month": 3, "tax_exempt": 1, "taxable": 2, "total": 3})
        self.assertEqual(payload["yearly_total"]["total"], 3)


class GrowthRateTests(unittest.TestCase):
    def test_growth(self):
        self.assertAlmostEqual(calculate_growth_rate(150, 100), 50.0)
        self.assertAlmostEqual(calculate_growth_rate(50, 100), -50.0)

    def test_previous_zero(self):
        self.assertEqual(calculate_growth_rate(100, 0), 0.0)


if __name__ == "__main__":
    unittest.main()
