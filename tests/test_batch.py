import tempfile
import unittest
from pathlib import Path
from unittest import mock

from mall_tax import batch
from mall_tax.aggregation import YearlyTotal
from mall_tax.batch import mall_name_for, process_file, process_files
from mall_tax.errors import MissingColumnsError, OptionsError
from mall_tax.options import ProcessingOptions, preset_options

GOOD_CSV = "날짜,면세금액,과세금액\n2024-01-05,1000,2000\n2024-02-01,500,0\n"
BAD_CSV = "일자,금액\n2024-01-05,100\n"


class BatchTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.options = preset_options("traditional")

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, name, text):
        path = self.root / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_single_file(self):
        result = process_file(self.write("쿠팡.csv", GOOD_CSV), self.options)
        self.assertTrue(result.ok)
        self.assertEqual(result.mall_name, "쿠팡")
        self.assertEqual(result.result.yearly_total, YearlyTotal(1500, 2000, 3500))
        self.assertEqual([(m.year, m.month) for m in result.result.monthly_totals], [(2024, 1), (2024, 2)])
        self.assertEqual(result.to_dict()["extraction"]["records"], 2)

    def test_failures_are_isolated_and_order_is_kept(self):
        paths = [
            self.write("a.csv", GOOD_CSV),
            self.write("b.csv", BAD_CSV),
            self.root / "c.csv",
            self.write("d.csv", GOOD_CSV),
        ]
        for workers in (None, 3):
            with self.subTest(workers=workers):
                results = process_files(paths, self.options, max_workers=workers)
                self.assertEqual([r.mall_name for r in results], ["a", "b", "c", "d"])
                self.assertEqual([r.ok for r in results], [True, False, False, True])
                self.assertIn("Could not find the following columns", results[1].error)
                self.assertIn("File not found", results[2].error)
                self.assertIsNone(results[1].result)

    def test_fail_fast_raises_the_file_error(self):
        paths = [self.write("a.csv", GOOD_CSV), self.write("b.csv", BAD_CSV)]
        for workers in (1, 2):
            with self.subTest(workers=workers):
                with self.assertRaises(MissingColumnsError):
                    process_files(paths, self.options, max_workers=workers, fail_fast=True)

    def test_unexpected_errors_are_reported_per_file(self):
        real_extract = batch.extract_mall_file

        def extract(path, options):
            if Path(path).name == "b.csv":
                raise TypeError("'NoneType' object is not subscriptable")
            return real_extract(path, options)

        paths = [self.write("a.csv", GOOD_CSV), self.write("b.csv", GOOD_CSV), self.write("c.csv", GOOD_CSV)]
        with mock.patch("mall_tax.batch.extract_mall_file", side_effect=extract):
            for workers in (None, 2):
                with self.subTest(workers=workers):
                    with self.assertLogs("mall_tax.batch", level="ERROR"):
                        results = process_files(paths, self.options, max_workers=workers)
                    self.assertEqual([r.ok for r in results], [True, False, True])
                    self.assertTrue(results[1].error.startswith("TypeError:"))
            with self.assertRaises(TypeError):
                process_files(paths, self.options, fail_fast=True)

    def test_invalid_options_fail_before_any_file(self):
        with self.assertRaises(OptionsError):
            process_files([self.root / "missing.csv"], ProcessingOptions())

    def test_mall_name_is_file_stem(self):
        self.assertEqual(mall_name_for(Path("/tmp/exports/11번가 7월.xlsx")), "11번가 7월")


if __name__ == "__main__":
    unittest.main()
