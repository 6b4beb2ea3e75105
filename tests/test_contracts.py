from __future__ import annotations

import re
import unittest
from pathlib import Path

from mall_tax import __version__
from mall_tax.contracts import CONTRACT_VERSIONS, build_payload, build_run_summary, utc_now_iso


class ContractTests(unittest.TestCase):
    def test_payload_carries_contract_and_run_summary(self):
        summary = build_run_summary(
            command="process",
            input_paths=[Path("a.xlsx"), Path("b.csv")],
            status="partial",
            output_path=Path("out/summary.xlsx"),
            metrics={"files": 2},
            warnings=["b: Unknown tax type '기타' on 1 row(s), treated as taxable"],
        )
        payload = build_payload("mall_tax.process", {"files": []}, summary)

        self.assertEqual(payload["contract"], {"name": "mall_tax.process", "version": "1.0.0"})
        self.assertEqual(payload["schema_version"], payload["contract"]["version"])
        self.assertEqual(payload["tool_version"], __version__)
        self.assertEqual(payload["files"], [])
        run_summary = payload["run_summary"]
        self.assertEqual(run_summary["tool"], "mall-tax")
        self.assertEqual(run_summary["status"], "partial")
        self.assertEqual(run_summary["input_files"], ["a.xlsx", "b.csv"])
        self.assertEqual(run_summary["output_file"], str(Path("out/summary.xlsx")))
        self.assertEqual(run_summary["warnings_count"], 1)

    def test_run_summary_defaults(self):
        summary = build_run_summary(command="headers", input_paths=[])
        self.assertEqual(summary["status"], "ok")
        self.assertIsNone(summary["output_file"])
        self.assertEqual(summary["metrics"], {})
        self.assertEqual(summary["warnings"], [])

    def test_every_command_has_a_contract(self):
        self.assertEqual(set(CONTRACT_VERSIONS), {"mall_tax.headers", "mall_tax.analyze", "mall_tax.process"})
        with self.assertRaises(KeyError):
            build_payload("mall_tax.unknown", {}, {})

    def test_timestamps_are_utc_seconds(self):
        self.assertRegex(utc_now_iso(), re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$"))


if __name__ == "__main__":
    unittest.main()
