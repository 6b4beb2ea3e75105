"""Shared versioned contracts for mall-tax JSON outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mall_tax import __version__

CONTRACT_VERSIONS = {
    "mall_tax.headers": "1.0.0",
    "mall_tax.analyze": "1.0.0",
    "mall_tax.process": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    input_paths: list[Path],
    status: str = "ok",
    output_path: Path | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "mall-tax",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_files": [str(path) for path in input_paths],
        "output_file": str(output_path) if output_path else None,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }


def build_payload(name: str, body: dict[str, Any], run_summary: dict[str, Any]) -> dict[str, Any]:
    contract = build_contract(name)
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": __version__,
        **body,
        "run_summary": run_summary,
    }
