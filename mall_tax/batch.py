"""
batch.py — run several mall exports through the pipeline.

Each file is loaded, extracted and aggregated on its own; nothing is shared
between files, so they can run in a thread pool. A failing file becomes a
``FileResult`` with ``error`` set and the other files carry on, unless
``fail_fast`` is requested.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from mall_tax.aggregation import CalculationResult, calculate_totals
from mall_tax.extraction import ExtractionOutcome, extract_mall_file
from mall_tax.options import ProcessingOptions

logger = logging.getLogger(__name__)

FILE_ERRORS = (ValueError, OSError, ImportError)


@dataclass
class FileResult:
    path: Path
    mall_name: str
    result: Optional[CalculationResult] = None
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    extraction: Optional[ExtractionOutcome] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "mall_name": self.mall_name,
            "ok": self.ok,
            "error": self.error,
            "warnings": list(self.warnings),
            "extraction": self.extraction.to_dict() if self.extraction else None,
            "result": self.result.to_dict() if self.result else None,
        }


def mall_name_for(path: Path) -> str:
    return Path(path).stem


def process_file(path: Path, options: ProcessingOptions) -> FileResult:
    """Load, extract and total one file. Raises on structural or configuration errors."""
    path = Path(path)
    mall_name = mall_name_for(path)
    logger.info("Processing %s", path.name)
    outcome = extract_mall_file(path, options)
    return FileResult(
        path=path,
        mall_name=mall_name,
        result=calculate_totals(mall_name, outcome.records),
        warnings=list(outcome.warnings),
        extraction=outcome,
    )


def _guarded(path: Path, options: ProcessingOptions, fail_fast: bool) -> FileResult:
    try:
        return process_file(path, options)
    except Exception as exc:
        if fail_fast:
            raise
        if isinstance(exc, FILE_ERRORS):
            logger.error("%s: %s", Path(path).name, exc)
            message = str(exc)
        else:
            logger.exception("Unexpected error while processing %s", Path(path).name)
            message = f"{type(exc).__name__}: {exc}"
        return FileResult(path=Path(path), mall_name=mall_name_for(path), error=message)


def process_files(
    paths: Iterable[Path],
    options: ProcessingOptions,
    max_workers: Optional[int] = None,
    fail_fast: bool = False,
) -> list[FileResult]:
    """
    Process every path and return one ``FileResult`` per path, in input order.

    ``max_workers`` > 1 runs files in a ThreadPoolExecutor. With ``fail_fast``
    the first failing file's exception propagates and queued files are
    cancelled.
    """
    paths = [Path(item) for item in paths]
    options.validate()

    if not max_workers or max_workers <= 1 or len(paths) <= 1:
        return [_guarded(path, options, fail_fast) for path in paths]

    logger.info("Using parallel processing with %d workers for %d files", max_workers, len(paths))
    results: list[Optional[FileResult]] = [None] * len(paths)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(_guarded, path, options, fail_fast): index for index, path in enumerate(paths)}
        try:
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        except Exception:
            for future in futures:
                future.cancel()
            raise
    return [item for item in results if item is not None]
