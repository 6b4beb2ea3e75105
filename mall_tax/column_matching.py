from __future__ import annotations

import logging
import re
from typing import Optional

from mall_tax.errors import MissingColumnsError
from mall_tax.header_dialects import PARENT_CHILD_SEPARATOR

logger = logging.getLogger(__name__)

WHITESPACE_RE = re.compile(r"\s+")
VENDOR_TOKEN_SPLIT_RE = re.compile(r"[\s>/|()\[\]_\-]+")


def normalize_column_name(name: str) -> str:
    text = str(name).replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    return WHITESPACE_RE.sub(" ", text).strip().lower()


class ExactMatcher:
    name = "exact"

    def match(self, wanted: str, available: list[str]) -> Optional[str]:
        return wanted if wanted in available else None


class NormalizedMatcher:
    name = "normalized"

    def match(self, wanted: str, available: list[str]) -> Optional[str]:
        target = normalize_column_name(wanted)
        for column in available:
            if normalize_column_name(column) == target:
                return column
        return None


class VendorPatternMatcher:
    """
    Last resort for vendor exports. Combined ``"부모 > 자식"`` names match on
    their child part (either side may be the combined one), then a column
    whose tokens contain every token of the wanted name is accepted.
    """

    name = "vendor-pattern"

    def match(self, wanted: str, available: list[str]) -> Optional[str]:
        target = normalize_column_name(wanted)
        target_child = self._child(target)
        for column in available:
            normalized = normalize_column_name(column)
            if self._child(normalized) == target_child:
                return column

        wanted_tokens = self._tokens(target)
        if not wanted_tokens:
            return None
        for column in available:
            if wanted_tokens <= self._tokens(normalize_column_name(column)):
                return column
        return None

    @staticmethod
    def _child(name: str) -> str:
        separator = PARENT_CHILD_SEPARATOR.strip()
        return name.rsplit(separator, 1)[-1].strip() if separator in name else name

    @staticmethod
    def _tokens(name: str) -> set[str]:
        return {token for token in VENDOR_TOKEN_SPLIT_RE.split(name) if token}


COLUMN_MATCHERS = (ExactMatcher(), NormalizedMatcher(), VendorPatternMatcher())


def match_column(wanted: str, available: list[str], matchers=COLUMN_MATCHERS) -> Optional[str]:
    for matcher in matchers:
        found = matcher.match(wanted, available)
        if found is not None:
            if matcher.name != "exact":
                logger.debug("Column %r matched %r via %s matching", wanted, found, matcher.name)
            return found
    return None


def resolve_columns(required: list[str], available: list[str], matchers=COLUMN_MATCHERS) -> dict[str, str]:
    """Map every wanted column name onto a detected one, or report all misses at once."""
    mapping = {}
    missing = []
    for wanted in required:
        found = match_column(wanted, available, matchers)
        if found is None:
            missing.append(wanted)
        else:
            mapping[wanted] = found
    if missing:
        raise MissingColumnsError(missing, available)
    return mapping
