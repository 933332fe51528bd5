from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

BRANCH_MAP = {
    "SM CITY CLARK": "CLARK",
    "SM CITY PAMPANGA": "PAMPANGA",
}
DEFAULT_HEADER_WINDOW = 8


class BranchNotDetected(ValueError):
    pass


class UnknownBranch(KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown branch: {self.name!r}"


@dataclass(frozen=True)
class BranchMatch:
    name: str
    sheet: str
    line_index: int


def _branch_key(name: str) -> str:
    return " ".join(name.split()).upper()


def branch_pattern(branch_map: dict[str, str] | None = None) -> re.Pattern:
    names = sorted((branch_map or BRANCH_MAP).keys(), key=len, reverse=True)
    alternation = "|".join(r"\s+".join(re.escape(part) for part in name.split()) for name in names)
    # Names may start or end with punctuation, e.g. "SM (CLARK)".
    return re.compile(rf"(?<!\w)({alternation})(?!\w)", re.IGNORECASE)


def resolve_branch(matched_name: str, branch_map: dict[str, str] | None = None) -> str:
    lookup = {_branch_key(name): sheet for name, sheet in (branch_map or BRANCH_MAP).items()}
    try:
        return lookup[_branch_key(matched_name)]
    except KeyError:
        raise UnknownBranch(matched_name) from None


def detect_branch(
    lines: list[str],
    window: int = DEFAULT_HEADER_WINDOW,
    branch_map: dict[str, str] | None = None,
) -> BranchMatch | None:
    """Find the first known branch name in the receipt header region."""
    branch_map = branch_map or BRANCH_MAP
    pattern = branch_pattern(branch_map)
    for index, line in enumerate(lines[:window]):
        match = pattern.search(line)
        if not match:
            continue
        name = _branch_key(match.group(1))
        sheet = resolve_branch(name, branch_map)
        logger.debug("Branch %s detected on line %d -> sheet %s", name, index + 1, sheet)
        return BranchMatch(name=name, sheet=sheet, line_index=index)
    return None


def require_branch(
    lines: list[str],
    window: int = DEFAULT_HEADER_WINDOW,
    branch_map: dict[str, str] | None = None,
) -> BranchMatch:
    match = detect_branch(lines, window, branch_map)
    if match is None:
        raise BranchNotDetected(f"No known branch name found in the first {window} lines")
    return match
