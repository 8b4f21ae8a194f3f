"""Major-version bucketing of per-version download counts."""

import re
from collections.abc import Mapping

from .logging import get_logger

logger = get_logger("versions")

# -----------------------------------------------------------------------------
# Version Parsing Constants
# -----------------------------------------------------------------------------

# Semantic version: MAJOR.MINOR.PATCH[-prerelease][+build]
# - Numeric components may carry leading zeros (pub accepts them)
# - Pre-release and build identifiers are dot-separated [0-9A-Za-z-] runs
_SEMVER_PATTERN = re.compile(
    r"(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
)


def parse_major(version: str) -> int | None:
    """Return the major component of a semantic version string.

    Returns None when the string is not a valid semantic version.
    """
    if not isinstance(version, str):
        return None
    match = _SEMVER_PATTERN.fullmatch(version)
    if match is None:
        return None
    return int(match.group("major"))


def version_range_label(major: int) -> str:
    """Return the version constraint covering every release of a major version.

    The ``-0`` lower bound includes pre-releases of ``major`` itself,
    e.g. 2 -> ">=2.0.0-0 <3.0.0".
    """
    return f">={major}.0.0-0 <{major + 1}.0.0"


def _is_valid_count(count: object) -> bool:
    return isinstance(count, int) and not isinstance(count, bool) and count >= 0


def bucket_counts(counts: Mapping[str, int]) -> tuple[dict[int, int], list[str]]:
    """Sum per-version download counts into major-version buckets.

    Args:
        counts: Mapping of version string to download count for one day.

    Returns:
        Tuple of (sums keyed by major version, skipped version strings).
        Entries are skipped when the version does not parse or the count is
        not a non-negative integer.
    """
    sums: dict[int, int] = {}
    skipped: list[str] = []

    for version, count in counts.items():
        major = parse_major(version)
        if major is None or not _is_valid_count(count):
            logger.debug("Skipping malformed entry %r: %r", version, count)
            skipped.append(version)
            continue
        sums[major] = sums.get(major, 0) + count

    return sums, skipped
