"""Utility functions for pkgcounts."""

import re
from datetime import date

# -----------------------------------------------------------------------------
# Package Validation Constants
# -----------------------------------------------------------------------------

# PyPI package name pattern (PEP 508 compatible)
# - Must start and end with alphanumeric
# - Can contain alphanumeric, hyphens, underscores, and periods
# - Max 100 characters
_PACKAGE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9._-]*[a-zA-Z0-9])?$")
_MAX_PACKAGE_NAME_LENGTH = 100

# -----------------------------------------------------------------------------
# Sparkline Constants
# -----------------------------------------------------------------------------

# Default number of days shown in a sparkline
SPARKLINE_WIDTH = 14

# Characters used to represent values in sparklines (low to high)
SPARKLINE_CHARS = " _.,:-=+*#"


def validate_package_name(name: str) -> tuple[bool, str]:
    """Validate that a package name follows PyPI naming conventions.

    Returns:
        Tuple of (is_valid, error_message). If valid, error_message is empty.
    """
    if not name:
        return False, "Package name cannot be empty"

    if len(name) > _MAX_PACKAGE_NAME_LENGTH:
        return False, f"Package name exceeds {_MAX_PACKAGE_NAME_LENGTH} characters"

    if not _PACKAGE_NAME_PATTERN.match(name):
        return False, (
            "Package name must start and end with alphanumeric characters "
            "and contain only letters, numbers, hyphens, underscores, or periods"
        )

    return True, ""


def parse_day(value: str) -> date:
    """Parse a YYYY-MM-DD string into a date.

    Raises:
        ValueError: If the string is not an ISO calendar date.
    """
    return date.fromisoformat(value.strip())


def format_count(count: int) -> str:
    """Format a download count compactly.

    Examples: 1234 -> "1.2K", 1234567 -> "1.2M", 123 -> "123"
    """
    if count >= 1_000_000_000:
        return f"{count / 1_000_000_000:.1f}B"
    elif count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    elif count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def make_sparkline(daily_counts: list[int], width: int = SPARKLINE_WIDTH) -> str:
    """Generate an ASCII sparkline from newest-first daily counts.

    The newest ``width`` days are drawn oldest to newest, left to right.
    """
    if not daily_counts:
        return " " * width

    values = list(reversed(daily_counts[:width]))

    # Left-pad days before the history starts
    if len(values) < width:
        values = [0] * (width - len(values)) + values

    min_val = min(values)
    max_val = max(values)

    if max_val == min_val:
        mid_idx = len(SPARKLINE_CHARS) // 2
        return SPARKLINE_CHARS[mid_idx] * width

    return "".join(
        SPARKLINE_CHARS[int((v - min_val) / (max_val - min_val) * (len(SPARKLINE_CHARS) - 1))]
        for v in values
    )
