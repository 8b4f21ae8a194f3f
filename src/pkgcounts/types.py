"""Type definitions for pkgcounts using TypedDict for known structures."""

from typing import TypedDict


class MajorRangeRecord(TypedDict):
    """Serialized form of one tracked major-version range."""

    major_version: int
    counts: list[int]


class CountDataRecord(TypedDict):
    """Serialized form of a package's count data."""

    newest_date: str | None
    ranges: list[MajorRangeRecord]


class RangeOutput(TypedDict):
    """Output representation of one range, read by ranking consumers."""

    version_range: str
    counts: list[int]


class RangeSummary(TypedDict):
    """Recent totals for one range."""

    version_range: str
    last_day: int
    last_week: int
    last_month: int
    total: int


class PackageSummary(TypedDict):
    """Recent totals for one tracked package."""

    package_name: str
    newest_date: str | None
    range_count: int
    last_day: int
    last_week: int
    last_month: int
    total: int


class StoreRecord(TypedDict):
    """Serialized form of a whole CountStore."""

    packages: dict[str, CountDataRecord]
