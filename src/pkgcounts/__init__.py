"""pkgcounts - bounded per-package download counts by major version."""

from .counts import CountData, DropStats
from .errors import (
    InvalidCountDataError,
    InvalidCountsFileError,
    InvalidPackageNameError,
    PkgCountsError,
)
from .ranges import MAX_AGE, MAX_RANGES, DailyCounts, MajorRange, RangeTable
from .store import CountStore, load_store, open_store, save_store
from .versions import bucket_counts, parse_major, version_range_label

__version__ = "0.1.0"

__all__ = [
    "MAX_AGE",
    "MAX_RANGES",
    "CountData",
    "CountStore",
    "DailyCounts",
    "DropStats",
    "InvalidCountDataError",
    "InvalidCountsFileError",
    "InvalidPackageNameError",
    "MajorRange",
    "PkgCountsError",
    "RangeTable",
    "bucket_counts",
    "load_store",
    "open_store",
    "parse_major",
    "save_store",
    "version_range_label",
]
