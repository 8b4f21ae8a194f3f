"""Per-package download count aggregation by major version.

``CountData`` keeps, for one package, up to ``MAX_RANGES`` major-version
ranges with ``MAX_AGE`` days of daily download counts each. All ranges share
one time axis: index 0 of every range is ``newest_date``.

Counts are added one day at a time with ``add_download_counts``. Days may
arrive out of order, and adding the same day twice accumulates. Input that
cannot be recorded is dropped without raising:

- entries whose version is not a semantic version (or whose count is not a
  non-negative integer),
- whole calls dated ``MAX_AGE`` days or more before ``newest_date``,
- buckets below every tracked range when the table is already full.

Each drop increments a counter on ``CountData.drops`` and is logged.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta

from .errors import InvalidCountDataError
from .logging import get_logger
from .ranges import MAX_AGE, MAX_RANGES, MajorRange, RangeTable
from .types import CountDataRecord, RangeOutput, RangeSummary
from .versions import bucket_counts, version_range_label

logger = get_logger("counts")

# Windows used for recent-download summaries (in days)
LAST_WEEK_DAYS = 7
LAST_MONTH_DAYS = 30


class DropStats:
    """Counters for caller data that was silently discarded."""

    __slots__ = ("malformed_versions", "stale_calls", "floor_drops")

    def __init__(self) -> None:
        self.malformed_versions = 0
        self.stale_calls = 0
        self.floor_drops = 0

    def __repr__(self) -> str:
        return (
            f"DropStats(malformed_versions={self.malformed_versions}, "
            f"stale_calls={self.stale_calls}, floor_drops={self.floor_drops})"
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "malformed_versions": self.malformed_versions,
            "stale_calls": self.stale_calls,
            "floor_drops": self.floor_drops,
        }


def _as_date(value: date) -> date:
    # datetime is a date subclass but cannot be subtracted from a plain date
    if isinstance(value, datetime):
        return value.date()
    return value


class CountData:
    """Download counts of one package, bucketed by major version.

    Not thread-safe: a single owner must serialize all calls for a package
    (see ``pkgcounts.store.CountStore``).
    """

    max_age = MAX_AGE
    max_ranges = MAX_RANGES

    def __init__(
        self,
        newest_date: date | None = None,
        ranges: Iterable[MajorRange] | None = None,
    ) -> None:
        self.newest_date = newest_date
        self.ranges = RangeTable(ranges)
        self.drops = DropStats()

    def __repr__(self) -> str:
        return f"CountData(newest_date={self.newest_date!r}, ranges={self.ranges.majors()})"

    @property
    def major_counts(self) -> list[MajorRange]:
        """Tracked ranges, highest major version first."""
        return list(self.ranges)

    def add_download_counts(self, counts: Mapping[str, int], date: date) -> None:
        """Add one day of per-version download counts.

        Args:
            counts: Mapping of version string to number of downloads on ``date``.
            date: The calendar day the downloads happened.
        """
        day = _as_date(date)
        sums, skipped = bucket_counts(counts)
        self.drops.malformed_versions += len(skipped)

        age = self._advance_to(day)
        if age is None:
            self.drops.stale_calls += 1
            logger.info(
                "Dropping counts for %s: more than %d days before %s",
                day,
                MAX_AGE - 1,
                self.newest_date,
            )
            return

        # Ascending order: each at-capacity insertion evicts the current lowest
        for major in sorted(sums):
            if not self.ranges.add(major, age, sums[major]):
                self.drops.floor_drops += 1
                logger.debug(
                    "Dropping %d downloads for %s: below all %d tracked ranges",
                    sums[major],
                    version_range_label(major),
                    len(self.ranges),
                )

    def _advance_to(self, day: date) -> int | None:
        """Move the time axis forward to ``day`` if it is newer.

        Returns the index ``day`` maps to, or None when it falls outside the
        retention window.
        """
        if self.newest_date is None:
            self.newest_date = day
            return 0

        delta = (day - self.newest_date).days
        if delta > 0:
            self.ranges.shift(delta)
            self.newest_date = day
            return 0

        age = -delta
        if age >= MAX_AGE:
            return None
        return age

    def date_for_age(self, age: int) -> date | None:
        """Calendar date stored at index ``age``, or None before the first call."""
        if self.newest_date is None:
            return None
        return self.newest_date - timedelta(days=age)

    def total(self, days: int | None = None) -> int:
        """Downloads across all ranges over the newest ``days`` days."""
        return sum(r.total(days) for r in self.ranges)

    def daily_totals(self, days: int | None = None) -> list[int]:
        """Per-day downloads across all ranges, newest first."""
        length = MAX_AGE if days is None else min(days, MAX_AGE)
        totals = [0] * length
        for major_range in self.ranges:
            for i, count in enumerate(major_range.counts[:length]):
                totals[i] += count
        return totals

    def ranges_output(self) -> list[RangeOutput]:
        """Ranges as ``{version_range, counts}`` records, highest major first."""
        return [r.output() for r in self.ranges]

    def summary(self) -> list[RangeSummary]:
        """Recent totals for every tracked range, highest major first."""
        return [
            {
                "version_range": r.version_range,
                "last_day": r.total(1),
                "last_week": r.total(LAST_WEEK_DAYS),
                "last_month": r.total(LAST_MONTH_DAYS),
                "total": r.total(),
            }
            for r in self.ranges
        ]

    def to_dict(self) -> CountDataRecord:
        return {
            "newest_date": self.newest_date.isoformat() if self.newest_date else None,
            "ranges": [r.to_dict() for r in self.ranges],
        }

    @classmethod
    def from_dict(cls, record: CountDataRecord) -> "CountData":
        """Restore count data serialized with ``to_dict``.

        Raises:
            InvalidCountDataError: If the record breaks an invariant.
        """
        if not isinstance(record, dict):
            raise InvalidCountDataError(
                f"Expected a mapping, got {type(record).__name__}"
            )

        raw_date = record.get("newest_date")
        raw_ranges = record.get("ranges", [])
        if not isinstance(raw_ranges, list):
            raise InvalidCountDataError("'ranges' must be a list")

        newest_date: date | None = None
        if raw_date is not None:
            try:
                newest_date = date.fromisoformat(raw_date)
            except (TypeError, ValueError) as e:
                raise InvalidCountDataError(f"Invalid newest_date: {raw_date!r}") from e
        elif raw_ranges:
            raise InvalidCountDataError("Ranges present without a newest_date")

        ranges = [MajorRange.from_dict(r) for r in raw_ranges]
        return cls(newest_date, ranges)
