"""Fixed-length daily count arrays and the capacity-bounded range table."""

from collections.abc import Iterable, Iterator, Sequence
from typing import overload

from .errors import InvalidCountDataError
from .logging import get_logger
from .types import MajorRangeRecord, RangeOutput
from .versions import version_range_label

logger = get_logger("ranges")

# -----------------------------------------------------------------------------
# Retention Constants
# -----------------------------------------------------------------------------

# Days of history kept per range (two years plus a leap day)
MAX_AGE = 731

# Maximum number of major-version ranges tracked per package
MAX_RANGES = 5


class DailyCounts(Sequence[int]):
    """Download counts for MAX_AGE consecutive days, newest first.

    Index 0 holds the newest day. The length never changes: there is no
    append/insert/pop, and shifting drops entries off the tail.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[int] | None = None) -> None:
        if values is None:
            self._values = [0] * MAX_AGE
            return

        values = list(values)
        if len(values) != MAX_AGE:
            raise InvalidCountDataError(
                f"Expected {MAX_AGE} daily counts, got {len(values)}"
            )
        for value in values:
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise InvalidCountDataError(f"Invalid daily count: {value!r}")
        self._values = values

    def __len__(self) -> int:
        return MAX_AGE

    @overload
    def __getitem__(self, index: int) -> int: ...

    @overload
    def __getitem__(self, index: slice) -> list[int]: ...

    def __getitem__(self, index: int | slice) -> int | list[int]:
        return self._values[index]

    def __iter__(self) -> Iterator[int]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DailyCounts):
            return self._values == other._values
        if isinstance(other, list):
            return self._values == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"DailyCounts({self._values[:7]}...)"

    def add(self, age: int, count: int) -> None:
        """Add ``count`` to the day ``age`` days before the newest day."""
        self._values[age] += count

    def shift(self, days: int) -> None:
        """Move every count ``days`` positions older, zero-filling the head."""
        if days <= 0:
            return
        if days >= MAX_AGE:
            self._values[:] = [0] * MAX_AGE
        else:
            self._values[:] = [0] * days + self._values[: MAX_AGE - days]

    def total(self, days: int | None = None) -> int:
        """Sum of the newest ``days`` entries (all entries when None)."""
        return sum(self._values[:days])

    def to_list(self) -> list[int]:
        return list(self._values)


class MajorRange:
    """Download history of all versions sharing one major version."""

    __slots__ = ("major_version", "counts")

    def __init__(self, major_version: int, counts: DailyCounts | None = None) -> None:
        self.major_version = major_version
        self.counts = counts if counts is not None else DailyCounts()

    def __repr__(self) -> str:
        return f"MajorRange({self.version_range!r})"

    @property
    def version_range(self) -> str:
        return version_range_label(self.major_version)

    def total(self, days: int | None = None) -> int:
        return self.counts.total(days)

    def output(self) -> RangeOutput:
        return {"version_range": self.version_range, "counts": self.counts.to_list()}

    def to_dict(self) -> MajorRangeRecord:
        return {"major_version": self.major_version, "counts": self.counts.to_list()}

    @classmethod
    def from_dict(cls, record: MajorRangeRecord) -> "MajorRange":
        try:
            major = record["major_version"]
            counts = record["counts"]
        except (KeyError, TypeError) as e:
            raise InvalidCountDataError(f"Malformed range record: {e}") from e
        if not isinstance(major, int) or isinstance(major, bool) or major < 0:
            raise InvalidCountDataError(f"Invalid major version: {major!r}")
        if not isinstance(counts, list):
            raise InvalidCountDataError(f"Counts must be a list, got {type(counts).__name__}")
        return cls(major, DailyCounts(counts))


class RangeTable:
    """Tracked ranges ordered by descending major version.

    Holds at most ``capacity`` ranges. At capacity, a new range evicts the
    lowest tracked range unless it would itself be the lowest, in which case
    it is not created at all.
    """

    def __init__(
        self, ranges: Iterable[MajorRange] | None = None, capacity: int = MAX_RANGES
    ) -> None:
        self.capacity = capacity
        self._ranges: list[MajorRange] = list(ranges or [])

        if len(self._ranges) > capacity:
            raise InvalidCountDataError(
                f"At most {capacity} ranges allowed, got {len(self._ranges)}"
            )
        majors = [r.major_version for r in self._ranges]
        for higher, lower in zip(majors, majors[1:]):
            if higher <= lower:
                raise InvalidCountDataError(
                    f"Ranges must be strictly descending by major version: {majors}"
                )

    def __len__(self) -> int:
        return len(self._ranges)

    def __iter__(self) -> Iterator[MajorRange]:
        return iter(self._ranges)

    def __getitem__(self, index: int) -> MajorRange:
        return self._ranges[index]

    @property
    def is_full(self) -> bool:
        return len(self._ranges) >= self.capacity

    def majors(self) -> list[int]:
        return [r.major_version for r in self._ranges]

    def find(self, major: int) -> MajorRange | None:
        for major_range in self._ranges:
            if major_range.major_version == major:
                return major_range
        return None

    def insert(self, major: int) -> MajorRange | None:
        """Create an all-zero range for ``major`` at its sorted position.

        Returns None, without touching the table, when the table is full and
        ``major`` is below every tracked range.
        """
        existing = self.find(major)
        if existing is not None:
            return existing

        if self.is_full:
            lowest = self._ranges[-1]
            if major < lowest.major_version:
                return None
            self._ranges.pop()
            logger.debug(
                "Evicted range %s to make room for %s",
                lowest.version_range,
                version_range_label(major),
            )

        position = len(self._ranges)
        for i, major_range in enumerate(self._ranges):
            if major_range.major_version < major:
                position = i
                break

        created = MajorRange(major)
        self._ranges.insert(position, created)
        return created

    def add(self, major: int, age: int, count: int) -> bool:
        """Add ``count`` to range ``major`` at ``age``, creating it if needed.

        Returns False when the range could not be created.
        """
        target = self.find(major)
        if target is None:
            target = self.insert(major)
            if target is None:
                return False
        target.counts.add(age, count)
        return True

    def shift(self, days: int) -> None:
        """Shift every range's history by ``days``."""
        for major_range in self._ranges:
            major_range.counts.shift(days)
