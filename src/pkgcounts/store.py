"""Multi-package registry of CountData with per-package locking."""

import json
import threading
from collections.abc import Iterable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from datetime import date
from json import JSONDecodeError
from pathlib import Path

from .counts import LAST_MONTH_DAYS, LAST_WEEK_DAYS, CountData
from .errors import InvalidCountDataError, InvalidPackageNameError
from .logging import get_logger
from .types import PackageSummary, StoreRecord
from .utils import validate_package_name

logger = get_logger("store")

# Default number of parallel workers for ingesting independent packages
DEFAULT_MAX_WORKERS = 5

DEFAULT_STATE_FILE = "counts.json"


class CountStore:
    """Count data for many packages.

    Calls for the same package are serialized through a per-package lock, so
    the store may be shared between threads. Different packages never
    contend with each other.
    """

    def __init__(self, packages: Mapping[str, CountData] | None = None) -> None:
        self._packages: dict[str, CountData] = dict(packages or {})
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def __len__(self) -> int:
        return len(self._packages)

    def __getitem__(self, name: str) -> CountData:
        return self._packages[name]

    def _lock_for(self, name: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            return lock

    def packages(self) -> list[str]:
        """Tracked package names, sorted."""
        return sorted(self._packages)

    def get(self, name: str) -> CountData | None:
        return self._packages.get(name)

    def add_download_counts(
        self, name: str, counts: Mapping[str, int], date: date
    ) -> CountData:
        """Add one day of counts for ``name``, tracking it if new.

        Raises:
            InvalidPackageNameError: If ``name`` is not a valid package name.
        """
        is_valid, error = validate_package_name(name)
        if not is_valid:
            raise InvalidPackageNameError(f"{name!r}: {error}")

        with self._lock_for(name):
            with self._registry_lock:
                data = self._packages.get(name)
                if data is None:
                    data = self._packages[name] = CountData()
            data.add_download_counts(counts, date)
        return data

    def remove(self, name: str) -> bool:
        """Stop tracking ``name``. Returns False if it was not tracked.

        The package lock is kept: writers already waiting on it must stay
        serialized with writers that arrive after the removal.
        """
        with self._lock_for(name):
            with self._registry_lock:
                removed = self._packages.pop(name, None) is not None
        return removed

    def ingest(
        self,
        batches: Iterable[tuple[str, Mapping[str, int], date]],
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> dict[str, int]:
        """Apply many ``(package, counts, date)`` calls in parallel.

        Calls for one package are applied in the given order by a single
        worker; independent packages are processed concurrently.

        Args:
            batches: Daily counts to apply.
            max_workers: Maximum number of packages processed at once.

        Returns:
            Dict mapping package names to the number of calls applied.
        """
        by_package: dict[str, list[tuple[Mapping[str, int], date]]] = {}
        for name, counts, day in batches:
            by_package.setdefault(name, []).append((counts, day))

        def apply_all(name: str) -> int:
            for counts, day in by_package[name]:
                self.add_download_counts(name, counts, day)
            return len(by_package[name])

        results: dict[str, int] = {}
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(apply_all, name): name for name in by_package}

            for future in as_completed(futures):
                name = futures[future]
                results[name] = future.result()

        return results

    def summaries(self) -> list[PackageSummary]:
        """Recent totals per package, ordered by last-month downloads DESC."""
        rows: list[PackageSummary] = []
        for name in self.packages():
            data = self._packages[name]
            rows.append(
                {
                    "package_name": name,
                    "newest_date": data.newest_date.isoformat() if data.newest_date else None,
                    "range_count": len(data.ranges),
                    "last_day": data.total(1),
                    "last_week": data.total(LAST_WEEK_DAYS),
                    "last_month": data.total(LAST_MONTH_DAYS),
                    "total": data.total(),
                }
            )
        return sorted(rows, key=lambda r: r["last_month"], reverse=True)

    def to_dict(self) -> StoreRecord:
        return {
            "packages": {name: self._packages[name].to_dict() for name in self.packages()}
        }

    @classmethod
    def from_dict(cls, record: StoreRecord) -> "CountStore":
        """Restore a store serialized with ``to_dict``.

        Raises:
            InvalidCountDataError: If any package record is invalid.
        """
        packages = record.get("packages") if isinstance(record, dict) else None
        if not isinstance(packages, dict):
            raise InvalidCountDataError("Expected an object with a 'packages' mapping")

        restored: dict[str, CountData] = {}
        for name, data in packages.items():
            is_valid, error = validate_package_name(name)
            if not is_valid:
                raise InvalidCountDataError(f"Package {name!r}: {error}")
            try:
                restored[name] = CountData.from_dict(data)
            except InvalidCountDataError as e:
                raise InvalidCountDataError(f"Package {name!r}: {e}") from e
        return cls(restored)


def load_store(path: str) -> CountStore:
    """Load a store from a JSON state file; a missing file gives an empty store."""
    state_path = Path(path)
    if not state_path.exists():
        logger.debug("No state file at %s, starting empty", path)
        return CountStore()

    try:
        with open(state_path) as f:
            record = json.load(f)
    except JSONDecodeError as e:
        raise InvalidCountDataError(f"{path}: not valid JSON ({e})") from e
    return CountStore.from_dict(record)


def save_store(store: CountStore, path: str) -> None:
    """Write a store to a JSON state file."""
    state_path = Path(path)
    tmp_path = state_path.with_name(state_path.name + ".tmp")
    with open(tmp_path, "w") as f:
        json.dump(store.to_dict(), f, separators=(",", ":"))
    tmp_path.replace(state_path)
    logger.debug("Saved %d packages to %s", len(store), path)


@contextmanager
def open_store(path: str = DEFAULT_STATE_FILE) -> Iterator[CountStore]:
    """Context manager that loads a store and saves it back on success."""
    store = load_store(path)
    yield store
    save_store(store, path)
