"""Tests for pkgcounts - store, input files, exports and CLI."""

import io
import json
import logging
import tempfile
import threading
import time
from datetime import date, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from pkgcounts import (
    MAX_AGE,
    CountData,
    CountStore,
    InvalidCountDataError,
    InvalidCountsFileError,
    InvalidPackageNameError,
    load_store,
    open_store,
    save_store,
)
from pkgcounts.cli import load_daily_counts, main
from pkgcounts.export import export_csv, export_json, export_markdown
from pkgcounts.logging import get_logger, setup_logging
from pkgcounts.store import DEFAULT_STATE_FILE
from pkgcounts.utils import format_count, make_sparkline, validate_package_name

DAY = date(2024, 3, 1)


@pytest.fixture
def temp_state():
    """Path for a temporary state file that does not exist yet."""
    with tempfile.TemporaryDirectory() as tmp:
        yield str(Path(tmp) / "counts.json")


@pytest.fixture
def temp_counts_file():
    """Create a temporary YAML file with two days of counts."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yml", delete=False) as f:
        yaml.dump(
            [
                {"date": "2024-03-01", "counts": {"1.0.0": 5, "2.0.0": 7}},
                {"date": "2024-03-02", "counts": {"2.1.0": 3, "3.0.0-beta": 1}},
            ],
            f,
        )
        path = f.name
    yield path
    Path(path).unlink(missing_ok=True)


@pytest.fixture
def store():
    """A store tracking two packages."""
    s = CountStore()
    s.add_download_counts("pkg-a", {"1.0.0": 10, "2.0.0": 20}, DAY)
    s.add_download_counts("pkg-b", {"0.5.0": 3}, DAY)
    return s


def run_cli(*argv):
    with patch("sys.argv", ["pkgcounts", *argv]):
        main()


class TestUtils:
    """Tests for helper functions."""

    def test_validate_package_name(self):
        """Package names should follow PyPI conventions."""
        assert validate_package_name("requests") == (True, "")
        assert validate_package_name("")[0] is False
        assert validate_package_name("-bad")[0] is False
        assert validate_package_name("a" * 101)[0] is False

    def test_format_count(self):
        """format_count should abbreviate large numbers."""
        assert format_count(123) == "123"
        assert format_count(1234) == "1.2K"
        assert format_count(1_234_567) == "1.2M"

    def test_make_sparkline_draws_oldest_first(self):
        """The newest day should be drawn on the right."""
        line = make_sparkline([9, 0, 0], width=3)
        assert line[-1] == "#"
        assert line[0] == " "

    def test_make_sparkline_flat(self):
        """Equal values should render a flat line of the requested width."""
        assert len(make_sparkline([0] * MAX_AGE)) == 14
        assert make_sparkline([], width=5) == "     "


class TestLogging:
    """Tests for logging configuration."""

    def test_module_loggers_are_children(self):
        """Module loggers should propagate to the package logger."""
        assert get_logger().name == "pkgcounts"
        assert get_logger("counts").name == "pkgcounts.counts"
        assert get_logger("counts").parent is get_logger()

    def test_setup_logging_levels(self):
        """verbose and quiet should select DEBUG and WARNING."""
        assert setup_logging(verbose=True).level == logging.DEBUG
        assert get_logger().level == logging.DEBUG
        assert setup_logging(quiet=True).level == logging.WARNING
        assert setup_logging().level == logging.INFO

    def test_setup_logging_replaces_handler(self):
        """Calling setup_logging twice should leave a single handler."""
        setup_logging()
        setup_logging()
        assert len(get_logger().handlers) == 1

    def test_verbose_reports_dropped_versions(self):
        """Verbose logging should show per-entry drops from the engine."""
        stream = io.StringIO()
        setup_logging(verbose=True, stream=stream)
        try:
            CountData().add_download_counts({"junk": 1}, DAY)
        finally:
            setup_logging()

        assert "DEBUG [pkgcounts.versions]" in stream.getvalue()
        assert "junk" in stream.getvalue()


class TestCountStore:
    """Tests for the multi-package store."""

    def test_tracks_new_packages(self, store):
        """add_download_counts should create count data on first use."""
        assert store.packages() == ["pkg-a", "pkg-b"]
        assert store["pkg-a"].total() == 30
        assert "pkg-c" not in store

    def test_rejects_invalid_package_name(self):
        """Invalid names should raise InvalidPackageNameError."""
        with pytest.raises(InvalidPackageNameError):
            CountStore().add_download_counts("bad name!", {"1.0.0": 1}, DAY)

    def test_remove(self, store):
        """remove should report whether the package was tracked."""
        assert store.remove("pkg-a") is True
        assert store.remove("pkg-a") is False
        assert store.packages() == ["pkg-b"]

    def test_summaries_ordered_by_month(self, store):
        """summaries should list the busiest package first."""
        summaries = store.summaries()
        assert [s["package_name"] for s in summaries] == ["pkg-a", "pkg-b"]
        assert summaries[0]["range_count"] == 2
        assert summaries[0]["newest_date"] == "2024-03-01"
        assert summaries[0]["last_month"] == 30

    def test_ingest_applies_calls_in_order_per_package(self):
        """ingest should apply each package's days and count them."""
        batches = []
        for i in range(10):
            day = DAY + timedelta(days=i)
            batches.append(("pkg-a", {"1.0.0": 1}, day))
            batches.append(("pkg-b", {"2.0.0": 2}, day))

        s = CountStore()
        result = s.ingest(batches, max_workers=2)

        assert result == {"pkg-a": 10, "pkg-b": 10}
        assert s["pkg-a"].newest_date == DAY + timedelta(days=9)
        assert s["pkg-a"].total() == 10
        assert s["pkg-b"].total() == 20

    def test_concurrent_writers_same_package(self):
        """Concurrent calls for one package should not lose updates."""
        s = CountStore()

        def writer():
            for _ in range(200):
                s.add_download_counts("pkg", {"1.0.0": 1}, DAY)

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert s["pkg"].total() == 800

    def test_remove_keeps_writers_serialized(self):
        """Writers queued across a remove should never overlap."""
        s = CountStore()
        s.add_download_counts("pkg", {"1.0.0": 1}, DAY)

        original = CountData.add_download_counts
        guard = threading.Lock()
        inside = threading.Event()
        release = threading.Event()
        active = 0
        peak = 0

        def slow_add(self, counts, date):
            nonlocal active, peak
            with guard:
                active += 1
                peak = max(peak, active)
            inside.set()
            release.wait(timeout=5)
            time.sleep(0.05)
            original(self, counts, date)
            with guard:
                active -= 1

        def writer():
            s.add_download_counts("pkg", {"1.0.0": 1}, DAY)

        with patch.object(CountData, "add_download_counts", slow_add):
            first = threading.Thread(target=writer)
            first.start()
            assert inside.wait(timeout=5)

            remover = threading.Thread(target=s.remove, args=("pkg",))
            queued = threading.Thread(target=writer)
            remover.start()
            queued.start()
            time.sleep(0.05)
            release.set()
            remover.join(timeout=5)

            late = threading.Thread(target=writer)
            late.start()
            for t in (first, queued, late):
                t.join(timeout=5)

        assert peak == 1
        assert "pkg" in s

    def test_round_trip(self, store):
        """from_dict(to_dict()) should reproduce every package."""
        restored = CountStore.from_dict(store.to_dict())
        assert restored.to_dict() == store.to_dict()

    def test_from_dict_names_bad_package(self):
        """Invalid package records should mention the package name."""
        with pytest.raises(InvalidCountDataError, match="pkg-x"):
            CountStore.from_dict({"packages": {"pkg-x": {"newest_date": "nope"}}})

    def test_from_dict_rejects_invalid_package_name(self, store):
        """Restored package names should follow the same rules as new ones."""
        record = store.to_dict()
        record["packages"]["bad name!"] = record["packages"].pop("pkg-a")
        with pytest.raises(InvalidCountDataError, match="bad name!"):
            CountStore.from_dict(record)

    def test_from_dict_requires_packages(self):
        """Records without a packages mapping should be rejected."""
        with pytest.raises(InvalidCountDataError):
            CountStore.from_dict({"other": {}})


class TestStateFile:
    """Tests for loading and saving the JSON state file."""

    def test_missing_file_gives_empty_store(self, temp_state):
        """load_store should return an empty store for a missing file."""
        assert len(load_store(temp_state)) == 0

    def test_save_and_load(self, store, temp_state):
        """A saved store should load back unchanged."""
        save_store(store, temp_state)
        assert load_store(temp_state).to_dict() == store.to_dict()
        assert not Path(temp_state + ".tmp").exists()

    def test_open_store_saves_on_exit(self, temp_state):
        """open_store should persist changes made inside the block."""
        with open_store(temp_state) as s:
            s.add_download_counts("pkg", {"1.0.0": 4}, DAY)

        assert load_store(temp_state)["pkg"].total() == 4

    def test_open_store_does_not_save_on_error(self, temp_state):
        """open_store should leave the file alone if the block raises."""
        with pytest.raises(RuntimeError):
            with open_store(temp_state) as s:
                s.add_download_counts("pkg", {"1.0.0": 4}, DAY)
                raise RuntimeError("boom")

        assert not Path(temp_state).exists()

    def test_invalid_json(self, temp_state):
        """A corrupt state file should raise InvalidCountDataError."""
        Path(temp_state).write_text("{not json")
        with pytest.raises(InvalidCountDataError):
            load_store(temp_state)


class TestLoadDailyCounts:
    """Tests for reading daily counts files."""

    def test_yaml_list(self, temp_counts_file):
        """A YAML list of entries should load in order."""
        days = load_daily_counts(temp_counts_file)
        assert days == [
            (date(2024, 3, 1), {"1.0.0": 5, "2.0.0": 7}),
            (date(2024, 3, 2), {"2.1.0": 3, "3.0.0-beta": 1}),
        ]

    def test_yaml_unquoted_date(self, tmp_path):
        """Unquoted YAML dates should be accepted."""
        path = tmp_path / "day.yaml"
        path.write_text("date: 2024-03-05\ncounts:\n  '1.0.0': 2\n")
        assert load_daily_counts(str(path)) == [(date(2024, 3, 5), {"1.0.0": 2})]

    def test_json_days_object(self, tmp_path):
        """A JSON object with a 'days' list should load."""
        path = tmp_path / "days.json"
        path.write_text(
            json.dumps({"days": [{"date": "2024-03-01", "counts": {"1.0.0": 1}}]})
        )
        assert load_daily_counts(str(path)) == [(date(2024, 3, 1), {"1.0.0": 1})]

    def test_bare_mapping_uses_default_date(self, tmp_path):
        """A bare version mapping should be dated with the default date."""
        path = tmp_path / "day.json"
        path.write_text(json.dumps({"1.0.0": 1, "2.0.0": 2}))
        assert load_daily_counts(str(path), DAY) == [(DAY, {"1.0.0": 1, "2.0.0": 2})]

    def test_bare_mapping_without_date(self, tmp_path):
        """A bare version mapping without a default date should be rejected."""
        path = tmp_path / "day.json"
        path.write_text(json.dumps({"1.0.0": 1}))
        with pytest.raises(InvalidCountsFileError):
            load_daily_counts(str(path))

    def test_bad_date(self, tmp_path):
        """Unparsable dates should be rejected."""
        path = tmp_path / "day.json"
        path.write_text(json.dumps({"date": "yesterday", "counts": {}}))
        with pytest.raises(InvalidCountsFileError):
            load_daily_counts(str(path))

    def test_unsupported_suffix(self, tmp_path):
        """Only YAML and JSON files should be accepted."""
        path = tmp_path / "day.txt"
        path.write_text("1.0.0 5")
        with pytest.raises(InvalidCountsFileError):
            load_daily_counts(str(path))

    def test_file_not_found(self):
        """A missing file should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_daily_counts("/nonexistent/counts.yml")


class TestExport:
    """Tests for export formats."""

    def test_export_csv(self, store):
        """CSV should have a header and one row per range."""
        lines = export_csv(store).strip().splitlines()
        assert lines[0].startswith("package_name,version_range")
        assert len(lines) == 4
        assert lines[1].startswith("pkg-a,>=2.0.0-0 <3.0.0,20,20,20,20")

    def test_export_csv_single_package(self, store):
        """CSV export should honour the package filter."""
        lines = export_csv(store, "pkg-b").strip().splitlines()
        assert len(lines) == 2
        assert "pkg-b" in lines[1]

    def test_export_json(self, store):
        """JSON should carry full-length counts for every range."""
        data = json.loads(export_json(store))
        assert "generated" in data
        pkg_a = data["packages"][0]
        assert pkg_a["name"] == "pkg-a"
        assert pkg_a["newest_date"] == "2024-03-01"
        assert [r["version_range"] for r in pkg_a["ranges"]] == [
            ">=2.0.0-0 <3.0.0",
            ">=1.0.0-0 <2.0.0",
        ]
        assert len(pkg_a["ranges"][0]["counts"]) == MAX_AGE

    def test_export_markdown(self, store):
        """Markdown should produce a table row per range."""
        lines = export_markdown(store).splitlines()
        assert lines[0].startswith("| Package")
        assert len(lines) == 5
        assert "`>=0.0.0-0 <1.0.0`" in lines[-1]


class TestCLI:
    """Tests for CLI argument parsing and commands."""

    def test_default_state_file(self):
        """The default state file should be counts.json."""
        assert DEFAULT_STATE_FILE == "counts.json"

    def test_main_no_command_shows_help(self, capsys):
        """main() with no command should print help."""
        run_cli()
        captured = capsys.readouterr()
        assert "usage:" in captured.out.lower()

    def test_add_command(self, temp_state, temp_counts_file, capsys):
        """add should apply every day in the file and save the state."""
        run_cli("-s", temp_state, "add", "pkg-a", temp_counts_file)

        captured = capsys.readouterr()
        assert "Added 2 day(s)" in captured.out

        data = load_store(temp_state)["pkg-a"]
        assert data.newest_date == date(2024, 3, 2)
        assert [r.major_version for r in data.major_counts] == [3, 2, 1]
        assert data.major_counts[1].counts[:2] == [3, 7]

    def test_add_reports_skipped_entries(self, temp_state, tmp_path, capsys):
        """add should report dropped versions."""
        path = tmp_path / "day.json"
        path.write_text(json.dumps({"1.0.0": 1, "junk": 2}))
        run_cli("-s", temp_state, "add", "pkg-a", str(path), "--date", "2024-03-01")

        captured = capsys.readouterr()
        assert "1 malformed versions" in captured.out

    def test_add_invalid_name(self, temp_state, temp_counts_file, capsys):
        """add should refuse invalid package names without writing state."""
        run_cli("-s", temp_state, "add", "bad name", temp_counts_file)

        captured = capsys.readouterr()
        assert "Invalid package name" in captured.out
        assert not Path(temp_state).exists()

    def test_add_missing_file(self, temp_state, capsys):
        """add should report a missing counts file."""
        run_cli("-s", temp_state, "add", "pkg-a", "/nonexistent/counts.yml")

        captured = capsys.readouterr()
        assert "File not found" in captured.out

    def test_add_invalid_date(self, temp_state, temp_counts_file, capsys):
        """add should reject a malformed --date."""
        run_cli("-s", temp_state, "add", "pkg-a", temp_counts_file, "--date", "03/01/2024")

        captured = capsys.readouterr()
        assert "Invalid date" in captured.out

    def test_list_empty(self, temp_state, capsys):
        """list should say when nothing is tracked."""
        run_cli("-s", temp_state, "list")

        captured = capsys.readouterr()
        assert "No packages are being tracked" in captured.out

    def test_list_with_data(self, store, temp_state, capsys):
        """list should show every tracked package."""
        save_store(store, temp_state)
        run_cli("-s", temp_state, "list")

        captured = capsys.readouterr()
        assert "pkg-a" in captured.out
        assert "pkg-b" in captured.out

    def test_show(self, store, temp_state, capsys):
        """show should print a row per version range."""
        save_store(store, temp_state)
        run_cli("-s", temp_state, "show", "pkg-a")

        captured = capsys.readouterr()
        assert ">=2.0.0-0 <3.0.0" in captured.out
        assert ">=1.0.0-0 <2.0.0" in captured.out

    def test_show_unknown_package(self, temp_state, capsys):
        """show should report unknown packages."""
        run_cli("-s", temp_state, "show", "nope")

        captured = capsys.readouterr()
        assert "No data found" in captured.out

    def test_history(self, store, temp_state, capsys):
        """history should print one row per day, newest last."""
        save_store(store, temp_state)
        run_cli("-s", temp_state, "history", "pkg-a", "-n", "3")

        captured = capsys.readouterr()
        lines = captured.out.strip().splitlines()
        assert "2.x" in captured.out
        assert lines[-1].startswith("2024-03-01")
        assert "2024-02-28" in captured.out

    def test_remove(self, store, temp_state, capsys):
        """remove should drop the package from the state file."""
        save_store(store, temp_state)
        run_cli("-s", temp_state, "remove", "pkg-a")

        captured = capsys.readouterr()
        assert "Removed 'pkg-a'" in captured.out
        assert load_store(temp_state).packages() == ["pkg-b"]

    def test_export_to_file(self, store, temp_state, tmp_path, capsys):
        """export should write the chosen format to a file."""
        save_store(store, temp_state)
        output = tmp_path / "out.md"
        run_cli("-s", temp_state, "export", "-f", "md", "-o", str(output))

        assert "Exported to" in capsys.readouterr().out
        assert output.read_text().startswith("| Package")

    def test_export_unknown_package(self, store, temp_state, capsys):
        """export should report an unknown package."""
        save_store(store, temp_state)
        run_cli("-s", temp_state, "export", "nope")

        assert "No data found" in capsys.readouterr().out

    def test_corrupt_state_exits(self, temp_state, capsys):
        """A corrupt state file should print an error and exit non-zero."""
        Path(temp_state).write_text("[]")
        with pytest.raises(SystemExit) as exc:
            run_cli("-s", temp_state, "list")

        assert exc.value.code == 1
        assert "Error:" in capsys.readouterr().out
