"""Unit tests for the rolling debug log."""

import re
from pathlib import Path

from structlog.testing import capture_logs

from aspos_sync.logging_setup import DebugLogFile

LINE = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\]\[(\w+)\] (.*)$")


class TestDebugLogFile:
    def test_line_format(self, tmp_path: Path) -> None:
        log = DebugLogFile(tmp_path / "debug.log")
        log.write("info", "Stage finished", {"stage": "stores", "processed": 3})

        match = LINE.match(log.read().rstrip("\n"))
        assert match is not None
        assert match.group(1) == "INFO"
        assert match.group(2) == "Stage finished stage=stores processed=3"

    def test_processor_passes_event_through(self, tmp_path: Path) -> None:
        log = DebugLogFile(tmp_path / "debug.log")
        event = {
            "event": "Stage failed",
            "level": "error",
            "timestamp": "2026-10-01T09:00:00",
            "error_type": "AuthError",
        }

        assert log(None, "error", event) is event

        content = log.read()
        assert "[ERROR] Stage failed error_type=AuthError" in content
        assert "2026-10-01T09:00:00" not in content

    def test_level_falls_back_to_method_name(self, tmp_path: Path) -> None:
        log = DebugLogFile(tmp_path / "debug.log")
        log(None, "warning", {"event": "Lease acquired without Redis"})
        assert "[WARNING] Lease acquired without Redis\n" in log.read()

    def test_clear(self, tmp_path: Path) -> None:
        log = DebugLogFile(tmp_path / "debug.log")
        log.write("info", "one")
        log.clear()
        assert log.read() == ""

    def test_read_missing_file(self, tmp_path: Path) -> None:
        assert DebugLogFile(tmp_path / "nope" / "debug.log").read() == ""

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        log = DebugLogFile(tmp_path / "var" / "logs" / "debug.log")
        log.write("debug", "hello")
        assert (tmp_path / "var" / "logs" / "debug.log").exists()

    def test_trims_to_newest_lines(self, tmp_path: Path) -> None:
        log = DebugLogFile(tmp_path / "debug.log", max_bytes=2000)
        for i in range(100):
            log.write("info", f"line {i:03d}")

        content = log.read()
        lines = content.splitlines()
        assert (tmp_path / "debug.log").stat().st_size <= 2000
        assert lines[-1].endswith("line 099")
        assert "line 000" not in content
        assert all(LINE.match(line) for line in lines)

    def test_unwritable_file_warns_once(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        log = DebugLogFile(blocker / "debug.log")

        with capture_logs() as captured:
            log.write("info", "first")
            log.write("info", "second")

        warnings = [e for e in captured if e["event"] == "Debug log file not writable"]
        assert len(warnings) == 1
        assert warnings[0]["log_level"] == "warning"
        assert warnings[0]["path"] == str(blocker / "debug.log")
