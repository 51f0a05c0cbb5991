"""structlog configuration and the rolling plain-text debug log."""

from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from aspos_sync.config import Settings, get_settings

_SKIP_KEYS = {"event", "level", "timestamp", "exc_info", "stack_info"}


class DebugLogFile:
    """
    structlog processor appending ``[timestamp][LEVEL] message`` lines to a file.

    Once the file grows past max_bytes only its newest half is kept.
    """

    def __init__(self, path: str | Path, max_bytes: int = 5 * 1024 * 1024):
        self.path = Path(path)
        self.max_bytes = max_bytes
        self._warned = False

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        self.write(
            event_dict.get("level", method_name),
            str(event_dict.get("event", "")),
            {k: v for k, v in event_dict.items() if k not in _SKIP_KEYS},
        )
        return event_dict

    def format_line(self, level: str, message: str, context: dict[str, Any]) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        extras = " ".join(f"{key}={value}" for key, value in context.items())
        line = f"[{timestamp}][{level.upper()}] {message}"
        return f"{line} {extras}\n" if extras else f"{line}\n"

    def write(self, level: str, message: str, context: dict[str, Any] | None = None) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(self.format_line(level, message, context or {}))
            if self.path.stat().st_size > self.max_bytes:
                self._trim()
        except OSError as e:
            if not self._warned:
                # Set first: the warning passes through this processor again
                self._warned = True
                structlog.get_logger().warning(
                    "Debug log file not writable", path=str(self.path), error=str(e)
                )

    def _trim(self) -> None:
        data = self.path.read_bytes()
        tail = data[len(data) // 2 :]
        newline = tail.find(b"\n")
        self.path.write_bytes(tail[newline + 1 :] if newline >= 0 else tail)

    def read(self) -> str:
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")

    def clear(self) -> None:
        if self.path.exists():
            self.path.write_text("", encoding="utf-8")


_debug_log: DebugLogFile | None = None


def get_debug_log(settings: Settings | None = None) -> DebugLogFile:
    """Get or create the process-wide debug log file."""
    global _debug_log
    if _debug_log is None:
        settings = settings or get_settings()
        _debug_log = DebugLogFile(settings.debug_log_path, settings.debug_log_max_bytes)
    return _debug_log


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog for the API and the workers."""
    settings = settings or get_settings()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            get_debug_log(settings),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
