"""
StructuredLogger - structured event logging for pagequery components.
"""

import logging
import os
import time
import traceback
from pathlib import Path
from typing import Any, Optional
from logging.handlers import RotatingFileHandler

from .formatters import JsonLinesFormatter, ConsoleFormatter

# Cache of loggers by module.component
_loggers: dict[str, "StructuredLogger"] = {}

# Resolved log directory
_log_dir: Optional[Path] = None

# Process-wide defaults, changed through configure()
_settings: dict[str, Any] = {
    "log_dir": None,
    "console": True,
    "file": True,
    "console_level": "INFO",
}


def _get_log_dir() -> Path:
    """Get or create the log directory."""
    global _log_dir
    if _log_dir is None:
        configured = os.environ.get("PAGEQUERY_LOG_DIR") or _settings["log_dir"]
        if configured:
            _log_dir = Path(configured)
        else:
            # Project root is the first parent holding shared/
            current = Path(__file__).resolve()
            for parent in current.parents:
                if (parent / "shared").exists():
                    _log_dir = parent / "logs"
                    break
            else:
                _log_dir = Path("logs")

        _log_dir.mkdir(parents=True, exist_ok=True)
    return _log_dir


def configure(
    log_dir: Optional[str] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
    console_level: Optional[str] = None,
) -> None:
    """
    Change process-wide logging defaults.

    Loggers already handed out are rebuilt so the new settings apply to
    module-level loggers created at import time.
    """
    global _log_dir
    if log_dir is not None:
        _settings["log_dir"] = log_dir
        _log_dir = None
    if console is not None:
        _settings["console"] = console
    if file is not None:
        _settings["file"] = file
    if console_level is not None:
        _settings["console_level"] = console_level.upper()

    for existing in _loggers.values():
        existing.install_handlers()


def get_logger(module: str, component: str, console: Optional[bool] = None) -> "StructuredLogger":
    """
    Get or create a StructuredLogger for a module/component.

    Args:
        module: Module name (pagequery, cli)
        component: Component within module (orchestrator, cache, client)
        console: Force console output on or off (defaults to configure())

    Returns:
        StructuredLogger instance
    """
    key = f"{module}.{component}"
    if key not in _loggers:
        _loggers[key] = StructuredLogger(module, component, console)
    return _loggers[key]


class StructuredLogger:
    """
    Structured logger for pagequery components.

    Writes JSON Lines to <log_dir>/<module>.jsonl and, optionally,
    human-readable lines to the console.
    """

    def __init__(self, module: str, component: str, console: Optional[bool] = None):
        self.module = module
        self.component = component
        self._console = console
        self._logger = logging.getLogger(f"pagequery.{module}.{component}")
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False
        self.install_handlers()

    def install_handlers(self) -> None:
        """(Re)build handlers from the current settings."""
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
            handler.close()

        if _settings["file"]:
            log_file = _get_log_dir() / f"{self.module}.jsonl"
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=20 * 1024 * 1024,  # 20MB
                backupCount=5,
                encoding='utf-8',
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(JsonLinesFormatter())
            self._logger.addHandler(file_handler)

        console = _settings["console"] if self._console is None else self._console
        if console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, _settings["console_level"], logging.INFO))
            console_handler.setFormatter(ConsoleFormatter())
            self._logger.addHandler(console_handler)

    def event(
        self,
        event_type: str,
        level: str = "INFO",
        **data: Any,
    ) -> None:
        """
        Log a structured event.

        Args:
            event_type: Event type identifier (e.g., "pagequery.cache.hit")
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            **data: Event-specific data fields
        """
        log_level = getattr(logging, level.upper(), logging.INFO)

        event_data = {
            "event_type": event_type,
            "log_module": self.module,
            "component": self.component,
            **data,
        }

        self._logger.log(
            log_level,
            event_type,
            extra={
                "event_type": event_type,
                "log_module": self.module,
                "component": self.component,
                "event_data": event_data,
            },
        )

    def debug(self, event_type: str, **data: Any) -> None:
        self.event(event_type, level="DEBUG", **data)

    def info(self, event_type: str, **data: Any) -> None:
        self.event(event_type, level="INFO", **data)

    def warning(self, event_type: str, **data: Any) -> None:
        self.event(event_type, level="WARNING", **data)

    def error(self, event_type: str, **data: Any) -> None:
        self.event(event_type, level="ERROR", **data)

    def exception(
        self,
        error: BaseException,
        event_type: str = "error",
        context: Optional[dict] = None,
    ) -> None:
        """
        Log an exception with its stack trace.

        Args:
            error: The exception to log
            event_type: Event type (default: "error")
            context: Additional context about what was happening
        """
        self.event(
            event_type,
            level="ERROR",
            error_class=type(error).__name__,
            error_message=str(error),
            stack_trace="".join(traceback.format_exception(type(error), error, error.__traceback__)),
            context=context or {},
        )

    # Fetch lifecycle helpers

    def fetch_start(self, request_id: str, source: str, **kwargs: Any) -> float:
        """
        Log the start of a cache or network fetch.

        Returns:
            Start time (for duration calculation)
        """
        self.event(
            f"{self.module}.fetch.start",
            level="DEBUG",
            action="started",
            request_id=request_id,
            source=source,
            **kwargs,
        )
        return time.time()

    def fetch_complete(
        self,
        request_id: str,
        source: str,
        start_time: float,
        item_count: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        """Log a completed fetch with its duration."""
        duration_ms = (time.time() - start_time) * 1000
        event_data = {
            "action": "completed",
            "request_id": request_id,
            "source": source,
            "duration_ms": round(duration_ms, 2),
            **kwargs,
        }
        if item_count is not None:
            event_data["item_count"] = item_count
        self.event(f"{self.module}.fetch.complete", **event_data)

    def fetch_error(
        self,
        request_id: str,
        source: str,
        error: str,
        error_type: str,
        start_time: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        """Log a failed fetch."""
        event_data = {
            "action": "failed",
            "request_id": request_id,
            "source": source,
            "error": error,
            "error_type": error_type,
            **kwargs,
        }
        if start_time:
            event_data["duration_ms"] = round((time.time() - start_time) * 1000, 2)

        self.event(f"{self.module}.fetch.error", level="ERROR", **event_data)
