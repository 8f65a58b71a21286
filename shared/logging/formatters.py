"""
JSON Lines and console formatters for query logging.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from .context import get_correlation_id, get_run_id, get_query_name


class JsonLinesFormatter(logging.Formatter):
    """
    Formats log records as JSON Lines (one JSON object per line).

    Each log entry includes:
    - timestamp: ISO 8601 with microseconds in UTC
    - level: Log level name
    - event_type: Dotted event identifier (e.g. "pagequery.cache.hit")
    - module / component: Emitting logger
    - correlation_id: Tracing ID for the session
    - run_id / query: Present while a run or query is being resolved
    - Additional event-specific fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "event_type": getattr(record, 'event_type', 'log'),
            "module": getattr(record, 'log_module', record.module),
            "component": getattr(record, 'component', record.funcName),
            "correlation_id": get_correlation_id(),
        }

        run_id = get_run_id()
        if run_id:
            log_entry["run_id"] = run_id

        query_name = get_query_name()
        if query_name:
            log_entry["query"] = query_name

        if hasattr(record, 'event_data'):
            log_entry.update(record.event_data)

        message = record.getMessage()
        if message and message != log_entry.get("event_type"):
            log_entry["message"] = message

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=self._json_serializer)

    def _json_serializer(self, obj: Any) -> Any:
        """Handle non-serializable objects."""
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset, tuple)):
            return list(obj)
        if hasattr(obj, '__dict__'):
            return str(obj)
        return repr(obj)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter.

    Format: timestamp [LEVEL] [module.component] event_type (query) key=value ...
    """

    # Fields already shown in the prefix
    _HIDDEN = {"event_type", "log_module", "component"}

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        module = getattr(record, 'log_module', record.module)
        component = getattr(record, 'component', '')
        event_type = getattr(record, 'event_type', '')

        prefix = f"{timestamp} [{record.levelname}]"
        if module and component:
            prefix += f" [{module}.{component}]"

        message = record.getMessage()
        if event_type and event_type != message:
            message = f"{event_type}: {message}" if message else event_type

        query_name = get_query_name()
        if query_name:
            message += f" ({query_name})"

        data = getattr(record, 'event_data', {})
        details = " ".join(
            f"{k}={v}" for k, v in data.items() if k not in self._HIDDEN
        )
        if details:
            message += f" {details}"

        return f"{prefix} {message}"
