"""
Structured logging configuration.

- Development: human-readable colored lines with panel context appended
- Production: one JSON object per line (log aggregator compatible)
- Level: LOG_LEVEL env variable; format can be forced with LOG_FORMAT

Lifecycle services pass ``panel_id``, ``status``, ``role`` and
``event_type`` through ``extra=``. ``PanelContextFilter`` derives
``status_name`` from ``status`` so both formatters can show it.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from panel_tracker.models.panel_status import PANEL_STATUS_NAMES

PANEL_CONTEXT_FIELDS = ("panel_id", "status", "status_name", "role", "event_type")


class PanelContextFilter(logging.Filter):
    """Adds ``status_name`` to records carrying a status ordinal."""

    def filter(self, record: logging.LogRecord) -> bool:
        status = getattr(record, "status", None)
        if isinstance(status, int) and 0 <= status < len(PANEL_STATUS_NAMES):
            record.status_name = PANEL_STATUS_NAMES[status]
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        context = {
            key: getattr(record, key)
            for key in PANEL_CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        }
        if context:
            payload["panel"] = context
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter for development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.use_color:
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{clock} {level} {record.name}: {record.getMessage()}"

        tags = []
        event = getattr(record, "event_type", None)
        if event:
            tags.append(event)
        panel_id = getattr(record, "panel_id", None)
        if panel_id:
            tags.append(f"panel={panel_id}")
        status_name = getattr(record, "status_name", None)
        if status_name:
            tags.append(f"status={status_name}")
        if tags:
            line += f" [{' '.join(tags)}]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _pick_format(app) -> str:
    forced = (app.config.get("LOG_FORMAT") or os.getenv("LOG_FORMAT") or "").lower()
    if forced in ("json", "readable"):
        return forced
    if app.config.get("TESTING") or app.config.get("DEBUG"):
        return "readable"
    return "json"


def configure_logging(app):
    """
    Install one stderr handler on the root logger for the Flask app.

    LOG_LEVEL defaults to INFO for JSON output and DEBUG otherwise.
    Existing root handlers are replaced so repeated app creation in tests
    does not duplicate lines.
    """
    fmt = _pick_format(app)
    default_level = "INFO" if fmt == "json" else "DEBUG"
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        JSONFormatter() if fmt == "json" else ReadableFormatter(use_color=sys.stderr.isatty())
    )
    handler.addFilter(PanelContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not app.config.get("TESTING"):
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
