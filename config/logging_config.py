"""
Logging setup for the portfolio decision core.

LOG_LEVEL picks the root level (default INFO); LOG_JSON=1 switches to one
JSON object per line. Python warnings (numpy/pandas RuntimeWarnings from
degenerate series) are routed through logging as well.

Never log personal data: no ages, incomes, balances tied to a user.
Log counts, durations and classifications only.
"""
import json
import logging
import os
import sys
from typing import Any, Optional

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# attributes every LogRecord carries; anything else came in through `extra=`
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_QUIET_LOGGERS = ("uvicorn.access", "py.warnings")


def _encode(obj: Any):
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "tolist"):  # numpy scalars / arrays
        return obj.tolist()
    return str(obj)


class JsonFormatter(logging.Formatter):
    """`extra=` fields land at the top level next to ts/level/logger/message."""

    def format(self, record: logging.LogRecord) -> str:
        doc = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        doc.update(
            (k, v)
            for k, v in vars(record).items()
            if k not in _STANDARD_ATTRS and k not in doc and v is not None
        )
        if record.exc_info:
            doc["exception"] = self.formatException(record.exc_info)
        return json.dumps(doc, default=_encode)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def configure_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> logging.Handler:
    """
    (Re)configure the root logger with a single stdout handler.
    Arguments override LOG_LEVEL / LOG_JSON. Returns the installed handler.
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(level_name)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    use_json = _env_flag("LOG_JSON") if json_logs is None else json_logs

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if use_json else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(resolved)

    logging.captureWarnings(True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    return handler
