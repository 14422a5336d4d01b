"""
Structured JSON logging.

Every record becomes one JSON line. Fields passed through `extra=` land at
the top level, and records emitted while a request is in flight carry its
`request_id` without each call site passing it along. This matters for
streamed chat answers, which keep logging after the handler has returned.
"""

import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

from coursetutor.config import LOG_DIR, LOG_LEVEL


_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)

# Attributes every LogRecord has; anything else came from `extra=`
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}

_NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "openai", "posthog")


def bind_request_id(request_id: str) -> contextvars.Token:
    return _request_id.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    _request_id.reset(token)


def current_request_id() -> Optional[str]:
    return _request_id.get()


class RequestContextFilter(logging.Filter):
    """Stamps the in-flight request id onto records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:

        if getattr(record, "request_id", None) is None:
            request_id = _request_id.get()
            if request_id is not None:
                record.request_id = request_id

        return True


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:

        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key, value in vars(record).items():

            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue

            entry[f"extra_{key}" if key in entry else key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Embeddings, datetimes and exceptions in `extra` degrade to str()
        return json.dumps(entry, default=str)


def _handler(stream_or_path) -> logging.Handler:

    if isinstance(stream_or_path, str):
        handler = logging.FileHandler(stream_or_path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(stream_or_path)

    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestContextFilter())

    return handler


def setup_logging(log_level: str = LOG_LEVEL, log_dir: Optional[str] = LOG_DIR):
    """
    Route the root logger to stdout and, when `log_dir` is set, to
    `<log_dir>/app.log`. Safe to call more than once.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(_handler(sys.stdout))

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        root_logger.addHandler(_handler(os.path.join(log_dir, "app.log")))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
