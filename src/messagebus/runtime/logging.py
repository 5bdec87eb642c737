"""Logging setup and the logger protocol accepted by the client."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Dict, Protocol

import orjson

TEXT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


class Logger(Protocol):
    """Minimal logger protocol accepted by the message bus client."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    ``extra`` fields are merged into the object. Records emitted from a named
    asyncio task (dispatch tasks are named ``messagebus-dispatch:<pattern>``)
    carry the task name under ``task``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        task_name = getattr(record, "taskName", None)
        if task_name:
            payload["task"] = task_name

        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info

        return orjson.dumps(payload, default=repr).decode()


def configure_logging(
    level: str = "INFO", *, name: str = "messagebus", json: bool = True
) -> logging.Logger:
    """Install a single stream handler on the root logger.

    With ``json=False`` records are written as plain text, which reads better
    when running the examples in a terminal.
    """

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if json else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)
    root.setLevel(level.upper())
    return logging.getLogger(name)


__all__ = ["Logger", "JsonFormatter", "TEXT_FORMAT", "configure_logging"]
