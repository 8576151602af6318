import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from pythonjsonlogger import jsonlogger

from hrflow.core.config import settings

# Correlation id of the HTTP request being served, set by RequestIdMiddleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
# Name of the engine operation currently running, set by service_operation
operation_var: ContextVar[str] = ContextVar("operation", default="")


@contextmanager
def operation_context(name: str) -> Iterator[None]:
    token = operation_var.set(name)
    try:
        yield
    finally:
        operation_var.reset(token)


class EngineJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per line, tagged with the request and operation in flight."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        request_id = request_id_var.get()
        if request_id:
            log_record["request_id"] = request_id
        operation = operation_var.get()
        if operation:
            log_record.setdefault("operation", operation)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = (log_record.get("level") or record.levelname).upper()
        log_record["environment"] = settings.environment


def setup_logging(level: Optional[str] = None) -> None:
    root = logging.getLogger()
    # Idempotent: app factory and tests may both call this
    if any(isinstance(h.formatter, EngineJsonFormatter) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(EngineJsonFormatter("%(timestamp) %(level) %(name) %(message)"))
    root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())

    # Library chatter stays at warning
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "sqlalchemy.pool"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
