import contextvars
import logging
import sys
from contextlib import contextmanager

from pythonjsonlogger import jsonlogger

# Correlation ids attached to every JSON log line emitted inside a run
ctx_run_id = contextvars.ContextVar("run_id", default=None)
ctx_task_id = contextvars.ContextVar("task_id", default=None)

_CONTEXT_FIELDS = (("run_id", ctx_run_id), ("task_id", ctx_task_id))


@contextmanager
def bind_run_context(run_id: str, task_id: str | None = None):
    """Set the correlation ids for the duration of the block."""
    run_token = ctx_run_id.set(run_id)
    task_token = ctx_task_id.set(task_id)
    try:
        yield
    finally:
        ctx_task_id.reset(task_token)
        ctx_run_id.reset(run_token)


class CorrelationJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        # Explicit extra={"run_id": ...} wins over the context variable
        for field, var in _CONTEXT_FIELDS:
            value = log_record.get(field) or var.get()
            if value:
                log_record[field] = value


def setup_logger(log_format: str = "text", log_level: str = "INFO"):
    """Install a single stdout handler on the root logger.

    Meant for scripts embedding the SDK; libraries should leave logging
    configuration to the application.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_format.lower() == "json":
        formatter = CorrelationJsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        )
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Per-request transport chatter stays behind DEBUG
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def setup_logger_from_settings():
    from runflow.config import settings

    return setup_logger(settings.LOG_FORMAT, settings.LOG_LEVEL)
