import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog

# Libraries whose INFO output drowns application events
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "arq.worker", "multipart")


def configure_logging(process: str = "web") -> None:
    """Configure structlog over stdlib logging for the web app or the worker.

    JSON output is used when ``JSON_LOGS=true`` or, if unset, in production.
    Every event carries the ``process`` name.
    """
    json_default = "true" if os.getenv("ENVIRONMENT", "development") == "production" else "false"
    json_logs = os.getenv("JSON_LOGS", json_default).lower() == "true"

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    def add_process(logger: Any, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("process", process)
        return event_dict

    structlog.configure(
        processors=[add_process] + shared_processors + [renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    log_file = Path("logs") / f"lukaut-{process}.log"
    if log_file.parent.is_dir():
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        format="%(message)s",
        handlers=handlers,
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
