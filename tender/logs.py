"""
logs.py — Centralized logging configuration.

Every module logs through a module-level logger:

    log = get_logger(__name__)

and the host process (web app, worker, test run) calls `setup_logging()`
once. Messages about a gateway purchase carry a `[Purchase: <id>]` prefix
so one checkout can be followed across pricing, intent creation and
finalization. Operator alerts are emitted at CRITICAL.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s"

# Loggers that are chatty at INFO and carry nothing checkout-specific
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx", "uvicorn.access")


def setup_logging(level: int | str = logging.INFO, log_file: str | None = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Root log level.
        log_file: Optional path of a persistent log file. Console output
            (stdout, container friendly) is always enabled.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, typically called with `__name__`."""
    return logging.getLogger(name)


def purchase_prefix(purchase_id: str | None) -> str:
    return f"[Purchase: {purchase_id or '-'}]"


__all__ = ("LOG_FORMAT", "setup_logging", "get_logger", "purchase_prefix")
