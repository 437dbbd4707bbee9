import logging
import sys
import uuid
from logging.handlers import RotatingFileHandler
from typing import Optional


ROOT = "champdata"

_LOGGER: logging.Logger | None = None
_RUN_ID: str = ""

_FORMAT  = "%(asctime)s [%(run_id)s] %(levelname)-8s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"

# Third-party loggers that log every connection at DEBUG.
_QUIET = ("urllib3", "requests")


def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


def current_run_id() -> str:
    return _RUN_ID


class RunIdFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _RUN_ID
        return True


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    handler.addFilter(RunIdFilter())
    logger.addHandler(handler)


def setup_logger(
    run_id: str,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the ``champdata`` logger. Calling it again replaces the
    handlers, which is how the CLI switches to DEBUG or adds a file once
    arguments are parsed.

    Every line carries ``run_id`` so one crawl or repair pass can be grepped
    out of a shared rotating log.
    """
    global _LOGGER, _RUN_ID
    _RUN_ID = run_id

    logger = logging.getLogger(ROOT)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    _attach(logger, logging.StreamHandler(sys.stdout), level)
    if log_file:
        _attach(logger, RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3, encoding="utf-8"), level)
    logger.propagate = False

    for name in _QUIET:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _LOGGER = logger
    return logger


def get_logger(name: str = ROOT) -> logging.Logger:
    if _LOGGER is None:
        raise RuntimeError("Call setup_logger(run_id) before get_logger().")
    if name in (ROOT, "__main__"):
        return _LOGGER
    return _LOGGER.getChild(name.replace(f"{ROOT}.", ""))
