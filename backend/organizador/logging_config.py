import logging
import sys

from .config import settings


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once; the handler is only added the first time.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    if any(getattr(handler, "_organizador", False) for handler in root.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._organizador = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    # pika is chatty at INFO
    logging.getLogger("pika").setLevel(logging.WARNING)
