import logging
import sys

from backoffice.config import settings


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging() -> None:
    """Configure the root logger once, from LOG_LEVEL."""
    root = logging.getLogger()
    level = logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL.upper()

    if not any(getattr(h, "_backoffice", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._backoffice = True
        root.addHandler(handler)

    root.setLevel(level)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
