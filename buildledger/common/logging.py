import logging
import sys

from buildledger.config import settings

ROOT_LOGGER_NAME = "buildledger"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the ``buildledger`` logger tree once per process."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    if not any(getattr(h, "_buildledger", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._buildledger = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    # SQLAlchemy echoes every statement at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
