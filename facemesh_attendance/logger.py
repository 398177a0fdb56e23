import logging
from logging.handlers import RotatingFileHandler

from .config import LOG_DIR, LOG_LEVEL

ROOT_LOGGER_NAME = "facemesh_attendance"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    level = logging.getLevelName(LOG_LEVEL)
    root.setLevel(level if isinstance(level, int) else logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = RotatingFileHandler(
        LOG_DIR / "attendance.log",
        maxBytes=2_000_000,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)
    return root


def setup_logger(name: str) -> logging.Logger:
    """Return a logger under the package root; handlers live on the root only."""
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
