import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from educhat.config import Config


def setup_logging(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    root = logging.getLogger()
    # Repeated app creation (tests, reload) must not stack handlers.
    if getattr(root, "_educhat_configured", False):
        logging.getLogger("educhat").setLevel(getattr(logging, level.upper(), logging.INFO))
        return root

    root.setLevel(logging.WARNING)
    formatter = logging.Formatter(Config.LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logging.getLogger("educhat").setLevel(getattr(logging, level.upper(), logging.INFO))
    root._educhat_configured = True  # type: ignore[attr-defined]
    return root
