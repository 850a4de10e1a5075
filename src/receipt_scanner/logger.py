import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

LOG_DIR = os.getenv("RECEIPT_SCANNER_LOG_DIR", "logs")
LOG_LEVEL = os.getenv("RECEIPT_SCANNER_LOG_LEVEL", "INFO").upper()
LOG_FILE = f"{datetime.now().strftime('%Y_%m_%d')}.log"
LOG_FORMAT = "[ %(asctime)s ] %(name)s:%(lineno)d - %(levelname)s - %(message)s"

_configured = False


def _configure_root():
    global _configured
    if _configured:
        return

    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger("receipt_scanner")
    root.setLevel(LOG_LEVEL)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    try:
        os.makedirs(LOG_DIR, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(LOG_DIR, LOG_FILE), maxBytes=5 * 1024 * 1024, backupCount=3
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError as exc:
        root.warning("File logging disabled, cannot write to %s: %s", LOG_DIR, exc)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Returns a logger under the `receipt_scanner` hierarchy.
    Handlers are attached once to the package root logger.
    """
    _configure_root()
    if not name.startswith("receipt_scanner"):
        name = f"receipt_scanner.{name}"
    return logging.getLogger(name)
