"""
logging_config.py

Logging configuration for the Project Portal.

``setup_logging`` configures the root logger with a console handler and an
optional file handler.  Modules log through ``logging.getLogger(__name__)``;
nothing else in the code base touches handlers.
"""

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", logfile: Optional[str] = None) -> None:
    """Configure the root logger once.

    If the root logger already has handlers (a second call, or a test
    runner that installed its own), only the level is updated.

    Parameters
    ----------
    level : str
        Logging level name, case insensitive.
    logfile : Optional[str]
        Path of a file to log to in addition to the console.  Parent
        directories are created as needed.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if root.handlers:
        return

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if logfile:
        log_path = Path(logfile).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
