"""
Logging for the treasury ledger.

Every module logs through a child of the "endow" logger
(endow.treasury, endow.rewards, endow.storage.sqlite, ...). Until the CLI
or an embedding application calls setup_logging, the first get_logger
call installs a colored INFO handler on stdout.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog

ROOT = "endow"
LOG_FILE_NAME = "endow.log"

_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

_configured = False


def setup_logging(level: int = logging.INFO, log_dir: Optional[Path] = None) -> None:
    """
    (Re)configure the "endow" logger.

    Args:
        level: Threshold for every handler
        log_dir: If given, also append plain-text records to log_dir/endow.log
    """
    global _configured

    root = logging.getLogger(ROOT)
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = colorlog.StreamHandler(sys.stdout)
    console.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s" + _FORMAT.replace("%(message)s", "%(reset)s%(message)s"),
        datefmt=_DATEFMT,
        log_colors=_COLORS,
    ))
    root.addHandler(console)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME)
        file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
        root.addHandler(file_handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Logger for one subsystem, e.g. get_logger("bonus") -> endow.bonus"""
    if not _configured:
        setup_logging()
    return logging.getLogger(f"{ROOT}.{name}")
