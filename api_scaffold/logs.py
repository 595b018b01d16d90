"""Logging setup bound to the server's home directory.

If ``<home>/etc/logging.ini`` exists it is loaded as a standard
``logging.config`` file and wins over everything else. Otherwise a plain
stdout configuration is installed.
"""

from __future__ import annotations

import logging
import logging.config
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOGGING_CONFIG_FILE = Path("etc") / "logging.ini"


def init_logging(home_dir: str | Path, level: str = "INFO") -> Path | None:
    """Configure logging for a server rooted at ``home_dir``.

    Returns the logging config file that was applied, or None when the
    built-in configuration was used.
    """

    config_file = Path(home_dir) / LOGGING_CONFIG_FILE
    if config_file.is_file():
        logging.config.fileConfig(config_file, disable_existing_loggers=False)
        return config_file

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    # the request log replaces uvicorn's own access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return None
