"""Logging setup shared by the API process, the Celery worker and scripts."""
from __future__ import annotations

import logging

LOG_FORMAT = "[%(asctime)s: %(levelname)s/%(processName)s] %(name)s - %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Configure the root logger once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
