from __future__ import annotations
from typing import Optional
import logging
import os

FMT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "INFO", file: Optional[str] = None) -> None:
    """Root logger to stderr (and a file if given). LOG_LEVEL overrides `level`."""
    level = os.environ.get("LOG_LEVEL", level or "INFO").upper()
    handlers = [logging.StreamHandler()]
    if file:
        handlers.append(logging.FileHandler(file, encoding="utf-8"))
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=FMT,
                        handlers=handlers, force=True)
