from __future__ import annotations

import logging
from typing import Optional

ROOT_LOGGER = "anomaly_pipeline"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a console handler to the package logger. Safe to call more than once;
    every module logger (anomaly_pipeline.*) inherits it.
    """
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(numeric_level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(name)s] %(levelname)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(handler)

    return logger
