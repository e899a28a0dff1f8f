"""Logging setup for the presale package.

Modules log through ``logging.getLogger(__name__)``. Applications call
``configure_logging`` once to attach a stream handler to the package
logger; repeated calls only adjust the level.
"""

from __future__ import annotations

import logging
from typing import Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PACKAGE_LOGGER = "presale"


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    if not any(getattr(h, "_presale_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._presale_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
