"""Root logger configuration for command-line entry points."""

import logging
from typing import Optional

from sorosign.config import get_settings


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger.

    Args:
        level: Log level name; defaults to Settings.log_level
    """
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
