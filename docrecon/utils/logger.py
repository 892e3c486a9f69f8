# docrecon/utils/logger.py
# ============================================================
# Structured Logging Setup
# ============================================================
# Provides a pre-configured logger with Rich console output for
# human-readable logs. Colors, timestamps, and module names are
# included automatically.
#
# Usage:
#   from docrecon.utils.logger import get_logger
#   logger = get_logger(__name__)
#   logger.info("Processing invoice.pdf")
# ============================================================

import logging

import httpx
from rich.logging import RichHandler

from docrecon.config.settings import settings


def get_logger(name: str) -> logging.Logger:
    """
    Create and return a pre-configured logger with Rich formatting.

    Args:
        name: Logger name, typically __name__ from the calling module.
              This appears in log output to identify the source.

    Returns:
        A logging.Logger instance with Rich console handler attached.

    Example:
        >>> logger = get_logger("docrecon.client.api")
        >>> logger.info("POST /infer-file → 200")
        [10:30:45] INFO     docrecon.client.api — POST /infer-file → 200
    """
    logger = logging.getLogger(name)

    # One handler per logger, however many modules ask for it
    if not logger.handlers:
        # LOG_LEVEL=debug and LOG_LEVEL=DEBUG both work; unknown → INFO
        level = getattr(logging, settings.log_level.upper(), logging.INFO)
        logger.setLevel(level)

        rich_handler = RichHandler(
            level=level,
            rich_tracebacks=True,
            # Locals would dump whole uploaded documents (SubmittedFile.content)
            tracebacks_show_locals=False,
            # Transport failures surface as DocReconError; httpx frames are noise
            tracebacks_suppress=[httpx],
            show_time=True,
            show_path=False,
            markup=True,                # [bold]filename[/bold] in messages
        )

        # Rich adds time and level; the formatter only prefixes the module
        formatter = logging.Formatter("%(name)s — %(message)s")
        rich_handler.setFormatter(formatter)

        logger.addHandler(rich_handler)

        # Root handlers (pytest, host apps) would print every line twice
        logger.propagate = False

    return logger
