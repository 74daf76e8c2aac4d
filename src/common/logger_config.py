# src/common/logger_config.py
"""Application-wide logging configuration."""

import logging

from rich.logging import RichHandler

from src.common.config.settings import settings

# Driver and scheduler chatter stays at WARNING whatever the application level is
QUIET_LOGGERS = ("mysql.connector", "schedule")


def setup_logging(level: str | None = None) -> RichHandler:
    """
    Routes every log record through a single rich console handler.

    Args:
        level: Level name overriding settings.LOG_LEVEL (e.g. "DEBUG" to see FIFO depletion steps).

    Returns:
        The installed handler. Calling this again replaces it instead of stacking a second one.
    """
    log_level_str = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    rich_handler = RichHandler(
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,  # Product names and batch labels may contain [brackets]
        rich_tracebacks=True,
        tracebacks_word_wrap=True,
        tracebacks_suppress=[
            logging,
        ],
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [h for h in root_logger.handlers if not isinstance(h, RichHandler)]
    root_logger.addHandler(rich_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return rich_handler
