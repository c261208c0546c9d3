import logging
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

from .settings import logger

console = Console(stderr=True)


def setup_logging(level: Union[int, str] = logging.WARNING) -> RichHandler:
    """Attach a rich handler to the package logger, once.

    Calling this again only changes the level."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logger.setLevel(level)
    for h in logger.handlers:
        if isinstance(h, RichHandler):
            h.setLevel(level)
            return h
    handler = RichHandler(
        level=level,
        markup=False,
        show_path=False,
        console=console,
        log_time_format=r"[%X]",
    )
    logger.addHandler(handler)
    return handler
