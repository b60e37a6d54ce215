import logging
import sys

import click

__all__ = ["TRACE_LOG_LEVEL", "LOG_LEVELS", "ColourizedFormatter", "configure_logging"]

TRACE_LOG_LEVEL = 5

LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE_LOG_LEVEL,
}

LEVEL_COLOURS = {
    TRACE_LOG_LEVEL: "blue",
    logging.DEBUG: "cyan",
    logging.INFO: "green",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bright_red",
}


class ColourizedFormatter(logging.Formatter):
    """Makes ``%(levelprefix)s`` available to the format string: the level
    name and a colon, with the name coloured if ``use_colors`` (default:
    whether stderr is a terminal)."""

    def __init__(self, fmt="%(levelprefix)s %(message)s", use_colors=None):
        if use_colors is None:
            use_colors = sys.stderr.isatty()
        self.use_colors = use_colors
        super().__init__(fmt)

    def formatMessage(self, record):
        level_name = record.levelname
        if self.use_colors:
            level_name = click.style(level_name, fg=LEVEL_COLOURS.get(record.levelno))
        record.levelprefix = level_name + ":"
        return super().formatMessage(record)


def configure_logging(log_level="warning", use_colors=None):
    logging.addLevelName(TRACE_LOG_LEVEL, "TRACE")
    if isinstance(log_level, str):
        log_level = LOG_LEVELS[log_level]

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ColourizedFormatter(use_colors=use_colors))
    logger = logging.getLogger("hpipe")
    logger.handlers = [handler]
    logger.propagate = False
    logger.setLevel(log_level)
    return logger
