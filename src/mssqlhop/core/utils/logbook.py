import sys

# Third party library imports
from loguru import logger

VALID_LEVELS = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]

# Level -> (marker, colour)
LEVEL_MARKERS = {
    "TRACE": ("[*]", "dim"),
    "DEBUG": ("[*]", "dim"),
    "INFO": ("[i]", "white"),
    "SUCCESS": ("[+]", "green"),
    "WARNING": ("[!]", "yellow"),
    "ERROR": ("[-]", "red"),
    "CRITICAL": ("[X]", "red"),
}


def _format_message(record) -> str:
    marker, colour = LEVEL_MARKERS.get(record["level"].name, ("[?]", "white"))

    return (
        "<dim>{time:HH:mm:ss.SSS!UTC}</dim> "
        f"<{colour}>{marker} {{message}}</{colour}>\n"
        "{exception}"
    )


def setup_logging(level: str = "INFO") -> str:
    """
    Route loguru to stderr at `level`, replacing any previous handler.

    Returns:
        The level actually applied, INFO if `level` is unknown
    """
    level = (level or "INFO").upper()

    if level not in VALID_LEVELS:
        logger.warning(f"Unknown log level {level}, falling back to INFO")
        level = "INFO"

    logger.remove()
    # Synchronous so log lines stay ordered with printed tables
    logger.add(
        sys.stderr,
        enqueue=False,
        backtrace=True,
        diagnose=level in ("TRACE", "DEBUG"),
        level=level,
        format=_format_message,
        colorize=True,
    )

    return level
