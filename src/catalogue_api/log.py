"""Loguru setup shared by the API server and the CLI."""
import sys

from loguru import logger


def configure_logging(level: str = "INFO", json_lines: bool = True) -> None:
    """Replace loguru's default sink with a stdout sink.

    With ``json_lines`` the request middleware already emits JSON, so the sink
    only prints the message; otherwise a coloured human format is used.
    """
    logger.remove()
    if json_lines:
        logger.add(sys.stdout, level=level, format="{message}", serialize=False)
    else:
        logger.add(
            sys.stdout,
            level=level,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        )
