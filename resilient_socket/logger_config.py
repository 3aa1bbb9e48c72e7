from loguru import logger
import sys
from pathlib import Path
from typing import Optional


CONSOLE_FORMAT = ("<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
                  "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>")
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(level: str = "INFO", log_path: Optional[str] = None):
    """Configure loguru sinks.

    Console output always; a rotating ``client.log`` plus ``error.log``
    under ``log_path`` when one is given.
    """
    logger.remove()

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level.upper())

    if log_path:
        log_dir = Path(log_path)
        log_dir.mkdir(parents=True, exist_ok=True)

        logger.add(log_dir / "client.log",
                   rotation="50 MB",
                   retention="10 days",
                   compression="zip",
                   format=FILE_FORMAT,
                   level=level.upper())

        logger.add(log_dir / "error.log",
                   rotation="10 MB",
                   retention="30 days",
                   compression="zip",
                   format=FILE_FORMAT,
                   level="ERROR")

    return logger
