"""
Enhanced logging configuration for LiteTrack analytics
Provides console and file logging for aggregation, delivery and insight calls
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for better readability"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record):
        original = record.levelname
        level_color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        record.levelname = f"{level_color}{record.levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_enhanced_logging(
    level: Optional[str] = None,
    enable_file_logging: bool = False,
    log_file_path: str = "litetrack.log",
    log_versions: bool = True,
):
    """
    Setup logging for the LiteTrack core

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR); defaults to
            $LITETRACK_LOG_LEVEL or INFO
        enable_file_logging: Whether to log to file
        log_file_path: Path to log file
        log_versions: Whether to log library versions at startup
    """
    level = level or os.getenv("LITETRACK_LOG_LEVEL", "INFO")
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(
        ColoredFormatter(
            "%(asctime)s | %(levelname)s | %(name)s:%(lineno)d | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logger.addHandler(console_handler)

    if enable_file_logging:
        log_path = Path(log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)-20s:%(lineno)-4d | %(funcName)-20s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)
        logger.info(f"Logging session started - Level: {level}")
        logger.info(f"Log file: {log_path.absolute()}")

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.WARNING))

    if log_versions:
        log_library_versions(logger)

    return logger


def log_library_versions(logger: Optional[logging.Logger] = None) -> None:
    logger = logger or logging.getLogger(__name__)
    logger.info(f"Python: {sys.version.split()[0]}")

    import openai
    import pandas as pd
    import polars as pl
    import requests

    logger.info(f"Polars: {pl.__version__}")
    logger.info(f"Pandas: {pd.__version__}")
    logger.info(f"Requests: {requests.__version__}")
    logger.info(f"OpenAI: {openai.__version__}")


def log_dataframe_info(df, name: str = "DataFrame", logger=None):
    """
    Log shape and columns of a DataFrame for debugging

    Args:
        df: DataFrame (Polars or Pandas)
        name: Name to identify the DataFrame
        logger: Logger instance (if None, uses module logger)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    logger.debug(f"{name} Information:")
    logger.debug(f"   Type: {type(df).__name__}")
    logger.debug(f"   Shape: {df.shape}")
    logger.debug(f"   Columns: {list(df.columns)}")
