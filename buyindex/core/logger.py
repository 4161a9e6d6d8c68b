"""Logging infrastructure setup."""

import logging
from pathlib import Path


def setup_logger(
    name: str = "buyindex",
    log_file: str = "output/buyindex.log",
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Configure and return a logger that writes to a log file and the console.

    Calling this twice with the same name returns the already configured
    logger untouched.

    Args:
        name (str): The name of the logger.
        log_file (str): The path to the log file.
        level (int): Minimum level emitted by the logger.

    Returns:
        logging.Logger: The configured logger instance.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger.setLevel(level)
    logger.propagate = False

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(module)s.%(funcName)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


# Default logger shared by every module
logger = setup_logger()
