# logging_config.py
"""
Sets up the 'mapboard' logger namespace used by every module.
"""
import logging
import sys
from typing import Optional, Union

LOGGER_NAME = "mapboard"


def get_logger(module_name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{module_name}")


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configures the 'mapboard' logger.

    Args:
        level: logging level or level name (e.g. logging.DEBUG, "INFO")
        log_file: optional path to also write logs to.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Avoid duplicate handlers when the app is restarted in-process
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.info("Logging initialized.")
    return logger
