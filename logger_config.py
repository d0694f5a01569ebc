# logger_config.py
import logging
import os
from logging.handlers import RotatingFileHandler

from config import LOGGER_NAME, Settings


def setup_logging(settings: Settings) -> logging.Logger:
    """
    Configure the application logger: console output always, plus a rotating
    file when LOG_FILE is set. Safe to call more than once.
    """
    logger = logging.getLogger(LOGGER_NAME)

    if logger.hasHandlers():
        logger.handlers.clear()

    logger.setLevel(getattr(logging, settings.log_level, logging.INFO))

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )

    if settings.log_file:
        log_dir = os.path.dirname(settings.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = True
    logger.info("Logging configured (level=%s).", settings.log_level)
    return logger
