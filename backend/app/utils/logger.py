"""Logging configuration"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "chat_clone"

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "groq", "botocore", "aiobotocore")


def setup_logger(
    name: str = LOGGER_NAME,
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/app.log"
) -> logging.Logger:
    """
    Configure the application logger.

    Console output is INFO and above; the log file, when one is given, gets
    everything down to DEBUG. Calling this again replaces the handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []
    logger.propagate = False

    formatter = logging.Formatter(
        '%(asctime)s %(levelname)s [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Get the logger instance"""
    return logging.getLogger(name)
