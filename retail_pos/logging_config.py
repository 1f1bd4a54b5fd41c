from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

from retail_pos.config import Settings, settings

LOGGER_NAME = 'retail_pos'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(config: Settings | None = None) -> logging.Logger:
    """Configure the package logger once; calling again replaces its handlers."""
    config = config or settings
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(config.log_level_normalized)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.log_file:
        try:
            log_dir = os.path.dirname(config.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                config.log_file,
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backup_count,
            )
        except OSError as exc:
            logger.error('Failed to set up file logging: %s', exc)
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger.propagate = False
    return logger
