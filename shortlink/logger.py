import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

from shortlink.config import LOG_DIR, LOG_LEVEL

_configured = False


def setup_logging() -> None:
    """Attaches file and console handlers to the root logger once"""
    global _configured
    if _configured:
        return

    os.makedirs(LOG_DIR, exist_ok=True)

    current_date = datetime.now().strftime('%Y-%m-%d')
    log_file = os.path.join(LOG_DIR, f'app_{current_date}.log')

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(LOG_LEVEL)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
