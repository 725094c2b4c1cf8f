"""Logging setup shared by the API and the worker entrypoint"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

NOISY_LOGGERS = {
    "urllib3.connectionpool": logging.WARNING,
    "google.auth": logging.WARNING,
    "azure.core.pipeline.policies.http_logging_policy": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def setup_logging(service_name: str = "video-worker", log_level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """
    Configure the root logger.

    Args:
        service_name: Used to name the log files
        log_level: Console level (DEBUG, INFO, ...)
        log_dir: When set, also write rotating main and error logs there
    """
    simple_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    console_handler.setFormatter(simple_formatter)
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{service_name}.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{service_name}_errors.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(error_handler)

    for logger_name, level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger(__name__).info(f"Logging configured for {service_name} at {log_level}")
