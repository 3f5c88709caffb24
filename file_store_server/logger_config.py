import json
import logging
import platform
import socket
import sys
from datetime import datetime, timezone
from pathlib import Path

from logzio.handler import LogzioHandler

import config

LOGGER_NAME = "file_store"


class StructuredMessage:
    def __init__(self, message, **kwargs):
        self.message = message
        self.kwargs = kwargs

    def __str__(self):
        if not self.kwargs:
            return self.message
        fields = " ".join(f"{k}={v}" for k, v in self.kwargs.items())
        return f"{self.message} ({fields})"


class StructuredFormatter(logging.Formatter):
    """Render a record as one JSON object, merging StructuredMessage fields."""

    def __init__(self):
        super().__init__()
        self.hostname = socket.gethostname()

    def format(self, record):
        if isinstance(record.msg, StructuredMessage):
            message = record.msg.message
            extra = record.msg.kwargs
        else:
            message = record.getMessage()
            extra = {}

        log_data = {
            'message': message,
            'level': record.levelname,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'logger': record.name,
            'environment': config.APP_ENV,
            'application': 'flare-file-store',
            'hostname': self.hostname,
            'python_version': platform.python_version(),
            'function': record.funcName,
            'line_number': record.lineno,
            'filename': record.filename,
        }
        log_data.update(extra)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logger():
    logger = logging.getLogger(LOGGER_NAME)

    # Modules call this at import time; configure handlers only once
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)

    logs_dir = Path(config.LOG_DIR)
    logs_dir.mkdir(exist_ok=True, parents=True)

    # File handler (one JSON document per line)
    file_handler = logging.FileHandler(logs_dir / "file_store.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(StructuredFormatter())

    # Console handler (for basic logging)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(config.LOG_LEVEL)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    ))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    if config.LOGZIO_TOKEN:
        logzio_handler = LogzioHandler(
            token=config.LOGZIO_TOKEN,
            url=config.LOGZIO_URL,
            logs_drain_timeout=5,
            network_timeout=10.0
        )
        logzio_handler.setLevel(logging.INFO)
        logzio_handler.setFormatter(StructuredFormatter())
        logger.addHandler(logzio_handler)

    return logger


def structured_log(message, **kwargs):
    return StructuredMessage(message, **kwargs)
