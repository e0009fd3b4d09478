"""
logging_config.py — Logging Setup for the Order Service

Called once when `main.py` is imported. Order-scoped messages from the
coordinator and the event publisher carry an `[Order: <id>]` or
`[User: <id>]` prefix, so one placement can be followed through the log of
any worker process.
"""

import logging
import sys

from . import config


def setup_logging(log_file: str = None):
    """
    Sends INFO and above to `log_file` (default `config.LOG_FILE`) and stdout.

    SQL statement logging is left to `SQL_ECHO`; the engine logger and pika's
    connection chatter are held at WARNING.
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s'

    logging.basicConfig(
        level=logging.INFO,
        format=log_format,
        handlers=[
            logging.FileHandler(log_file or config.LOG_FILE),
            logging.StreamHandler(sys.stdout)
        ]
    )

    logging.getLogger("pika").setLevel(logging.WARNING)
    if not config.SQL_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name):
    return logging.getLogger(name)
