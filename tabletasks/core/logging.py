import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# chatty at INFO; job logs get lost in them
NOISY_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3", "sqlalchemy.engine", "python_multipart")


def setup_logging(level: str = "INFO", stream=None):
    """Install a single handler on the root logger.

    Leaves existing handlers alone (uvicorn, pytest) so it is safe to call from
    every entry point.
    """
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level.upper())
