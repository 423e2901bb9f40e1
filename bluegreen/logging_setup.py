"""CLI logging setup."""

import logging
import sys

from bluegreen.redact import SecretRedactingFilter


class _ConsoleFormatter(logging.Formatter):
    """Console formatter.

    - ``bluegreen.deploy.strategy`` → ``[strategy] message``
    - anything else → plain message
    """

    def format(self, record):
        message = super().format(record)
        if record.name.startswith("bluegreen."):
            return f"[{record.name.rsplit('.', 1)[-1]}] {message}"
        return message


def setup_cli_logging(verbose=False, log_file=None):
    """Configure the root logger for CLI commands.

    Args:
        verbose: log DEBUG records (poll ticks, address tiers) as well.
        log_file: optional path; receives the same records with timestamps.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_ConsoleFormatter("%(message)s"))
    root.addHandler(handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
        root.addHandler(file_handler)

    # Root-logger filters do not see records propagated from child loggers
    redactor = SecretRedactingFilter()
    for h in root.handlers:
        h.addFilter(redactor)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
