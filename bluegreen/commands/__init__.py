"""CLI subcommands. Each module exposes ``register_*_command(subparsers)``."""

import asyncio
import logging
import sys

from bluegreen.errors import ConfigurationError, DeployError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def run_handler(coro):
    """Run an async command handler and exit with the matching status.

    0 on success, 2 for missing configuration or tools, 1 for any other
    deployment failure.
    """
    try:
        asyncio.run(coro)
    except ConfigurationError as e:
        logger.error(f"Error: {e}")
        sys.exit(EXIT_CONFIG)
    except DeployError as e:
        logger.error(f"Error: {e}")
        sys.exit(EXIT_FAILED)


def split_ids(values):
    """Flatten ids given as separate args and/or comma/space separated strings."""
    ids = []
    for value in values or []:
        for part in value.replace(",", " ").split():
            if part not in ids:
                ids.append(part)
    return ids
