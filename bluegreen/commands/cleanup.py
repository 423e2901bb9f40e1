"""Cleanup command: retire old targets once traffic has moved to the new one."""

import logging
import os

from bluegreen.commands import run_handler, split_ids
from bluegreen.deploy.cleanup import CleanupController
from bluegreen.errors import ConfigurationError
from bluegreen.provisioning.oci import OciCliProvider

logger = logging.getLogger(__name__)


def handle_cleanup(args):
    """Handle the cleanup command."""
    run_handler(_handle_cleanup(args))


async def _handle_cleanup(args):
    if not args.keep:
        raise ConfigurationError("Missing required configuration: --keep (or $CONTAINER_INSTANCE_ID)")
    old_ids = split_ids(args.old_ids or [os.environ.get("OLD_INSTANCE_IDS", "")])
    if not old_ids:
        logger.info("No old targets given, nothing to clean up.")
        return

    provider = OciCliProvider(os.environ.get("COMPARTMENT_ID", ""), dry_run=args.dry_run)
    provider.check_tools()

    logger.info(f"Retiring {len(old_ids)} old target(s), keeping {args.keep}")
    controller = CleanupController(provider, timeout=args.timeout)
    results = await controller.retire_all(old_ids, keep=args.keep)

    failed = [r for r in results if not r.ok]
    if failed:
        # Warnings only; exit status stays 0
        logger.warning(f"Failed to retire {len(failed)} target(s): {', '.join(r.resource_id for r in failed)}")
    else:
        logger.info("Cleanup complete.")


def register_cleanup_command(subparsers):
    """Register the cleanup subcommand."""
    parser = subparsers.add_parser(
        "cleanup",
        help="Delete old targets after a cutover (failures are warnings only)",
    )
    parser.add_argument("old_ids", nargs="*", help="Target ids to retire (default: $OLD_INSTANCE_IDS)")
    parser.add_argument(
        "--keep",
        default=os.environ.get("CONTAINER_INSTANCE_ID"),
        help="Id of the new target, never deleted (default: $CONTAINER_INSTANCE_ID)",
    )
    parser.add_argument("--timeout", type=float, default=1800, help="Seconds to wait for each deletion (default: 1800)")
    parser.add_argument("--dry-run", action="store_true", help="Print commands instead of executing them")
    parser.set_defaults(func=handle_cleanup)
