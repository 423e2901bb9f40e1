"""Cutover command: point a backend set at one address without the rest of the deploy."""

import logging
import os

from bluegreen.commands import run_handler
from bluegreen.deploy.backends import BackendCutover
from bluegreen.errors import ConfigurationError
from bluegreen.provisioning.oci import OciCliProvider
from bluegreen.provisioning.types import BackendEntry, BackendSetRef

logger = logging.getLogger(__name__)


def handle_cutover(args):
    """Handle the cutover command."""
    run_handler(_handle_cutover(args))


async def _handle_cutover(args):
    missing = [
        flag
        for flag, value in (
            ("--load-balancer-id", args.load_balancer_id),
            ("--backend-set", args.backend_set),
            ("--port", args.port),
            ("--address", args.address),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")
    try:
        port = int(args.port)
    except ValueError:
        raise ConfigurationError(f"Invalid port: {args.port!r}") from None

    provider = OciCliProvider(os.environ.get("COMPARTMENT_ID", ""), dry_run=args.dry_run)
    provider.check_tools()

    backend_set = BackendSetRef(args.load_balancer_id, args.backend_set)
    logger.info("Updating LB backend set:")
    logger.info(f"  - LB:          {backend_set.load_balancer_id}")
    logger.info(f"  - Backend set: {backend_set.name}")
    logger.info(f"  - Port:        {port}")
    logger.info(f"  - New IP:      {args.address}")

    cutover = BackendCutover(provider, interval=args.health_interval)
    result = await cutover.cutover(backend_set, BackendEntry(args.address, port), args.health_timeout)
    if result.failures:
        logger.warning(f"{len(result.failures)} old backend(s) could not be removed")


def register_cutover_command(subparsers):
    """Register the cutover subcommand."""
    parser = subparsers.add_parser(
        "cutover",
        help="Add a backend, wait until it is healthy, then remove all other backends",
    )
    parser.add_argument("--load-balancer-id", default=os.environ.get("BACKEND_LB_OCID"), help="Load balancer OCID (default: $BACKEND_LB_OCID)")
    parser.add_argument("--backend-set", default=os.environ.get("BACKEND_SET_NAME"), help="Backend set name (default: $BACKEND_SET_NAME)")
    parser.add_argument("--port", default=os.environ.get("BACKEND_PORT"), help="Backend port (default: $BACKEND_PORT)")
    parser.add_argument("--address", default=os.environ.get("NEW_INSTANCE_IP"), help="New backend address (default: $NEW_INSTANCE_IP)")
    parser.add_argument("--health-timeout", type=float, default=600, help="Seconds to wait for the backend to turn healthy (default: 600)")
    parser.add_argument("--health-interval", type=float, default=10, help="Seconds between health polls (default: 10)")
    parser.add_argument("--dry-run", action="store_true", help="Print commands instead of executing them")
    parser.set_defaults(func=handle_cutover)
