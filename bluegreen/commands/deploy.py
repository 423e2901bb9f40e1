"""Deploy command: roll the configured image out and cut the load balancer over to it."""

import json
import logging
import os

from bluegreen.commands import run_handler
from bluegreen.config import STRATEGIES, build_config
from bluegreen.deploy.orchestrate import run_deploy
from bluegreen.provisioning.oci import OciCliProvider
from bluegreen.provisioning.types import AddressKind
from bluegreen.redact import redact_secrets, register_secret

logger = logging.getLogger(__name__)


def github_env_lines(outcome, address_kind):
    """KEY=value lines later pipeline steps read from $GITHUB_ENV."""
    addresses = outcome.addresses
    return [
        f"CONTAINER_INSTANCE_ID={outcome.target_id}",
        f"NEW_INSTANCE_PRIVATE_IP={addresses.private or ''}",
        f"NEW_INSTANCE_PUBLIC_IP={addresses.public or ''}",
        f"NEW_INSTANCE_IP={addresses.for_kind(address_kind) or ''}",
        f"DID_REPLACE={'true' if outcome.did_replace else 'false'}",
    ]


def publish_outcome(outcome, address_kind, outcome_file=None, github_env=None):
    if outcome_file:
        with open(outcome_file, "w") as f:
            # warnings carry provider stderr verbatim
            f.write(redact_secrets(json.dumps(outcome.to_dict(), indent=2)))
        logger.info(f"Outcome written to {outcome_file}")
    if github_env:
        with open(github_env, "a") as f:
            for line in github_env_lines(outcome, address_kind):
                f.write(line + "\n")
        logger.info(f"Exported deployment variables to {github_env}")


def handle_deploy(args):
    """Handle the deploy command."""
    run_handler(_handle_deploy(args))


async def _handle_deploy(args):
    config = build_config(
        args.config,
        overrides={
            "strategy": args.strategy,
            "image": args.image,
            "address_kind": args.address_kind,
            "smoke_url": args.smoke_url,
            "dry_run": args.dry_run or None,
        },
    )
    register_secret(config.db_password)

    provider = OciCliProvider(config.compartment_id, availability_domain=config.availability_domain, dry_run=config.dry_run)
    provider.check_tools()

    outcome = await run_deploy(provider, config)
    publish_outcome(
        outcome,
        config.address_kind,
        outcome_file=args.outcome_file,
        github_env=args.github_env if not config.dry_run else None,
    )


def register_deploy_command(subparsers):
    """Register the deploy subcommand."""
    parser = subparsers.add_parser(
        "deploy",
        help="Deploy the configured image and switch the load balancer backend set to it",
    )
    parser.add_argument("--config", default=None, help="YAML config file (environment variables override it)")
    parser.add_argument("--strategy", choices=STRATEGIES, default=None, help="Deploy strategy (default: update)")
    parser.add_argument("--image", default=None, help="Container image reference (default: $IMAGE)")
    parser.add_argument(
        "--address-kind",
        choices=[k.value for k in AddressKind],
        default=None,
        help="Address registered with the load balancer (default: private)",
    )
    parser.add_argument("--smoke-url", default=None, help="URL that must answer 2xx after cutover")
    parser.add_argument("--outcome-file", default=None, help="Write the deployment outcome as JSON to this path")
    parser.add_argument(
        "--github-env",
        default=os.environ.get("GITHUB_ENV"),
        help="Append deployment variables to this file (default: $GITHUB_ENV)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print commands instead of executing them")
    parser.set_defaults(func=handle_deploy)
