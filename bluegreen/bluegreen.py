#!/usr/bin/env python3
"""Blue/green container deployments: CLI entrypoint."""

import argparse

from bluegreen.commands.cleanup import register_cleanup_command
from bluegreen.commands.cutover import register_cutover_command
from bluegreen.commands.deploy import register_deploy_command
from bluegreen.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Blue/green deployments for OCI container instances")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output (poll ticks, lookups)")
    parser.add_argument("--log-file", default=None, help="Also write the log to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_deploy_command(subparsers)
    register_cutover_command(subparsers)
    register_cleanup_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose, log_file=args.log_file)
    args.func(args)


if __name__ == "__main__":
    main()
