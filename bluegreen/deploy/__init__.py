"""Deploy library: strategy engine, address resolution, cutover, cleanup, orchestration."""

from bluegreen.deploy.addresses import AddressResolver
from bluegreen.deploy.backends import BackendCutover, CutoverResult
from bluegreen.deploy.cleanup import CleanupController
from bluegreen.deploy.operations import wait_for_operation, wait_for_removal, wait_for_state
from bluegreen.deploy.orchestrate import run_cleanup, run_cutover, run_deploy, smoke_check
from bluegreen.deploy.polling import poll_until, retry
from bluegreen.deploy.resolver import resolve_targets, select_targets
from bluegreen.deploy.strategy import DeploymentEngine, DeployState

__all__ = [
    "AddressResolver",
    "BackendCutover",
    "CutoverResult",
    "CleanupController",
    "wait_for_operation",
    "wait_for_removal",
    "wait_for_state",
    "run_cleanup",
    "run_cutover",
    "run_deploy",
    "smoke_check",
    "poll_until",
    "retry",
    "resolve_targets",
    "select_targets",
    "DeploymentEngine",
    "DeployState",
]
