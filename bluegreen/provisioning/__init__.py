"""Provider access: data types, the provider interface, the oci CLI client."""

from bluegreen.provisioning.base import ProviderClient
from bluegreen.provisioning.oci import OciCliProvider
from bluegreen.provisioning.shell import require_tool, run_shell_cmd
from bluegreen.provisioning.types import (
    AddressKind,
    AddressPair,
    BackendEntry,
    BackendHealth,
    BackendSetRef,
    CleanupResult,
    DeploymentOutcome,
    DeploymentTarget,
    LifecycleState,
    MutationResult,
    OperationHandle,
    OperationStatus,
    TargetSpec,
)

__all__ = [
    "ProviderClient",
    "OciCliProvider",
    "require_tool",
    "run_shell_cmd",
    "AddressKind",
    "AddressPair",
    "BackendEntry",
    "BackendHealth",
    "BackendSetRef",
    "CleanupResult",
    "DeploymentOutcome",
    "DeploymentTarget",
    "LifecycleState",
    "MutationResult",
    "OperationHandle",
    "OperationStatus",
    "TargetSpec",
]
