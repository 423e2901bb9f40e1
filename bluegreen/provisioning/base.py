"""Provider client contract: the control-plane operations the orchestrator needs."""

from abc import ABC, abstractmethod

from bluegreen.provisioning.types import (
    BackendEntry,
    BackendHealth,
    BackendSetRef,
    MutationResult,
    OperationHandle,
    OperationStatus,
    TargetSpec,
)


class ProviderClient(ABC):
    """Asynchronous facade over the cloud control plane.

    Lookups of a single resource raise ResourceNotFound when the provider does
    not know it. Mutations return a MutationResult whose handle is None when
    the provider gives no work request to track.
    """

    # ── Compute targets ───────────────────────────────────────────

    @abstractmethod
    async def list_targets(self, name_filter: str):
        """Return the raw list response (array or enveloped) for targets named *name_filter*."""

    @abstractmethod
    async def get_target(self, target_id: str) -> dict:
        """Return the raw descriptor of one target."""

    @abstractmethod
    async def create_target(self, spec: TargetSpec) -> MutationResult: ...

    @abstractmethod
    async def update_target(self, target_id: str, spec: TargetSpec) -> MutationResult: ...

    @abstractmethod
    async def delete_target(self, target_id: str) -> MutationResult: ...

    # ── Long-running operations ───────────────────────────────────

    @abstractmethod
    async def get_operation_status(self, handle: OperationHandle) -> OperationStatus: ...

    @abstractmethod
    async def list_operation_errors(self, handle: OperationHandle) -> list[dict]: ...

    # ── Networking ────────────────────────────────────────────────

    @abstractmethod
    async def list_network_interfaces(self, target_id: str):
        """Return the raw interface listing for a target (array or enveloped)."""

    @abstractmethod
    async def get_network_interface(self, interface_id: str) -> dict: ...

    # ── Load balancer backends ────────────────────────────────────

    @abstractmethod
    async def list_backends(self, backend_set: BackendSetRef):
        """Return the raw backend listing (array or enveloped)."""

    @abstractmethod
    async def create_backend(self, backend_set: BackendSetRef, entry: BackendEntry) -> MutationResult: ...

    @abstractmethod
    async def delete_backend(self, backend_set: BackendSetRef, entry: BackendEntry) -> MutationResult: ...

    @abstractmethod
    async def get_backend_health(self, backend_set: BackendSetRef, entry: BackendEntry) -> BackendHealth: ...
