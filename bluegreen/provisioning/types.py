"""Shared data types for deploy targets, backends and provider operations."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from bluegreen.provisioning.fields import first_field

_CONTAINER_LIST_PATHS = (
    ("containers",),
    ("containerConfig", "containers"),
    ("container-config", "containers"),
    ("containerConfiguration", "containers"),
)


class LifecycleState(Enum):
    CREATING = "CREATING"
    ACTIVE = "ACTIVE"
    UPDATING = "UPDATING"
    DELETING = "DELETING"
    DELETED = "DELETED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value) -> "LifecycleState":
        """Case-insensitive parse; unrecognised values map to UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_gone(self) -> bool:
        return self in (LifecycleState.DELETING, LifecycleState.DELETED)


class BackendHealth(Enum):
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    UNKNOWN = "UNKNOWN"
    NOT_FOUND = "NOT_FOUND"

    @classmethod
    def parse(cls, value) -> "BackendHealth":
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @property
    def accepts_traffic(self) -> bool:
        """WARNING backends still receive traffic from the load balancer."""
        return self in (BackendHealth.OK, BackendHealth.WARNING)


class OperationStatus(Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"

    @classmethod
    def parse(cls, value) -> "OperationStatus":
        """Map provider work-request states onto the four we act on."""
        normalized = str(value or "").strip().upper()
        if normalized == "SUCCEEDED":
            return cls.SUCCEEDED
        if normalized == "FAILED":
            return cls.FAILED
        if normalized in ("CANCELED", "CANCELLED"):
            return cls.CANCELED
        # ACCEPTED, WAITING, CANCELING, IN_PROGRESS and anything new
        return cls.IN_PROGRESS

    @property
    def is_terminal(self) -> bool:
        return self is not OperationStatus.IN_PROGRESS


class AddressKind(Enum):
    PRIVATE = "private"
    PUBLIC = "public"


@dataclass
class OperationHandle:
    """Reference to a provider work request tracking an asynchronous mutation."""

    id: str
    service: str = "container-instances"  # or "load-balancer"
    resource_id: str | None = None


@dataclass
class MutationResult:
    """Return value of every provider mutation. *handle* is None for synchronous answers."""

    resource_id: str | None
    handle: OperationHandle | None = None


@dataclass
class TargetSpec:
    """Everything needed to create or update a compute target."""

    name: str
    image: str
    container_name: str
    shape: str
    subnet_id: str
    ocpus: float = 1
    memory_gb: float = 2
    container_port: int = 8080
    environment: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    assign_public_ip: bool = True


def _parse_timestamp(value) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def extract_images(descriptor: dict) -> list[str]:
    """Collect container image references from every container list shape we know."""
    images = []
    for path in _CONTAINER_LIST_PATHS:
        node = descriptor
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if not isinstance(node, list):
            continue
        for container in node:
            image = first_field(container, "imageUrl", "image-url", "image")
            if isinstance(image, str) and image not in images:
                images.append(image)
    return images


@dataclass
class DeploymentTarget:
    """A provisioned compute runtime, as last reported by the provider."""

    id: str
    name: str = ""
    state: LifecycleState = LifecycleState.UNKNOWN
    time_created: datetime | None = None
    images: list[str] = field(default_factory=list)
    tags: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_descriptor(cls, descriptor: dict) -> "DeploymentTarget":
        """Build a target from a provider descriptor, with or without the data envelope."""
        if isinstance(descriptor.get("data"), dict):
            descriptor = descriptor["data"]
        return cls(
            id=first_field(descriptor, "id", "identifier") or "",
            name=first_field(descriptor, "displayName", "display-name", "name") or "",
            state=LifecycleState.parse(first_field(descriptor, "lifecycleState", "lifecycle-state")),
            time_created=_parse_timestamp(first_field(descriptor, "timeCreated", "time-created")),
            images=extract_images(descriptor),
            tags=first_field(descriptor, "freeformTags", "freeform-tags") or {},
            raw=descriptor,
        )


@dataclass(frozen=True)
class BackendEntry:
    """A backend in a load balancer backend set. Identity is the (address, port) pair."""

    address: str
    port: int

    @property
    def name(self) -> str:
        return f"{self.address}:{self.port}"

    @classmethod
    def from_descriptor(cls, descriptor) -> "BackendEntry | None":
        """Parse a backend list item; returns None when address or port is missing."""
        address = first_field(descriptor, "ipAddress", "ip-address")
        port = first_field(descriptor, "port")
        if not isinstance(address, str) or not address.strip() or port is None:
            return None
        try:
            return cls(address.strip(), int(port))
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class BackendSetRef:
    load_balancer_id: str
    name: str


@dataclass
class AddressPair:
    private: str | None = None
    public: str | None = None

    def for_kind(self, kind: AddressKind) -> str | None:
        return self.private if kind is AddressKind.PRIVATE else self.public

    def has(self, kind: AddressKind) -> bool:
        return bool(self.for_kind(kind))

    @property
    def complete(self) -> bool:
        return bool(self.private and self.public)


@dataclass
class CleanupResult:
    """Outcome of a best-effort deletion. Logged and discarded by callers."""

    resource_id: str
    ok: bool
    detail: str = ""


@dataclass
class DeploymentOutcome:
    """Result of one orchestration run."""

    target_id: str
    strategy: str
    replaced_via_fallback: bool = False
    did_replace: bool = False
    addresses: AddressPair = field(default_factory=AddressPair)
    superseded_ids: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    elapsed: float = 0.0

    def to_dict(self) -> dict:
        return {
            "target_id": self.target_id,
            "strategy": self.strategy,
            "replaced_via_fallback": self.replaced_via_fallback,
            "did_replace": self.did_replace,
            "private_address": self.addresses.private,
            "public_address": self.addresses.public,
            "superseded_ids": list(self.superseded_ids),
            "warnings": list(self.warnings),
            "elapsed": round(self.elapsed, 1),
        }
