"""Shared pytest fixtures for all test modules."""

import copy
import os
import subprocess
import sys

import pytest
import yaml

from bluegreen.config import ENV_VARS, DeployConfig
from bluegreen.errors import ResourceNotFound
from bluegreen.provisioning.base import ProviderClient
from bluegreen.provisioning.types import (
    BackendHealth,
    BackendSetRef,
    MutationResult,
    OperationHandle,
    OperationStatus,
)


PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))

BASE_CONFIG = {
    "compartment_id": "ocid1.compartment.oc1..test",
    "subnet_id": "ocid1.subnet.oc1..test",
    "shape": "CI.Standard.E4.Flex",
    "target_name": "app",
    "container_name": "app",
    "image": "registry.example.com/app:new",
    "db_host": "db.internal",
    "db_name": "appdb",
    "db_user": "app",
    "db_password": "s3cret-password",
    "load_balancer_id": "ocid1.loadbalancer.oc1..test",
    "backend_set_name": "app-backends",
    "backend_port": 8080,
}

BACKEND_SET = BackendSetRef(BASE_CONFIG["load_balancer_id"], BASE_CONFIG["backend_set_name"])


# ── Fakes ───────────────────────────────────────────────────────────


class FakeClock:
    """Clock whose sleep() only advances virtual time."""

    def __init__(self):
        self.t = 0.0
        self.sleeps = []

    def now(self):
        return self.t

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.t += seconds


class FakeProvider(ProviderClient):
    """In-memory control plane with the eventual-consistency quirks of the real one.

    Knobs:
        image_lag: get_target calls after an update that report no image
        ignore_image_updates: updates are accepted but the image never changes
        creating_polls: get_target calls a new target stays CREATING
        delete_polls: get_target calls a deleted target stays DELETING
        work_requests: mutations return operation handles
        invisible_checks: entry name -> health checks answered not-found
        health: entry name -> scripted BackendHealth values, last one sticks
        fail: method name -> exceptions raised on successive calls (None = no error)
    """

    def __init__(self):
        self.targets = {}
        self.interfaces = {}
        self.vnics = {}
        self.backends = {}
        self.backend_set_sizes = []
        self.health = {}
        self.invisible_checks = {}
        self.image_lag = 0
        self.ignore_image_updates = False
        self.creating_polls = 0
        self.delete_polls = 0
        self.work_requests = False
        self.operations = {}
        self.operation_errors = {}
        self.fail = {}
        self.calls = []
        self._seq = 0
        self._lag = {}
        self._creating = {}
        self._deleting = {}

    # ── Helpers ─────────────────────────────────────────────────────

    def _record(self, method, *args):
        self.calls.append((method, args))
        queue = self.fail.get(method)
        if queue:
            exc = queue.pop(0)
            if exc is not None:
                raise exc

    def called(self, method):
        return [args for name, args in self.calls if name == method]

    def _handle(self, resource_id, service="container-instances"):
        if not self.work_requests:
            return None
        self._seq += 1
        handle = OperationHandle(id=f"wr-{self._seq}", service=service, resource_id=resource_id)
        self.operations.setdefault(handle.id, [OperationStatus.SUCCEEDED])
        return handle

    def add_target(self, target_id, name="app", image="registry.example.com/app:old", state="ACTIVE",
                   created="2025-01-01T00:00:00Z", private_ip=None, public_ip=None):
        self.targets[target_id] = {
            "id": target_id,
            "displayName": name,
            "lifecycleState": state,
            "timeCreated": created,
            "containers": [{"containerId": f"{target_id}-c", "imageUrl": image}],
            "freeformTags": {},
        }
        if private_ip or public_ip:
            self.interfaces[target_id] = [{"privateIp": private_ip, "publicIp": public_ip}]
        return self.targets[target_id]

    def add_backend(self, backend_set, entry):
        self.backends.setdefault(backend_set, []).append(entry)

    def live_targets(self, name="app"):
        return [t for t in self.targets.values() if t["displayName"] == name]

    # ── Compute targets ─────────────────────────────────────────────

    async def list_targets(self, name_filter):
        self._record("list_targets", name_filter)
        return {"data": [copy.deepcopy(t) for t in self.targets.values()]}

    async def get_target(self, target_id):
        self._record("get_target", target_id)
        if target_id not in self.targets:
            raise ResourceNotFound(f"target {target_id} not found")
        if target_id in self._deleting:
            if self._deleting[target_id] <= 0:
                del self._deleting[target_id]
                del self.targets[target_id]
                raise ResourceNotFound(f"target {target_id} not found")
            self._deleting[target_id] -= 1
        descriptor = copy.deepcopy(self.targets[target_id])
        if self._creating.get(target_id, 0) > 0:
            self._creating[target_id] -= 1
            descriptor["lifecycleState"] = "CREATING"
        if self._lag.get(target_id, 0) > 0:
            self._lag[target_id] -= 1
            descriptor["containers"] = [{"containerId": f"{target_id}-c"}]
        return descriptor

    async def create_target(self, spec):
        self._record("create_target", spec)
        self._seq += 1
        target_id = f"ocid1.target.{self._seq}"
        self.targets[target_id] = {
            "id": target_id,
            "displayName": spec.name,
            "lifecycleState": "ACTIVE",
            "timeCreated": f"2025-06-01T00:00:{self._seq:02d}Z",
            "containers": [{"containerId": f"{target_id}-c", "imageUrl": spec.image}],
            "freeformTags": dict(spec.tags),
        }
        self.interfaces[target_id] = [{"privateIp": f"10.0.0.{10 + self._seq}", "publicIp": f"203.0.113.{10 + self._seq}"}]
        self._creating[target_id] = self.creating_polls
        return MutationResult(target_id, self._handle(target_id))

    async def update_target(self, target_id, spec):
        self._record("update_target", target_id, spec)
        if target_id not in self.targets:
            raise ResourceNotFound(f"target {target_id} not found")
        if not self.ignore_image_updates:
            self.targets[target_id]["containers"] = [{"containerId": f"{target_id}-c", "imageUrl": spec.image}]
        self._lag[target_id] = self.image_lag
        return MutationResult(target_id, self._handle(target_id))

    async def delete_target(self, target_id):
        self._record("delete_target", target_id)
        if target_id not in self.targets:
            raise ResourceNotFound(f"target {target_id} not found")
        self.targets[target_id]["lifecycleState"] = "DELETING"
        self._deleting[target_id] = self.delete_polls
        return MutationResult(target_id, self._handle(target_id))

    # ── Long-running operations ─────────────────────────────────────

    async def get_operation_status(self, handle):
        self._record("get_operation_status", handle.id)
        statuses = self.operations.setdefault(handle.id, [OperationStatus.SUCCEEDED])
        return statuses.pop(0) if len(statuses) > 1 else statuses[0]

    async def list_operation_errors(self, handle):
        self._record("list_operation_errors", handle.id)
        return self.operation_errors.get(handle.id, [])

    # ── Networking ──────────────────────────────────────────────────

    async def list_network_interfaces(self, target_id):
        self._record("list_network_interfaces", target_id)
        return {"data": copy.deepcopy(self.interfaces.get(target_id, []))}

    async def get_network_interface(self, interface_id):
        self._record("get_network_interface", interface_id)
        if interface_id not in self.vnics:
            raise ResourceNotFound(f"interface {interface_id} not found")
        return copy.deepcopy(self.vnics[interface_id])

    # ── Load balancer backends ──────────────────────────────────────

    async def list_backends(self, backend_set):
        self._record("list_backends", backend_set)
        return {
            "data": [
                {"name": e.name, "ipAddress": e.address, "port": e.port}
                for e in self.backends.get(backend_set, [])
            ]
        }

    async def create_backend(self, backend_set, entry):
        self._record("create_backend", backend_set, entry)
        entries = self.backends.setdefault(backend_set, [])
        entries.append(entry)
        self.backend_set_sizes.append(len(entries))
        return MutationResult(entry.name, self._handle(entry.name, "load-balancer"))

    async def delete_backend(self, backend_set, entry):
        self._record("delete_backend", backend_set, entry)
        entries = self.backends.get(backend_set, [])
        if entry not in entries:
            raise ResourceNotFound(f"backend {entry.name} not found")
        entries.remove(entry)
        self.backend_set_sizes.append(len(entries))
        return MutationResult(entry.name, self._handle(entry.name, "load-balancer"))

    async def get_backend_health(self, backend_set, entry):
        self._record("get_backend_health", backend_set, entry)
        if entry not in self.backends.get(backend_set, []):
            raise ResourceNotFound(f"backend {entry.name} not found")
        if self.invisible_checks.get(entry.name, 0) > 0:
            self.invisible_checks[entry.name] -= 1
            raise ResourceNotFound(f"backend {entry.name} not found")
        script = self.health.get(entry.name)
        if not script:
            return BackendHealth.OK
        return script.pop(0) if len(script) > 1 else script[0]


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the bluegreen CLI as a subprocess.

    Deploy-related variables of the calling environment are dropped so the
    test controls every input; pass *env* to add some back.
    """
    dropped = set(ENV_VARS) | {"GITHUB_ENV", "OLD_INSTANCE_IDS", "CONTAINER_INSTANCE_ID", "NEW_INSTANCE_IP"}

    def _run(*args, env=None):
        run_env = {k: v for k, v in os.environ.items() if k not in dropped}
        run_env.update(env or {})
        result = subprocess.run(
            [sys.executable, "-m", "bluegreen.bluegreen", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env=run_env,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_config():
    """Return a factory building a valid DeployConfig with overrides applied."""

    def _make(**overrides):
        values = dict(BASE_CONFIG)
        values.update(overrides)
        return DeployConfig.from_dict(values)

    return _make


@pytest.fixture
def write_config(tmp_path):
    """Return a factory that writes a deploy config YAML and returns its path."""

    def _write(**overrides):
        values = dict(BASE_CONFIG)
        values.update(overrides)
        path = tmp_path / "deploy.yaml"
        with open(path, "w") as f:
            yaml.dump({"deploy": values}, f)
        return str(path)

    return _write


@pytest.fixture
def backend_set():
    return BACKEND_SET
