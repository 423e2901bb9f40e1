"""OCI provider: container instances and load balancer backends via the oci CLI."""

import json
import logging
import os
import re
import tempfile

from bluegreen.errors import ProviderError, ResourceNotFound, TransientProviderError
from bluegreen.provisioning.base import ProviderClient
from bluegreen.provisioning.fields import first_field, normalize_items, unwrap_data
from bluegreen.provisioning.shell import require_tool, run_shell_cmd
from bluegreen.provisioning.types import (
    BackendHealth,
    MutationResult,
    OperationHandle,
    OperationStatus,
)

logger = logging.getLogger(__name__)

OCI_BIN = "oci"
CI_SERVICE = "container-instances"
LB_SERVICE = "load-balancer"

_NOT_FOUND_MARKERS = ("NotAuthorizedOrNotFound", "NotFound", '"status": 404')
_TRANSIENT_MARKERS = ("TooManyRequests", "InternalServerError", "ServiceUnavailable", "RequestException", "timed out")
_STATUS_RE = re.compile(r'"status":\s*(\d{3})')

DRY_RUN_TARGET_ID = "dry-run-target-id"


# ── CLI helpers ───────────────────────────────────────────────────


def _classify_failure(command, rc, stderr):
    """Turn a failed CLI invocation into the matching ProviderError subclass."""
    summary = " ".join(command[1:4])
    detail = stderr.strip().splitlines()[-1] if stderr.strip() else f"exit code {rc}"
    message = f"oci {summary} failed: {detail}"

    match = _STATUS_RE.search(stderr)
    status = int(match.group(1)) if match else None
    if status == 404 or any(marker in stderr for marker in _NOT_FOUND_MARKERS):
        return ResourceNotFound(message, command=command, stderr=stderr)
    if status == 429 or (status is not None and status >= 500) or any(m in stderr for m in _TRANSIENT_MARKERS):
        return TransientProviderError(message, command=command, stderr=stderr)
    return ProviderError(message, command=command, stderr=stderr)


def _parse_json(command, stdout):
    if not stdout.strip():
        return {}
    try:
        return json.loads(stdout)
    except json.JSONDecodeError as e:
        raise TransientProviderError(f"Unparsable JSON from oci {' '.join(command[1:4])}: {e}", command=command) from e


def _work_request(response, service, resource_id):
    """Extract the work request id from a mutation response, if any."""
    wr_id = first_field(response, "opc-work-request-id", "opcWorkRequestId")
    if not wr_id or wr_id == "null":
        return None
    return OperationHandle(id=wr_id, service=service, resource_id=resource_id)


def _containers_document(spec):
    return [
        {
            "displayName": spec.container_name,
            "imageUrl": spec.image,
            "environmentVariables": dict(spec.environment),
        }
    ]


def _write_documents(directory, spec, target_id=None):
    """Write the JSON documents for a create/update into *directory*.

    Container environment holds credentials, so it is passed as file:// and
    never appears on a command line.
    """
    documents = {
        "containers": _containers_document(spec),
        "vnics": [{"subnetId": spec.subnet_id, "isPublicIpAssigned": spec.assign_public_ip}],
        "shape-config": {"ocpus": spec.ocpus, "memoryInGBs": spec.memory_gb},
        "freeform-tags": dict(spec.tags),
    }
    documents["update-details"] = {
        "containers": documents["containers"],
        "containerConfig": {"containers": documents["containers"]},
        "shapeConfig": documents["shape-config"],
        "freeformTags": documents["freeform-tags"],
    }
    if target_id:
        documents["update-from-json"] = {
            "containerInstanceId": target_id,
            "updateContainerInstanceDetails": documents["update-details"],
        }
    paths = {}
    for name, content in documents.items():
        path = os.path.join(directory, f"{name}.json")
        with open(path, "w") as f:
            json.dump(content, f)
        paths[name] = f"file://{path}"
    return paths


# ── Provider ──────────────────────────────────────────────────────


class OciCliProvider(ProviderClient):
    """ProviderClient backed by the ``oci`` command line tool.

    In dry-run mode every command is logged instead of executed and the
    provider answers with placeholders that describe a healthy deployment.
    """

    def __init__(self, compartment_id, availability_domain=None, dry_run=False, command_timeout=600):
        self.compartment_id = compartment_id
        self.availability_domain = availability_domain
        self.dry_run = dry_run
        self.command_timeout = command_timeout
        self._dry_run_images = {}
        self._dry_run_deleted = set()

    def check_tools(self):
        """Raise MissingToolError when the oci CLI is unavailable (skipped in dry-run)."""
        if not self.dry_run:
            require_tool(OCI_BIN)

    async def _oci(self, *args):
        """Run ``oci <args> --output json`` and return the parsed response.

        Returns:
            Parsed JSON (``{}`` for empty output), or ``None`` in dry-run mode.
        """
        command = [OCI_BIN, *args, "--output", "json"]
        rc, stdout, stderr = await run_shell_cmd(command, dry_run=self.dry_run, timeout=self.command_timeout)
        if self.dry_run:
            return None
        if rc != 0:
            raise _classify_failure(command, rc, stderr)
        return _parse_json(command, stdout)

    async def _resolve_availability_domain(self):
        if self.availability_domain:
            return self.availability_domain
        response = await self._oci("iam", "availability-domain", "list", "--compartment-id", self.compartment_id)
        if response is None:
            return "dry-run-ad"
        domains = normalize_items(response)
        name = first_field(domains[0], "name") if domains else None
        if not name:
            raise ProviderError(f"No availability domain found in compartment {self.compartment_id}")
        self.availability_domain = name
        logger.info(f"Using availability domain: {name}")
        return name

    # ── Compute targets ───────────────────────────────────────────

    async def list_targets(self, name_filter):
        response = await self._oci(
            "container-instances",
            "container-instance",
            "list",
            "--compartment-id",
            self.compartment_id,
            "--display-name",
            name_filter,
            "--all",
        )
        return [] if response is None else response

    async def get_target(self, target_id):
        response = await self._oci("container-instances", "container-instance", "get", "--container-instance-id", target_id)
        if response is None:
            return {
                "id": target_id,
                "lifecycleState": "DELETED" if target_id in self._dry_run_deleted else "ACTIVE",
                "containers": [{"imageUrl": self._dry_run_images.get(target_id, "dry-run-image")}],
            }
        descriptor = unwrap_data(response)
        if isinstance(descriptor, dict):
            await self._fill_container_images(descriptor)
        return descriptor

    async def _fill_container_images(self, descriptor):
        """Instance descriptors list containers by id only; fetch their image references."""
        for container in descriptor.get("containers") or []:
            if not isinstance(container, dict) or first_field(container, "imageUrl", "image-url", "image"):
                continue
            container_id = first_field(container, "containerId", "container-id", "id")
            if not container_id:
                continue
            try:
                details = unwrap_data(await self._oci("container-instances", "container", "get", "--container-id", container_id))
            except ProviderError as e:
                logger.debug(f"Could not read container {container_id}: {e}")
                continue
            image = first_field(details, "imageUrl", "image-url")
            if image:
                container["imageUrl"] = image

    async def create_target(self, spec):
        availability_domain = await self._resolve_availability_domain()
        logger.info(f"Creating container instance: {spec.name}")
        with tempfile.TemporaryDirectory(prefix="bluegreen-") as tmp:
            docs = _write_documents(tmp, spec)
            response = await self._oci(
                "container-instances",
                "container-instance",
                "create",
                "--availability-domain",
                availability_domain,
                "--compartment-id",
                self.compartment_id,
                "--display-name",
                spec.name,
                "--shape",
                spec.shape,
                "--shape-config",
                docs["shape-config"],
                "--containers",
                docs["containers"],
                "--vnics",
                docs["vnics"],
                "--freeform-tags",
                docs["freeform-tags"],
            )
        if response is None:
            self._dry_run_images[DRY_RUN_TARGET_ID] = spec.image
            return MutationResult(DRY_RUN_TARGET_ID)
        target_id = first_field(unwrap_data(response), "id")
        if not target_id:
            raise ProviderError(f"Create of {spec.name} returned no instance id")
        return MutationResult(target_id, _work_request(response, CI_SERVICE, target_id))

    async def update_target(self, target_id, spec):
        """Update in place, trying each known CLI argument form in order.

        CLI releases disagree on how update details are passed; only a
        rejected invocation moves on to the next form. Not-found and transient
        failures are raised as they are.
        """
        logger.info(f"Updating container instance: {target_id}")
        with tempfile.TemporaryDirectory(prefix="bluegreen-") as tmp:
            docs = _write_documents(tmp, spec, target_id=target_id)
            variants = [
                (
                    "update-details",
                    [
                        "container-instances",
                        "container-instance",
                        "update",
                        "--container-instance-id",
                        target_id,
                        "--update-container-instance-details",
                        docs["update-details"],
                    ],
                ),
                (
                    "from-json",
                    ["container-instances", "container-instance", "update", "--from-json", docs["update-from-json"]],
                ),
            ]
            last_error = None
            for label, args in variants:
                try:
                    response = await self._oci(*args)
                except (ResourceNotFound, TransientProviderError):
                    raise
                except ProviderError as e:
                    logger.warning(f"Update form '{label}' failed: {e}")
                    last_error = e
                    continue
                if response is None:
                    self._dry_run_images[target_id] = spec.image
                    return MutationResult(target_id)
                return MutationResult(target_id, _work_request(response, CI_SERVICE, target_id))
        raise last_error

    async def delete_target(self, target_id):
        logger.info(f"Deleting container instance: {target_id}")
        response = await self._oci(
            "container-instances", "container-instance", "delete", "--container-instance-id", target_id, "--force"
        )
        if response is None:
            self._dry_run_deleted.add(target_id)
            return MutationResult(target_id)
        return MutationResult(target_id, _work_request(response, CI_SERVICE, target_id))

    # ── Long-running operations ───────────────────────────────────

    async def _get_work_request(self, handle):
        if handle.service == LB_SERVICE:
            return await self._oci("lb", "work-request", "get", "--work-request-id", handle.id)
        return await self._oci("container-instances", "work-request", "get", "--work-request-id", handle.id)

    async def get_operation_status(self, handle):
        response = await self._get_work_request(handle)
        if response is None:
            return OperationStatus.SUCCEEDED
        data = unwrap_data(response)
        return OperationStatus.parse(first_field(data, "status", "lifecycleState", "lifecycle-state"))

    async def list_operation_errors(self, handle):
        if handle.service == LB_SERVICE:
            response = await self._get_work_request(handle)
            if response is None:
                return []
            return first_field(unwrap_data(response), "errorDetails", "error-details") or []
        response = await self._oci("container-instances", "work-request-error", "list", "--work-request-id", handle.id, "--all")
        return [] if response is None else normalize_items(response)

    # ── Networking ────────────────────────────────────────────────

    async def list_network_interfaces(self, target_id):
        response = await self._oci("container-instances", "container-instance", "list-vnics", "--container-instance-id", target_id)
        if response is None:
            return [{"privateIp": "10.0.0.10", "publicIp": "203.0.113.10"}]
        return response

    async def get_network_interface(self, interface_id):
        response = await self._oci("network", "vnic", "get", "--vnic-id", interface_id)
        return {} if response is None else unwrap_data(response)

    # ── Load balancer backends ────────────────────────────────────

    def _backend_set_args(self, backend_set):
        return ["--load-balancer-id", backend_set.load_balancer_id, "--backend-set-name", backend_set.name]

    async def list_backends(self, backend_set):
        response = await self._oci("lb", "backend", "list", *self._backend_set_args(backend_set))
        return [] if response is None else response

    async def create_backend(self, backend_set, entry):
        response = await self._oci(
            "lb",
            "backend",
            "create",
            *self._backend_set_args(backend_set),
            "--ip-address",
            entry.address,
            "--port",
            str(entry.port),
        )
        if response is None:
            return MutationResult(entry.name)
        return MutationResult(entry.name, _work_request(response, LB_SERVICE, entry.name))

    async def delete_backend(self, backend_set, entry):
        response = await self._oci(
            "lb", "backend", "delete", *self._backend_set_args(backend_set), "--backend-name", entry.name, "--force"
        )
        if response is None:
            return MutationResult(entry.name)
        return MutationResult(entry.name, _work_request(response, LB_SERVICE, entry.name))

    async def get_backend_health(self, backend_set, entry):
        response = await self._oci("lb", "backend-health", "get", *self._backend_set_args(backend_set), "--backend-name", entry.name)
        if response is None:
            return BackendHealth.OK
        return BackendHealth.parse(first_field(unwrap_data(response), "status"))
