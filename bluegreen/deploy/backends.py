"""Backend-set cutover: add the new backend, gate on health, then drop the others.

Old backends are only removed after the new one is visible and accepting
traffic, so the set never drops to zero entries during a successful cutover.
"""

import logging
from dataclasses import dataclass, field

from bluegreen.deploy.operations import DEFAULT_OPERATION_INTERVAL, await_mutation
from bluegreen.deploy.polling import SYSTEM_CLOCK, poll_until
from bluegreen.errors import DeployError, PartialCleanupError, PollTimeout, ResourceNotFound
from bluegreen.provisioning.fields import normalize_items
from bluegreen.provisioning.types import BackendEntry, BackendHealth, CleanupResult

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_INTERVAL = 10


@dataclass
class CutoverResult:
    entry: BackendEntry
    created: bool
    removed: list[BackendEntry] = field(default_factory=list)
    failures: list[CleanupResult] = field(default_factory=list)


def parse_backends(response) -> list[BackendEntry]:
    """Parse a backend listing into unique entries, skipping malformed items."""
    entries = []
    for item in normalize_items(response):
        entry = BackendEntry.from_descriptor(item)
        if entry is not None and entry not in entries:
            entries.append(entry)
    return entries


class BackendCutover:
    def __init__(
        self,
        provider,
        interval=DEFAULT_HEALTH_INTERVAL,
        operation_timeout=1800,
        operation_interval=DEFAULT_OPERATION_INTERVAL,
        clock=None,
    ):
        self.provider = provider
        self.interval = interval
        self.operation_timeout = operation_timeout
        self.operation_interval = operation_interval
        self.clock = clock or SYSTEM_CLOCK

    async def cutover(self, backend_set, new_entry, health_timeout) -> CutoverResult:
        """Make *new_entry* the only healthy backend of *backend_set*.

        Idempotent: an entry that is already registered is not created again.

        Raises:
            PollTimeout: the new backend was not visible and healthy within
                *health_timeout*. No existing backend is removed in that case.
        """
        logger.info(f"Updating backend set {backend_set.name} on {backend_set.load_balancer_id}: new backend {new_entry.name}")
        existing = parse_backends(await self.provider.list_backends(backend_set))
        logger.info(f"Current backends: {', '.join(e.name for e in existing) or '(none)'}")

        created = False
        if new_entry in existing:
            logger.info(f"Backend {new_entry.name} already exists")
        else:
            logger.info(f"Adding backend {new_entry.name}")
            result = await self.provider.create_backend(backend_set, new_entry)
            await await_mutation(
                self.provider, result, self.operation_timeout, interval=self.operation_interval, clock=self.clock
            )
            created = True

        await self._wait_healthy(backend_set, new_entry, health_timeout)

        cutover = CutoverResult(entry=new_entry, created=created)
        stale = [e for e in existing if e != new_entry]
        if stale:
            logger.info(f"Removing old backends (keeping only {new_entry.name})")
        for entry in stale:
            try:
                logger.info(f"Deleting backend {entry.name}")
                result = await self.provider.delete_backend(backend_set, entry)
                await await_mutation(
                    self.provider, result, self.operation_timeout, interval=self.operation_interval, clock=self.clock
                )
            except ResourceNotFound:
                cutover.removed.append(entry)
            except DeployError as e:
                warning = PartialCleanupError(f"Failed to delete backend {entry.name}: {e}", entry.name)
                logger.warning(f"WARNING: {warning}")
                cutover.failures.append(CleanupResult(entry.name, ok=False, detail=str(warning)))
            else:
                cutover.removed.append(entry)
        logger.info("Backend set updated.")
        return cutover

    async def _health(self, backend_set, entry):
        try:
            return await self.provider.get_backend_health(backend_set, entry)
        except ResourceNotFound:
            return BackendHealth.NOT_FOUND

    async def _wait_healthy(self, backend_set, entry, health_timeout):
        """Wait until the backend is visible, then until it accepts traffic, within one budget."""
        started = self.clock.now()
        logger.info(f"Waiting for backend {entry.name} to become visible and healthy (timeout: {health_timeout:.0f}s)")
        await poll_until(
            lambda: self._health(backend_set, entry),
            lambda health: health is not BackendHealth.NOT_FOUND,
            label="backend visibility",
            resource_id=entry.name,
            timeout=health_timeout,
            interval=self.interval,
            clock=self.clock,
            describe=lambda health: health.value,
        )
        remaining = max(health_timeout - (self.clock.now() - started), 0)
        try:
            health = await poll_until(
                lambda: self._health(backend_set, entry),
                lambda health: health.accepts_traffic,
                label="backend health",
                resource_id=entry.name,
                timeout=remaining,
                interval=self.interval,
                clock=self.clock,
                describe=lambda health: health.value,
            )
        except PollTimeout as e:
            logger.error(f"Backend {entry.name} did not become healthy: last health {e.last_state}. Old backends left in place.")
            raise
        logger.info(f"Backend {entry.name} is {health.value}")
