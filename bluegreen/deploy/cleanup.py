"""Retire superseded compute targets."""

import logging

from bluegreen.deploy.operations import (
    DEFAULT_OPERATION_INTERVAL,
    await_mutation,
    wait_for_removal,
)
from bluegreen.errors import DeployError, PartialCleanupError, ResourceNotFound
from bluegreen.provisioning.fields import first_field
from bluegreen.provisioning.types import CleanupResult, LifecycleState

logger = logging.getLogger(__name__)


class CleanupController:
    """Deletes targets idempotently: already-gone targets count as retired."""

    def __init__(self, provider, timeout=1800, interval=DEFAULT_OPERATION_INTERVAL, clock=None):
        self.provider = provider
        self.timeout = timeout
        self.interval = interval
        self.clock = clock

    async def retire(self, target_id, await_removal=False):
        """Delete *target_id* and wait for the deletion to finish.

        Args:
            await_removal: also wait until the provider stops returning the
                target, even after its work request succeeded or while it is
                already DELETING. Needed before creating a replacement.

        Raises:
            DeployError: the delete failed or timed out.
        """
        try:
            descriptor = await self.provider.get_target(target_id)
        except ResourceNotFound:
            logger.info(f"Skip delete (not found): {target_id}")
            return
        state = LifecycleState.parse(first_field(descriptor, "lifecycleState", "lifecycle-state"))
        if state is LifecycleState.DELETED:
            logger.info(f"Skip delete (already DELETED): {target_id}")
            return
        if state is LifecycleState.DELETING:
            logger.info(f"Skip delete (already DELETING): {target_id}")
            if await_removal:
                await self._wait_gone(target_id)
            return

        logger.info(f"Deleting target {target_id} (state={state.value})")
        try:
            result = await self.provider.delete_target(target_id)
        except ResourceNotFound:
            logger.info(f"Target {target_id} vanished before delete.")
            return

        tracked = await await_mutation(self.provider, result, self.timeout, interval=self.interval, clock=self.clock)
        if not tracked or await_removal:
            await self._wait_gone(target_id)
        logger.info(f"Target {target_id} deleted.")

    async def _wait_gone(self, target_id):
        await wait_for_removal(self.provider, target_id, self.timeout, interval=self.interval, clock=self.clock)

    async def retire_all(self, target_ids, keep=None) -> list[CleanupResult]:
        """Best-effort retirement of secondary targets. Never raises.

        Failures are logged as warnings and returned; the deployed target
        stays authoritative whatever happens here.
        """
        results = []
        for target_id in target_ids:
            target_id = (target_id or "").strip()
            if not target_id or target_id == keep:
                continue
            try:
                await self.retire(target_id)
            except DeployError as e:
                warning = PartialCleanupError(f"Failed to retire {target_id}: {e}", target_id)
                logger.warning(f"WARNING: {warning}")
                results.append(CleanupResult(target_id, ok=False, detail=str(warning)))
            else:
                results.append(CleanupResult(target_id, ok=True))
        return results
