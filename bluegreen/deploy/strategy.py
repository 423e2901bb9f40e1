"""Deployment strategy engine: drive a logical name to one ACTIVE target running the desired image.

Two strategies:

- replace: delete every matching target (each awaited until gone), then
  create a fresh one. Slow but always converges to a single clean target.
- update: update the newest matching target in place, wait for ACTIVE, then
  verify the image the provider reports. An update can be accepted by the
  control plane without the running container changing, so an unverifiable
  update falls back to replace (or fails when fallback is disabled).
"""

import logging
from enum import Enum

from bluegreen.deploy.cleanup import CleanupController
from bluegreen.deploy.operations import await_mutation, wait_for_state
from bluegreen.deploy.polling import SYSTEM_CLOCK, retry
from bluegreen.deploy.resolver import resolve_targets
from bluegreen.errors import DeployError, ProviderError, ResourceNotFound, VerificationError
from bluegreen.provisioning.types import (
    DeploymentOutcome,
    DeploymentTarget,
    LifecycleState,
)

logger = logging.getLogger(__name__)


class DeployState(Enum):
    NO_TARGET = "NoTarget"
    RESOLVING = "Resolving"
    CREATING = "Creating"
    UPDATING = "Updating"
    VERIFYING = "Verifying"
    REPLACE_FALLBACK = "ReplaceFallback"
    DEPLOYED = "Deployed"
    FAILED = "Failed"


class DeploymentEngine:
    """State machine for one deploy pass. Use once: ``outcome = await engine.run()``."""

    def __init__(self, provider, config, clock=None):
        self.provider = provider
        self.config = config
        self.clock = clock
        self.state = DeployState.NO_TARGET
        self.history = [DeployState.NO_TARGET]
        self.cleanup = CleanupController(
            provider,
            timeout=config.operation_timeout,
            interval=config.operation_interval,
            clock=clock,
        )

    def _enter(self, state):
        logger.info(f"{self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    async def run(self) -> DeploymentOutcome:
        """Execute the configured strategy.

        Returns:
            DeploymentOutcome for the deployed target (addresses not resolved yet).

        Raises:
            DeployError: the run failed; the engine is left in FAILED.
        """
        clock = self.clock or SYSTEM_CLOCK
        started = clock.now()
        self._enter(DeployState.RESOLVING)
        try:
            targets = await resolve_targets(self.provider, self.config.target_name)
            if self.config.strategy == "replace":
                logger.info("Replace strategy: delete all matching targets, then create a fresh one.")
                target_id = await self._replace(targets)
                outcome = DeploymentOutcome(target_id=target_id, strategy="replace", did_replace=True)
            elif not targets:
                logger.info("Update strategy: no existing target, creating one.")
                target_id = await self._create()
                outcome = DeploymentOutcome(target_id=target_id, strategy="update")
            else:
                outcome = await self._update(targets)
        except DeployError as e:
            self._enter(DeployState.FAILED)
            e.add_context(elapsed=clock.now() - started)
            raise

        self._enter(DeployState.DEPLOYED)
        logger.info(f"Deployed target id: {outcome.target_id}")
        return outcome

    # ── Create / replace ──────────────────────────────────────────

    async def _create(self) -> str:
        self._enter(DeployState.CREATING)
        result = await self.provider.create_target(self.config.target_spec())
        target_id = result.resource_id
        logger.info(f"Created target {target_id}, waiting for ACTIVE (timeout: {self.config.state_timeout:.0f}s)")
        await await_mutation(
            self.provider, result, self.config.operation_timeout, interval=self.config.operation_interval, clock=self.clock
        )
        await self._wait_active(target_id)
        return target_id

    async def _replace(self, targets) -> str:
        for target in targets:
            await self.cleanup.retire(target.id, await_removal=True)
        return await self._create()

    async def _wait_active(self, target_id):
        return await wait_for_state(
            self.provider,
            target_id,
            {LifecycleState.ACTIVE},
            self.config.state_timeout,
            interval=self.config.state_interval,
            clock=self.clock,
        )

    # ── Update / verify ───────────────────────────────────────────

    async def _update(self, targets) -> DeploymentOutcome:
        newest = targets[0]
        logger.info(f"Update strategy: updating newest target {newest.id} to {self.config.image}")
        self._enter(DeployState.UPDATING)
        result = await self.provider.update_target(newest.id, self.config.target_spec())
        await await_mutation(
            self.provider, result, self.config.operation_timeout, interval=self.config.operation_interval, clock=self.clock
        )
        state = await self._wait_active(newest.id)

        self._enter(DeployState.VERIFYING)
        try:
            await self._verify_image(newest.id, state)
        except VerificationError as e:
            logger.warning(str(e))
            if not self.config.fallback_to_replace:
                logger.error("Fallback to replace is disabled, not replacing.")
                raise
            self._enter(DeployState.REPLACE_FALLBACK)
            logger.warning("Falling back to REPLACE to guarantee the desired image is deployed.")
            target_id = await self._replace(targets)
            return DeploymentOutcome(
                target_id=target_id,
                strategy="update",
                replaced_via_fallback=True,
                did_replace=True,
            )

        superseded = []
        if len(targets) > 1:
            if self.config.cleanup_duplicates:
                superseded = [t.id for t in targets[1:]]
                logger.info(
                    f"Found {len(targets)} targets named {self.config.target_name}; "
                    f"older duplicates will be retired after cutover (keeping newest: {newest.id})"
                )
            else:
                logger.warning(f"{len(targets) - 1} older duplicate(s) left in place (cleanup_duplicates disabled)")
        return DeploymentOutcome(target_id=newest.id, strategy="update", superseded_ids=superseded)

    async def _reported_images(self, target_id) -> list[str]:
        try:
            descriptor = await self.provider.get_target(target_id)
        except ResourceNotFound:
            raise
        except ProviderError as e:
            logger.warning(f"Could not read images of {target_id}: {e}")
            return []
        return DeploymentTarget.from_descriptor(descriptor).images

    async def _verify_image(self, target_id, state):
        """Check the provider reports the desired image, retrying while the field lags.

        Raises:
            VerificationError: no image reported after all attempts, or none matches.
        """
        images = await retry(
            lambda: self._reported_images(target_id),
            lambda found: bool(found),
            attempts=self.config.image_verify_attempts,
            interval=self.config.image_verify_interval,
            clock=self.clock,
        )
        images = images or []
        if not images:
            raise VerificationError(
                f"Provider did not report any container image for {target_id} after "
                f"{self.config.image_verify_attempts} attempts",
                target_id,
                self.config.image,
                images,
                last_state=state.value,
            )
        logger.info(f"Provider reports container image(s): {', '.join(images)}")
        if self.config.image not in images:
            raise VerificationError(
                f"Provider still does not report the desired image ({self.config.image}) for {target_id}",
                target_id,
                self.config.image,
                images,
                last_state=state.value,
            )
        logger.info(f"Verified {target_id} runs {self.config.image}")
