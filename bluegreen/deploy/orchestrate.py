"""Deploy orchestration: strategy -> address -> cutover -> cleanup -> smoke check."""

import json
import logging

import httpx

from bluegreen.deploy.addresses import AddressResolver
from bluegreen.deploy.backends import BackendCutover
from bluegreen.deploy.cleanup import CleanupController
from bluegreen.deploy.polling import SYSTEM_CLOCK, poll_until
from bluegreen.deploy.strategy import DeploymentEngine
from bluegreen.errors import DeployError, ProviderError
from bluegreen.provisioning.types import BackendEntry, DeploymentTarget

logger = logging.getLogger(__name__)

SMOKE_INTERVAL = 10


async def smoke_check(url, timeout, interval=SMOKE_INTERVAL, clock=None):
    """Poll *url* until it answers with a 2xx status.

    The first requests after a cutover may hit a warming-up container, so
    connection errors and non-2xx answers are retried until *timeout*.

    Raises:
        PollTimeout: no 2xx answer before *timeout*.
    """

    async def fetch():
        async with httpx.AsyncClient() as client:
            try:
                resp = await client.get(url, timeout=30)
            except httpx.HTTPError as e:
                return f"error: {e.__class__.__name__}"
        return resp.status_code

    logger.info(f"Running smoke test against {url}...")
    status = await poll_until(
        fetch,
        lambda status: isinstance(status, int) and 200 <= status < 300,
        label="smoke test",
        resource_id=url,
        timeout=timeout,
        interval=interval,
        clock=clock,
    )
    logger.info(f"Smoke test passed (HTTP {status}).")


async def log_target_summary(provider, target_id):
    """Log the deployed target as the provider reports it.

    Best-effort: returns the DeploymentTarget, or None when it could not be read.
    """
    try:
        target = DeploymentTarget.from_descriptor(await provider.get_target(target_id))
    except ProviderError as e:
        logger.warning(f"Could not read target {target_id} for post-deploy verification: {e}")
        return None
    logger.info("Post-deploy verification:")
    logger.info(f"  - lifecycleState={target.state.value}")
    logger.info(f"  - displayName={target.name or 'unknown'}")
    logger.info(f"  - freeformTags={json.dumps(target.tags, sort_keys=True)}")
    logger.info("  - containers:")
    for image in target.images or ["unknown"]:
        logger.info(f"    - {image}")
    return target


async def run_cutover(provider, config, address, clock=None):
    """Cut the configured backend set over to *address*."""
    cutover = BackendCutover(
        provider,
        interval=config.health_interval,
        operation_timeout=config.operation_timeout,
        operation_interval=config.operation_interval,
        clock=clock,
    )
    entry = BackendEntry(address, config.backend_port)
    return await cutover.cutover(config.backend_set, entry, config.health_timeout)


async def run_cleanup(provider, config, target_ids, keep, clock=None):
    """Retire *target_ids* (except *keep*). Returns CleanupResults, never raises."""
    if not target_ids:
        return []
    logger.info(f"Cleaning up old targets after cutover (keeping {keep})")
    controller = CleanupController(
        provider, timeout=config.operation_timeout, interval=config.operation_interval, clock=clock
    )
    results = await controller.retire_all(target_ids, keep=keep)
    logger.info("Cleanup complete.")
    return results


async def run_deploy(provider, config, clock=None):
    """Full deploy pass for one logical target name.

    Callers must make sure no other run for the same target name is in
    flight; the provider state is read and acted on without locks.

    Returns:
        DeploymentOutcome with addresses, superseded ids and warnings filled in.

    Raises:
        DeployError: any failure of the strategy, address resolution or cutover.
    """
    clock = clock or SYSTEM_CLOCK
    started = clock.now()

    logger.info("Deploying container target:")
    logger.info(f"  - Name:   {config.target_name}")
    logger.info(f"  - Image:  {config.image}")
    logger.info(f"  - Mode:   {config.strategy}")
    logger.info(f"  - Shape:  {config.shape} (ocpus={config.ocpus:g}, memGB={config.memory_gb:g})")
    logger.info(f"  - Tags:   gitSha={config.git_sha}")

    try:
        outcome = await _run_stages(provider, config, clock)
    except DeployError as e:
        e.add_context(elapsed=clock.now() - started)
        raise

    outcome.elapsed = clock.now() - started
    logger.info(
        f"Deployed {config.image} to {outcome.target_id} at "
        f"{outcome.addresses.for_kind(config.address_kind)}:{config.backend_port} in {outcome.elapsed:.0f}s"
    )
    if outcome.replaced_via_fallback:
        logger.info("Note: the update could not be verified and was replaced.")
    if outcome.warnings:
        logger.warning(f"Completed with {len(outcome.warnings)} cleanup warning(s).")
    return outcome


async def _run_stages(provider, config, clock):
    engine = DeploymentEngine(provider, config, clock=clock)
    outcome = await engine.run()

    outcome.addresses = await AddressResolver(provider).resolve(outcome.target_id)
    address = outcome.addresses.for_kind(config.address_kind)
    target = await log_target_summary(provider, outcome.target_id)
    if not address:
        error = DeployError(
            f"Could not resolve the {config.address_kind.value} address of target {outcome.target_id}; "
            "backend set left unchanged"
        )
        error.add_context(last_state=target.state.value if target else None)
        raise error
    logger.info(f"Resolved backend address ({config.address_kind.value}) = {address}")

    cutover = await run_cutover(provider, config, address, clock=clock)
    outcome.warnings.extend(f.detail for f in cutover.failures)
    logger.info(
        f"Backend changes: added={cutover.entry.name if cutover.created else '(none)'} "
        f"removed={', '.join(e.name for e in cutover.removed) or '(none)'}"
    )

    cleanup = await run_cleanup(provider, config, outcome.superseded_ids, outcome.target_id, clock=clock)
    outcome.warnings.extend(r.detail for r in cleanup if not r.ok)

    if config.smoke_url:
        await smoke_check(config.smoke_url, config.smoke_timeout, clock=clock)
    return outcome
