"""Target resolution: find live deploy targets by logical name, newest first."""

import logging
from datetime import datetime, timezone

from bluegreen.provisioning.fields import first_field, normalize_items
from bluegreen.provisioning.types import DeploymentTarget

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def select_targets(response, name) -> list[DeploymentTarget]:
    """Filter a raw list response down to live targets named *name*, newest first."""
    targets = []
    for item in normalize_items(response):
        if not isinstance(item, dict):
            continue
        if first_field(item, "displayName", "display-name") != name:
            continue
        target = DeploymentTarget.from_descriptor(item)
        if not target.id or target.state.is_gone:
            continue
        targets.append(target)
    # Missing timestamps sort as oldest
    targets.sort(key=lambda t: t.time_created or _OLDEST, reverse=True)
    return targets


async def resolve_targets(provider, name) -> list[DeploymentTarget]:
    """Return the live targets matching *name*, newest first. Empty when none match."""
    targets = select_targets(await provider.list_targets(name), name)
    if targets:
        logger.info(f"Found {len(targets)} target(s) named {name}: {', '.join(t.id for t in targets)}")
    else:
        logger.info(f"No existing targets found for name={name}")
    return targets
