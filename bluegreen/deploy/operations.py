"""Waiters for asynchronous provider mutations and target lifecycle states."""

import json
import logging

from bluegreen.deploy.polling import poll_until
from bluegreen.errors import OperationFailedError, ProviderError, ResourceNotFound, TargetFailedError
from bluegreen.provisioning.fields import first_field
from bluegreen.provisioning.types import LifecycleState, OperationStatus

logger = logging.getLogger(__name__)

DEFAULT_OPERATION_INTERVAL = 15
DEFAULT_STATE_INTERVAL = 10

# States a target passes through on its way to ACTIVE
_TRANSIENT_STATES = {LifecycleState.CREATING, LifecycleState.UPDATING, LifecycleState.UNKNOWN}


async def wait_for_operation(provider, handle, timeout, interval=DEFAULT_OPERATION_INTERVAL, clock=None):
    """Poll a work request until it reaches a terminal status.

    Returns:
        OperationStatus.SUCCEEDED

    Raises:
        OperationFailedError: the operation ended FAILED (errors are logged) or CANCELED.
        PollTimeout: no terminal status before *timeout*.
    """
    label = f"operation({handle.resource_id or handle.service})"
    status = await poll_until(
        lambda: provider.get_operation_status(handle),
        lambda s: s.is_terminal,
        label=label,
        resource_id=handle.id,
        timeout=timeout,
        interval=interval,
        clock=clock,
        describe=lambda s: s.value,
    )
    if status is OperationStatus.SUCCEEDED:
        return status

    errors = []
    if status is OperationStatus.FAILED:
        try:
            errors = await provider.list_operation_errors(handle)
        except ProviderError as e:
            logger.warning(f"Could not list errors of operation {handle.id}: {e}")
        logger.error(f"{label} FAILED. Operation errors:")
        for error in errors or [{"message": "(none reported)"}]:
            code = first_field(error, "code")
            message = first_field(error, "message") or json.dumps(error)
            logger.error(f"  - {code + ': ' if code else ''}{message}")
    else:
        logger.error(f"{label} CANCELED.")
    raise OperationFailedError(f"Operation {handle.id} ended {status.value}", handle.id, status, errors)


async def _current_state(provider, target_id):
    try:
        descriptor = await provider.get_target(target_id)
    except ResourceNotFound:
        return None
    return LifecycleState.parse(first_field(descriptor, "lifecycleState", "lifecycle-state"))


async def wait_for_removal(provider, target_id, timeout, interval=DEFAULT_OPERATION_INTERVAL, clock=None):
    """Poll a target until the provider no longer returns it or reports it DELETED.

    Used when a delete answered without a work request to track.
    """
    await poll_until(
        lambda: _current_state(provider, target_id),
        lambda state: state is None or state is LifecycleState.DELETED,
        label="removal",
        resource_id=target_id,
        timeout=timeout,
        interval=interval,
        clock=clock,
        describe=lambda state: "gone" if state is None else state.value,
    )


async def wait_for_state(provider, target_id, desired, timeout, interval=DEFAULT_STATE_INTERVAL, clock=None):
    """Poll a target's lifecycle state until it is one of *desired*.

    CREATING and UPDATING are tolerated along the way. A target that turns
    FAILED, DELETING or DELETED (or disappears) will never get there.

    Raises:
        TargetFailedError: the target reached a terminal state.
        PollTimeout: *desired* not reached before *timeout*.
    """
    desired = set(desired)

    async def fetch():
        state = await _current_state(provider, target_id)
        if state is None:
            raise TargetFailedError(f"Target {target_id} disappeared while waiting for {_names(desired)}", target_id, None)
        if state not in desired and state not in _TRANSIENT_STATES:
            raise TargetFailedError(
                f"Target {target_id} entered {state.value} while waiting for {_names(desired)}", target_id, state
            )
        return state

    return await poll_until(
        fetch,
        lambda state: state in desired,
        label=f"state {_names(desired)}",
        resource_id=target_id,
        timeout=timeout,
        interval=interval,
        clock=clock,
        describe=lambda state: state.value,
    )


async def await_mutation(provider, result, timeout, interval=DEFAULT_OPERATION_INTERVAL, clock=None):
    """Wait on a mutation's work request when the provider returned one.

    Returns:
        True if a work request was awaited, False if there was nothing to track.
    """
    if result.handle is None:
        return False
    logger.info(f"Work request: {result.handle.id}")
    await wait_for_operation(provider, result.handle, timeout, interval=interval, clock=clock)
    return True


def _names(states):
    return "|".join(sorted(s.value for s in states))
