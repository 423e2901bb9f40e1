"""Unit tests for work-request and lifecycle-state waiters."""

import pytest

from bluegreen.deploy.operations import await_mutation, wait_for_operation, wait_for_removal, wait_for_state
from bluegreen.errors import OperationFailedError, PollTimeout, ProviderError, TargetFailedError
from bluegreen.provisioning.types import LifecycleState, MutationResult, OperationHandle, OperationStatus


# ── wait_for_operation ──────────────────────────────────────────


async def test_wait_for_operation_succeeds_after_progress(provider, clock):
    handle = OperationHandle("wr-1", resource_id="t1")
    provider.operations["wr-1"] = [OperationStatus.IN_PROGRESS, OperationStatus.IN_PROGRESS, OperationStatus.SUCCEEDED]

    status = await wait_for_operation(provider, handle, timeout=1800, clock=clock)

    assert status is OperationStatus.SUCCEEDED
    assert clock.sleeps == [15, 15]


async def test_wait_for_operation_failed_lists_errors(provider, clock, caplog):
    handle = OperationHandle("wr-1", resource_id="t1")
    provider.operations["wr-1"] = [OperationStatus.FAILED]
    provider.operation_errors["wr-1"] = [{"code": "LimitExceeded", "message": "Out of capacity"}]

    with caplog.at_level("ERROR"), pytest.raises(OperationFailedError) as exc_info:
        await wait_for_operation(provider, handle, timeout=1800, clock=clock)

    assert exc_info.value.status is OperationStatus.FAILED
    assert exc_info.value.errors == [{"code": "LimitExceeded", "message": "Out of capacity"}]
    assert "LimitExceeded: Out of capacity" in caplog.text
    assert "last known state: FAILED" in str(exc_info.value)


async def test_wait_for_operation_failed_even_if_error_listing_breaks(provider, clock, caplog):
    handle = OperationHandle("wr-1", resource_id="t1")
    provider.operations["wr-1"] = [OperationStatus.FAILED]
    provider.fail["list_operation_errors"] = [ProviderError("listing broke")]

    with caplog.at_level("WARNING"), pytest.raises(OperationFailedError) as exc_info:
        await wait_for_operation(provider, handle, timeout=1800, clock=clock)

    assert exc_info.value.status is OperationStatus.FAILED
    assert exc_info.value.errors == []
    assert "listing broke" in caplog.text
    assert "(none reported)" in caplog.text


async def test_wait_for_operation_canceled_fails_without_error_listing(provider, clock):
    handle = OperationHandle("wr-1")
    provider.operations["wr-1"] = [OperationStatus.CANCELED]

    with pytest.raises(OperationFailedError):
        await wait_for_operation(provider, handle, timeout=1800, clock=clock)
    assert provider.called("list_operation_errors") == []


async def test_wait_for_operation_timeout(provider, clock):
    handle = OperationHandle("wr-1")
    provider.operations["wr-1"] = [OperationStatus.IN_PROGRESS]

    with pytest.raises(PollTimeout) as exc_info:
        await wait_for_operation(provider, handle, timeout=60, clock=clock)
    assert exc_info.value.last_state == "IN_PROGRESS"
    assert exc_info.value.resource_id == "wr-1"


async def test_await_mutation_without_handle_is_noop(provider, clock):
    assert await await_mutation(provider, MutationResult("t1"), timeout=60, clock=clock) is False
    assert provider.called("get_operation_status") == []


async def test_await_mutation_with_handle_waits(provider, clock):
    result = MutationResult("t1", OperationHandle("wr-9"))
    assert await await_mutation(provider, result, timeout=60, clock=clock) is True
    assert provider.called("get_operation_status") == [("wr-9",)]


# ── wait_for_state ──────────────────────────────────────────────


async def test_wait_for_state_tolerates_creating(provider, clock):
    provider.add_target("t1")
    provider._creating["t1"] = 2

    state = await wait_for_state(provider, "t1", {LifecycleState.ACTIVE}, timeout=1800, clock=clock)

    assert state is LifecycleState.ACTIVE
    assert clock.sleeps == [10, 10]


async def test_wait_for_state_failed_target_raises(provider, clock):
    provider.add_target("t1", state="FAILED")

    with pytest.raises(TargetFailedError) as exc_info:
        await wait_for_state(provider, "t1", {LifecycleState.ACTIVE}, timeout=1800, clock=clock)
    assert exc_info.value.state is LifecycleState.FAILED
    assert clock.sleeps == []
    assert "last known state: FAILED" in str(exc_info.value)


async def test_wait_for_state_vanished_target_raises(provider, clock):
    with pytest.raises(TargetFailedError, match="disappeared") as exc_info:
        await wait_for_state(provider, "missing", {LifecycleState.ACTIVE}, timeout=1800, clock=clock)
    assert exc_info.value.last_state == "gone"


async def test_wait_for_state_timeout_reports_last_state(provider, clock):
    provider.add_target("t1", state="UPDATING")

    with pytest.raises(PollTimeout) as exc_info:
        await wait_for_state(provider, "t1", {LifecycleState.ACTIVE}, timeout=30, clock=clock)
    assert exc_info.value.last_state == "UPDATING"
    assert exc_info.value.resource_id == "t1"


# ── wait_for_removal ────────────────────────────────────────────


async def test_wait_for_removal_until_not_found(provider, clock):
    provider.add_target("t1")
    provider.delete_polls = 2
    await provider.delete_target("t1")

    await wait_for_removal(provider, "t1", timeout=1800, clock=clock)

    assert "t1" not in provider.targets
    assert len(clock.sleeps) == 2


async def test_wait_for_removal_accepts_deleted_state(provider, clock):
    provider.add_target("t1", state="DELETED")
    await wait_for_removal(provider, "t1", timeout=1800, clock=clock)
    assert clock.sleeps == []
