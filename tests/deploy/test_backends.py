"""Tests for the backend-set cutover controller."""

import pytest

from bluegreen.deploy.backends import BackendCutover, parse_backends
from bluegreen.errors import PollTimeout, ProviderError
from bluegreen.provisioning.types import BackendEntry, BackendHealth


OLD_A = BackendEntry("10.0.0.1", 8080)
OLD_B = BackendEntry("10.0.0.2", 8080)
NEW = BackendEntry("10.0.0.9", 8080)


def test_parse_backends_skips_malformed_and_duplicates():
    response = {
        "data": [
            {"ipAddress": "10.0.0.1", "port": 8080},
            {"ip-address": "10.0.0.2", "port": "8080"},
            {"ipAddress": "10.0.0.1", "port": 8080},
            {"ipAddress": "", "port": 8080},
            {"ipAddress": "10.0.0.3"},
            {"ipAddress": "10.0.0.4", "port": "http"},
            "junk",
        ]
    }
    assert parse_backends(response) == [OLD_A, OLD_B]


def test_backend_entry_name():
    assert NEW.name == "10.0.0.9:8080"


async def test_cutover_adds_new_then_removes_old(provider, clock, backend_set):
    provider.add_backend(backend_set, OLD_A)
    provider.add_backend(backend_set, OLD_B)

    result = await BackendCutover(provider, clock=clock).cutover(backend_set, NEW, health_timeout=600)

    assert provider.backends[backend_set] == [NEW]
    assert result.created is True
    assert result.removed == [OLD_A, OLD_B]
    assert result.failures == []
    names = [name for name, _ in provider.calls if name in ("create_backend", "get_backend_health", "delete_backend")]
    assert names == ["create_backend", "get_backend_health", "get_backend_health", "delete_backend", "delete_backend"]


async def test_cutover_never_empties_backend_set(provider, clock, backend_set):
    provider.add_backend(backend_set, OLD_A)
    provider.health[NEW.name] = [BackendHealth.UNKNOWN, BackendHealth.CRITICAL, BackendHealth.OK]
    provider.invisible_checks[NEW.name] = 2

    await BackendCutover(provider, clock=clock).cutover(backend_set, NEW, health_timeout=600)

    assert provider.backend_set_sizes == [2, 1]
    assert min(provider.backend_set_sizes) > 0
    assert provider.backends[backend_set] == [NEW]


async def test_cutover_is_idempotent(provider, clock, backend_set):
    provider.add_backend(backend_set, OLD_A)
    cutover = BackendCutover(provider, clock=clock)

    await cutover.cutover(backend_set, NEW, health_timeout=600)
    first = list(provider.backends[backend_set])
    result = await cutover.cutover(backend_set, NEW, health_timeout=600)

    assert provider.backends[backend_set] == first == [NEW]
    assert result.created is False
    assert result.removed == []
    assert len(provider.called("create_backend")) == 1


async def test_cutover_into_empty_set(provider, clock, backend_set):
    result = await BackendCutover(provider, clock=clock).cutover(backend_set, NEW, health_timeout=600)

    assert provider.backends[backend_set] == [NEW]
    assert result.removed == []


async def test_warning_health_accepts_traffic(provider, clock, backend_set):
    provider.add_backend(backend_set, OLD_A)
    provider.health[NEW.name] = [BackendHealth.WARNING]

    await BackendCutover(provider, clock=clock).cutover(backend_set, NEW, health_timeout=600)

    assert provider.backends[backend_set] == [NEW]


async def test_health_timeout_keeps_old_backends(provider, clock, backend_set):
    provider.add_backend(backend_set, OLD_A)
    provider.add_backend(backend_set, OLD_B)
    provider.health[NEW.name] = [BackendHealth.CRITICAL]

    with pytest.raises(PollTimeout) as exc_info:
        await BackendCutover(provider, interval=10, clock=clock).cutover(backend_set, NEW, health_timeout=120)

    assert exc_info.value.last_state == "CRITICAL"
    assert exc_info.value.resource_id == NEW.name
    assert provider.called("delete_backend") == []
    assert OLD_A in provider.backends[backend_set] and OLD_B in provider.backends[backend_set]
    assert clock.now() == pytest.approx(120)


async def test_visibility_and_health_share_one_budget(provider, clock, backend_set):
    provider.invisible_checks[NEW.name] = 5  # visible after 50s
    provider.health[NEW.name] = [BackendHealth.CRITICAL]

    with pytest.raises(PollTimeout):
        await BackendCutover(provider, interval=10, clock=clock).cutover(backend_set, NEW, health_timeout=100)

    assert clock.now() == pytest.approx(100)


async def test_never_visible_times_out(provider, clock, backend_set):
    provider.invisible_checks[NEW.name] = 10_000

    with pytest.raises(PollTimeout) as exc_info:
        await BackendCutover(provider, clock=clock).cutover(backend_set, NEW, health_timeout=60)
    assert exc_info.value.last_state == "NOT_FOUND"


async def test_failed_delete_does_not_block_others(provider, clock, backend_set):
    provider.add_backend(backend_set, OLD_A)
    provider.add_backend(backend_set, OLD_B)
    provider.fail["delete_backend"] = [ProviderError("conflict")]

    result = await BackendCutover(provider, clock=clock).cutover(backend_set, NEW, health_timeout=600)

    assert result.removed == [OLD_B]
    assert [f.resource_id for f in result.failures] == [OLD_A.name]
    assert "conflict" in result.failures[0].detail
    assert provider.backends[backend_set] == [OLD_A, NEW]


async def test_backend_already_gone_counts_as_removed(provider, clock, backend_set):
    provider.add_backend(backend_set, OLD_A)
    cutover = BackendCutover(provider, clock=clock)
    original_delete = provider.delete_backend

    async def delete_twice(bs, entry):
        provider.backends[bs].remove(entry)
        return await original_delete(bs, entry)

    provider.delete_backend = delete_twice

    result = await cutover.cutover(backend_set, NEW, health_timeout=600)

    assert result.removed == [OLD_A]
    assert result.failures == []


async def test_backend_work_requests_are_awaited(provider, clock, backend_set):
    provider.add_backend(backend_set, OLD_A)
    provider.work_requests = True

    await BackendCutover(provider, clock=clock).cutover(backend_set, NEW, health_timeout=600)

    assert len(provider.called("get_operation_status")) == 2
