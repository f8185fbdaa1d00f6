import asyncio

import pytest
from targetprocess_gateway.core.errors import ValidationError
from targetprocess_gateway.entity_registry import EntityCategory, EntityRegistry
from targetprocess_gateway.services.validation import (
    EntityTypeValidator,
    endpoint_for_type,
    validate_id,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def counting_fetch(names, delay: float = 0.01):
    calls = {"n": 0}

    async def fetch():
        calls["n"] += 1
        await asyncio.sleep(delay)
        return list(names)

    return fetch, calls


@pytest.mark.asyncio
async def test_concurrent_validation_triggers_single_refresh():
    fetch, calls = counting_fetch(["UserStory", "Bug"])
    validator = EntityTypeValidator(fetch)

    results = await asyncio.gather(
        validator.validate_type("UserStory"),
        validator.validate_type("Bug"),
        validator.get_valid_types(),
    )

    assert calls["n"] == 1
    assert results[0] == "UserStory"
    assert results[2] == ["Bug", "UserStory"]


@pytest.mark.asyncio
async def test_invalid_type_lists_valid_names():
    fetch, _ = counting_fetch(["UserStory", "Bug"])
    validator = EntityTypeValidator(fetch)

    with pytest.raises(ValidationError) as exc:
        await validator.validate_type("Storey")

    assert "Invalid entity type: 'Storey'" in str(exc.value)
    assert exc.value.valid_options == ["Bug", "UserStory"]
    assert exc.value.kind == "validation_error"


@pytest.mark.asyncio
async def test_fetch_failure_falls_back_to_registry():
    async def broken():
        raise RuntimeError("metadata down")

    registry = EntityRegistry()
    validator = EntityTypeValidator(broken, registry=registry)

    assert await validator.get_valid_types() == sorted(registry.all_names())
    assert await validator.validate_type("Task") == "Task"


@pytest.mark.asyncio
async def test_empty_fetch_falls_back_to_registry():
    fetch, _ = counting_fetch([])
    validator = EntityTypeValidator(fetch)
    assert "UserStory" in await validator.get_valid_types()


@pytest.mark.asyncio
async def test_no_callback_uses_registry():
    validator = EntityTypeValidator()
    assert await validator.validate_type("Release") == "Release"


@pytest.mark.asyncio
async def test_cache_is_reused_until_ttl_expires():
    clock = FakeClock()
    fetch, calls = counting_fetch(["Bug"], delay=0)
    validator = EntityTypeValidator(fetch, ttl_seconds=60, clock=clock)

    await validator.validate_type("Bug")
    clock.now += 30
    await validator.validate_type("Bug")
    assert calls["n"] == 1

    clock.now += 31
    await validator.validate_type("Bug")
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_clear_forces_refresh():
    fetch, calls = counting_fetch(["Bug"], delay=0)
    validator = EntityTypeValidator(fetch)

    await validator.initialize()
    await validator.initialize()
    assert calls["n"] == 1

    validator.reset()
    assert validator.cache is None
    await validator.get_valid_types()
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_refresh_started_before_clear_does_not_clobber_newer_one():
    gates = [asyncio.Event(), asyncio.Event()]
    results = [["Bug"], ["Bug", "Task"]]
    started = []

    async def fetch():
        i = len(started)
        started.append(i)
        await gates[i].wait()
        return results[i]

    validator = EntityTypeValidator(fetch)

    stale = asyncio.ensure_future(validator.get_valid_types())
    while len(started) < 1:
        await asyncio.sleep(0)
    validator.clear()

    fresh = asyncio.ensure_future(validator.get_valid_types())
    while len(started) < 2:
        await asyncio.sleep(0)

    gates[0].set()
    assert await stale == ["Bug"]
    assert validator.cache is None

    # joins the refresh still in flight instead of starting a third
    joined = asyncio.ensure_future(validator.get_valid_types())
    await asyncio.sleep(0)
    gates[1].set()

    assert await fresh == ["Bug", "Task"]
    assert await joined == ["Bug", "Task"]
    assert len(started) == 2
    assert validator.cache.valid_names == frozenset({"Bug", "Task"})


@pytest.mark.asyncio
async def test_unknown_remote_names_are_registered_as_custom():
    registry = EntityRegistry()
    fetch, _ = counting_fetch(["Bug", "Risk"], delay=0)
    validator = EntityTypeValidator(fetch, registry=registry)

    await validator.validate_type("Risk")

    info = validator.get_type_info("Risk")
    assert info is not None
    assert info.category == EntityCategory.CUSTOM
    assert validator.supports_custom_fields("Risk")
    assert not validator.is_assignable("Risk")
    assert validator.is_assignable("Bug")


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_refresh():
    fetch, calls = counting_fetch(["Bug"], delay=0.05)
    validator = EntityTypeValidator(fetch)

    first = asyncio.ensure_future(validator.validate_type("Bug"))
    await asyncio.sleep(0)
    first.cancel()

    assert await validator.validate_type("Bug") == "Bug"
    assert calls["n"] == 1


def test_endpoint_mapping():
    assert endpoint_for_type("TimeSheet") == "time"
    assert endpoint_for_type("Task") == "Tasks"
    assert endpoint_for_type("UserStory") == "UserStorys"
    assert EntityTypeValidator().endpoint_for_type("Bug") == "Bugs"


@pytest.mark.parametrize("value", [1, 42])
def test_validate_id_accepts_positive_integers(value):
    assert validate_id(value) == value


@pytest.mark.parametrize("value", [0, -3, 1.5, "7", None, True])
def test_validate_id_rejects_everything_else(value):
    with pytest.raises(ValidationError, match="Entity ID must be a positive integer"):
        validate_id(value)
