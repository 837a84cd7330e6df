from unittest.mock import AsyncMock, patch

import pytest

from callstream.bot.resilience import NO_RETRY, ResilientHandle, ResourceClosedError, RetryPolicy


class Resource:
    def __init__(self, n):
        self.n = n


def counting_factory():
    created = []

    async def factory():
        resource = Resource(len(created))
        created.append(resource)
        return resource

    return factory, created


@pytest.mark.asyncio
async def test_acquire_creates_once():
    factory, created = counting_factory()
    handle = ResilientHandle("test", factory=factory)

    first = await handle.acquire()
    second = await handle.acquire()

    assert first is second
    assert handle.current is first
    assert len(created) == 1


@pytest.mark.asyncio
async def test_acquire_without_factory_raises():
    handle = ResilientHandle("test")
    with pytest.raises(RuntimeError):
        await handle.acquire()


@pytest.mark.asyncio
async def test_acquire_factory_failure_stores_nothing():
    handle = ResilientHandle("test", factory=AsyncMock(side_effect=ConnectionError("down")))
    with pytest.raises(ConnectionError):
        await handle.acquire()
    assert handle.current is None


@pytest.mark.asyncio
async def test_invalidate_closes_and_drops():
    factory, _ = counting_factory()
    closer = AsyncMock()
    handle = ResilientHandle("test", factory=factory, closer=closer)
    resource = await handle.acquire()

    await handle.invalidate()
    await handle.invalidate()

    closer.assert_awaited_once_with(resource)
    assert handle.current is None


@pytest.mark.asyncio
async def test_invalidate_swallows_closer_errors():
    factory, _ = counting_factory()
    handle = ResilientHandle("test", factory=factory, closer=AsyncMock(side_effect=OSError("boom")))
    await handle.acquire()

    await handle.invalidate()
    assert handle.current is None


@pytest.mark.asyncio
async def test_run_recreates_resource_after_failure():
    factory, created = counting_factory()
    handle = ResilientHandle("test", factory=factory, policy=RetryPolicy(max_retries=3, backoff_seconds=0.5))

    async def operation(resource):
        if resource.n < 2:
            raise ConnectionError("broken stream")
        return resource.n

    with patch("callstream.bot.resilience.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        assert await handle.run(operation) == 2

    assert len(created) == 3
    assert mock_sleep.await_count == 2
    mock_sleep.assert_awaited_with(0.5)


@pytest.mark.asyncio
async def test_run_gives_up_after_retry_budget():
    factory, created = counting_factory()
    handle = ResilientHandle("test", factory=factory, policy=RetryPolicy(max_retries=3, backoff_seconds=0))
    operation = AsyncMock(side_effect=ConnectionError("still broken"))

    with pytest.raises(ConnectionError):
        await handle.run(operation)

    # One initial attempt plus three retries
    assert operation.await_count == 4
    assert len(created) == 4
    assert handle.current is None


@pytest.mark.asyncio
async def test_no_retry_policy_fails_immediately():
    factory, created = counting_factory()
    handle = ResilientHandle("test", factory=factory, policy=NO_RETRY)

    with pytest.raises(ValueError):
        await handle.run(AsyncMock(side_effect=ValueError("bad")))

    assert len(created) == 1
    assert handle.current is None


@pytest.mark.asyncio
async def test_close_is_terminal():
    factory, created = counting_factory()
    closer = AsyncMock()
    handle = ResilientHandle("test", factory=factory, closer=closer)
    resource = await handle.acquire()

    await handle.close()
    await handle.close()

    assert handle.closed
    assert handle.current is None
    closer.assert_awaited_once_with(resource)
    with pytest.raises(ResourceClosedError):
        await handle.acquire()
    assert len(created) == 1


@pytest.mark.asyncio
async def test_close_during_create_releases_new_resource():
    closer = AsyncMock()
    handle = ResilientHandle("test", closer=closer)
    created = []

    async def factory():
        await handle.close()
        created.append(Resource(0))
        return created[-1]

    with pytest.raises(ResourceClosedError):
        await handle.acquire(factory)

    closer.assert_awaited_once_with(created[0])
    assert handle.current is None


@pytest.mark.asyncio
async def test_run_stops_retrying_once_closed():
    factory, created = counting_factory()
    closer = AsyncMock()
    handle = ResilientHandle(
        "test", factory=factory, closer=closer, policy=RetryPolicy(max_retries=3, backoff_seconds=0)
    )

    async def operation(resource):
        await handle.close()
        raise ConnectionError("stream closed underneath")

    with pytest.raises(ConnectionError):
        await handle.run(operation)

    # No replacement is opened after close
    assert len(created) == 1
    closer.assert_awaited_once_with(created[0])
    assert handle.current is None
