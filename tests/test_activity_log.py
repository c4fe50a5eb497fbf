import pytest

from concierge.schemas.activity import ActivityStatus
from concierge.services.activity_log import ActivityLog


@pytest.fixture
def log(kv) -> ActivityLog:
    return ActivityLog(kv, ttl_seconds=3600, limit=3)


@pytest.mark.asyncio
async def test_start_then_finish(log):
    item = await log.start("s1", type="tool", title="ROI calculation")
    assert item.status is ActivityStatus.IN_PROGRESS

    done = await log.finish("s1", item.id, ActivityStatus.COMPLETED, metadata={"durationMs": 3})
    assert done.status is ActivityStatus.COMPLETED
    assert done.metadata == {"durationMs": 3}

    [stored] = await log.recent("s1")
    assert stored.status is ActivityStatus.COMPLETED


@pytest.mark.asyncio
async def test_list_is_capped_newest_first(log):
    for index in range(5):
        await log.start("s1", type="tool", title=f"call {index}")

    items = await log.recent("s1")
    assert [item.title for item in items] == ["call 4", "call 3", "call 2"]


@pytest.mark.asyncio
async def test_finish_requires_terminal_status(log):
    item = await log.start("s1", type="tool", title="x")
    with pytest.raises(ValueError):
        await log.finish("s1", item.id, ActivityStatus.PENDING)


@pytest.mark.asyncio
async def test_finish_of_dropped_item_returns_none(log):
    assert await log.finish("s1", "gone", ActivityStatus.FAILED) is None


@pytest.mark.asyncio
async def test_clear(log):
    await log.start("s1", type="system", title="hello")
    assert await log.clear("s1") is True
    assert await log.recent("s1") == []
