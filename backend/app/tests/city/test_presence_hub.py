import json

import pytest

from app.city.presence import PresenceHub


def test_count_never_drops_below_one():
    hub = PresenceHub()
    assert hub.count == 1
    key, _ = hub.join()
    other, _ = hub.join()
    assert hub.count == 2
    hub.leave(key)
    hub.leave(other)
    assert hub.count == 1


def test_join_notifies_existing_viewers():
    hub = PresenceHub()
    _, queue = hub.join()
    assert queue.get_nowait() == 1
    hub.join()
    assert queue.get_nowait() == 2


@pytest.mark.asyncio
async def test_stream_yields_current_count_and_leaves_on_close():
    hub = PresenceHub()
    stream = hub.stream()

    first = json.loads(await stream.__anext__())
    assert first == {"count": 1, "status": "connected"}

    hub.join()
    second = json.loads(await stream.__anext__())
    assert second["count"] == 2

    await stream.aclose()
    assert len(hub._viewers) == 1
