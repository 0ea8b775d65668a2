"""Per-session serialization of event processing."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass
class _Lane:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionLanes:
    """One processing lane per session.

    Events for the same session run one at a time, in the order they asked
    for the lane (``asyncio.Lock`` wakes waiters first-in first-out). Events
    for different sessions never wait on each other. A lane is dropped as
    soon as nobody holds or waits for it.
    """

    def __init__(self) -> None:
        self._lanes: dict[str, _Lane] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        """Run the enclosed block exclusively for ``session_id``."""
        lane = self._lanes.get(session_id)
        if lane is None:
            lane = self._lanes[session_id] = _Lane()
        lane.users += 1
        try:
            async with lane.lock:
                yield
        finally:
            lane.users -= 1
            if lane.users == 0 and self._lanes.get(session_id) is lane:
                del self._lanes[session_id]

    def active(self) -> int:
        """Number of sessions with an event in progress or queued."""
        return len(self._lanes)
