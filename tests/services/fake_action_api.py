"""Fake Action API — scripted responses with an optional gate to hold calls in flight."""

import asyncio

from territory_sync.core.board import BoardSnapshot, Cell


class FakeActionApi:
    """Stands in for ResilientActionApiClient at the coordinator boundary.

    results: dict of method name → return value (or exception to raise)
    gate: when set, every mutation waits on it, so tests can act mid-flight
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.results: dict = {}
        self.gate: asyncio.Event | None = None

    def hold(self) -> asyncio.Event:
        self.gate = asyncio.Event()
        return self.gate

    async def capture(self, room_id, x, y, actor_id=None) -> Cell | BoardSnapshot:
        return await self._respond("capture", room_id, x, y, actor_id)

    async def defend(self, room_id, x, y, actor_id=None) -> Cell | BoardSnapshot:
        return await self._respond("defend", room_id, x, y, actor_id)

    async def reset(self, room_id, actor_id=None) -> BoardSnapshot | None:
        return await self._respond("reset", room_id, actor_id)

    async def get_board(self, room_id) -> BoardSnapshot:
        self.calls.append(("get_board", room_id))
        return self._result("get_board")

    async def get_world(self, room_id):
        self.calls.append(("get_world", room_id))
        return self._result("get_world")

    async def aclose(self) -> None:
        self.calls.append(("aclose",))

    async def _respond(self, name, *args):
        self.calls.append((name, *args))
        if self.gate is not None:
            await self.gate.wait()
        return self._result(name)

    def _result(self, name):
        result = self.results.get(name)
        if isinstance(result, Exception):
            raise result
        return result

    def mutation_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("capture", "defend", "reset")]
