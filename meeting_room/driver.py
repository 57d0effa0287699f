from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

from loguru import logger

from .manager import MeetingRoomManager
from .states import Action, ActionResult


class MeetingDriver:
    """Polling loop: dispatch next_turn, wait `delay` seconds, repeat.

    Stops on the first non-ok result (not active, expired, provider error),
    after `max_turns` successful turns, or when `stop()` is called. A stop does
    not interrupt a turn already in flight.
    """

    def __init__(
        self,
        manager: MeetingRoomManager,
        room_id: str,
        delay: float = 3.0,
        on_result: Optional[Callable[[ActionResult], None]] = None,
    ) -> None:
        self.manager = manager
        self.room_id = room_id
        self.delay = max(0.0, delay)
        self.on_result = on_result
        self._stopped = asyncio.Event()

    def stop(self) -> None:
        self._stopped.set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.delay)
        except asyncio.TimeoutError:
            pass

    async def run(self, max_turns: Optional[int] = None) -> List[ActionResult]:
        results: List[ActionResult] = []
        turns = 0
        logger.info(f"driver_start | room={self.room_id} delay={self.delay}s max_turns={max_turns}")
        while not self.stopped:
            result = await self.manager.handle_action(self.room_id, Action.NEXT_TURN)
            results.append(result)
            if self.on_result is not None:
                self.on_result(result)
            if not result.ok:
                logger.info(
                    f"driver_halt | room={self.room_id} ended={result.ended} "
                    f"kind={result.kind.value if result.kind else None} error={result.error}"
                )
                break
            turns += 1
            if max_turns is not None and turns >= max_turns:
                logger.info(f"driver_turn_cap | room={self.room_id} turns={turns}")
                break
            await self._sleep()
        logger.info(f"driver_stop | room={self.room_id} turns={turns}")
        return results
