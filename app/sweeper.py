import asyncio

from loguru import logger

from app.lifecycle import BookingLifecycle


class ReleaseSweeper:
    """Periodically hands vehicles whose release time has passed back to the pool."""

    def __init__(self, lifecycle: BookingLifecycle, interval: float):
        self.lifecycle = lifecycle
        self.interval = interval
        self.task: asyncio.Task | None = None

    async def start(self) -> None:
        self.task = asyncio.create_task(self._sweep_forever())

    async def stop(self) -> None:
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None

    async def sweep_once(self) -> int:
        try:
            return await self.lifecycle.release_due_vehicles()
        except Exception:
            logger.exception("Vehicle release sweep failed")
            return 0

    async def _sweep_forever(self) -> None:
        while True:
            await self.sweep_once()
            await asyncio.sleep(self.interval)
