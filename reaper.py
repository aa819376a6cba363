import asyncio
from typing import List, Optional

from backend import RoomDirectory
from constants import REAPER_INTERVAL_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class ReaperTask:
    """Background sweep deleting rooms that have been empty for too long.

    Runs independently of the per-room grace timers and catches rooms whose
    timer never fired.
    """

    def __init__(self, directory: RoomDirectory, interval: float = REAPER_INTERVAL_SECONDS):
        self.directory = directory
        self.interval = interval
        self.task: Optional[asyncio.Task] = None

    def sweep(self) -> List[str]:
        deleted = self.directory.reap_stale()
        logger.debug(f"Reaper sweep removed {len(deleted)} room(s), {len(self.directory)} remaining")
        return deleted

    async def run(self):
        logger.info(f"Starting room reaper (interval {self.interval}s)")
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    self.sweep()
                except Exception as e:
                    logger.error(f"Error in room reaper sweep: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("Room reaper cancelled")
            raise

    def start(self) -> asyncio.Task:
        if self.task is None or self.task.done():
            self.task = asyncio.create_task(self.run())
        return self.task

    async def stop(self):
        if self.task is None:
            return
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        self.task = None
