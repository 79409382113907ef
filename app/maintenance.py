import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from app.database import DataManager

logger = logging.getLogger(__name__)


class Maintenance:
    """Recurring session cleanup and backup rotation"""

    def __init__(self, db: DataManager, session_cleanup_hours: float = 24,
                 backup_interval_hours: float = 6, backup_keep_days: int = 7):
        self.db = db
        self.session_cleanup_hours = session_cleanup_hours
        self.backup_interval_hours = backup_interval_hours
        self.backup_keep_days = backup_keep_days
        self._tasks: List[asyncio.Task] = []

    async def cleanup_sessions(self) -> Optional[int]:
        try:
            cleaned = await self.db.sessions.cleanup()
            logger.info(f"✅ Cleaned {cleaned} expired sessions")
            return cleaned
        except Exception as e:
            logger.error(f"Session cleanup error: {e}")
            return None

    async def rotate_backups(self) -> Optional[Path]:
        try:
            path = await self.db.backups.create()
            await self.db.backups.clean_old(self.backup_keep_days)
            return path
        except Exception as e:
            logger.error(f"Auto backup error: {e}")
            return None

    async def _every(self, hours: float, job) -> None:
        while True:
            await asyncio.sleep(hours * 3600)
            await job()

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._every(self.session_cleanup_hours, self.cleanup_sessions)),
            asyncio.create_task(self._every(self.backup_interval_hours, self.rotate_backups)),
        ]
        logger.info("✅ Maintenance jobs scheduled")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
