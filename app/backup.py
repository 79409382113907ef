"""
Point-in-time copies of the data directory
"""

import asyncio
import logging
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Union

from app.models import Clock, utc_now
from app.storage import JsonStore

logger = logging.getLogger(__name__)


class BackupManager:
    """Copies documents to <backup_dir>/<timestamp>/ and back.

    Backups take no locks, so a snapshot may catch a document between two
    writes of a concurrent task.
    """

    def __init__(self, store: JsonStore, backup_dir: Union[str, Path], clock: Clock = utc_now):
        self.store = store
        self.backup_dir = Path(backup_dir)
        self.clock = clock

    async def create(self) -> Path:
        return await asyncio.to_thread(self._create_sync)

    async def restore(self, backup_path: Union[str, Path]) -> List[str]:
        return await asyncio.to_thread(self._restore_sync, Path(backup_path))

    async def clean_old(self, days_to_keep: int = 7) -> int:
        return await asyncio.to_thread(self._clean_old_sync, days_to_keep)

    async def list_backups(self) -> List[Dict]:
        return await asyncio.to_thread(self._list_sync)

    def _create_sync(self) -> Path:
        timestamp = self.clock().astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        target = self.backup_dir / timestamp
        target.mkdir(parents=True, exist_ok=True)

        for name in self.store.names:
            source = self.store.path(name)
            if not source.exists():
                logger.warning(f"Skipping missing document {source.name}")
                continue
            shutil.copyfile(source, target / source.name)

        logger.info(f"✅ Backup created: {target}")
        return target

    def _restore_sync(self, backup_path: Path) -> List[str]:
        if not backup_path.is_dir():
            raise FileNotFoundError(f"Backup not found: {backup_path}")

        self.store.data_dir.mkdir(parents=True, exist_ok=True)
        restored = []
        for source in sorted(backup_path.iterdir()):
            if not source.is_file():
                continue
            shutil.copyfile(source, self.store.data_dir / source.name)
            restored.append(source.name)

        logger.info(f"✅ Restored from: {backup_path}")
        return restored

    def _clean_old_sync(self, days_to_keep: int) -> int:
        if not self.backup_dir.exists():
            return 0

        cutoff = self.clock() - timedelta(days=days_to_keep)
        deleted = 0
        for entry in self.backup_dir.iterdir():
            if not entry.is_dir():
                continue
            modified = datetime.fromtimestamp(entry.stat().st_mtime, tz=timezone.utc)
            if modified < cutoff:
                shutil.rmtree(entry, ignore_errors=True)
                deleted += 1

        logger.info(f"✅ Deleted {deleted} old backups")
        return deleted

    def _list_sync(self) -> List[Dict]:
        if not self.backup_dir.exists():
            return []

        backups = []
        for entry in self.backup_dir.iterdir():
            if not entry.is_dir():
                continue
            size = sum(f.stat().st_size for f in entry.iterdir() if f.is_file())
            backups.append({
                "name": entry.name,
                "path": str(entry),
                "date": datetime.fromtimestamp(entry.stat().st_mtime, tz=timezone.utc).isoformat(),
                "size": size,
            })
        return sorted(backups, key=lambda b: b["date"], reverse=True)
