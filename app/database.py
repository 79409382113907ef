from pathlib import Path
from typing import Optional, Union

from app.backup import BackupManager
from app.locks import LockManager
from app.managers import PostManager, PredictionManager, ResultManager, SessionManager, UserStatsManager
from app.models import Clock, utc_now
from app.storage import JsonStore


class DataManager:
    """Wires the store, the lock manager and every repository together"""

    def __init__(
        self,
        data_dir: Union[str, Path],
        backup_dir: Union[str, Path],
        strict: bool = True,
        clock: Clock = utc_now,
        correct_points: int = 10,
        locks: Optional[LockManager] = None,
    ):
        self.store = JsonStore(data_dir, strict=strict)
        self.locks = locks or LockManager()
        self.clock = clock

        self.posts = PostManager(self.store, self.locks, clock)
        self.predictions = PredictionManager(self.store, self.locks, clock)
        self.results = ResultManager(self.store, self.locks, clock)
        self.user_stats = UserStatsManager(self.store, self.locks, clock, correct_points=correct_points)
        self.sessions = SessionManager(self.store, self.locks, clock)
        self.backups = BackupManager(self.store, backup_dir, clock)

    def initialize(self) -> None:
        self.store.initialize()


_db: Optional[DataManager] = None


def init_db(db: DataManager) -> DataManager:
    global _db
    db.initialize()
    _db = db
    return db


def get_db() -> DataManager:
    if _db is None:
        raise RuntimeError("Data layer not initialized; call init_db() first")
    return _db


def db_initialized() -> bool:
    return _db is not None


def reset_db() -> None:
    global _db
    _db = None
