import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration, normally read from the environment / .env"""
    data_dir: str = "data"
    backup_dir: str = "backups"
    strict_storage: bool = True
    bot_token: Optional[str] = None
    telegram_channels: List[str] = field(default_factory=list)
    admin_ids: List[int] = field(default_factory=list)
    admin_key: str = "changeme"
    session_secret: Optional[str] = None
    base_url: str = "http://localhost:3000"
    port: int = 3000
    session_days: int = 30
    backup_interval_hours: float = 6
    backup_keep_days: int = 7
    session_cleanup_hours: float = 24

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "Settings":
        if load_dotenv_file:
            load_dotenv()

        return cls(
            data_dir=os.getenv("DATA_DIR", "data"),
            backup_dir=os.getenv("BACKUP_DIR", "backups"),
            strict_storage=_flag(os.getenv("STRICT_STORAGE"), True),
            bot_token=os.getenv("BOT_TOKEN") or None,
            telegram_channels=_split(os.getenv("TELEGRAM_CHANNELS")),
            admin_ids=[int(item) for item in _split(os.getenv("ADMIN_IDS"))],
            admin_key=os.getenv("ADMIN_KEY", "changeme"),
            session_secret=os.getenv("SESSION_SECRET") or None,
            base_url=os.getenv("BASE_URL", "http://localhost:3000").rstrip("/"),
            port=int(os.getenv("PORT", 3000)),
            session_days=int(os.getenv("SESSION_DAYS", 30)),
            backup_interval_hours=float(os.getenv("BACKUP_INTERVAL_HOURS", 6)),
            backup_keep_days=int(os.getenv("BACKUP_KEEP_DAYS", 7)),
            session_cleanup_hours=float(os.getenv("SESSION_CLEANUP_HOURS", 24)),
        )

    def widget_url(self, post_id: str) -> str:
        return f"{self.base_url}/widget/{post_id}"
