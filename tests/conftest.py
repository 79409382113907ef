from datetime import datetime, timedelta, timezone

import pytest

from app.database import DataManager


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def db(tmp_path, clock):
    manager = DataManager(tmp_path / "data", tmp_path / "backups", clock=clock)
    manager.initialize()
    return manager


def prediction(home, away, telegram_id=None, token=None, rumuz="tahminci", hidden=False):
    return {
        "telegramId": telegram_id,
        "username": rumuz,
        "rumuz": rumuz,
        "homeScore": home,
        "awayScore": away,
        "userToken": token,
        "ipAddress": "127.0.0.1",
        "userAgent": "pytest",
        "isHidden": hidden,
    }
