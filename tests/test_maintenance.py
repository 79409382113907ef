import asyncio

from app.maintenance import Maintenance


async def test_cleanup_sessions(db, clock):
    await db.sessions.create("old", None, None, expires_in_days=1)
    clock.advance(days=2)
    assert await Maintenance(db).cleanup_sessions() == 1


async def test_rotate_backups_creates_and_prunes(db):
    path = await Maintenance(db, backup_keep_days=7).rotate_backups()
    assert path is not None and path.exists()


async def test_job_errors_are_logged_not_raised(db, monkeypatch, caplog):
    async def broken():
        raise OSError("disk full")

    monkeypatch.setattr(db.backups, "create", broken)
    assert await Maintenance(db).rotate_backups() is None
    assert "Auto backup error" in caplog.text


async def test_start_and_stop(db):
    maintenance = Maintenance(db, session_cleanup_hours=1, backup_interval_hours=1)
    maintenance.start()
    maintenance.start()
    assert len(maintenance._tasks) == 2
    await asyncio.sleep(0)
    await maintenance.stop()
    assert maintenance._tasks == []
