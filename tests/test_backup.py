import os
import time

import pytest

from app.models import DOCUMENTS, new_post
from conftest import prediction


async def populate(db):
    post_id = await db.posts.create(new_post("text", "Galatasaray - Fenerbahçe"))
    await db.predictions.create(post_id, prediction(2, 1, telegram_id="42", token="a"))
    await db.user_stats.upsert("42", "ali", "ali")
    await db.sessions.create("tok", "42", "ali")
    await db.results.create(post_id, 2, 1)
    return post_id


def snapshot(db):
    return {name: db.store.path(name).read_bytes() for name in db.store.names}


async def test_create_copies_every_document(db, clock):
    await populate(db)
    path = await db.backups.create()

    assert path.name == "2024-03-10T12-00-00"
    assert ":" not in path.name
    assert sorted(p.name for p in path.iterdir()) == sorted(f"{name}.json" for name in DOCUMENTS)


async def test_restore_reproduces_identical_documents(db):
    await populate(db)
    before = snapshot(db)
    path = await db.backups.create()

    await db.backups.restore(path)
    assert snapshot(db) == before


async def test_restore_overwrites_later_changes(db):
    post_id = await populate(db)
    before = snapshot(db)
    path = await db.backups.create()

    await db.posts.delete(post_id)
    await db.sessions.delete("tok")
    restored = await db.backups.restore(path)

    assert "posts.json" in restored
    assert snapshot(db) == before
    assert await db.posts.get(post_id) is not None


async def test_restore_missing_backup(db, tmp_path):
    with pytest.raises(FileNotFoundError):
        await db.backups.restore(tmp_path / "backups" / "nope")


async def test_clean_old_removes_only_stale_directories(tmp_path):
    from app.database import DataManager

    db = DataManager(tmp_path / "data", tmp_path / "backups")
    db.initialize()
    fresh = await db.backups.create()
    stale = db.backups.backup_dir / "2000-01-01T00-00-00"
    stale.mkdir()
    ten_days_ago = time.time() - 10 * 86400
    os.utime(stale, (ten_days_ago, ten_days_ago))

    assert await db.backups.clean_old(7) == 1
    assert fresh.exists()
    assert not stale.exists()


async def test_clean_old_without_backup_dir(db):
    assert await db.backups.clean_old() == 0


async def test_list_backups_newest_first(db, clock):
    await populate(db)
    first = await db.backups.create()
    second_dir = db.backups.backup_dir / "later"
    second_dir.mkdir()
    later = time.time() + 60
    os.utime(second_dir, (later, later))

    listed = await db.backups.list_backups()
    assert [b["name"] for b in listed] == ["later", first.name]
    assert listed[1]["size"] > 0
