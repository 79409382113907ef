from app.models import new_post, to_iso


async def test_create_stamps_and_returns_id(db, clock):
    post_id = await db.posts.create(new_post("text", "Galatasaray - Fenerbahçe"))
    post = await db.posts.get(post_id)
    assert post["id"] == post_id
    assert post["createdAt"] == post["updatedAt"] == to_iso(clock())
    assert post["type"] == "text"


async def test_create_keeps_supplied_id(db):
    assert await db.posts.create({"id": "abc", "type": "text"}) == "abc"
    assert (await db.posts.get("abc"))["type"] == "text"


async def test_get_absent_is_none(db):
    assert await db.posts.get("nope") is None


async def test_update_merges_and_clears(db, clock):
    post_id = await db.posts.create(new_post("text", "maç", home_team="A", away_team="B"))
    clock.advance(minutes=5)

    assert await db.posts.update(post_id, {"title": "Derbi", "awayTeam": None})
    post = await db.posts.get(post_id)
    assert post["title"] == "Derbi"
    assert post["homeTeam"] == "A"
    assert post["awayTeam"] is None
    assert post["updatedAt"] == to_iso(clock())
    assert post["updatedAt"] != post["createdAt"]


async def test_update_cannot_change_identity(db):
    post_id = await db.posts.create(new_post("text"))
    created_at = (await db.posts.get(post_id))["createdAt"]
    await db.posts.update(post_id, {"id": "other", "createdAt": "1999-01-01T00:00:00+00:00"})
    post = await db.posts.get(post_id)
    assert post["id"] == post_id
    assert post["createdAt"] == created_at
    assert await db.posts.get("other") is None


async def test_update_absent_returns_false(db):
    assert await db.posts.update("missing", {"title": "x"}) is False


async def test_delete_is_idempotent(db):
    post_id = await db.posts.create(new_post("text"))
    assert await db.posts.delete(post_id)
    assert await db.posts.get(post_id) is None
    assert await db.posts.delete(post_id)


async def test_active_posts_exclude_deadline_equal_to_now(db, clock):
    open_id = await db.posts.create(new_post("text", "no deadline"))
    clock.advance(seconds=1)
    future_id = await db.posts.create(new_post("text", deadline=to_iso(clock.now.replace(hour=20))))
    clock.advance(seconds=1)
    boundary_id = await db.posts.create(new_post("text", deadline=to_iso(clock())))
    past_id = await db.posts.create(new_post("text", deadline="2020-01-01T00:00:00+00:00"))

    active = [p["id"] for p in await db.posts.get_active()]
    assert active == [future_id, open_id]
    assert boundary_id not in active
    assert past_id not in active

    clock.advance(seconds=-1)
    assert boundary_id in [p["id"] for p in await db.posts.get_active()]


async def test_all_sorted_newest_first_with_limit(db, clock):
    ids = []
    for i in range(5):
        ids.append(await db.posts.create(new_post("text", f"post {i}")))
        clock.advance(minutes=1)

    assert [p["id"] for p in await db.posts.get_all_sorted()] == list(reversed(ids))
    assert [p["id"] for p in await db.posts.get_all_sorted(limit=2)] == [ids[4], ids[3]]


async def test_unreadable_deadline_is_not_active(db, caplog):
    await db.posts.create({"id": "bozuk", "type": "text", "deadline": "yarın akşam"})
    open_id = await db.posts.create(new_post("text"))

    assert [post["id"] for post in await db.posts.get_active()] == [open_id]
    assert "Corrupt deadline on post bozuk" in caplog.text
