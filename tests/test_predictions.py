import asyncio

import pytest

from conftest import prediction


async def test_count_and_newest_first_order(db, clock):
    ids = []
    for i in range(4):
        ids.append(await db.predictions.create("p1", prediction(i, 0, token=f"t{i}")))
        clock.advance(seconds=1)

    assert await db.predictions.get_count("p1") == 4
    stored = await db.predictions.get_by_post_id("p1", include_hidden=True)
    assert [p["id"] for p in stored] == list(reversed(ids))


async def test_ids_are_unique_and_generated(db):
    data = prediction(1, 1, token="t")
    data["id"] = "forced"
    first = await db.predictions.create("p1", data)
    second = await db.predictions.create("p1", prediction(1, 1, token="u"))
    assert first != "forced"
    assert first != second


async def test_hidden_predictions_filtered_by_default(db):
    await db.predictions.create("p1", prediction(1, 0, token="a"))
    await db.predictions.create("p1", prediction(2, 0, token="b", hidden=True))

    assert len(await db.predictions.get_by_post_id("p1")) == 1
    assert len(await db.predictions.get_by_post_id("p1", include_hidden=True)) == 2
    assert await db.predictions.get_count("p1") == 2


async def test_unknown_post_is_empty(db):
    assert await db.predictions.get_by_post_id("none") == []
    assert await db.predictions.get_count("none") == 0


async def test_duplicate_by_either_signal(db):
    await db.predictions.create("p1", prediction(1, 0, telegram_id="42", token="tok-a"))

    assert await db.predictions.check_duplicate("p1", "42", None)
    assert await db.predictions.check_duplicate("p1", None, "tok-a")
    assert await db.predictions.check_duplicate("p1", "42", "tok-other")
    assert await db.predictions.check_duplicate("p1", "99", "tok-a")
    assert not await db.predictions.check_duplicate("p1", "99", "tok-b")
    assert not await db.predictions.check_duplicate("p1", None, None)
    assert not await db.predictions.check_duplicate("p2", "42", "tok-a")


async def test_anonymous_predictions_do_not_match_on_null_telegram_id(db):
    await db.predictions.create("p1", prediction(1, 0, telegram_id=None, token="tok-a"))
    assert not await db.predictions.check_duplicate("p1", None, "tok-b")


async def test_create_unique_rejects_concurrent_duplicates(db):
    results = await asyncio.gather(
        db.predictions.create_unique("p1", prediction(1, 0, telegram_id="42", token="a")),
        db.predictions.create_unique("p1", prediction(2, 0, telegram_id="42", token="b")),
        db.predictions.create_unique("p1", prediction(3, 0, telegram_id=None, token="a")),
    )
    assert sum(1 for r in results if r) == 1
    assert await db.predictions.get_count("p1") == 1


async def test_stats_all_zero_when_empty_or_hidden(db):
    zero = {"total": 0, "avgHome": 0, "avgAway": 0, "minHome": 0, "maxHome": 0, "minAway": 0, "maxAway": 0}
    assert await db.predictions.get_stats("p1") == zero

    await db.predictions.create("p1", prediction(3, 3, token="a", hidden=True))
    assert await db.predictions.get_stats("p1") == zero


async def test_stats_aggregates_visible_predictions(db):
    for i, (home, away) in enumerate([(1, 0), (1, 0), (2, 1)]):
        await db.predictions.create("p1", prediction(home, away, token=f"t{i}"))
    await db.predictions.create("p1", prediction(9, 9, token="hidden", hidden=True))

    stats = await db.predictions.get_stats("p1")
    assert stats["total"] == 3
    assert stats["avgHome"] == pytest.approx(4 / 3)
    assert stats["avgAway"] == pytest.approx(1 / 3)
    assert (stats["minHome"], stats["maxHome"]) == (1, 2)
    assert (stats["minAway"], stats["maxAway"]) == (0, 1)


async def test_popular_scores_break_ties_by_first_encounter(db, clock):
    scores = [(1, 0), (1, 0), (1, 0), (2, 1), (2, 1), (2, 1)]
    for i, (home, away) in enumerate(scores):
        await db.predictions.create("p1", prediction(home, away, token=f"t{i}"))
        clock.advance(seconds=1)

    popular = await db.predictions.get_popular_scores("p1")
    assert popular == [
        {"homeScore": 2, "awayScore": 1, "count": 3},
        {"homeScore": 1, "awayScore": 0, "count": 3},
    ]


async def test_popular_scores_by_count_and_limit(db, clock):
    scores = [(0, 0), (2, 1), (2, 1), (1, 0), (2, 1), (3, 3)]
    for i, (home, away) in enumerate(scores):
        await db.predictions.create("p1", prediction(home, away, token=f"t{i}"))
    await db.predictions.create("p1", prediction(3, 3, token="h", hidden=True))

    popular = await db.predictions.get_popular_scores("p1", limit=2)
    assert popular[0] == {"homeScore": 2, "awayScore": 1, "count": 3}
    # newest-first scan meets (3, 3) before (1, 0) and (0, 0)
    assert popular[1] == {"homeScore": 3, "awayScore": 3, "count": 1}


async def test_by_user_spans_posts_newest_first(db, clock):
    first = await db.predictions.create("p1", prediction(1, 0, telegram_id="42", token="a"))
    clock.advance(hours=1)
    await db.predictions.create("p1", prediction(1, 0, telegram_id="7", token="b"))
    second = await db.predictions.create("p2", prediction(2, 2, telegram_id="42", token="a"))

    found = await db.predictions.get_by_user("42")
    assert [(p["postId"], p["id"]) for p in found] == [("p2", second), ("p1", first)]


async def test_page(db, clock):
    for i in range(5):
        await db.predictions.create("p1", prediction(i, 0, token=f"t{i}"))
        clock.advance(seconds=1)

    page = await db.predictions.get_page("p1", page=2, limit=2)
    assert [p["homeScore"] for p in page["predictions"]] == [2, 1]
    assert page["total"] == 5
    assert page["hasMore"] is True
    assert (await db.predictions.get_page("p1", page=3, limit=2))["hasMore"] is False
