"""
Scoring rules and result announcement for the Prediction League
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.database import DataManager
from app.models import RESULT_JOURNAL, to_iso

logger = logging.getLogger(__name__)

WinnerNotifier = Callable[[str, Dict, Dict], Awaitable[Any]]


@dataclass
class ScoringConfig:
    """Configuration for scoring"""
    correct_points: int = 10
    leaderboard_limit: int = 100
    popular_scores_limit: int = 5


class ResultAnnouncementError(Exception):
    """The result could not be stored; the journal entry stays pending"""


def _announce_lock(post_id: str) -> str:
    return f"announce:{post_id}"


def _telegram_ids(predictions: List[Dict]) -> List[str]:
    seen: List[str] = []
    for p in predictions:
        telegram_id = p.get("telegramId")
        if telegram_id and str(telegram_id) not in seen:
            seen.append(str(telegram_id))
    return seen


class ResultAnnouncer:
    """Stores a result and settles user stats as a journaled sequence of steps.

    Overwriting a result first takes back the credit of the previous winners,
    then credits the new ones. Progress is written to the result journal after
    every step so an interrupted run can be finished by resume_pending().
    Winners without a Telegram id have no stats record and are skipped both ways.
    """

    def __init__(self, db: DataManager, config: ScoringConfig = None, notifier: Optional[WinnerNotifier] = None):
        self.db = db
        self.config = config or ScoringConfig()
        self.notifier = notifier

    async def announce(self, post_id: str, home_score: int, away_score: int) -> Dict:
        """Set the result of a post and settle winners"""
        async with self.db.locks.lock(_announce_lock(post_id)):
            return await self._announce(post_id, home_score, away_score)

    async def _announce(self, post_id: str, home_score: int, away_score: int) -> Dict:
        previous = await self.db.results.get(post_id)
        old_winners = await self.db.results.get_winners(post_id) if previous else []

        entry = {
            "postId": post_id,
            "status": "pending",
            "homeScore": home_score,
            "awayScore": away_score,
            "previous": previous,
            "reverse": _telegram_ids(old_winners),
            "reversed": [],
            "resultStored": False,
            "credit": None,
            "credited": [],
            "startedAt": to_iso(self.db.clock()),
            "completedAt": None,
        }
        await self._save(post_id, entry)

        if previous:
            logger.info(f"Overwriting result of {post_id}: {len(entry['reverse'])} previous winners to reverse")
        return await self._run(post_id, entry)

    async def resume_pending(self) -> List[str]:
        """Finish every journaled announcement that did not complete"""
        journal = await self.db.store.read(RESULT_JOURNAL)
        resumed = []
        for post_id, entry in journal.items():
            if entry.get("status") != "pending":
                continue
            logger.warning(f"Resuming interrupted result announcement for {post_id}")
            async with self.db.locks.lock(_announce_lock(post_id)):
                await self._run(post_id, entry)
            resumed.append(post_id)
        return resumed

    async def get_journal(self, post_id: str) -> Optional[Dict]:
        journal = await self.db.store.read(RESULT_JOURNAL)
        return journal.get(post_id)

    async def _run(self, post_id: str, entry: Dict) -> Dict:
        for telegram_id in entry["reverse"]:
            if telegram_id in entry["reversed"]:
                continue
            await self.db.user_stats.revert_correct(telegram_id)
            entry["reversed"].append(telegram_id)
            await self._save(post_id, entry)

        if not entry["resultStored"]:
            if not await self.db.results.create(post_id, entry["homeScore"], entry["awayScore"]):
                raise ResultAnnouncementError(f"Could not store result for {post_id}")
            entry["resultStored"] = True
            await self._save(post_id, entry)

        winners = await self.db.results.get_winners(post_id)
        if entry["credit"] is None:
            entry["credit"] = _telegram_ids(winners)
            await self._save(post_id, entry)

        newly_credited = []
        for telegram_id in entry["credit"]:
            if telegram_id in entry["credited"]:
                continue
            await self.db.user_stats.update_correct(telegram_id)
            entry["credited"].append(telegram_id)
            newly_credited.append(telegram_id)
            await self._save(post_id, entry)

        entry["status"] = "completed"
        entry["completedAt"] = to_iso(self.db.clock())
        await self._save(post_id, entry)
        logger.info(f"✅ Result for {post_id} settled: {len(winners)} winners, {len(entry['credited'])} credited")

        await self._notify(post_id, newly_credited)
        return {
            "postId": post_id,
            "homeScore": entry["homeScore"],
            "awayScore": entry["awayScore"],
            "winners": winners,
            "reversed": list(entry["reversed"]),
            "credited": list(entry["credited"]),
            "anonymousWinners": sum(1 for w in winners if not w.get("telegramId")),
        }

    async def _save(self, post_id: str, entry: Dict) -> None:
        async def action():
            journal = await self.db.store.read(RESULT_JOURNAL)
            journal[post_id] = entry
            return await self.db.store.write(RESULT_JOURNAL, journal)

        if not await self.db.locks.with_lock(RESULT_JOURNAL, action):
            logger.error(f"Could not record result journal progress for {post_id}")

    async def _notify(self, post_id: str, telegram_ids: List[str]) -> None:
        if not self.notifier or not telegram_ids:
            return
        post = await self.db.posts.get(post_id) or {"id": post_id}
        result = await self.db.results.get(post_id) or {}
        for telegram_id in telegram_ids:
            try:
                await self.notifier(telegram_id, post, result)
            except Exception as e:
                logger.error(f"Could not notify winner {telegram_id}: {e}")
