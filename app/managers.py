"""
Repositories over the JSON documents: posts, predictions, results, user stats, sessions

Writers serialize on the document's named lock. Readers never lock and may see a
document between two writes of another task.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from app.locks import LockManager
from app.models import (
    POSTS,
    PREDICTIONS,
    RESULTS,
    SESSIONS,
    USER_STATS,
    Clock,
    compute_accuracy,
    created_at_key,
    deadline_passed,
    new_id,
    new_user_stats,
    parse_iso,
    to_iso,
    utc_now,
)
from app.storage import JsonStore

logger = logging.getLogger(__name__)


def _same_identity(stored: Any, candidate: Any) -> bool:
    if candidate is None or candidate == "" or stored is None:
        return False
    return str(stored) == str(candidate)


class _Repository:
    document = ""

    def __init__(self, store: JsonStore, locks: LockManager, clock: Clock = utc_now):
        self.store = store
        self.locks = locks
        self.clock = clock

    def _now(self) -> str:
        return to_iso(self.clock())

    async def get_all(self) -> Dict[str, Any]:
        return await self.store.read(self.document)


class PostManager(_Repository):
    document = POSTS

    async def get(self, post_id: str) -> Optional[Dict]:
        posts = await self.store.read(POSTS)
        return posts.get(post_id)

    async def create(self, post: Dict[str, Any]) -> Optional[str]:
        """Insert a new post; returns its id, or None if it could not be saved"""
        post_id = post.get("id") or new_id()

        async def action():
            posts = await self.store.read(POSTS)
            now = self._now()
            posts[post_id] = {**post, "id": post_id, "createdAt": now, "updatedAt": now}
            if not await self.store.write(POSTS, posts):
                return None
            return post_id

        return await self.locks.with_lock(POSTS, action)

    async def update(self, post_id: str, fields: Dict[str, Any]) -> bool:
        """Shallow-merge fields into a post; None values clear a field"""
        changes = {k: v for k, v in fields.items() if k not in ("id", "createdAt")}

        async def action():
            posts = await self.store.read(POSTS)
            if post_id not in posts:
                return False
            posts[post_id] = {**posts[post_id], **changes, "updatedAt": self._now()}
            return await self.store.write(POSTS, posts)

        return await self.locks.with_lock(POSTS, action)

    async def delete(self, post_id: str) -> bool:
        async def action():
            posts = await self.store.read(POSTS)
            posts.pop(post_id, None)
            return await self.store.write(POSTS, posts)

        return await self.locks.with_lock(POSTS, action)

    async def get_active(self) -> List[Dict]:
        """Posts with no deadline or a deadline still in the future, newest first"""
        posts = await self.store.read(POSTS)
        now = self.clock()
        active = []
        for post_id, post in posts.items():
            record = {**post, "id": post_id}
            if not deadline_passed(record, now):
                active.append(record)
        return sorted(active, key=created_at_key, reverse=True)

    async def get_all_sorted(self, limit: int = 50) -> List[Dict]:
        posts = await self.store.read(POSTS)
        ordered = sorted(({**post, "id": post_id} for post_id, post in posts.items()), key=created_at_key, reverse=True)
        return ordered[:limit]


class PredictionManager(_Repository):
    document = PREDICTIONS

    async def get_by_post_id(self, post_id: str, include_hidden: bool = False) -> List[Dict]:
        predictions = await self.store.read(PREDICTIONS)
        post_predictions = predictions.get(post_id, [])
        if include_hidden:
            return post_predictions
        return [p for p in post_predictions if not p.get("isHidden")]

    def _build(self, data: Dict[str, Any]) -> Dict[str, Any]:
        now = self._now()
        record = {"id": new_id()}
        record.update({k: v for k, v in data.items() if k != "id"})
        record["createdAt"] = now
        record["updatedAt"] = now
        return record

    async def _insert(self, post_id: str, record: Dict[str, Any], predictions: Dict[str, Any]) -> Optional[str]:
        predictions.setdefault(post_id, []).insert(0, record)
        if not await self.store.write(PREDICTIONS, predictions):
            return None
        return record["id"]

    async def create(self, post_id: str, data: Dict[str, Any]) -> Optional[str]:
        """Prepend a prediction to the post's list; returns its id"""

        async def action():
            predictions = await self.store.read(PREDICTIONS)
            return await self._insert(post_id, self._build(data), predictions)

        return await self.locks.with_lock(PREDICTIONS, action)

    async def create_unique(self, post_id: str, data: Dict[str, Any]) -> Optional[str]:
        """Duplicate check and insert in one critical section; None on duplicate"""

        async def action():
            predictions = await self.store.read(PREDICTIONS)
            existing = predictions.get(post_id, [])
            if self._has_duplicate(existing, data.get("telegramId"), data.get("userToken")):
                logger.info(f"Duplicate prediction rejected for post {post_id}")
                return None
            return await self._insert(post_id, self._build(data), predictions)

        return await self.locks.with_lock(PREDICTIONS, action)

    @staticmethod
    def _has_duplicate(post_predictions: List[Dict], telegram_id: Any, user_token: Any) -> bool:
        for p in post_predictions:
            if _same_identity(p.get("telegramId"), telegram_id):
                return True
            if _same_identity(p.get("userToken"), user_token):
                return True
        return False

    async def check_duplicate(self, post_id: str, telegram_id: Any, user_token: Any) -> bool:
        predictions = await self.store.read(PREDICTIONS)
        return self._has_duplicate(predictions.get(post_id, []), telegram_id, user_token)

    async def get_count(self, post_id: str) -> int:
        predictions = await self.store.read(PREDICTIONS)
        return len(predictions.get(post_id, []))

    async def get_stats(self, post_id: str) -> Dict[str, Any]:
        visible = await self.get_by_post_id(post_id)
        if not visible:
            return {
                "total": 0,
                "avgHome": 0,
                "avgAway": 0,
                "minHome": 0,
                "maxHome": 0,
                "minAway": 0,
                "maxAway": 0,
            }

        home_scores = [p["homeScore"] for p in visible]
        away_scores = [p["awayScore"] for p in visible]
        return {
            "total": len(visible),
            "avgHome": sum(home_scores) / len(home_scores),
            "avgAway": sum(away_scores) / len(away_scores),
            "minHome": min(home_scores),
            "maxHome": max(home_scores),
            "minAway": min(away_scores),
            "maxAway": max(away_scores),
        }

    async def get_popular_scores(self, post_id: str, limit: int = 5) -> List[Dict]:
        """Most predicted scorelines; ties keep first-seen order of the newest-first list"""
        counts: Dict[tuple, int] = {}
        for p in await self.get_by_post_id(post_id):
            key = (p["homeScore"], p["awayScore"])
            counts[key] = counts.get(key, 0) + 1

        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        return [{"homeScore": home, "awayScore": away, "count": count} for (home, away), count in ranked[:limit]]

    async def get_by_user(self, telegram_id: Any) -> List[Dict]:
        predictions = await self.store.read(PREDICTIONS)
        found = []
        for post_id, post_predictions in predictions.items():
            for p in post_predictions:
                if _same_identity(p.get("telegramId"), telegram_id):
                    found.append({"postId": post_id, **p})
        return sorted(found, key=created_at_key, reverse=True)

    async def get_page(self, post_id: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        visible = await self.get_by_post_id(post_id)
        page = max(page, 1)
        offset = (page - 1) * limit
        return {
            "predictions": visible[offset:offset + limit],
            "total": len(visible),
            "page": page,
            "hasMore": offset + limit < len(visible),
        }


class ResultManager(_Repository):
    document = RESULTS

    async def get(self, post_id: str) -> Optional[Dict]:
        results = await self.store.read(RESULTS)
        return results.get(post_id)

    async def create(self, post_id: str, home_score: int, away_score: int) -> bool:
        """Set or overwrite the official result of a post"""

        async def action():
            results = await self.store.read(RESULTS)
            results[post_id] = {
                "homeScore": home_score,
                "awayScore": away_score,
                "announcedAt": self._now(),
            }
            return await self.store.write(RESULTS, results)

        return await self.locks.with_lock(RESULTS, action)

    async def get_winners(self, post_id: str) -> List[Dict]:
        """Exact-score predictions, hidden ones included, earliest first"""
        result = await self.get(post_id)
        if not result:
            return []

        predictions = await self.store.read(PREDICTIONS)
        winners = [
            p for p in predictions.get(post_id, [])
            if p.get("homeScore") == result["homeScore"] and p.get("awayScore") == result["awayScore"]
        ]
        return sorted(winners, key=created_at_key)


class UserStatsManager(_Repository):
    document = USER_STATS

    def __init__(self, store: JsonStore, locks: LockManager, clock: Clock = utc_now, correct_points: int = 10):
        super().__init__(store, locks, clock)
        self.correct_points = correct_points

    async def get(self, telegram_id: Any) -> Optional[Dict]:
        stats = await self.store.read(USER_STATS)
        return stats.get(str(telegram_id))

    async def upsert(self, telegram_id: Any, username: Optional[str], rumuz: Optional[str]) -> bool:
        """Count one more prediction for a Telegram user, creating the record on first sight"""
        key = str(telegram_id)

        async def action():
            stats = await self.store.read(USER_STATS)
            now = self._now()
            user = stats.get(key)
            if user is None:
                user = stats[key] = new_user_stats(key, username, rumuz, now)

            user["username"] = username
            user["rumuz"] = rumuz
            user["totalPredictions"] += 1
            user["accuracy"] = compute_accuracy(user["correctPredictions"], user["totalPredictions"])
            user["lastPredictionDate"] = now
            user["updatedAt"] = now
            return await self.store.write(USER_STATS, stats)

        return await self.locks.with_lock(USER_STATS, action)

    async def update_correct(self, telegram_id: Any) -> bool:
        """Credit a correct prediction and advance the daily streak"""
        key = str(telegram_id)

        async def action():
            stats = await self.store.read(USER_STATS)
            user = stats.get(key)
            if user is None:
                return False

            moment = self.clock()
            user["correctPredictions"] += 1
            user["totalPoints"] += self.correct_points
            user["accuracy"] = compute_accuracy(user["correctPredictions"], user["totalPredictions"])

            # Calendar dates are UTC dates of the clock
            today = moment.date()
            yesterday = (moment - timedelta(days=1)).date()
            last_correct = parse_iso(user.get("lastCorrectDate"))
            last_day = last_correct.date() if last_correct else None

            if last_day == yesterday:
                user["streak"] += 1
            elif last_day != today:
                user["streak"] = 1

            user["bestStreak"] = max(user["bestStreak"], user["streak"])
            user["lastCorrectDate"] = to_iso(moment)
            user["updatedAt"] = to_iso(moment)
            return await self.store.write(USER_STATS, stats)

        return await self.locks.with_lock(USER_STATS, action)

    async def revert_correct(self, telegram_id: Any) -> bool:
        """Take back one correct prediction's credit; counters floor at zero"""
        key = str(telegram_id)

        async def action():
            stats = await self.store.read(USER_STATS)
            user = stats.get(key)
            if user is None:
                return False

            user["totalPoints"] = max(0, user["totalPoints"] - self.correct_points)
            user["correctPredictions"] = max(0, user["correctPredictions"] - 1)
            user["accuracy"] = compute_accuracy(user["correctPredictions"], user["totalPredictions"])
            user["updatedAt"] = self._now()
            return await self.store.write(USER_STATS, stats)

        return await self.locks.with_lock(USER_STATS, action)

    async def get_leaderboard(self, limit: int = 100) -> List[Dict]:
        stats = await self.store.read(USER_STATS)
        ranked = sorted(
            stats.values(),
            key=lambda user: (user.get("totalPoints", 0), user.get("accuracy", 0)),
            reverse=True,
        )
        return ranked[:limit]


class SessionManager(_Repository):
    document = SESSIONS

    async def get(self, token: str) -> Optional[Dict]:
        sessions = await self.store.read(SESSIONS)
        return sessions.get(token)

    async def create(self, token: str, telegram_id: Any = None, username: Optional[str] = None,
                     expires_in_days: int = 30) -> bool:
        async def action():
            sessions = await self.store.read(SESSIONS)
            moment = self.clock()
            sessions[token] = {
                "token": token,
                "telegramId": telegram_id,
                "username": username,
                "createdAt": to_iso(moment),
                "expiresAt": to_iso(moment + timedelta(days=expires_in_days)),
                "lastUsed": to_iso(moment),
            }
            return await self.store.write(SESSIONS, sessions)

        return await self.locks.with_lock(SESSIONS, action)

    def _expired(self, session: Dict) -> bool:
        expires_at = parse_iso(session.get("expiresAt"))
        return expires_at is None or expires_at <= self.clock()

    async def validate(self, token: Optional[str]) -> Optional[Dict]:
        """Return the live session for token, dropping it if it has expired"""
        if not token:
            return None
        session = await self.get(token)
        if not session:
            return None

        if self._expired(session):
            await self.delete(token)
            return None

        async def touch():
            sessions = await self.store.read(SESSIONS)
            current = sessions.get(token)
            if current is None:
                return None
            current["lastUsed"] = self._now()
            await self.store.write(SESSIONS, sessions)
            return current

        return await self.locks.with_lock(SESSIONS, touch)

    async def delete(self, token: str) -> bool:
        async def action():
            sessions = await self.store.read(SESSIONS)
            sessions.pop(token, None)
            return await self.store.write(SESSIONS, sessions)

        return await self.locks.with_lock(SESSIONS, action)

    async def cleanup(self) -> int:
        """Remove every expired session; returns how many were removed"""

        async def action():
            sessions = await self.store.read(SESSIONS)
            expired = [token for token, session in sessions.items() if self._expired(session)]
            if not expired:
                return 0
            for token in expired:
                del sessions[token]
            if not await self.store.write(SESSIONS, sessions):
                logger.error(f"Could not remove {len(expired)} expired sessions")
                return 0
            return len(expired)

        return await self.locks.with_lock(SESSIONS, action)
