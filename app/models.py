"""
Document names, record factories and time helpers shared by the data layer
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

POSTS = "posts"
PREDICTIONS = "predictions"
RESULTS = "results"
USER_STATS = "user-stats"
SESSIONS = "sessions"
RESULT_JOURNAL = "result-journal"

DOCUMENTS = (POSTS, PREDICTIONS, RESULTS, USER_STATS, SESSIONS, RESULT_JOURNAL)

POST_TYPES = ("text", "photo", "video")

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Serialize a datetime as an ISO-8601 UTC string"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string; naive values are taken as UTC"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def new_id() -> str:
    return uuid.uuid4().hex


def new_post(
    post_type: str,
    text: str = "",
    file_id: Optional[str] = None,
    channel_id: Any = None,
    message_id: Any = None,
    deadline: Optional[str] = None,
    home_team: Optional[str] = None,
    away_team: Optional[str] = None,
    post_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a post record as published by the bot"""
    if post_type not in POST_TYPES:
        raise ValueError(f"Unknown post type: {post_type}")
    return {
        "id": post_id or new_id(),
        "type": post_type,
        "text": text,
        "fileId": file_id,
        "fileUrl": None,
        "channelId": channel_id,
        "messageId": message_id,
        "title": None,
        "deadline": deadline,
        "homeTeam": home_team,
        "awayTeam": away_team,
    }


def new_user_stats(telegram_id: str, username: Optional[str], rumuz: Optional[str], now: str) -> Dict[str, Any]:
    return {
        "telegramId": telegram_id,
        "username": username,
        "rumuz": rumuz,
        "totalPoints": 0,
        "correctPredictions": 0,
        "totalPredictions": 0,
        "accuracy": 0,
        "streak": 0,
        "bestStreak": 0,
        "lastPredictionDate": None,
        "lastCorrectDate": None,
        "updatedAt": now,
    }


def deadline_passed(post: Dict[str, Any], now: datetime) -> bool:
    """True once the post's deadline is reached. An unreadable deadline counts as passed."""
    try:
        deadline = parse_iso(post.get("deadline"))
    except (TypeError, ValueError):
        logger.error(f"Corrupt deadline on post {post.get('id')}: {post.get('deadline')!r}")
        return True
    return deadline is not None and deadline <= now


def compute_accuracy(correct: int, total: int) -> float:
    if total <= 0:
        return 0
    return correct / total * 100


def created_at_key(record: Dict[str, Any]) -> datetime:
    """Sort key on a record's createdAt; records without one sort oldest"""
    return parse_iso(record.get("createdAt")) or datetime.min.replace(tzinfo=timezone.utc)
