"""
Business flows used by the HTTP API and the Telegram bot
"""

import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from app.database import DataManager
from app.models import deadline_passed, parse_iso, to_iso

logger = logging.getLogger(__name__)

RUMUZ_PATTERN = re.compile(r"^[a-zA-Z0-9_çğıöşüÇĞİÖŞÜ]+$")
DEADLINE_PATTERN = re.compile(r"(\d{1,2})\.(\d{1,2})(?:\.(\d{4}))?\s+(\d{1,2}):(\d{2})")
TEAMS_PATTERN = re.compile(
    r"([A-Za-zğüşıöçĞÜŞİÖÇ\s]+)\s+(?:-|vs\.?)\s+([A-Za-zğüşıöçĞÜŞİÖÇ\s]+)", re.IGNORECASE
)

ACCEPTED = "accepted"
INVALID_SCORE = "invalid_score"
INVALID_RUMUZ = "invalid_rumuz"
NOT_FOUND = "not_found"
CLOSED = "closed"
NO_SESSION = "no_session"
DUPLICATE = "duplicate"
NOT_SAVED = "not_saved"

CountListener = Callable[[str, Dict, int], Awaitable[Any]]


@dataclass
class Submission:
    status: str
    prediction_id: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status == ACCEPTED


def validate_score(value: Any) -> Optional[int]:
    """Return the score as an int if it is a whole number between 0 and 99"""
    if isinstance(value, bool):
        return None
    try:
        score = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if 0 <= score <= 99:
        return score
    return None


def validate_rumuz(value: Any) -> Optional[str]:
    """Return the trimmed handle if it has 2-30 letters, digits or underscores"""
    if not value or not isinstance(value, str):
        return None
    cleaned = value.strip()
    if 2 <= len(cleaned) <= 30 and RUMUZ_PATTERN.match(cleaned):
        return cleaned
    return None


def is_prediction_open(post: Optional[Dict], now: datetime) -> bool:
    if not post:
        return False
    return not deadline_passed(post, now)


def parse_deadline(text: str, now: datetime) -> Optional[str]:
    """Find a 'DD.MM[.YYYY] HH:MM' deadline in text; only future ones count"""
    match = DEADLINE_PATTERN.search(text or "")
    if not match:
        return None

    day, month, year, hour, minute = match.groups()
    try:
        deadline = datetime(int(year or now.year), int(month), int(day), int(hour), int(minute), tzinfo=now.tzinfo)
    except ValueError:
        return None
    if deadline > now:
        return to_iso(deadline)
    return None


def parse_teams(text: str) -> Tuple[Optional[str], Optional[str]]:
    match = TEAMS_PATTERN.search(text or "")
    if not match:
        return None, None
    return match.group(1).strip(), match.group(2).strip()


def sign_telegram_id(secret: str, telegram_id: Any) -> str:
    return hmac.new(secret.encode("utf-8"), str(telegram_id).encode("utf-8"), hashlib.sha256).hexdigest()


def verified_telegram_id(secret: Optional[str], telegram_id: Any, signature: Optional[str]) -> Optional[str]:
    """Return telegram_id only if signature was issued for it with secret"""
    if not secret or not telegram_id or not signature:
        return None
    if hmac.compare_digest(sign_telegram_id(secret, telegram_id), str(signature)):
        return str(telegram_id)
    return None


async def open_session(db: DataManager, telegram_id: Any = None, username: Optional[str] = None,
                       expires_in_days: int = 30) -> Optional[str]:
    """Start a new browser session and return its token"""
    token = secrets.token_urlsafe(32)
    if not await db.sessions.create(token, telegram_id, username, expires_in_days):
        return None
    return token


async def submit_prediction(
    db: DataManager,
    post_id: str,
    home: Any,
    away: Any,
    rumuz: Any,
    session_token: Optional[str],
    hidden: Any = False,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    on_accepted: Optional[CountListener] = None,
) -> Submission:
    """Validate and record one prediction from the widget"""
    home_score = validate_score(home)
    away_score = validate_score(away)
    if home_score is None or away_score is None:
        return Submission(INVALID_SCORE)

    handle = validate_rumuz(rumuz)
    if handle is None:
        return Submission(INVALID_RUMUZ)

    post = await db.posts.get(post_id)
    if not post:
        return Submission(NOT_FOUND)

    if not is_prediction_open(post, db.clock()):
        return Submission(CLOSED)

    session = await db.sessions.validate(session_token)
    if not session:
        return Submission(NO_SESSION)

    telegram_id = session.get("telegramId")
    username = session.get("username") or handle

    prediction_id = await db.predictions.create_unique(post_id, {
        "telegramId": telegram_id,
        "username": username,
        "rumuz": handle,
        "homeScore": home_score,
        "awayScore": away_score,
        "userToken": session_token,
        "ipAddress": ip_address,
        "userAgent": user_agent,
        "isHidden": hidden is True or hidden == "true",
    })
    if prediction_id is None:
        # create_unique also returns None when the write fails
        if await db.predictions.check_duplicate(post_id, telegram_id, session_token):
            return Submission(DUPLICATE)
        return Submission(NOT_SAVED)

    if telegram_id:
        await db.user_stats.upsert(telegram_id, username, handle)

    if on_accepted:
        try:
            await on_accepted(post_id, post, await db.predictions.get_count(post_id))
        except Exception as e:
            logger.error(f"Prediction count listener failed for {post_id}: {e}")

    return Submission(ACCEPTED, prediction_id)


async def update_post_details(db: DataManager, post_id: str, title: Optional[str] = None,
                              home_team: Optional[str] = None, away_team: Optional[str] = None) -> bool:
    return await db.posts.update(post_id, {
        "title": (title or "").strip() or None,
        "homeTeam": (home_team or "").strip() or None,
        "awayTeam": (away_team or "").strip() or None,
    })


async def set_deadline(db: DataManager, post_id: str, deadline: Any) -> bool:
    """Set or clear (None) the prediction deadline of a post"""
    moment = parse_iso(deadline)
    return await db.posts.update(post_id, {"deadline": to_iso(moment) if moment else None})


async def summary(db: DataManager) -> Dict[str, int]:
    posts = await db.posts.get_all()
    predictions = await db.predictions.get_all()
    return {
        "totalPosts": len(posts),
        "activePosts": len(await db.posts.get_active()),
        "totalPredictions": sum(len(items) for items in predictions.values()),
        "totalUsers": len(await db.user_stats.get_all()),
    }
