"""
Request bodies accepted by the HTTP API
"""

from typing import Optional, Union

from pydantic import BaseModel, Field


class PredictionIn(BaseModel):
    home: Union[int, str]
    away: Union[int, str]
    rumuz: Optional[str] = None
    hidden: Union[bool, str] = False


class SessionIn(BaseModel):
    telegram_id: Optional[str] = Field(None, description="Telegram user id from the personal link sent by the bot")
    signature: Optional[str] = Field(None, description="Signature of telegram_id from the same link")
    username: Optional[str] = None


class ResultIn(BaseModel):
    home: Union[int, str]
    away: Union[int, str]


class PostDetailsIn(BaseModel):
    title: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None


class DeadlineIn(BaseModel):
    deadline: Optional[str] = Field(None, description="ISO-8601 timestamp; null clears the deadline")


class RestoreIn(BaseModel):
    name: str = Field(..., description="Backup directory name as listed by GET /admin/backups")
