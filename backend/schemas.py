"""Validation for inbound WebSocket messages."""
import re
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

import config
from game_room import GameType


def _clean_name(v: str) -> str:
    # Sanitize: strip HTML tags and control characters
    v = re.sub(r'<[^>]+>', '', v)
    v = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', v).strip()
    if not v or len(v) > config.MAX_NICKNAME_LENGTH:
        raise ValueError(f'Name must be 1-{config.MAX_NICKNAME_LENGTH} characters')
    return v


class CreateRoomMessage(BaseModel):
    hostId: str = Field(min_length=1, max_length=200)
    questionSetId: str = Field(min_length=1)
    gameType: GameType
    timeLimitMinutes: Optional[float] = None
    goalAmount: Optional[int] = None
    hostName: str = config.DEFAULT_HOST_NAME

    @field_validator('gameType', mode='before')
    @classmethod
    def parse_game_type(cls, v) -> GameType:
        try:
            return GameType.parse(v)
        except ValueError:
            raise ValueError('Game type must be "timed" or "race"') from None

    @field_validator('timeLimitMinutes')
    @classmethod
    def validate_time_limit(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not (0 < v <= config.MAX_TIME_LIMIT_MINUTES):
            raise ValueError(f'Time limit must be between 0 and {config.MAX_TIME_LIMIT_MINUTES} minutes')
        return v

    @field_validator('goalAmount')
    @classmethod
    def validate_goal(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError('Goal amount must be positive')
        return v

    @field_validator('hostName')
    @classmethod
    def validate_host_name(cls, v: str) -> str:
        return _clean_name(v)


class JoinRoomMessage(BaseModel):
    code: str = Field(min_length=1)
    name: str
    identity: str = Field(min_length=1, max_length=200)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)


class StartGameMessage(BaseModel):
    code: Optional[str] = None


class SubmitAnswerMessage(BaseModel):
    questionId: Union[int, str]
    answer: str

    @field_validator('answer', mode='before')
    @classmethod
    def coerce_answer(cls, v) -> str:
        if v is None:
            raise ValueError('Answer is required')
        return str(v)


class BuyUpgradeMessage(BaseModel):
    upgradeType: str
