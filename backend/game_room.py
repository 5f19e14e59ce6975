import time
import random
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

import config
import scoring
from errors import (
    InvalidState,
    NotHost,
    RoomNotJoinable,
    UnknownPlayer,
    UnknownQuestion,
)
from question_catalog import QuestionId, QuestionSet
from question_selector import select_next

logger = logging.getLogger(__name__)


class GameType(str, Enum):
    TIMED = "timed"
    RACE = "race"

    @classmethod
    def parse(cls, value: str) -> "GameType":
        """Accepts the enum values and the legacy 'Classic: Time' / 'Classic: Race' labels."""
        if isinstance(value, cls):
            return value
        aliases = {"classic: time": cls.TIMED, "classic: race": cls.RACE}
        normalized = str(value).strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


class RoomStatus(str, Enum):
    LOBBY = "lobby"
    PLAYING = "playing"
    FINISHED = "finished"


# Forward-only lifecycle
_NEXT_STATUS = {
    RoomStatus.LOBBY: RoomStatus.PLAYING,
    RoomStatus.PLAYING: RoomStatus.FINISHED,
}


@dataclass
class Player:
    identity: str
    display_name: str
    join_order: int = 0
    money: int = 0
    streak: int = 0
    multiplier_level: int = 1
    streak_bonus_level: int = 1
    insurance_count: int = config.STARTING_INSURANCE
    wrong_question_ids: Set[QuestionId] = field(default_factory=set)
    questions_answered: int = 0
    correct_answers: int = 0

    def to_dict(self) -> dict:
        return {
            "identity": self.identity,
            "displayName": self.display_name,
            "money": self.money,
            "streak": self.streak,
            "multiplierLevel": self.multiplier_level,
            "streakBonusLevel": self.streak_bonus_level,
            "insuranceCount": self.insurance_count,
            "wrongQuestionIds": sorted(self.wrong_question_ids, key=str),
            "questionsAnswered": self.questions_answered,
            "correctAnswers": self.correct_answers,
        }


@dataclass
class Emission:
    """One outbound event. A target of None means the whole room."""
    event: str
    payload: dict
    target: Optional[str] = None

    def message(self) -> dict:
        return {"type": self.event, **self.payload}


class Room:
    def __init__(self, code: str, host_id: str, question_set: QuestionSet,
                 game_type: GameType, time_limit_minutes: Optional[float] = None,
                 goal_amount: Optional[int] = None,
                 clock: Callable[[], float] = time.time,
                 rng: Optional[random.Random] = None):
        self.code = code
        self.host_id = host_id
        self.question_set = question_set
        self.question_set_id = question_set.id
        self.game_type = game_type
        self.time_limit_minutes = time_limit_minutes
        self.goal_amount = goal_amount
        self.clock = clock
        self.rng = rng
        self.status = RoomStatus.LOBBY
        self.players: Dict[str, Player] = {}
        self.winner_id: Optional[str] = None
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self.created_at = clock()
        self.last_activity = self.created_at
        self.emptied_at: Optional[float] = self.created_at
        self.host_left_at: Optional[float] = None
        self._join_seq = 0

    def touch(self):
        """Update last activity timestamp."""
        self.last_activity = self.clock()

    def _transition(self, new_status: RoomStatus):
        if _NEXT_STATUS.get(self.status) != new_status:
            raise InvalidState(f"Cannot move room {self.code} from {self.status.value} to {new_status.value}")
        self.status = new_status

    # --- Roster ---

    def add_player(self, identity: str, name: str) -> Player:
        if identity in self.players:
            raise RoomNotJoinable(f"'{identity}' is already in room {self.code}")
        if len(self.players) >= config.MAX_PLAYERS_PER_ROOM:
            raise RoomNotJoinable("Room is full")
        self._join_seq += 1
        player = Player(identity=identity, display_name=name, join_order=self._join_seq)
        self.players[identity] = player
        self.emptied_at = None
        self.touch()
        return player

    def roster(self) -> List[dict]:
        players = sorted(self.players.values(), key=lambda p: p.join_order)
        return [p.to_dict() for p in players]

    def rankings(self) -> List[Player]:
        """Money descending; equal money goes to whoever joined first."""
        return sorted(self.players.values(), key=lambda p: (-p.money, p.join_order))

    def leaderboard(self) -> List[dict]:
        return [p.to_dict() for p in self.rankings()]

    def snapshot(self) -> dict:
        return {
            "code": self.code,
            "hostId": self.host_id,
            "questionSetId": self.question_set_id,
            "gameType": self.game_type.value,
            "timeLimitMinutes": self.time_limit_minutes,
            "goalAmount": self.goal_amount,
            "status": self.status.value,
            "startedAt": self.started_at,
            "winnerId": self.winner_id,
            "players": self.roster(),
        }

    # --- Events ---

    def join(self, identity: str, name: str) -> List[Emission]:
        if self.status != RoomStatus.LOBBY:
            raise RoomNotJoinable("Room not found or game started.")
        if self.host_left_at is not None:
            raise RoomNotJoinable("The host has left this room.")
        self.add_player(identity, name)
        logger.info("Player '%s' joined room %s", name, self.code)
        return [
            Emission("join_success", {"room": self.snapshot()}, target=identity),
            Emission("lobby_update", {"players": self.roster()}),
        ]

    def start(self, identity: str) -> List[Emission]:
        if self.status != RoomStatus.LOBBY:
            raise InvalidState(f"Room {self.code} is already {self.status.value}")
        if identity != self.host_id:
            raise NotHost("Only the host can start the game")
        first_question = select_next(self, self.rng)
        self._transition(RoomStatus.PLAYING)
        self.started_at = self.clock()
        self.touch()
        logger.info("Room %s started (%s, %d players)", self.code, self.game_type.value, len(self.players))
        return [
            Emission("game_started", {"room": self.snapshot()}),
            Emission("new_question", {"question": first_question.to_public_dict()}),
        ]

    def submit_answer(self, identity: str, question_id: QuestionId, answer: str) -> List[Emission]:
        if self.status != RoomStatus.PLAYING:
            raise InvalidState(f"Room {self.code} is not playing")
        player = self.players.get(identity)
        if player is None:
            raise UnknownPlayer(f"'{identity}' is not in room {self.code}")
        question = self.question_set.get(question_id)
        if question is None:
            raise UnknownQuestion(f"Question {question_id} not in set '{self.question_set_id}'")

        is_correct = question.is_correct(answer)
        updated, feedback, earnings = scoring.apply_answer(player, question.id, is_correct)
        if identity in self.players:
            self.players[identity] = updated
        self.touch()

        emissions = [
            Emission("answer_feedback", {
                "isCorrect": is_correct,
                "earnings": earnings,
                "feedback": feedback.value,
                "feedbackText": scoring.feedback_text(feedback, earnings),
            }, target=identity),
            Emission("leaderboard_update", {"players": self.leaderboard()}),
            Emission("new_question", {"question": select_next(self, self.rng).to_public_dict()}),
        ]
        emissions.extend(self.check_end_condition())
        return emissions

    def buy_upgrade(self, identity: str, upgrade_type: str) -> List[Emission]:
        player = self.players.get(identity)
        if player is None:
            raise UnknownPlayer(f"'{identity}' is not in room {self.code}")
        updated, message = scoring.apply_upgrade(player, upgrade_type)
        self.players[identity] = updated
        self.touch()
        return [
            Emission("shop_feedback", {"message": message}, target=identity),
            Emission("player_stats_update", {"player": updated.to_dict()}, target=identity),
            Emission("leaderboard_update", {"players": self.leaderboard()}),
        ]

    def disconnect(self, identity: str) -> List[Emission]:
        player = self.players.pop(identity, None)
        if player is None:
            return []
        if not self.players:
            self.emptied_at = self.clock()
        self.touch()
        logger.info("Player '%s' left room %s (%s)", player.display_name, self.code, self.status.value)
        emissions = [Emission("lobby_update", {"players": self.roster()})]
        # A lobby without its host can never start
        if identity == self.host_id and self.status == RoomStatus.LOBBY:
            self.host_left_at = self.clock()
            logger.info("Host left lobby %s, closing", self.code)
            if self.players:
                emissions.append(Emission("room_closed", {"reason": "The host has left the room."}))
        return emissions

    # --- End of game ---

    def elapsed_minutes(self) -> float:
        if self.started_at is None:
            return 0.0
        return (self.clock() - self.started_at) / 60

    def check_end_condition(self) -> List[Emission]:
        """Idempotent; safe to call from a periodic timer."""
        if self.status != RoomStatus.PLAYING:
            return []
        if self.game_type == GameType.TIMED:
            if self.elapsed_minutes() >= self.time_limit_minutes:
                return self._finish()
            return []
        for player in sorted(self.players.values(), key=lambda p: p.join_order):
            if player.money >= self.goal_amount:
                self.winner_id = player.identity
                return self._finish()
        return []

    def _finish(self) -> List[Emission]:
        self._transition(RoomStatus.FINISHED)
        self.finished_at = self.clock()
        rankings = self.rankings()
        if self.winner_id is None and rankings:
            self.winner_id = rankings[0].identity
        winner = self.players.get(self.winner_id) if self.winner_id else None
        logger.info("Room %s finished, winner: %s", self.code, winner.display_name if winner else None)
        return [Emission("game_finished", {
            "winnerId": self.winner_id,
            "winnerName": winner.display_name if winner else None,
            "finalRankings": [p.to_dict() for p in rankings],
        })]

    def is_reapable(self, now: Optional[float] = None) -> bool:
        now = self.clock() if now is None else now
        if self.status == RoomStatus.FINISHED and now - self.finished_at >= config.FINISHED_ROOM_TTL_SECONDS:
            return True
        if not self.players and self.emptied_at is not None \
                and now - self.emptied_at >= config.EMPTY_ROOM_TTL_SECONDS:
            return True
        if self.status == RoomStatus.LOBBY and self.host_left_at is not None \
                and now - self.host_left_at >= config.EMPTY_ROOM_TTL_SECONDS:
            return True
        return now - self.last_activity > config.ROOM_TTL_SECONDS
