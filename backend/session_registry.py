import time
import random
import string
import logging
from typing import Callable, Dict, List, Optional

import config
from errors import NoQuestionsAvailable, RegistryFull, RoomNotFound
from game_room import GameType, Room, RoomStatus
from question_catalog import QuestionCatalog

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


class SessionRegistry:
    """Maps room codes to rooms. One instance per server; tests build their own."""

    def __init__(self, catalog: QuestionCatalog,
                 clock: Callable[[], float] = time.time,
                 rng: Optional[random.Random] = None):
        self.catalog = catalog
        self.clock = clock
        self.rng = rng or random.Random()
        self.rooms: Dict[str, Room] = {}

    def generate_code(self) -> str:
        """Generate a unique room code, checking for collisions."""
        for _ in range(config.MAX_ROOM_CODE_ATTEMPTS):
            code = ''.join(self.rng.choices(CODE_ALPHABET, k=config.ROOM_CODE_LENGTH))
            if code not in self.rooms:
                return code
        raise RegistryFull("Failed to generate unique room code")

    def create_room(self, host_id: str, question_set_id: str, game_type,
                    time_limit_minutes: Optional[float] = None,
                    goal_amount: Optional[int] = None,
                    host_name: str = config.DEFAULT_HOST_NAME) -> Room:
        if len(self.rooms) >= config.MAX_ROOMS:
            raise RegistryFull("Too many active rooms. Please try again later.")
        question_set = self.catalog.get_set(question_set_id)
        if not len(question_set):
            raise NoQuestionsAvailable(f"Question set '{question_set_id}' has no questions")

        game_type = GameType.parse(game_type)
        if game_type == GameType.TIMED and time_limit_minutes is None:
            time_limit_minutes = config.DEFAULT_TIME_LIMIT_MINUTES
        if game_type == GameType.RACE and goal_amount is None:
            goal_amount = config.DEFAULT_GOAL_AMOUNT

        room = Room(
            self.generate_code(), host_id, question_set, game_type,
            time_limit_minutes=time_limit_minutes,
            goal_amount=goal_amount,
            clock=self.clock,
            rng=self.rng,
        )
        room.add_player(host_id, host_name)
        self.rooms[room.code] = room
        logger.info("Room created: %s (set %s, %s)", room.code, question_set_id, game_type.value)
        return room

    def find_room(self, code: str) -> Optional[Room]:
        return self.rooms.get((code or "").upper())

    def get_room(self, code: str) -> Room:
        room = self.find_room(code)
        if room is None:
            raise RoomNotFound(f"Room '{code}' not found")
        return room

    def remove_room(self, code: str) -> Optional[Room]:
        return self.rooms.pop((code or "").upper(), None)

    def playing_rooms(self) -> List[Room]:
        return [room for room in self.rooms.values() if room.status == RoomStatus.PLAYING]

    def reap(self, now: Optional[float] = None) -> List[str]:
        """Remove finished, empty and idle rooms. Returns the removed codes."""
        now = self.clock() if now is None else now
        expired = [code for code, room in self.rooms.items() if room.is_reapable(now)]
        for code in expired:
            self.rooms.pop(code, None)
            logger.info("Cleaned up expired room %s", code)
        return expired
