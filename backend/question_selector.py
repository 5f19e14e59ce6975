import random
from typing import TYPE_CHECKING, List, Optional, Tuple

import config
from errors import NoQuestionsAvailable
from question_catalog import Question

if TYPE_CHECKING:
    from game_room import Room


def candidate_weights(room: "Room") -> List[Tuple[Question, int]]:
    """Each question once, plus WRONG_QUESTION_WEIGHT per player still missing it."""
    question_set = room.question_set
    weights = {str(q.id): 1 for q in question_set.questions}
    for player in room.players.values():
        for question_id in player.wrong_question_ids:
            # ids that no longer resolve in the set are skipped
            key = str(question_id)
            if key in weights:
                weights[key] += config.WRONG_QUESTION_WEIGHT
    return [(q, weights[str(q.id)]) for q in question_set.questions]


def select_next(room: "Room", rng: Optional[random.Random] = None) -> Question:
    pool = candidate_weights(room)
    if not pool:
        raise NoQuestionsAvailable(f"Question set '{room.question_set_id}' has no questions")
    rng = rng or random
    questions = [q for q, _ in pool]
    weights = [w for _, w in pool]
    return rng.choices(questions, weights=weights, k=1)[0]
