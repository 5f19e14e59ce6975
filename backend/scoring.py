"""Earnings, streaks and the upgrade shop.

Every function here is pure: players come in, updated copies go out, and
the caller decides whether to store them.
"""
from dataclasses import replace
from enum import Enum
from typing import TYPE_CHECKING, Tuple

import config
from errors import InsufficientFunds, UnknownUpgrade

if TYPE_CHECKING:
    from game_room import Player
    from question_catalog import QuestionId


class Feedback(str, Enum):
    CORRECT = "correct"
    STREAK_SAVED = "streak_saved"
    STREAK_BROKEN = "streak_broken"


class Upgrade(str, Enum):
    MULTIPLIER = "multiplier"
    STREAK_BONUS = "streak_bonus"
    INSURANCE = "insurance"


def compute_earnings(player: "Player") -> int:
    base = config.BASE_EARNINGS * player.multiplier_level
    streak_bonus = player.streak * player.streak_bonus_level * config.STREAK_BONUS_UNIT
    return base + streak_bonus


def apply_answer(player: "Player", question_id: "QuestionId",
                 is_correct: bool) -> Tuple["Player", Feedback, int]:
    """Score one answer. Returns (updated player, feedback, earnings awarded)."""
    wrong = set(player.wrong_question_ids)
    answered = player.questions_answered + 1

    if is_correct:
        earnings = compute_earnings(player)
        wrong.discard(question_id)
        updated = replace(
            player,
            money=player.money + earnings,
            streak=player.streak + 1,
            wrong_question_ids=wrong,
            questions_answered=answered,
            correct_answers=player.correct_answers + 1,
        )
        return updated, Feedback.CORRECT, earnings

    wrong.add(question_id)
    if player.insurance_count > 0:
        updated = replace(
            player,
            insurance_count=player.insurance_count - 1,
            wrong_question_ids=wrong,
            questions_answered=answered,
        )
        return updated, Feedback.STREAK_SAVED, 0

    updated = replace(player, streak=0, wrong_question_ids=wrong, questions_answered=answered)
    return updated, Feedback.STREAK_BROKEN, 0


def feedback_text(feedback: Feedback, earnings: int) -> str:
    if feedback == Feedback.CORRECT:
        return f"Correct! +${earnings:,}"
    if feedback == Feedback.STREAK_SAVED:
        return "Wrong! Streak Saved! Insurance used."
    return "Wrong! Streak Broken."


def _parse_upgrade(upgrade_type) -> Upgrade:
    try:
        return Upgrade(upgrade_type)
    except ValueError:
        raise UnknownUpgrade(f"Unknown upgrade '{upgrade_type}'") from None


def upgrade_cost(player: "Player", upgrade_type) -> int:
    upgrade = _parse_upgrade(upgrade_type)
    if upgrade == Upgrade.MULTIPLIER:
        return config.MULTIPLIER_UPGRADE_COST * (player.multiplier_level + 1)
    if upgrade == Upgrade.STREAK_BONUS:
        return config.STREAK_BONUS_UPGRADE_COST * (player.streak_bonus_level + 1)
    return config.INSURANCE_COST


def apply_upgrade(player: "Player", upgrade_type) -> Tuple["Player", str]:
    """Buy one upgrade. Raises InsufficientFunds without touching the player."""
    upgrade = _parse_upgrade(upgrade_type)
    cost = upgrade_cost(player, upgrade)
    if cost > player.money:
        raise InsufficientFunds(f"Not enough cash: ${cost:,} needed, ${player.money:,} available")

    money = player.money - cost
    if upgrade == Upgrade.MULTIPLIER:
        updated = replace(player, money=money, multiplier_level=player.multiplier_level + 1)
        return updated, f"Multiplier upgraded to Lvl {updated.multiplier_level}!"
    if upgrade == Upgrade.STREAK_BONUS:
        updated = replace(player, money=money, streak_bonus_level=player.streak_bonus_level + 1)
        return updated, f"Streak Bonus upgraded to Lvl {updated.streak_bonus_level}!"
    updated = replace(player, money=money, insurance_count=player.insurance_count + 1)
    return updated, "1 Insurance bought!"
