"""
Agency Engine v1.0: Quality Assurance
The per-agent QA ledger. Points are spent to bend dice and to pay
life insurance, and come back to the career default between missions.
"""

from typing import Callable, Optional

import dice
from dice import RollResult
from errors import ErrorCode, GameError, invalid_input
from models import Agent, QUALITIES

# (agent, quality) -> True when the agent's reality relieves overload right now
ReliefPredicate = Callable[[Agent, str], bool]


def _check_quality(quality: str):
    if quality not in QUALITIES:
        raise invalid_input(f"unknown quality: {quality}", quality=quality)


def available_qa(agent: Agent, quality: str) -> int:
    return agent.qa.get(quality, 0)


def total_qa(agent: Agent) -> int:
    return sum(agent.qa.values())


def spend_qa(agent: Agent, quality: str, amount: int):
    """Spend points from one quality. The agent is untouched on error."""
    _check_quality(quality)
    if amount < 0:
        raise invalid_input("amount must be non-negative", amount=amount)
    have = available_qa(agent, quality)
    if amount > have:
        raise GameError(ErrorCode.INSUFFICIENT_QA, "insufficient QA", {
            "quality": quality, "available": have, "required": amount,
        })
    agent.qa[quality] = have - amount


def restore_qa(agent: Agent):
    """Reset every quality to the career default."""
    agent.qa = {q: agent.career.qa.get(q, 0) for q in QUALITIES}


def needs_overload(agent: Agent, quality: str) -> bool:
    return available_qa(agent, quality) == 0


def overload_relief(agent: Agent, quality: str = "",
                    predicate: Optional[ReliefPredicate] = None) -> bool:
    """
    Whether the agent's reality currently waives overload. Relief
    conditions are authored text, so without a predicate there is none.
    """
    if predicate is None:
        return False
    return bool(predicate(agent, quality))


def adjust_with_qa(agent: Agent, quality: str, result: RollResult,
                   adjustments: list) -> RollResult:
    """
    Spend one point of `quality` per adjusted die. Adjustments are checked
    before anything is spent, so a failure leaves the agent unchanged.
    """
    _check_quality(quality)
    have = available_qa(agent, quality)
    if len(adjustments) > have:
        raise GameError(ErrorCode.INSUFFICIENT_QA, "insufficient QA for dice adjustment", {
            "quality": quality, "available": have, "required": len(adjustments),
        })
    adjusted = dice.adjust_dice(result, adjustments)
    spend_qa(agent, quality, len(adjustments))
    return adjusted


def roll_for_quality(agent: Agent, quality: str, count: int = 0, rng=None,
                     predicate: Optional[ReliefPredicate] = None) -> RollResult:
    """Roll for a quality, marking overload when it is empty and unrelieved."""
    _check_quality(quality)
    result = dice.roll(count, rng)
    if needs_overload(agent, quality) and not overload_relief(agent, quality, predicate):
        result = dice.apply_overload(result, 1)
    return result
