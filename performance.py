"""
Agency Engine v1.0: Performance Ledger
Commendations, reprimands and the rating band derived from them.
"""

from config import OUTCOME_BONUS
from errors import invalid_input
from models import Agent, MissionOutcome, Rating


def rating_of(reprimands: int) -> str:
    """
    Rating bands by reprimand count:
      0      Excellent
      1      NeedsWork
      2-3    Probation
      4-9    FinalWarning
      10+    Revoked
    """
    if reprimands <= 0:
        return Rating.EXCELLENT.value
    if reprimands == 1:
        return Rating.NEEDS_WORK.value
    if reprimands <= 3:
        return Rating.PROBATION.value
    if reprimands <= 9:
        return Rating.FINAL_WARNING.value
    return Rating.REVOKED.value


def refresh(agent: Agent):
    agent.rating = rating_of(agent.reprimands)
    agent.in_debt = agent.commendations < 0


def add_commendations(agent: Agent, n: int):
    if n < 0:
        raise invalid_input("commendations must be non-negative", amount=n)
    agent.commendations += n
    refresh(agent)


def add_reprimands(agent: Agent, n: int):
    if n < 0:
        raise invalid_input("reprimands must be non-negative", amount=n)
    agent.reprimands += n
    agent.rating = rating_of(agent.reprimands)


def award_mission_outcome(agent: Agent, outcome: str) -> dict:
    """Apply the reward or penalty for how the mission ended."""
    if outcome == MissionOutcome.CAPTURED.value:
        add_commendations(agent, OUTCOME_BONUS)
        return {"outcome": outcome, "commendations": OUTCOME_BONUS, "reprimands": 0}
    if outcome == MissionOutcome.NEUTRALIZED.value:
        return {"outcome": outcome, "commendations": 0, "reprimands": 0}
    if outcome == MissionOutcome.ESCAPED.value:
        add_reprimands(agent, OUTCOME_BONUS)
        return {"outcome": outcome, "commendations": 0, "reprimands": OUTCOME_BONUS}
    raise invalid_input(f"unknown mission outcome: {outcome}", outcome=outcome)
