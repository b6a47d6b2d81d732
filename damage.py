"""
Agency Engine v1.0: Damage Pipeline
Damage is paid in QA ("life insurance"). When the agent cannot pay,
they die, are revived on the spot, and lose commendations. Witnessed
deaths leave loose ends for the next mission.
"""

import logging
from dataclasses import dataclass

from config import DEATH_PENALTY
from models import Agent, QUALITIES
from performance import refresh
from qa import total_qa

logger = logging.getLogger("agency.damage")


@dataclass
class DamageResult:
    died: bool = False
    used_insurance: bool = False
    loose_ends: int = 0

    def to_dict(self) -> dict:
        return {"died": self.died, "used_insurance": self.used_insurance,
                "loose_ends": self.loose_ends}


def use_life_insurance(agent: Agent, damage: int):
    """
    Drain `damage` QA points, always from the fullest quality.
    Ties go to the earlier quality in the canonical order.
    """
    remaining = damage
    while remaining > 0:
        best = None
        for q in QUALITIES:
            if agent.qa.get(q, 0) > 0 and (best is None or agent.qa[q] > agent.qa[best]):
                best = q
        if best is None:
            break
        paid = min(remaining, agent.qa[best])
        agent.qa[best] -= paid
        remaining -= paid


def generate_loose_ends(damage: int, has_witnesses: bool) -> int:
    if damage > 1 and has_witnesses:
        return damage
    return 0


def revive(agent: Agent):
    agent.alive = True


def handle_death(agent: Agent, damage: int, has_witnesses: bool) -> int:
    """Debit the death penalty, revive, and return the loose ends left behind."""
    agent.alive = False
    agent.commendations -= DEATH_PENALTY
    refresh(agent)
    revive(agent)
    logger.info(f"Agent {agent.id} died (damage={damage}); "
                f"commendations now {agent.commendations}")
    return generate_loose_ends(damage, has_witnesses)


def apply_damage(agent: Agent, damage: int, has_witnesses: bool = False) -> DamageResult:
    if damage <= 0:
        return DamageResult()
    if total_qa(agent) >= damage:
        use_life_insurance(agent, damage)
        return DamageResult(used_insurance=True)
    loose = handle_death(agent, damage, has_witnesses)
    return DamageResult(died=True, loose_ends=loose)
