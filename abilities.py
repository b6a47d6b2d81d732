"""
Agency Engine v1.0: Ability Resolver
One anomaly-ability use, start to finish:
  ability lookup -> trigger check -> roll -> overload -> chaos ->
  success / failure effect -> conditional extras -> off-duty reprimand.

The resolver mutates the agent and session it is handed; the caller
owns persistence.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

import chaos
import dice
from dice import RollResult
from errors import invalid_action, not_found
from models import Agent, AnomalyAbility, Effect, GameSession, GamePhase, TriggerKind
from performance import add_reprimands
from qa import ReliefPredicate, needs_overload, overload_relief

# (agent, ability, context) -> whether a passive ability's condition holds
ConditionEvaluator = Callable[[Agent, AnomalyAbility, Optional["AbilityContext"]], bool]


@dataclass
class AbilityContext:
    target_id: str = ""
    location_id: str = ""
    on_duty: bool = True
    custom_data: Optional[dict] = None
    description: str = ""


@dataclass
class EffectResult:
    description: str = ""
    mechanics: str = ""
    duration: str = ""
    target: str = ""
    condition: str = ""

    @classmethod
    def from_effect(cls, effect: Effect, condition: str = "",
                    target: str = "") -> "EffectResult":
        return cls(
            description=effect.description,
            mechanics=effect.mechanics,
            duration=effect.duration,
            target=target or effect.target,
            condition=condition,
        )

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "mechanics": self.mechanics,
            "duration": self.duration,
            "target": self.target,
            "condition": self.condition,
        }


@dataclass
class AbilityResult:
    ability_id: str
    ability_name: str
    roll: RollResult
    success: bool
    success_effect: Optional[EffectResult] = None
    failure_effect: Optional[EffectResult] = None
    additional_effects: list = field(default_factory=list)   # [EffectResult]
    chaos_generated: int = 0
    reprimand_added: bool = False
    narration: str = ""

    def to_dict(self) -> dict:
        return {
            "ability": {"id": self.ability_id, "name": self.ability_name},
            "roll": self.roll.to_dict(),
            "success": self.success,
            "success_effect": self.success_effect.to_dict() if self.success_effect else None,
            "failure_effect": self.failure_effect.to_dict() if self.failure_effect else None,
            "additional_effects": [e.to_dict() for e in self.additional_effects],
            "chaos_generated": self.chaos_generated,
            "reprimand_added": self.reprimand_added,
            "narration": self.narration,
        }


def _normalize_condition(condition: str) -> str:
    return condition.lower().replace("≥", ">=").replace(" ", "")


def check_additional_condition(condition: str, threes: int) -> bool:
    """Closed vocabulary; anything unrecognised never fires."""
    cond = _normalize_condition(condition)
    if cond == "extra3":
        return threes > 1
    if cond == "everythird3":
        return threes >= 3 and threes % 3 == 0
    if cond == ">=6threes":
        return threes >= 6
    if cond == ">=4threes":
        return threes >= 4
    if cond == ">=2threes":
        return threes >= 2
    return False


def is_off_duty(session: GameSession) -> bool:
    return session.phase in (GamePhase.MORNING.value, GamePhase.AFTERMATH.value)


class AbilityResolver:

    def __init__(self, rng=None,
                 condition_evaluator: Optional[ConditionEvaluator] = None,
                 relief_predicate: Optional[ReliefPredicate] = None,
                 narrator=None):
        self.rng = rng
        self.condition_evaluator = condition_evaluator
        self.relief_predicate = relief_predicate
        self.narrator = narrator

    def validate_trigger(self, agent: Agent, ability: AnomalyAbility,
                         context: Optional[AbilityContext]) -> bool:
        kind = ability.trigger.kind
        if kind == TriggerKind.ACTION.value:
            return True
        if kind == TriggerKind.RESPONSE.value:
            return context is not None
        if kind == TriggerKind.PASSIVE.value:
            if self.condition_evaluator is None:
                return True
            return bool(self.condition_evaluator(agent, ability, context))
        if kind == TriggerKind.REACTIVE.value:
            return context is not None and context.custom_data is not None
        return False

    def use_ability(self, agent: Agent, session: GameSession, ability_id: str,
                    context: Optional[AbilityContext] = None) -> AbilityResult:
        ability = agent.ability(ability_id)
        if ability is None:
            raise not_found("ability", ability_id)

        if not self.validate_trigger(agent, ability, context):
            raise invalid_action("ability trigger conditions not met",
                                 ability_id=ability_id, trigger=ability.trigger.kind)

        quality = ability.roll.quality
        result = dice.roll(ability.roll.dice_count, self.rng)
        if needs_overload(agent, quality) and not overload_relief(agent, quality, self.relief_predicate):
            result = dice.apply_overload(result, 1)

        generated = 0
        if not result.success:
            generated = chaos.add_from_roll(session, result)

        target = context.target_id if context else ""
        out = AbilityResult(
            ability_id=ability.id,
            ability_name=ability.name,
            roll=result,
            success=result.success,
            chaos_generated=generated,
        )
        if result.success:
            out.success_effect = EffectResult.from_effect(ability.success_effect, target=target)
        else:
            out.failure_effect = EffectResult.from_effect(ability.failure_effect, target=target)

        for extra in ability.additional_effects:
            if check_additional_condition(extra.condition, result.threes):
                out.additional_effects.append(
                    EffectResult.from_effect(extra.effect, condition=extra.condition, target=target))

        if is_off_duty(session):
            add_reprimands(agent, 1)
            out.reprimand_added = True

        if self.narrator is not None:
            out.narration = self.narrator.describe_ability(ability, result.success)
        return out
