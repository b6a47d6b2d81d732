"""
Agency Engine v1.0: Reality-Change Requests
The player asks reality to bend: an effect, the causal chain that makes
it plausible, the quality rolled and where it happens.

Guards, in order:
  R1  every field present after trimming
  R2  quality is one of the nine
  R3  causal chain of at least 10 characters
  R4  no mind control (keyword set + "change ... thoughts / will")
Facts that already succeeded can never be overturned.
"""

import re
from dataclasses import dataclass
from typing import Optional

import chaos
from dice import RollResult
from errors import invalid_action, invalid_input
from models import GameSession, QUALITIES, add_unique

ESTABLISHED_FACT_PREFIX = "ESTABLISHED_FACT:"
MIN_CAUSAL_CHAIN = 10


# ─────────────────────────────────────────────────────
# MIND-CONTROL VOCABULARY (per scenario locale)
# ─────────────────────────────────────────────────────

MIND_CONTROL_KEYWORDS = {
    "en": (
        "control", "manipulate", "coerce", "command", "brainwash",
        "hypnotize", "hypnotise", "dominate", "force", "make them want",
        "make him want", "make her want", "obey", "mind control",
    ),
    "zh": (
        "控制", "操控", "操纵", "强迫", "命令", "洗脑", "催眠", "支配",
        "让他们想", "让他想", "让她想", "服从",
    ),
}

MIND_CONTROL_PATTERNS = {
    "en": (re.compile(r"\bchange\b.*\b(thoughts?|will)\b"),),
    "zh": (re.compile(r"改变.*(想法|思想|意志|意愿)"),),
}


def is_mind_control(effect: str, locale: str = "en") -> bool:
    text = effect.lower()
    locales = {locale, "en"} if locale in MIND_CONTROL_KEYWORDS else {"en"}
    for loc in locales:
        if any(k in text for k in MIND_CONTROL_KEYWORDS[loc]):
            return True
        if any(p.search(text) for p in MIND_CONTROL_PATTERNS[loc]):
            return True
    return False


# ─────────────────────────────────────────────────────
# ESTABLISHED FACTS (sentinels inside collected_clues)
# ─────────────────────────────────────────────────────

def _fact_key(effect: str) -> str:
    return ESTABLISHED_FACT_PREFIX + effect


def is_established(session: GameSession, effect: str) -> bool:
    return _fact_key(effect) in session.state.collected_clues


def establish_fact(session: GameSession, effect: str):
    add_unique(session.state.collected_clues, _fact_key(effect))


def established_facts(session: GameSession) -> list:
    n = len(ESTABLISHED_FACT_PREFIX)
    return [c[n:] for c in session.state.collected_clues
            if c.startswith(ESTABLISHED_FACT_PREFIX)]


def is_fact_sentinel(clue_id: str) -> bool:
    return clue_id.startswith(ESTABLISHED_FACT_PREFIX)


# ─────────────────────────────────────────────────────
# REQUESTS
# ─────────────────────────────────────────────────────

@dataclass
class RealityChangeRequest:
    effect: str
    causal_chain: str
    quality: str
    location_id: str


@dataclass
class RequestResult:
    success: bool
    roll: RollResult
    applied_effect: str = ""
    chaos_generated: int = 0
    overload: int = 0                # location overload after this request

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "applied_effect": self.applied_effect,
            "roll": self.roll.to_dict(),
            "chaos_generated": self.chaos_generated,
            "overload": self.overload,
        }


class RequestResolver:

    def __init__(self, narrator=None):
        self.narrator = narrator

    def validate_request(self, request: RealityChangeRequest, locale: str = "en"):
        fields = {
            "effect": request.effect,
            "causal_chain": request.causal_chain,
            "quality": request.quality,
            "location_id": request.location_id,
        }
        for name, value in fields.items():
            if not isinstance(value, str) or not value.strip():
                raise invalid_input(f"{name} is required", field=name)
        if request.quality not in QUALITIES:
            raise invalid_input(f"unknown quality: {request.quality}",
                                field="quality", quality=request.quality)
        if len(request.causal_chain.strip()) < MIN_CAUSAL_CHAIN:
            raise invalid_input("causal chain is too short", field="causal_chain",
                                min_length=MIN_CAUSAL_CHAIN)
        if is_mind_control(request.effect, locale):
            raise invalid_input("reality changes cannot control minds", field="effect")

    def process_request(self, session: GameSession, request: RealityChangeRequest,
                        result: RollResult, locale: str = "en") -> RequestResult:
        self.validate_request(request, locale)
        if is_established(session, request.effect):
            raise invalid_action("cannot change an established fact", effect=request.effect)

        if result.success:
            establish_fact(session, request.effect)
            return RequestResult(success=True, roll=result, applied_effect=request.effect,
                                 overload=chaos.get_location_overload(session, request.location_id))

        if self.narrator is not None:
            reverse = self.narrator.describe_reverse_effect(request.effect, request.location_id)
        else:
            reverse = f"The opposite of \"{request.effect}\" comes to pass."
        generated = chaos.add_from_roll(session, result)
        overload = chaos.add_location_overload(session, request.location_id)
        return RequestResult(success=False, roll=result, applied_effect=reverse,
                             chaos_generated=generated, overload=overload)


def request_from_dict(data: dict) -> RealityChangeRequest:
    return RealityChangeRequest(
        effect=data.get("effect", ""),
        causal_chain=data.get("causal_chain", ""),
        quality=data.get("quality", ""),
        location_id=data.get("location_id", ""),
    )


def request_locale(scenario) -> str:
    locale: Optional[str] = getattr(scenario, "locale", None)
    return locale or "en"
