"""
Agency Engine v1.0: Data Models
Agents, sessions and authored scenarios as plain value graphs.
Everything here is JSON-serializable; enum-typed fields are stored
as their string values so rows, cache entries and saves share one shape.

Agent      -> ARC (anomaly, reality, career), QA ledger, relationships,
              performance counters.
GameSession-> phase + GameState, the per-mission aggregate.
Scenario   -> immutable authored content. Scenes form a flat map keyed
              by id; every edge is an id, never a reference.
"""

import json
from dataclasses import dataclass, field, asdict
from typing import Optional
from enum import Enum


# ─────────────────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────────────────

QUALITIES = (
    "Focus", "Empathy", "Presence",
    "Deception", "Initiative", "Profession",
    "Vitality", "Grit", "Subtlety",
)


class AnomalyType(str, Enum):
    WHISPER = "Whisper"
    CATALOG = "Catalog"
    SIPHON = "Siphon"
    TIMEPIECE = "Timepiece"
    GROWTH = "Growth"
    GUN = "Gun"
    DREAM = "Dream"
    MANIFOLD = "Manifold"
    ABSENCE = "Absence"


class RealityType(str, Enum):
    CARETAKER = "Caretaker"
    SCHEDULE_OVERLOAD = "ScheduleOverload"
    HUNTED = "Hunted"
    STAR = "Star"
    STRUGGLING = "Struggling"
    NEWBORN = "Newborn"
    ROMANTIC = "Romantic"
    PILLAR = "Pillar"
    OUTSIDER = "Outsider"


class CareerType(str, Enum):
    PR = "PR"
    RND = "R&D"
    BARISTA = "Barista"
    CEO = "CEO"
    INTERN = "Intern"
    GRAVEDIGGER = "Gravedigger"
    RECEPTION = "Reception"
    HOTLINE = "Hotline"
    CLOWN = "Clown"


class TriggerKind(str, Enum):
    ACTION = "action"
    RESPONSE = "response"
    PASSIVE = "passive"
    REACTIVE = "reactive"


class GamePhase(str, Enum):
    MORNING = "Morning"
    INVESTIGATION = "Investigation"
    ENCOUNTER = "Encounter"
    AFTERMATH = "Aftermath"


class Rating(str, Enum):
    EXCELLENT = "Excellent"
    NEEDS_WORK = "NeedsWork"
    PROBATION = "Probation"
    FINAL_WARNING = "FinalWarning"
    REVOKED = "Revoked"


class MissionOutcome(str, Enum):
    CAPTURED = "Captured"
    NEUTRALIZED = "Neutralized"
    ESCAPED = "Escaped"


def is_valid_value(enum_cls, value) -> bool:
    return value in {m.value for m in enum_cls}


# ─────────────────────────────────────────────────────
# ARC: ANOMALY
# ─────────────────────────────────────────────────────

@dataclass
class Effect:
    """What an ability does when it resolves."""
    description: str = ""
    mechanics: str = ""
    duration: str = ""               # instant, scene, mission
    target: str = ""                 # self, single, area


@dataclass
class ConditionalEffect:
    condition: str                   # "extra 3", "every third 3", ">= 4 threes", ...
    effect: Effect = field(default_factory=Effect)


@dataclass
class AbilityTrigger:
    kind: str = "action"             # action, response, passive, reactive
    description: str = ""
    condition: str = ""              # passive abilities only


@dataclass
class AbilityRoll:
    quality: str = "Focus"
    dice_count: int = 6
    dice_type: int = 4


@dataclass
class AnomalyAbility:
    id: str
    name: str
    description: str = ""
    trigger: AbilityTrigger = field(default_factory=AbilityTrigger)
    roll: AbilityRoll = field(default_factory=AbilityRoll)
    success_effect: Effect = field(default_factory=Effect)
    failure_effect: Effect = field(default_factory=Effect)
    additional_effects: list = field(default_factory=list)   # [ConditionalEffect]


@dataclass
class ChaosEffect:
    id: str
    name: str
    cost: int = 1
    description: str = ""
    effect: str = ""


@dataclass
class Anomaly:
    type: str                        # AnomalyType value
    name: str = ""
    focus: str = ""
    domain: str = ""
    abilities: list = field(default_factory=list)      # [AnomalyAbility], always 3
    chaos_effects: list = field(default_factory=list)  # [ChaosEffect]


# ─────────────────────────────────────────────────────
# ARC: REALITY / CAREER
# ─────────────────────────────────────────────────────

@dataclass
class DegradationTrack:
    total: int = 4
    filled: int = 0


@dataclass
class Reality:
    type: str                        # RealityType value
    name: str = ""
    trigger: str = ""                # what sets the reality off
    overload_relief: str = ""        # authored relief condition
    degradation: DegradationTrack = field(default_factory=DegradationTrack)


@dataclass
class Career:
    type: str                        # CareerType value
    name: str = ""
    qa: dict = field(default_factory=dict)   # quality -> default points, sums to 9


# ─────────────────────────────────────────────────────
# AGENT
# ─────────────────────────────────────────────────────

@dataclass
class Relationship:
    id: str
    name: str
    connection: int = 0
    description: str = ""


@dataclass
class Agent:
    """A player character and everything the rules read or write on it."""
    id: str
    name: str
    anomaly: Anomaly
    reality: Reality
    career: Career
    pronouns: str = ""
    qa: dict = field(default_factory=dict)             # quality -> current points
    relationships: list = field(default_factory=list)  # [Relationship]

    commendations: int = 0           # may go negative (debt)
    reprimands: int = 0
    rating: str = "Excellent"
    alive: bool = True
    in_debt: bool = False

    created_at: int = 0
    updated_at: int = 0

    def ability(self, ability_id: str) -> Optional[AnomalyAbility]:
        for ab in self.anomaly.abilities:
            if ab.id == ability_id:
                return ab
        return None

    def total_connection(self) -> int:
        return sum(r.connection for r in self.relationships)


# ─────────────────────────────────────────────────────
# SESSION
# ─────────────────────────────────────────────────────

@dataclass
class NPCState:
    current_state: str = "neutral"
    anomaly_affected: bool = False
    relationship: int = 0
    custom_data: dict = field(default_factory=dict)


@dataclass
class GameState:
    """Mutable per-mission state. Lists with set semantics stay duplicate-free."""
    current_scene_id: str = ""
    visited_scenes: list = field(default_factory=list)
    collected_clues: list = field(default_factory=list)     # arrival order, + ESTABLISHED_FACT: sentinels
    unlocked_locations: list = field(default_factory=list)
    domain_unlocked: bool = False
    npc_states: dict = field(default_factory=dict)          # npc_id -> NPCState
    chaos_pool: int = 0
    loose_ends: int = 0
    location_overloads: dict = field(default_factory=dict)  # location_id -> count
    scene_states: dict = field(default_factory=dict)        # scene_id -> overlay map
    anomaly_status: str = "unknown"
    mission_outcome: str = "in_progress"


@dataclass
class GameSession:
    id: str
    agent_id: str
    scenario_id: str
    phase: str = "Morning"
    state: GameState = field(default_factory=GameState)
    created_at: int = 0
    updated_at: int = 0


@dataclass
class SaveSnapshot:
    """A frozen copy of a session taken at a point in the mission."""
    id: str
    session_id: str
    name: str
    version: str
    session: GameSession
    metadata: dict = field(default_factory=dict)  # agent_name, scenario_id, phase
    created_at: int = 0


def add_unique(items: list, value) -> bool:
    """Append value unless present. Returns True if it was added."""
    if value in items:
        return False
    items.append(value)
    return True


# ─────────────────────────────────────────────────────
# SCENARIO (authored, read-only after load)
# ─────────────────────────────────────────────────────

@dataclass
class ScenarioAnomaly:
    id: str
    name: str
    history: str = ""
    focus: dict = field(default_factory=dict)      # {emotion, subject}
    domain: dict = field(default_factory=dict)     # {location, description}
    appearance: str = ""
    impulse: str = ""
    current_status: str = ""
    chaos_effects: list = field(default_factory=list)  # [ChaosEffect]

    def chaos_effect(self, effect_id: str) -> Optional[ChaosEffect]:
        for ce in self.chaos_effects:
            if ce.id == effect_id:
                return ce
        return None


@dataclass
class ScenarioNPC:
    id: str
    name: str
    description: str = ""
    personality: str = ""
    dialogues: list = field(default_factory=list)
    state: dict = field(default_factory=dict)


@dataclass
class Clue:
    id: str
    name: str
    description: str = ""
    requirements: list = field(default_factory=list)   # clue ids, all required
    unlocks: list = field(default_factory=list)        # scene ids


@dataclass
class ScenarioEvent:
    id: str
    name: str
    description: str = ""
    trigger: str = ""                # always, domain_unlocked, first_visit, clue:<id>
    effect: str = ""


@dataclass
class Scene:
    id: str
    name: str
    description: str = ""
    npcs: list = field(default_factory=list)           # [ScenarioNPC]
    clues: list = field(default_factory=list)          # [Clue]
    events: list = field(default_factory=list)         # [ScenarioEvent]
    connections: list = field(default_factory=list)    # scene ids
    state: dict = field(default_factory=dict)

    def clue(self, clue_id: str) -> Optional[Clue]:
        for c in self.clues:
            if c.id == clue_id:
                return c
        return None

    def npc(self, npc_id: str) -> Optional[ScenarioNPC]:
        for n in self.npcs:
            if n.id == npc_id:
                return n
        return None


@dataclass
class Scenario:
    id: str
    name: str
    description: str = ""
    locale: str = "en"
    anomaly: Optional[ScenarioAnomaly] = None
    morning_scenes: list = field(default_factory=list)
    briefing: dict = field(default_factory=dict)       # {summary, objectives, warnings}
    optional_goals: list = field(default_factory=list) # [{id, description, reward}]
    scenes: dict = field(default_factory=dict)         # scene_id -> Scene
    starting_scene_id: str = ""
    encounter: dict = field(default_factory=dict)      # {id, description, phases}
    aftermath: dict = field(default_factory=dict)      # {captured, neutralized, escaped}
    rewards: dict = field(default_factory=dict)        # {commendations, claimables}

    def all_clues(self) -> dict:
        """clue_id -> Clue across every scene. First definition wins."""
        out = {}
        for scene in self.scenes.values():
            for c in scene.clues:
                out.setdefault(c.id, c)
        return out

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "anomaly": self.anomaly.name if self.anomaly else "",
            "scene_count": len(self.scenes),
        }


# ─────────────────────────────────────────────────────
# SERIALIZATION: AGENT
# ─────────────────────────────────────────────────────

def _effect_from_dict(data: Optional[dict]) -> Effect:
    data = data or {}
    return Effect(
        description=data.get("description", ""),
        mechanics=data.get("mechanics", ""),
        duration=data.get("duration", ""),
        target=data.get("target", ""),
    )


def _chaos_effect_from_dict(data: dict) -> ChaosEffect:
    return ChaosEffect(
        id=data.get("id", ""),
        name=data.get("name", ""),
        cost=data.get("cost", 1),
        description=data.get("description", ""),
        effect=data.get("effect", ""),
    )


def ability_from_dict(data: dict) -> AnomalyAbility:
    trig = data.get("trigger", {})
    rl = data.get("roll", {})
    return AnomalyAbility(
        id=data.get("id", ""),
        name=data.get("name", ""),
        description=data.get("description", ""),
        trigger=AbilityTrigger(
            kind=trig.get("kind", "action"),
            description=trig.get("description", ""),
            condition=trig.get("condition", ""),
        ),
        roll=AbilityRoll(
            quality=rl.get("quality", "Focus"),
            dice_count=rl.get("dice_count", 6),
            dice_type=rl.get("dice_type", 4),
        ),
        success_effect=_effect_from_dict(data.get("success_effect")),
        failure_effect=_effect_from_dict(data.get("failure_effect")),
        additional_effects=[
            ConditionalEffect(condition=ce.get("condition", ""),
                              effect=_effect_from_dict(ce.get("effect")))
            for ce in data.get("additional_effects", [])
        ],
    )


def anomaly_from_dict(data: dict) -> Anomaly:
    return Anomaly(
        type=data.get("type", ""),
        name=data.get("name", ""),
        focus=data.get("focus", ""),
        domain=data.get("domain", ""),
        abilities=[ability_from_dict(a) for a in data.get("abilities", [])],
        chaos_effects=[_chaos_effect_from_dict(c) for c in data.get("chaos_effects", [])],
    )


def reality_from_dict(data: dict) -> Reality:
    deg = data.get("degradation", {})
    return Reality(
        type=data.get("type", ""),
        name=data.get("name", ""),
        trigger=data.get("trigger", ""),
        overload_relief=data.get("overload_relief", ""),
        degradation=DegradationTrack(
            total=deg.get("total", 4),
            filled=deg.get("filled", 0),
        ),
    )


def career_from_dict(data: dict) -> Career:
    return Career(
        type=data.get("type", ""),
        name=data.get("name", ""),
        qa=dict(data.get("qa", {})),
    )


def relationship_from_dict(data: dict) -> Relationship:
    return Relationship(
        id=data.get("id", ""),
        name=data.get("name", ""),
        connection=data.get("connection", 0),
        description=data.get("description", ""),
    )


def agent_to_dict(agent: Agent) -> dict:
    return asdict(agent)


def agent_from_dict(data: dict) -> Agent:
    return Agent(
        id=data["id"],
        name=data.get("name", ""),
        pronouns=data.get("pronouns", ""),
        anomaly=anomaly_from_dict(data.get("anomaly", {})),
        reality=reality_from_dict(data.get("reality", {})),
        career=career_from_dict(data.get("career", {})),
        qa=dict(data.get("qa", {})),
        relationships=[relationship_from_dict(r) for r in data.get("relationships", [])],
        commendations=data.get("commendations", 0),
        reprimands=data.get("reprimands", 0),
        rating=data.get("rating", "Excellent"),
        alive=data.get("alive", True),
        in_debt=data.get("in_debt", False),
        created_at=data.get("created_at", 0),
        updated_at=data.get("updated_at", 0),
    )


def agent_to_json(agent: Agent) -> str:
    return json.dumps(agent_to_dict(agent), ensure_ascii=False)


def agent_from_json(json_str: str) -> Agent:
    return agent_from_dict(json.loads(json_str))


# ─────────────────────────────────────────────────────
# SERIALIZATION: SESSION
# ─────────────────────────────────────────────────────

def npc_state_from_dict(data: dict) -> NPCState:
    return NPCState(
        current_state=data.get("current_state", "neutral"),
        anomaly_affected=data.get("anomaly_affected", False),
        relationship=data.get("relationship", 0),
        custom_data=dict(data.get("custom_data", {})),
    )


def game_state_from_dict(data: dict) -> GameState:
    return GameState(
        current_scene_id=data.get("current_scene_id", ""),
        visited_scenes=list(data.get("visited_scenes", [])),
        collected_clues=list(data.get("collected_clues", [])),
        unlocked_locations=list(data.get("unlocked_locations", [])),
        domain_unlocked=data.get("domain_unlocked", False),
        npc_states={k: npc_state_from_dict(v)
                    for k, v in data.get("npc_states", {}).items()},
        chaos_pool=data.get("chaos_pool", 0),
        loose_ends=data.get("loose_ends", 0),
        location_overloads=dict(data.get("location_overloads", {})),
        scene_states={k: dict(v) for k, v in data.get("scene_states", {}).items()},
        anomaly_status=data.get("anomaly_status", "unknown"),
        mission_outcome=data.get("mission_outcome", "in_progress"),
    )


def session_to_dict(session: GameSession) -> dict:
    return asdict(session)


def session_from_dict(data: dict) -> GameSession:
    return GameSession(
        id=data["id"],
        agent_id=data.get("agent_id", ""),
        scenario_id=data.get("scenario_id", ""),
        phase=data.get("phase", "Morning"),
        state=game_state_from_dict(data.get("state") or {}),
        created_at=data.get("created_at", 0),
        updated_at=data.get("updated_at", 0),
    )


def session_to_json(session: GameSession) -> str:
    return json.dumps(session_to_dict(session), ensure_ascii=False)


def session_from_json(json_str: str) -> GameSession:
    return session_from_dict(json.loads(json_str))


def save_to_dict(save: SaveSnapshot) -> dict:
    return asdict(save)


# ─────────────────────────────────────────────────────
# SERIALIZATION: SCENARIO
# ─────────────────────────────────────────────────────

def _scene_from_dict(scene_id: str, data: dict) -> Scene:
    return Scene(
        id=data.get("id", scene_id),
        name=data.get("name", ""),
        description=data.get("description", ""),
        npcs=[ScenarioNPC(
            id=n.get("id", ""),
            name=n.get("name", ""),
            description=n.get("description", ""),
            personality=n.get("personality", ""),
            dialogues=list(n.get("dialogues", [])),
            state=dict(n.get("state", {})),
        ) for n in data.get("npcs", [])],
        clues=[Clue(
            id=c.get("id", ""),
            name=c.get("name", ""),
            description=c.get("description", ""),
            requirements=list(c.get("requirements", [])),
            unlocks=list(c.get("unlocks", [])),
        ) for c in data.get("clues", [])],
        events=[ScenarioEvent(
            id=e.get("id", ""),
            name=e.get("name", ""),
            description=e.get("description", ""),
            trigger=e.get("trigger", ""),
            effect=e.get("effect", ""),
        ) for e in data.get("events", [])],
        connections=list(data.get("connections", [])),
        state=dict(data.get("state", {})),
    )


def scenario_from_dict(data: dict) -> Scenario:
    anomaly = None
    adata = data.get("anomaly")
    if adata:
        anomaly = ScenarioAnomaly(
            id=adata.get("id", ""),
            name=adata.get("name", ""),
            history=adata.get("history", ""),
            focus=dict(adata.get("focus", {})),
            domain=dict(adata.get("domain", {})),
            appearance=adata.get("appearance", ""),
            impulse=adata.get("impulse", ""),
            current_status=adata.get("current_status", ""),
            chaos_effects=[_chaos_effect_from_dict(c)
                           for c in adata.get("chaos_effects", [])],
        )

    return Scenario(
        id=data.get("id", ""),
        name=data.get("name", ""),
        description=data.get("description", ""),
        locale=data.get("locale", "en"),
        anomaly=anomaly,
        morning_scenes=list(data.get("morning_scenes", [])),
        briefing=dict(data.get("briefing", {})),
        optional_goals=list(data.get("optional_goals", [])),
        scenes={sid: _scene_from_dict(sid, sdata)
                for sid, sdata in data.get("scenes", {}).items()},
        starting_scene_id=data.get("starting_scene_id", ""),
        encounter=dict(data.get("encounter", {})),
        aftermath=dict(data.get("aftermath", {})),
        rewards=dict(data.get("rewards", {})),
    )


def scenario_to_dict(scenario: Scenario) -> dict:
    return asdict(scenario)
