"""
Agency Engine v1.0: Scenario Loader
Reads authored scenarios from <scenarios_dir>/<id>.json, validates them
and keeps them for the life of the process. Scenarios are read-shared;
nothing downstream mutates them.

Validation rejects:
  - an empty id or name
  - a missing anomaly profile or starting scene
  - an anomaly with fewer than three chaos effects
  - a starting scene that is not in the scenes map
  - a connection or clue unlock naming an unknown scene
  - (strict mode) a scene unreachable from the starting scene
"""

import json
import logging
import os
import threading
from collections import deque
from typing import Optional

from config import STRICT_SCENARIOS
from errors import data_corrupted, invalid_input, not_found
from models import Clue, GameState, Scenario, Scene, scenario_from_dict

logger = logging.getLogger("agency.scenario")

MIN_CHAOS_EFFECTS = 3


# ─────────────────────────────────────────────────────
# VALIDATION
# ─────────────────────────────────────────────────────

def validate_scenario(scenario: Scenario, strict: bool = False):
    if not scenario.id.strip():
        raise invalid_input("scenario id is required", field="id")
    if not scenario.name.strip():
        raise invalid_input("scenario name is required", field="name", scenario_id=scenario.id)
    if scenario.anomaly is None:
        raise invalid_input("scenario has no anomaly profile", field="anomaly",
                            scenario_id=scenario.id)
    if not scenario.starting_scene_id:
        raise invalid_input("scenario has no starting scene", field="starting_scene_id",
                            scenario_id=scenario.id)
    if scenario.starting_scene_id not in scenario.scenes:
        raise invalid_input("starting scene is not defined", field="starting_scene_id",
                            scenario_id=scenario.id, scene_id=scenario.starting_scene_id)

    if len(scenario.anomaly.chaos_effects) < MIN_CHAOS_EFFECTS:
        raise invalid_input(f"anomaly needs at least {MIN_CHAOS_EFFECTS} chaos effects",
                            field="chaos_effects", scenario_id=scenario.id,
                            count=len(scenario.anomaly.chaos_effects))
    for ce in scenario.anomaly.chaos_effects:
        if not isinstance(ce.cost, int) or ce.cost < 1:
            raise invalid_input("chaos effect cost must be at least 1", field="chaos_effects",
                                scenario_id=scenario.id, effect_id=ce.id)

    for scene_id, scene in scenario.scenes.items():
        for target in scene.connections:
            if target not in scenario.scenes:
                raise invalid_input("scene connects to an unknown scene", field="connections",
                                    scenario_id=scenario.id, scene_id=scene_id, target=target)
        for clue in scene.clues:
            for target in clue.unlocks:
                if target not in scenario.scenes:
                    raise invalid_input("clue unlocks an unknown scene", field="unlocks",
                                        scenario_id=scenario.id, clue_id=clue.id, target=target)

    if strict:
        reachable = reachable_scenes(scenario)
        unreachable = sorted(set(scenario.scenes) - reachable)
        if unreachable:
            raise invalid_input("scenes unreachable from the starting scene",
                                field="connections", scenario_id=scenario.id,
                                unreachable=unreachable)


def reachable_scenes(scenario: Scenario) -> set:
    """Breadth-first walk over connections from the starting scene."""
    seen = {scenario.starting_scene_id}
    queue = deque([scenario.starting_scene_id])
    while queue:
        scene = scenario.scenes.get(queue.popleft())
        if scene is None:
            continue
        for nxt in scene.connections:
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return seen


# ─────────────────────────────────────────────────────
# PREDICATES (pure, over scenario + session state)
# ─────────────────────────────────────────────────────

def check_clue_requirements(clue: Clue, state: GameState) -> bool:
    return all(req in state.collected_clues for req in clue.requirements)


def missing_requirements(clue: Clue, state: GameState) -> list:
    return [req for req in clue.requirements if req not in state.collected_clues]


def _trigger_fires(trigger: str, scene: Scene, state: GameState) -> bool:
    trigger = trigger.strip()
    if trigger == "always":
        return True
    if trigger == "domain_unlocked":
        return state.domain_unlocked
    if trigger == "first_visit":
        return scene.id not in state.visited_scenes
    if trigger.startswith("clue:"):
        return trigger[len("clue:"):] in state.collected_clues
    return False


def check_event_triggers(scenario: Scenario, state: GameState,
                         scene_id: Optional[str] = None) -> list:
    """
    Events of a scene whose trigger currently holds. Defaults to the
    current scene; pass scene_id to evaluate a scene about to be entered
    (so first_visit still sees it as unvisited).
    """
    scene = scenario.scenes.get(scene_id or state.current_scene_id)
    if scene is None:
        return []
    return [ev for ev in scene.events if _trigger_fires(ev.trigger, scene, state)]


def get_available_scenes(scenario: Scenario, state: GameState) -> list:
    """Visible exits: the current scene's connections plus unlocked locations."""
    if not state.current_scene_id:
        return [scenario.starting_scene_id]
    current = scenario.scenes.get(state.current_scene_id)
    out = []
    candidates = list(current.connections if current else []) + list(state.unlocked_locations)
    for sid in candidates:
        if sid != state.current_scene_id and sid in scenario.scenes and sid not in out:
            out.append(sid)
    return out


# ─────────────────────────────────────────────────────
# LOADER
# ─────────────────────────────────────────────────────

class ScenarioLoader:

    def __init__(self, scenarios_dir: str, strict: bool = STRICT_SCENARIOS):
        self.scenarios_dir = scenarios_dir
        self.strict = strict
        self._lock = threading.Lock()
        self._cache: dict = {}

    def _path(self, scenario_id: str) -> str:
        if not scenario_id or "/" in scenario_id or "\\" in scenario_id or scenario_id.startswith("."):
            raise invalid_input("invalid scenario id", scenario_id=scenario_id)
        return os.path.join(self.scenarios_dir, f"{scenario_id}.json")

    def _read(self, scenario_id: str) -> Scenario:
        path = self._path(scenario_id)
        try:
            with open(path, "r", encoding="utf-8-sig") as f:
                raw = json.load(f)
        except FileNotFoundError:
            raise not_found("scenario", scenario_id)
        except (ValueError, UnicodeDecodeError) as e:
            logger.error(f"Scenario {scenario_id} is not valid JSON: {e}")
            raise data_corrupted("scenario file is not valid JSON", scenario_id=scenario_id) from e

        if not isinstance(raw, dict):
            raise data_corrupted("scenario file must hold an object", scenario_id=scenario_id)
        try:
            scenario = scenario_from_dict(raw)
        except (AttributeError, TypeError) as e:
            raise data_corrupted("scenario file is malformed", scenario_id=scenario_id) from e

        validate_scenario(scenario, self.strict)
        return scenario

    def load(self, scenario_id: str) -> Scenario:
        with self._lock:
            cached = self._cache.get(scenario_id)
            if cached is not None:
                return cached
            scenario = self._read(scenario_id)
            self._cache[scenario_id] = scenario
            logger.info(f"Scenario: loaded {scenario_id} ({len(scenario.scenes)} scenes)")
            return scenario

    def list(self) -> list:
        """Summaries of every valid scenario on disk. Broken files are skipped."""
        if not os.path.isdir(self.scenarios_dir):
            return []
        out = []
        for fname in sorted(os.listdir(self.scenarios_dir)):
            if not fname.endswith(".json"):
                continue
            scenario_id = fname[:-len(".json")]
            try:
                out.append(self.load(scenario_id).summary())
            except Exception as e:
                logger.warning(f"Skipping scenario {fname}: {e}")
        return out

    def get_scene(self, scenario_id: str, scene_id: str) -> Scene:
        scene = self.load(scenario_id).scenes.get(scene_id)
        if scene is None:
            raise not_found("scene", scene_id)
        return scene

    def get_clue(self, scenario_id: str, clue_id: str) -> Clue:
        clue = self.load(scenario_id).all_clues().get(clue_id)
        if clue is None:
            raise not_found("clue", clue_id)
        return clue
