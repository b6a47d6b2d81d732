"""
Agency Engine v1.0: Scene Runtime
The current-scene pointer and the per-scene state overlay. Overlays are
stored in the session aggregate keyed by scene id, so they survive
leaving and re-entering a scene, restarts and save/load.
"""

from dataclasses import replace

from clues import ClueTracker
from errors import invalid_input, not_found
from models import GameSession, Scenario, Scene, add_unique
from scenario_loader import check_event_triggers


class SceneRuntime:

    def __init__(self, clues: ClueTracker, narrator=None):
        self.clues = clues
        self.narrator = narrator

    def _scene(self, scenario: Scenario, scene_id: str) -> Scene:
        scene = scenario.scenes.get(scene_id)
        if scene is None:
            raise not_found("scene", scene_id)
        return scene

    def load_scene(self, session: GameSession, scenario: Scenario, scene_id: str) -> Scene:
        """The authored scene with its state replaced by this session's overlay."""
        scene = self._scene(scenario, scene_id)
        overlay = session.state.scene_states.get(scene_id)
        state = dict(overlay) if overlay is not None else dict(scene.state)
        return replace(scene, state=state)

    def save_scene_state(self, session: GameSession, scenario: Scenario, scene_id: str,
                         state: dict):
        """Replace the overlay wholesale."""
        self._scene(scenario, scene_id)
        if not isinstance(state, dict):
            raise invalid_input("scene state must be an object", scene_id=scene_id)
        session.state.scene_states[scene_id] = dict(state)

    def _set_flag(self, session: GameSession, scenario: Scenario, scene_id: str, flag: str):
        overlay = self.load_scene(session, scenario, scene_id).state
        overlay[flag] = True
        session.state.scene_states[scene_id] = overlay

    def transition_to_scene(self, session: GameSession, scenario: Scenario,
                            target_id: str) -> dict:
        target = self._scene(scenario, target_id)
        state = session.state

        outgoing = state.current_scene_id
        if outgoing and outgoing in scenario.scenes:
            state.scene_states[outgoing] = self.load_scene(session, scenario, outgoing).state

        first_visit = target_id not in state.visited_scenes
        events = check_event_triggers(scenario, state, scene_id=target_id)

        state.current_scene_id = target_id
        add_unique(state.visited_scenes, target_id)

        scene = self.load_scene(session, scenario, target_id)
        result = {
            "scene": {
                "id": scene.id,
                "name": scene.name,
                "description": scene.description,
                "state": scene.state,
                "connections": list(scene.connections),
            },
            "previous_scene_id": outgoing,
            "first_visit": first_visit,
            "events": [{"id": e.id, "name": e.name, "description": e.description,
                        "effect": e.effect} for e in events],
        }
        if self.narrator is not None:
            result["narration"] = self.narrator.describe_scene(target)
            result["event_narration"] = [self.narrator.describe_event(e) for e in events]
        return result

    def interact_with_object(self, session: GameSession, scenario: Scenario,
                             object_id: str, action: str = "") -> dict:
        scene_id = session.state.current_scene_id
        scene = scenario.scenes.get(scene_id) if scene_id else None
        if scene is None:
            raise not_found("object", object_id)

        clue = scene.clue(object_id)
        if clue is not None:
            self.clues.add_clue(session, scenario, object_id, source=f"scene:{scene_id}")
            self._set_flag(session, scenario, scene_id, f"clue_{object_id}_collected")
            return {
                "object_id": object_id,
                "type": "clue",
                "action": action,
                "clue": {"id": clue.id, "name": clue.name, "description": clue.description},
                "unlocked": list(clue.unlocks),
            }

        npc = scene.npc(object_id)
        if npc is not None:
            self._set_flag(session, scenario, scene_id, f"npc_{object_id}_interacted")
            result = {
                "object_id": object_id,
                "type": "npc",
                "action": action,
                "npc": {"id": npc.id, "name": npc.name, "description": npc.description,
                        "dialogues": list(npc.dialogues)},
            }
            if self.narrator is not None:
                result["narration"] = self.narrator.describe_npc(
                    npc, session.state.npc_states.get(npc.id))
            return result

        raise not_found("object", object_id)

    def available_interactions(self, session: GameSession, scenario: Scenario) -> dict:
        scene = scenario.scenes.get(session.state.current_scene_id)
        if scene is None:
            return {"clues": [], "npcs": []}
        return {
            "clues": [c.id for c in self.clues.get_available_clues(session, scenario)],
            "npcs": [n.id for n in scene.npcs],
        }
