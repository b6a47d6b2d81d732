"""
Agency Engine v1.0: Narrative Bridge
The engine never writes prose it depends on. Every description comes
from a NarrativeGenerator, which reads records and returns text.

TemplateNarrator  -> deterministic stock text, used by default and in tests.
QueuedNarrator    -> same text, but also queues a narration request so an
                     external LLM (via mcp_server.py) can supply richer
                     prose for the front-end.
"""

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field, asdict
from typing import Optional, Protocol

from locks import after_commit
from models import Scene, ScenarioNPC, NPCState, ScenarioEvent, AnomalyAbility, ChaosEffect

logger = logging.getLogger("agency.narrative")


class NarrativeGenerator(Protocol):
    def describe_scene(self, scene: Scene) -> str: ...
    def describe_npc(self, npc: ScenarioNPC, state: Optional[NPCState]) -> str: ...
    def describe_event(self, event: ScenarioEvent) -> str: ...
    def describe_ability(self, ability: AnomalyAbility, success: bool) -> str: ...
    def describe_reverse_effect(self, effect: str, location_id: str) -> str: ...
    def describe_chaos_effect(self, effect: ChaosEffect) -> str: ...


# ─────────────────────────────────────────────────────
# TEMPLATE NARRATOR
# ─────────────────────────────────────────────────────

class TemplateNarrator:
    """Plain descriptions built straight from authored text."""

    def describe_scene(self, scene: Scene) -> str:
        text = f"{scene.name}. {scene.description}".strip()
        if scene.npcs:
            names = ", ".join(n.name for n in scene.npcs)
            text += f" Present: {names}."
        return text

    def describe_npc(self, npc: ScenarioNPC, state: Optional[NPCState] = None) -> str:
        text = f"{npc.name}: {npc.description}".strip()
        if state and state.anomaly_affected:
            text += " Something about them is not quite their own."
        return text

    def describe_event(self, event: ScenarioEvent) -> str:
        return f"{event.name}. {event.description}".strip()

    def describe_ability(self, ability: AnomalyAbility, success: bool) -> str:
        effect = ability.success_effect if success else ability.failure_effect
        verdict = "takes hold" if success else "slips"
        return f"{ability.name} {verdict}. {effect.description}".strip()

    def describe_reverse_effect(self, effect: str, location_id: str) -> str:
        return (f"Reality pushes back at {location_id}: the opposite of "
                f"\"{effect}\" comes to pass.")

    def describe_chaos_effect(self, effect: ChaosEffect) -> str:
        return f"{effect.name}. {effect.description}".strip()


# ─────────────────────────────────────────────────────
# NARRATION QUEUE (for an external LLM narrator)
# ─────────────────────────────────────────────────────

@dataclass
class NarrationRequest:
    id: str
    type: str                        # SCENE, NPC, EVENT, ABILITY, REVERSE, CHAOS
    context: dict = field(default_factory=dict)
    fallback: str = ""               # the template text already returned
    created_at: int = 0


class NarrationQueue:
    """Narration requests waiting on an external narrator. A submit retires one."""

    def __init__(self, limit: int = 200):
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._pending: list = []
        self._limit = limit

    def enqueue(self, req_type: str, context: dict, fallback: str) -> NarrationRequest:
        with self._lock:
            req = NarrationRequest(
                id=f"NR-{next(self._counter):04d}",
                type=req_type,
                context=context,
                fallback=fallback,
                created_at=int(time.time()),
            )
            self._pending.append(req)
            # Oldest requests are dropped once nobody is draining the queue
            if len(self._pending) > self._limit:
                self._pending = self._pending[-self._limit:]
            return req

    def pending(self) -> list:
        with self._lock:
            return [asdict(r) for r in self._pending]

    def submit(self, request_id: str, text: str) -> bool:
        with self._lock:
            for i, req in enumerate(self._pending):
                if req.id == request_id:
                    del self._pending[i]
                    logger.debug("Narration %s answered (%d chars)", request_id, len(text))
                    return True
            return False

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)


class QueuedNarrator(TemplateNarrator):

    def __init__(self, queue: NarrationQueue):
        self.queue = queue

    def _enqueue(self, req_type: str, context: dict, fallback: str):
        after_commit.run(lambda: self.queue.enqueue(req_type, context, fallback))

    def describe_scene(self, scene):
        text = super().describe_scene(scene)
        self._enqueue("SCENE", {"scene_id": scene.id, "name": scene.name,
                                "description": scene.description}, text)
        return text

    def describe_npc(self, npc, state=None):
        text = super().describe_npc(npc, state)
        self._enqueue("NPC", {"npc_id": npc.id, "name": npc.name,
                              "personality": npc.personality,
                              "anomaly_affected": bool(state and state.anomaly_affected)},
                      text)
        return text

    def describe_event(self, event):
        text = super().describe_event(event)
        self._enqueue("EVENT", {"event_id": event.id, "name": event.name,
                                "effect": event.effect}, text)
        return text

    def describe_ability(self, ability, success):
        text = super().describe_ability(ability, success)
        self._enqueue("ABILITY", {"ability_id": ability.id, "name": ability.name,
                                  "success": success}, text)
        return text

    def describe_reverse_effect(self, effect, location_id):
        text = super().describe_reverse_effect(effect, location_id)
        self._enqueue("REVERSE", {"effect": effect, "location_id": location_id}, text)
        return text

    def describe_chaos_effect(self, effect):
        text = super().describe_chaos_effect(effect)
        self._enqueue("CHAOS", {"effect_id": effect.id, "name": effect.name,
                                "effect": effect.effect}, text)
        return text
