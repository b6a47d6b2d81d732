"""
Agency Engine v1.0: NPC Runtime
Per-session NPC state lives in the session aggregate. The log of
anomaly influences is a derived, in-memory record keyed by
(session_id, npc_id); only the anomaly_affected flag is durable.
"""

import threading
import time
from typing import Callable, Optional

from errors import invalid_input, not_found
from locks import after_commit
from models import GameSession, NPCState, Scenario, ScenarioNPC


def find_npc(scenario: Scenario, npc_id: str) -> Optional[ScenarioNPC]:
    for scene in scenario.scenes.values():
        npc = scene.npc(npc_id)
        if npc is not None:
            return npc
    return None


class NPCRuntime:

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._influences: dict = {}      # (session_id, npc_id) -> [{influence, at}]

    def load_npc(self, session: GameSession, scenario: Scenario, npc_id: str) -> tuple:
        """(authored NPC, session state), creating the state on first contact."""
        npc = find_npc(scenario, npc_id)
        if npc is None:
            raise not_found("npc", npc_id)
        return npc, self.get_state(session, npc)

    def get_state(self, session: GameSession, npc: ScenarioNPC) -> NPCState:
        state = session.state.npc_states.get(npc.id)
        if state is None:
            state = NPCState(
                current_state=npc.state.get("current_state", "neutral"),
                relationship=npc.state.get("relationship", 0),
                custom_data={k: v for k, v in npc.state.items()
                             if k not in ("current_state", "relationship")},
            )
            session.state.npc_states[npc.id] = state
        return state

    def set_state(self, session: GameSession, scenario: Scenario, npc_id: str,
                  current_state: str) -> NPCState:
        if not current_state or not current_state.strip():
            raise invalid_input("npc state must not be empty", npc_id=npc_id)
        _, state = self.load_npc(session, scenario, npc_id)
        state.current_state = current_state
        return state

    def modify_relationship(self, session: GameSession, scenario: Scenario, npc_id: str,
                            delta: int) -> NPCState:
        _, state = self.load_npc(session, scenario, npc_id)
        state.relationship += delta
        return state

    def set_relationship(self, session: GameSession, scenario: Scenario, npc_id: str,
                         value: int) -> NPCState:
        _, state = self.load_npc(session, scenario, npc_id)
        state.relationship = value
        return state

    def set_custom_data(self, session: GameSession, scenario: Scenario, npc_id: str,
                        data: dict) -> NPCState:
        _, state = self.load_npc(session, scenario, npc_id)
        state.custom_data.update(data)
        return state

    def record_influence(self, session: GameSession, scenario: Scenario, npc_id: str,
                         influence: str) -> NPCState:
        if not influence or not influence.strip():
            raise invalid_input("influence must not be empty", npc_id=npc_id)
        _, state = self.load_npc(session, scenario, npc_id)
        state.anomaly_affected = True
        after_commit.run(lambda: self._log(session.id, npc_id, influence))
        return state

    def _log(self, session_id: str, npc_id: str, influence: str):
        with self._lock:
            self._influences.setdefault((session_id, npc_id), []).append({
                "influence": influence,
                "at": int(self._clock()),
            })

    def influences(self, session_id: str, npc_id: str) -> list:
        with self._lock:
            return list(self._influences.get((session_id, npc_id), []))

    def forget_session(self, session_id: str):
        with self._lock:
            for key in [k for k in self._influences if k[0] == session_id]:
                del self._influences[key]
