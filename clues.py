"""
Agency Engine v1.0: Clue Tracker
A view over session.state.collected_clues. Collection order is kept for
the investigation report; where and when each clue was found is held
in memory only and is lost on restart.
"""

import threading
import time
from typing import Callable

from errors import invalid_action, not_found
from locks import after_commit
from models import Clue, GameSession, Scenario, add_unique
from reality_requests import established_facts, is_fact_sentinel
from scenario_loader import check_clue_requirements, missing_requirements


class ClueTracker:

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._meta: dict = {}            # (session_id, clue_id) -> {source, collected_at}

    def add_clue(self, session: GameSession, scenario: Scenario, clue_id: str,
                 source: str = "") -> Clue:
        clue = scenario.all_clues().get(clue_id)
        if clue is None:
            raise not_found("clue", clue_id)
        if clue_id in session.state.collected_clues:
            raise invalid_action("clue already collected", clue_id=clue_id)
        if not check_clue_requirements(clue, session.state):
            raise invalid_action("clue requirements not met", clue_id=clue_id,
                                 missing_requirements=missing_requirements(clue, session.state))

        session.state.collected_clues.append(clue_id)
        self.unlock_locations(session, clue.unlocks)
        domain = scenario.anomaly.domain.get("location") if scenario.anomaly else None
        if domain and domain in clue.unlocks:
            session.state.domain_unlocked = True
        after_commit.run(lambda: self._record(session.id, clue_id, source))
        return clue

    def _record(self, session_id: str, clue_id: str, source: str):
        with self._lock:
            self._meta[(session_id, clue_id)] = {
                "source": source,
                "collected_at": int(self._clock()),
            }

    def unlock_locations(self, session: GameSession, scene_ids: list):
        for sid in scene_ids:
            add_unique(session.state.unlocked_locations, sid)

    def has_clue(self, session: GameSession, clue_id: str) -> bool:
        return clue_id in session.state.collected_clues

    def _collected_ids(self, session: GameSession) -> list:
        return [c for c in session.state.collected_clues if not is_fact_sentinel(c)]

    def get_collected_clues(self, session: GameSession, scenario: Scenario) -> list:
        known = scenario.all_clues()
        out = []
        with self._lock:
            for cid in self._collected_ids(session):
                clue = known.get(cid)
                meta = self._meta.get((session.id, cid), {})
                out.append({
                    "id": cid,
                    "name": clue.name if clue else cid,
                    "description": clue.description if clue else "",
                    "source": meta.get("source", ""),
                    "collected_at": meta.get("collected_at"),
                })
        return out

    def get_missing_clues(self, session: GameSession, scenario: Scenario) -> list:
        have = set(session.state.collected_clues)
        return [c for cid, c in scenario.all_clues().items() if cid not in have]

    def get_available_clues(self, session: GameSession, scenario: Scenario) -> list:
        """Uncollected clues in the current scene whose requirements are met."""
        scene = scenario.scenes.get(session.state.current_scene_id)
        if scene is None:
            return []
        return [c for c in scene.clues
                if c.id not in session.state.collected_clues
                and check_clue_requirements(c, session.state)]

    def get_clue_progress(self, session: GameSession, scenario: Scenario) -> dict:
        all_ids = scenario.all_clues()
        collected = sum(1 for cid in self._collected_ids(session) if cid in all_ids)
        total = len(all_ids)
        percentage = (collected / total * 100) if total else 0.0
        return {"collected": collected, "total": total, "percentage": percentage}

    def generate_investigation_report(self, session: GameSession, scenario: Scenario) -> dict:
        return {
            "session_id": session.id,
            "scenario_id": scenario.id,
            "scenario_name": scenario.name,
            "anomaly": scenario.anomaly.name if scenario.anomaly else "",
            "phase": session.phase,
            "collected_clues": self.get_collected_clues(session, scenario),
            "missing_clues": [{"id": c.id, "name": c.name}
                              for c in self.get_missing_clues(session, scenario)],
            "progress": self.get_clue_progress(session, scenario),
            "unlocked_locations": list(session.state.unlocked_locations),
            "visited_scenes": list(session.state.visited_scenes),
            "established_facts": established_facts(session),
            "domain_unlocked": session.state.domain_unlocked,
            "chaos_pool": session.state.chaos_pool,
            "location_overloads": dict(session.state.location_overloads),
        }

    def forget_session(self, session_id: str):
        with self._lock:
            for key in [k for k in self._meta if k[0] == session_id]:
                del self._meta[key]
