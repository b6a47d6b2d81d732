"""
Agency Engine v1.0: Session Runtime
The outer loop. Owns every GameSession mutation and the four-phase
mission cycle:

  MORNING        -> Briefing at the office. Off duty.
  INVESTIGATION  -> Scenes, clues, NPCs, reality-change requests.
  ENCOUNTER      -> The Anomaly is confronted.
  AFTERMATH      -> Outcome recorded, rewards paid. Off duty.
  (back to MORNING: a new mission, seeded with the loose ends left behind)

Every mutator runs under the session's write lock:
  load (cache -> store) -> mutate a private copy -> persist once -> invalidate.
If anything raises before the write, the stored session is untouched.
"""

import logging
import time
import uuid
from typing import Callable, Optional

import chaos
import damage
import performance
import qa
from abilities import AbilityContext, AbilityResolver
from agents import AgentService
from clues import ClueTracker
from config import DB_PATH, SCENARIOS_DIR, STRICT_SCENARIOS
from dice import roll_from_dict
from errors import ErrorCode, GameError, invalid_input, invalid_phase, invalid_state, not_found
from locks import RequestContext, after_commit
from models import GameSession, GamePhase, MissionOutcome, is_valid_value
from narrative import TemplateNarrator
from npcs import NPCRuntime
from reality_requests import RequestResolver, request_from_dict, request_locale
from report import generate_investigation_report_html
from saves import SaveManager
from scenario_loader import ScenarioLoader, get_available_scenes
from scenes import SceneRuntime
from storage import Database, Repositories

logger = logging.getLogger("agency.runtime")

PHASE_CYCLE = {
    GamePhase.MORNING.value: GamePhase.INVESTIGATION.value,
    GamePhase.INVESTIGATION.value: GamePhase.ENCOUNTER.value,
    GamePhase.ENCOUNTER.value: GamePhase.AFTERMATH.value,
    GamePhase.AFTERMATH.value: GamePhase.MORNING.value,
}

ANOMALY_STATUS_FOR = {
    MissionOutcome.CAPTURED.value: "captured",
    MissionOutcome.NEUTRALIZED.value: "neutralized",
    MissionOutcome.ESCAPED.value: "escaped",
}


def can_transition(current: str, target: str) -> bool:
    return PHASE_CYCLE.get(current) == target


class SessionRuntime:
    """
    Central state machine. The web layer and the MCP bridge both talk to
    this object; nothing else writes sessions.
    """

    def __init__(self, repos: Repositories, scenarios: ScenarioLoader,
                 rng=None,
                 clock: Callable[[], float] = time.time,
                 new_id: Callable[[], str] = lambda: str(uuid.uuid4()),
                 narrator=None,
                 relief_predicate=None,
                 condition_evaluator=None):
        self.repos = repos
        self.scenarios = scenarios
        self.rng = rng
        self.clock = clock
        self.new_id = new_id
        self.narrator = narrator or TemplateNarrator()
        self.relief_predicate = relief_predicate

        self.agents = AgentService(repos.agents, clock, new_id)
        self.clues = ClueTracker(clock)
        self.npcs = NPCRuntime(clock)
        self.scenes = SceneRuntime(self.clues, self.narrator)
        self.abilities = AbilityResolver(rng, condition_evaluator, relief_predicate, self.narrator)
        self.requests = RequestResolver(self.narrator)
        self.saves = SaveManager(repos, clock, new_id)

    # ─────────────────────────────────────────────────
    # PLUMBING
    # ─────────────────────────────────────────────────

    def _now(self) -> int:
        return int(self.clock())

    def _scenario_for(self, session: GameSession):
        try:
            return self.scenarios.load(session.scenario_id)
        except GameError as e:
            raise e.with_details(session_id=session.id)

    def _read(self, session_id: str, ctx: Optional[RequestContext] = None) -> tuple:
        session = self.repos.sessions.get(session_id, ctx)
        return session, self._scenario_for(session)

    def _mutate(self, session_id: str, fn, ctx: Optional[RequestContext] = None,
                with_agent: bool = False) -> tuple:
        """
        Run fn(session, scenario, agent) on a private copy under the write
        lock, then persist session (and agent) in one transaction.
        Side records queued by fn (clue metadata, influence log, narration
        requests) are kept only once the write has committed.
        Returns (fn result, persisted session).
        """
        try:
            with after_commit.collecting() as pending:
                with self.repos.locks.write_locked(session_id, ctx):
                    result, session = self._apply(session_id, fn, ctx, with_agent)
        except GameError as e:
            if e.code == ErrorCode.NOT_FOUND and e.details.get("id") == session_id:
                self.repos.locks.discard_if_idle(session_id)
            raise
        for record in pending:
            record()
        return result, session

    def _apply(self, session_id: str, fn, ctx, with_agent: bool) -> tuple:
        session = self.repos.sessions.get(session_id, ctx)
        scenario = self._scenario_for(session)
        agent = self.repos.agents.get(session.agent_id) if with_agent else None

        result = fn(session, scenario, agent)

        if ctx is not None:
            ctx.check()
        now = self._now()
        session.updated_at = now
        try:
            with self.repos.transaction() as (agents, sessions, _):
                if agent is not None:
                    performance.refresh(agent)
                    agent.updated_at = now
                    agents.update(agent)
                sessions.update(session, ctx)
        finally:
            self.repos.sessions.invalidate(session_id)
        return result, session

    # ─────────────────────────────────────────────────
    # SESSION LIFECYCLE
    # ─────────────────────────────────────────────────

    def create_session(self, agent_id: str, scenario_id: str,
                       loose_ends: int = 0) -> GameSession:
        self.agents.get(agent_id)
        self.scenarios.load(scenario_id)
        now = self._now()
        session = GameSession(
            id=self.new_id(),
            agent_id=agent_id,
            scenario_id=scenario_id,
            phase=GamePhase.MORNING.value,
            created_at=now,
            updated_at=now,
        )
        chaos.initialize(session, loose_ends)
        self.repos.sessions.create(session)
        logger.info(f"Session {session.id} created: agent={agent_id} scenario={scenario_id}")
        return session

    def get_session(self, session_id: str, ctx: Optional[RequestContext] = None) -> GameSession:
        return self.repos.sessions.get(session_id, ctx)

    def list_sessions(self, agent_id: Optional[str] = None) -> list:
        return self.repos.sessions.list(agent_id)

    def delete_session(self, session_id: str, ctx: Optional[RequestContext] = None):
        self.repos.sessions.delete(session_id, ctx)
        self.clues.forget_session(session_id)
        self.npcs.forget_session(session_id)
        logger.info(f"Session {session_id} deleted")

    def update_state(self, session_id: str, fn, ctx: Optional[RequestContext] = None) -> GameSession:
        """Apply fn(state) under the write lock. If fn raises, nothing is written."""
        _, session = self._mutate(session_id, lambda s, sc, a: fn(s.state), ctx)
        return session

    # ─────────────────────────────────────────────────
    # PHASES
    # ─────────────────────────────────────────────────

    def transition_phase(self, session_id: str, target: str,
                         ctx: Optional[RequestContext] = None) -> GameSession:
        def apply(session, scenario, agent):
            current = session.phase
            if not can_transition(current, target):
                raise invalid_phase(f"cannot move from {current} to {target}",
                                    current_phase=current, target_phase=target)
            session.phase = target
            if target == GamePhase.MORNING.value:
                # A new mission: loose ends seed the pool, QA comes back
                chaos.initialize(session, session.state.loose_ends)
                session.state.mission_outcome = "in_progress"
                qa.restore_qa(agent)
            logger.info(f"Session {session_id}: {current} -> {target}")

        _, session = self._mutate(session_id, apply, ctx, with_agent=True)
        return session

    def _require_phase(self, session: GameSession, phase: GamePhase):
        if session.phase != phase.value:
            raise invalid_phase(f"session is not in the {phase.value} phase",
                                current_phase=session.phase, required_phase=phase.value)

    def start_morning(self, session_id: str, ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            self._require_phase(session, GamePhase.MORNING)
            return {
                "phase": session.phase,
                "scenario": {"id": scenario.id, "name": scenario.name,
                             "description": scenario.description},
                "briefing": scenario.briefing,
                "optional_goals": scenario.optional_goals,
                "morning_scenes": scenario.morning_scenes,
                "chaos_pool": session.state.chaos_pool,
            }

        result, _ = self._mutate(session_id, apply, ctx)
        return result

    def start_investigation(self, session_id: str, ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            self._require_phase(session, GamePhase.INVESTIGATION)
            entered = None
            if not session.state.current_scene_id:
                entered = self.scenes.transition_to_scene(session, scenario,
                                                          scenario.starting_scene_id)
            current = self.scenes.load_scene(session, scenario, session.state.current_scene_id)
            return {
                "phase": session.phase,
                "current_scene": {"id": current.id, "name": current.name,
                                  "description": current.description, "state": current.state},
                "entered": entered,
                "available_scenes": get_available_scenes(scenario, session.state),
            }

        result, _ = self._mutate(session_id, apply, ctx)
        return result

    def start_encounter(self, session_id: str, ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            self._require_phase(session, GamePhase.ENCOUNTER)
            session.state.anomaly_status = "engaged"
            anomaly = scenario.anomaly
            return {
                "phase": session.phase,
                "anomaly": {"name": anomaly.name, "appearance": anomaly.appearance,
                            "impulse": anomaly.impulse,
                            "current_status": anomaly.current_status},
                "encounter": scenario.encounter,
                "chaos_pool": session.state.chaos_pool,
                "chaos_effects": [{"id": ce.id, "name": ce.name, "cost": ce.cost}
                                  for ce in anomaly.chaos_effects],
            }

        result, _ = self._mutate(session_id, apply, ctx)
        return result

    def end_mission(self, session_id: str, outcome: str,
                    ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            self._require_phase(session, GamePhase.AFTERMATH)
            if not is_valid_value(MissionOutcome, outcome):
                raise invalid_input(f"unknown mission outcome: {outcome}", outcome=outcome)
            reward = performance.award_mission_outcome(agent, outcome)
            session.state.mission_outcome = outcome
            session.state.anomaly_status = ANOMALY_STATUS_FOR[outcome]
            chaos.clear(session)
            qa.restore_qa(agent)
            logger.info(f"Session {session_id}: mission ended {outcome}")
            return {
                "outcome": outcome,
                "reward": reward,
                "aftermath": scenario.aftermath.get(outcome.lower(), ""),
                "agent": {"commendations": agent.commendations, "reprimands": agent.reprimands,
                          "rating": agent.rating, "in_debt": agent.in_debt},
            }

        result, _ = self._mutate(session_id, apply, ctx, with_agent=True)
        return result

    # ─────────────────────────────────────────────────
    # ABILITIES, ROLLS, REQUESTS
    # ─────────────────────────────────────────────────

    def use_ability(self, session_id: str, ability_id: str,
                    context: Optional[AbilityContext] = None,
                    ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            return self.abilities.use_ability(agent, session, ability_id, context).to_dict()

        result, _ = self._mutate(session_id, apply, ctx, with_agent=True)
        return result

    def roll(self, session_id: str, quality: str, count: int = 0) -> dict:
        """A bare quality roll. Nothing is persisted."""
        session, _ = self._read(session_id)
        agent = self.agents.get(session.agent_id)
        return qa.roll_for_quality(agent, quality, count, self.rng, self.relief_predicate).to_dict()

    def adjust_roll(self, session_id: str, quality: str, roll: dict, adjustments: list,
                    ctx: Optional[RequestContext] = None) -> dict:
        pairs = []
        for adj in adjustments:
            if isinstance(adj, dict):
                pairs.append((adj.get("index"), adj.get("value")))
            else:
                pairs.append(tuple(adj))

        def apply(session, scenario, agent):
            adjusted = qa.adjust_with_qa(agent, quality, roll_from_dict(roll), pairs)
            return {"roll": adjusted.to_dict(), "qa_remaining": qa.available_qa(agent, quality)}

        result, _ = self._mutate(session_id, apply, ctx, with_agent=True)
        return result

    def process_request(self, session_id: str, request: dict, roll: Optional[dict] = None,
                        ctx: Optional[RequestContext] = None) -> dict:
        req = request_from_dict(request)

        def apply(session, scenario, agent):
            locale = request_locale(scenario)
            self.requests.validate_request(req, locale)
            if roll is not None:
                result = roll_from_dict(roll)
            else:
                result = qa.roll_for_quality(agent, req.quality, 0, self.rng, self.relief_predicate)
            return self.requests.process_request(session, req, result, locale).to_dict()

        result, _ = self._mutate(session_id, apply, ctx, with_agent=roll is None)
        return result

    # ─────────────────────────────────────────────────
    # DAMAGE, CHAOS
    # ─────────────────────────────────────────────────

    def apply_damage(self, session_id: str, amount: int, witnesses: bool = False,
                     ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            res = damage.apply_damage(agent, amount, witnesses)
            session.state.loose_ends += res.loose_ends
            out = res.to_dict()
            out["agent"] = {"alive": agent.alive, "commendations": agent.commendations,
                            "in_debt": agent.in_debt, "qa_total": qa.total_qa(agent)}
            return out

        result, _ = self._mutate(session_id, apply, ctx, with_agent=True)
        return result

    def invoke_chaos_effect(self, session_id: str, effect_id: str,
                            ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            effect = scenario.anomaly.chaos_effect(effect_id)
            if effect is None:
                raise not_found("chaos effect", effect_id)
            chaos.spend_chaos(session, effect.cost)
            return {
                "effect": {"id": effect.id, "name": effect.name, "cost": effect.cost,
                           "effect": effect.effect},
                "chaos_pool": session.state.chaos_pool,
                "narration": self.narrator.describe_chaos_effect(effect),
            }

        result, _ = self._mutate(session_id, apply, ctx)
        return result

    def clear_location_overload(self, session_id: str, location_id: str,
                                ctx: Optional[RequestContext] = None) -> GameSession:
        _, session = self._mutate(
            session_id, lambda s, sc, a: chaos.clear_location_overload(s, location_id), ctx)
        return session

    # ─────────────────────────────────────────────────
    # SCENES AND CLUES
    # ─────────────────────────────────────────────────

    def enter_scene(self, session_id: str, scene_id: str,
                    ctx: Optional[RequestContext] = None) -> dict:
        result, _ = self._mutate(
            session_id, lambda s, sc, a: self.scenes.transition_to_scene(s, sc, scene_id), ctx)
        return result

    def interact(self, session_id: str, object_id: str, action: str = "",
                 scene_id: Optional[str] = None,
                 ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            if scene_id and scene_id != session.state.current_scene_id:
                raise invalid_input("scene is not the current scene", scene_id=scene_id,
                                    current_scene_id=session.state.current_scene_id)
            return self.scenes.interact_with_object(session, scenario, object_id, action)

        result, _ = self._mutate(session_id, apply, ctx)
        return result

    def collect_clue(self, session_id: str, clue_id: str, source: str = "",
                     ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            clue = self.clues.add_clue(session, scenario, clue_id, source)
            return {
                "clue": {"id": clue.id, "name": clue.name, "description": clue.description},
                "unlocked": list(clue.unlocks),
                "progress": self.clues.get_clue_progress(session, scenario),
            }

        result, _ = self._mutate(session_id, apply, ctx)
        return result

    def load_scene(self, session_id: str, scene_id: str) -> dict:
        session, scenario = self._read(session_id)
        scene = self.scenes.load_scene(session, scenario, scene_id)
        return {"id": scene.id, "name": scene.name, "description": scene.description,
                "state": scene.state, "connections": list(scene.connections)}

    def current_scene(self, session_id: str) -> dict:
        session, scenario = self._read(session_id)
        if not session.state.current_scene_id:
            raise not_found("scene", "")
        if session.state.current_scene_id not in scenario.scenes:
            raise invalid_state("current scene is not part of the scenario",
                                session_id=session_id,
                                scene_id=session.state.current_scene_id)
        out = self.load_scene(session_id, session.state.current_scene_id)
        out["interactions"] = self.scenes.available_interactions(session, scenario)
        return out

    def available_scenes(self, session_id: str) -> list:
        session, scenario = self._read(session_id)
        return get_available_scenes(scenario, session.state)

    def save_scene_state(self, session_id: str, scene_id: str, state: dict,
                         ctx: Optional[RequestContext] = None) -> GameSession:
        _, session = self._mutate(
            session_id, lambda s, sc, a: self.scenes.save_scene_state(s, sc, scene_id, state), ctx)
        return session

    def collected_clues(self, session_id: str) -> list:
        session, scenario = self._read(session_id)
        return self.clues.get_collected_clues(session, scenario)

    def clue_progress(self, session_id: str) -> dict:
        session, scenario = self._read(session_id)
        return self.clues.get_clue_progress(session, scenario)

    def investigation_report(self, session_id: str) -> dict:
        session, scenario = self._read(session_id)
        return self.clues.generate_investigation_report(session, scenario)

    def investigation_report_html(self, session_id: str) -> str:
        session, scenario = self._read(session_id)
        agent = self.agents.get(session.agent_id)
        report = self.clues.generate_investigation_report(session, scenario)
        return generate_investigation_report_html(report, agent)

    # ─────────────────────────────────────────────────
    # NPCS
    # ─────────────────────────────────────────────────

    def get_npc(self, session_id: str, npc_id: str) -> dict:
        session, scenario = self._read(session_id)
        npc, state = self.npcs.load_npc(session, scenario, npc_id)
        return self._npc_view(session_id, npc, state)

    def _npc_view(self, session_id, npc, state) -> dict:
        return {
            "id": npc.id,
            "name": npc.name,
            "description": npc.description,
            "personality": npc.personality,
            "current_state": state.current_state,
            "anomaly_affected": state.anomaly_affected,
            "relationship": state.relationship,
            "custom_data": dict(state.custom_data),
            "influences": self.npcs.influences(session_id, npc.id),
        }

    def update_npc(self, session_id: str, npc_id: str,
                   current_state: Optional[str] = None,
                   relationship: Optional[int] = None,
                   relationship_delta: Optional[int] = None,
                   custom_data: Optional[dict] = None,
                   ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            npc, state = self.npcs.load_npc(session, scenario, npc_id)
            if current_state is not None:
                self.npcs.set_state(session, scenario, npc_id, current_state)
            if relationship is not None:
                self.npcs.set_relationship(session, scenario, npc_id, relationship)
            if relationship_delta is not None:
                self.npcs.modify_relationship(session, scenario, npc_id, relationship_delta)
            if custom_data:
                self.npcs.set_custom_data(session, scenario, npc_id, custom_data)
            return npc, state

        (npc, state), _ = self._mutate(session_id, apply, ctx)
        return self._npc_view(session_id, npc, state)

    def influence_npc(self, session_id: str, npc_id: str, influence: str,
                      ctx: Optional[RequestContext] = None) -> dict:
        def apply(session, scenario, agent):
            state = self.npcs.record_influence(session, scenario, npc_id, influence)
            npc, _ = self.npcs.load_npc(session, scenario, npc_id)
            return npc, state

        (npc, state), _ = self._mutate(session_id, apply, ctx)
        return self._npc_view(session_id, npc, state)

    # ─────────────────────────────────────────────────
    # SAVES
    # ─────────────────────────────────────────────────

    def create_save(self, session_id: str, name: str):
        return self.saves.create(session_id, name)

    def restore_save(self, save_id: str) -> GameSession:
        return self.saves.restore(save_id)


def build_runtime(db_path: str = DB_PATH, scenarios_dir: str = SCENARIOS_DIR,
                  narrator=None, rng=None, strict: bool = STRICT_SCENARIOS,
                  cache=None) -> SessionRuntime:
    """Wire the runtime over a SQLite file, a Redis cache and a scenario directory."""
    repos = Repositories(Database(db_path), cache=cache)
    loader = ScenarioLoader(scenarios_dir, strict=strict)
    return SessionRuntime(repos, loader, rng=rng, narrator=narrator)
