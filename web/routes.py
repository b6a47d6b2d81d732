"""
Agency Engine v1.0: FastAPI Routes
Player-facing endpoints, plus the narration API used by the MCP bridge.
Every failure leaves as the envelope {code, message, details} with the
status mapped from the error code.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from abilities import AbilityContext
from config import DB_PATH, LOCK_TIMEOUT, SCENARIOS_DIR
from errors import GameError, internal, invalid_input, not_found
from game_loop import SessionRuntime, build_runtime
from locks import RequestContext
from models import agent_to_dict, save_to_dict, scenario_to_dict, session_to_dict
from narrative import NarrationQueue, QueuedNarrator

logger = logging.getLogger("agency.web")


# ─────────────────────────────────────────────────────
# APP SETUP
# ─────────────────────────────────────────────────────

app = FastAPI(title="Agency Engine", version="1.0")
narration = NarrationQueue()
game: Optional[SessionRuntime] = None


def init_game(db_path: str = DB_PATH, scenarios_dir: str = SCENARIOS_DIR, rng=None, cache=None):
    """Build the runtime. Called from agency.py, and by tests."""
    global game
    game = build_runtime(db_path, scenarios_dir, narrator=QueuedNarrator(narration), rng=rng,
                         cache=cache)
    logger.info(f"Engine ready: db={db_path} scenarios={scenarios_dir}")
    return game


def _game() -> SessionRuntime:
    if game is None:
        raise internal("engine not initialized")
    return game


def _ctx() -> RequestContext:
    return RequestContext.with_timeout(LOCK_TIMEOUT)


@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    if exc.status >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc!r}")
    return JSONResponse(exc.to_dict(), status_code=exc.status)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
    err = invalid_input("request body failed validation", errors=errors)
    return JSONResponse(err.to_dict(), status_code=err.status)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path}: unhandled error")
    err = internal("unexpected error", error=type(exc).__name__)
    return JSONResponse(err.to_dict(), status_code=err.status)


# ─────────────────────────────────────────────────────
# AGENTS
# ─────────────────────────────────────────────────────

class AgentCreateRequest(BaseModel):
    name: str
    anomaly: str
    reality: str
    career: str
    pronouns: str = ""
    relationships: Optional[list] = None


@app.post("/agents")
def create_agent(req: AgentCreateRequest):
    agent = _game().agents.create(req.name, req.anomaly, req.reality, req.career,
                                  pronouns=req.pronouns, relationships=req.relationships)
    return JSONResponse(agent_to_dict(agent), status_code=201)


@app.get("/agents")
def list_agents():
    return JSONResponse({"agents": [agent_to_dict(a) for a in _game().agents.list()]})


@app.get("/agents/{agent_id}")
def get_agent(agent_id: str):
    return JSONResponse(agent_to_dict(_game().agents.get(agent_id)))


class AgentUpdateRequest(BaseModel):
    name: Optional[str] = None
    pronouns: Optional[str] = None
    relationships: Optional[list] = None
    anomaly: Optional[str] = None
    reality: Optional[str] = None
    career: Optional[str] = None


@app.put("/agents/{agent_id}")
def update_agent(agent_id: str, req: AgentUpdateRequest):
    agent = _game().agents.update(agent_id, name=req.name, pronouns=req.pronouns,
                                  relationships=req.relationships,
                                  anomaly_type=req.anomaly, reality_type=req.reality,
                                  career_type=req.career)
    return JSONResponse(agent_to_dict(agent))


@app.delete("/agents/{agent_id}")
def delete_agent(agent_id: str):
    _game().agents.delete(agent_id)
    return JSONResponse({"success": True})


class QASpendRequest(BaseModel):
    quality: str
    amount: int


@app.post("/agents/{agent_id}/qa/spend")
def spend_agent_qa(agent_id: str, req: QASpendRequest):
    return JSONResponse(agent_to_dict(_game().agents.spend_qa(agent_id, req.quality, req.amount)))


@app.post("/agents/{agent_id}/qa/restore")
def restore_agent_qa(agent_id: str):
    return JSONResponse(agent_to_dict(_game().agents.restore_qa(agent_id)))


class RelationshipUpdateRequest(BaseModel):
    connection: Optional[int] = None
    name: Optional[str] = None


@app.put("/agents/{agent_id}/relationships/{relationship_id}")
def update_agent_relationship(agent_id: str, relationship_id: str, req: RelationshipUpdateRequest):
    agent = _game().agents.update_relationship(agent_id, relationship_id,
                                               connection=req.connection, name=req.name)
    return JSONResponse(agent_to_dict(agent))


# ─────────────────────────────────────────────────────
# SCENARIOS
# ─────────────────────────────────────────────────────

@app.get("/scenarios")
def list_scenarios():
    return JSONResponse({"scenarios": _game().scenarios.list()})


@app.get("/scenarios/{scenario_id}")
def get_scenario(scenario_id: str):
    return JSONResponse(scenario_to_dict(_game().scenarios.load(scenario_id)))


# ─────────────────────────────────────────────────────
# SESSIONS AND PHASES
# ─────────────────────────────────────────────────────

class SessionCreateRequest(BaseModel):
    agent_id: str
    scenario_id: str
    loose_ends: int = 0


@app.post("/sessions")
def create_session(req: SessionCreateRequest):
    if req.loose_ends < 0:
        raise invalid_input("loose_ends must be non-negative", loose_ends=req.loose_ends)
    session = _game().create_session(req.agent_id, req.scenario_id, req.loose_ends)
    return JSONResponse(session_to_dict(session), status_code=201)


@app.get("/sessions")
def list_sessions(agent_id: Optional[str] = None):
    return JSONResponse({"sessions": [session_to_dict(s) for s in _game().list_sessions(agent_id)]})


@app.get("/sessions/{session_id}")
def get_session(session_id: str):
    return JSONResponse(session_to_dict(_game().get_session(session_id, _ctx())))


@app.delete("/sessions/{session_id}")
def delete_session(session_id: str):
    _game().delete_session(session_id, _ctx())
    return JSONResponse({"success": True})


class PhaseRequest(BaseModel):
    phase: str


@app.post("/sessions/{session_id}/phase")
def transition_phase(session_id: str, req: PhaseRequest):
    return JSONResponse(session_to_dict(_game().transition_phase(session_id, req.phase, _ctx())))


@app.post("/sessions/{session_id}/phase/morning/start")
def start_morning(session_id: str):
    return JSONResponse(_game().start_morning(session_id, _ctx()))


@app.post("/sessions/{session_id}/phase/investigation/start")
def start_investigation(session_id: str):
    return JSONResponse(_game().start_investigation(session_id, _ctx()))


@app.post("/sessions/{session_id}/phase/encounter/start")
def start_encounter(session_id: str):
    return JSONResponse(_game().start_encounter(session_id, _ctx()))


class OutcomeRequest(BaseModel):
    outcome: str


@app.post("/sessions/{session_id}/outcome")
def end_mission(session_id: str, req: OutcomeRequest):
    return JSONResponse(_game().end_mission(session_id, req.outcome, _ctx()))


# ─────────────────────────────────────────────────────
# ABILITIES, ROLLS, REALITY REQUESTS
# ─────────────────────────────────────────────────────

class AbilityRequest(BaseModel):
    target_id: str = ""
    location_id: str = ""
    on_duty: bool = True
    description: str = ""
    custom_data: Optional[dict] = None


@app.post("/sessions/{session_id}/abilities/{ability_id}")
def use_ability(session_id: str, ability_id: str, req: Optional[AbilityRequest] = None):
    req = req or AbilityRequest()
    context = AbilityContext(
        target_id=req.target_id,
        location_id=req.location_id,
        on_duty=req.on_duty,
        custom_data=req.custom_data,
        description=req.description,
    )
    return JSONResponse(_game().use_ability(session_id, ability_id, context, _ctx()))


class RollRequest(BaseModel):
    quality: str
    count: int = 0


@app.post("/sessions/{session_id}/rolls")
def roll(session_id: str, req: RollRequest):
    return JSONResponse(_game().roll(session_id, req.quality, req.count))


class AdjustRequest(BaseModel):
    quality: str
    roll: dict
    adjustments: list


@app.post("/sessions/{session_id}/rolls/adjust")
def adjust_roll(session_id: str, req: AdjustRequest):
    return JSONResponse(_game().adjust_roll(session_id, req.quality, req.roll,
                                            req.adjustments, _ctx()))


class RealityRequest(BaseModel):
    effect: str
    causal_chain: str
    quality: str
    location_id: str
    roll: Optional[dict] = None


@app.post("/sessions/{session_id}/requests")
def process_request(session_id: str, req: RealityRequest):
    request = {
        "effect": req.effect,
        "causal_chain": req.causal_chain,
        "quality": req.quality,
        "location_id": req.location_id,
    }
    return JSONResponse(_game().process_request(session_id, request, req.roll, _ctx()))


# ─────────────────────────────────────────────────────
# DAMAGE AND CHAOS
# ─────────────────────────────────────────────────────

class DamageRequest(BaseModel):
    amount: int
    witnesses: bool = False


@app.post("/sessions/{session_id}/damage")
def apply_damage(session_id: str, req: DamageRequest):
    return JSONResponse(_game().apply_damage(session_id, req.amount, req.witnesses, _ctx()))


@app.post("/sessions/{session_id}/chaos/effects/{effect_id}")
def invoke_chaos_effect(session_id: str, effect_id: str):
    return JSONResponse(_game().invoke_chaos_effect(session_id, effect_id, _ctx()))


@app.delete("/sessions/{session_id}/locations/{location_id}/overload")
def clear_location_overload(session_id: str, location_id: str):
    session = _game().clear_location_overload(session_id, location_id, _ctx())
    return JSONResponse(session_to_dict(session))


# ─────────────────────────────────────────────────────
# SCENES, CLUES, NPCS
# ─────────────────────────────────────────────────────

@app.get("/sessions/{session_id}/scenes/current")
def current_scene(session_id: str):
    return JSONResponse(_game().current_scene(session_id))


@app.get("/sessions/{session_id}/scenes/available")
def available_scenes(session_id: str):
    return JSONResponse({"scenes": _game().available_scenes(session_id)})


@app.post("/sessions/{session_id}/scenes/{scene_id}/enter")
def enter_scene(session_id: str, scene_id: str):
    return JSONResponse(_game().enter_scene(session_id, scene_id, _ctx()))


class InteractRequest(BaseModel):
    action: str = ""


@app.post("/sessions/{session_id}/scenes/{scene_id}/interact/{object_id}")
def interact(session_id: str, scene_id: str, object_id: str,
             req: Optional[InteractRequest] = None):
    action = req.action if req else ""
    return JSONResponse(_game().interact(session_id, object_id, action, scene_id, _ctx()))


class SceneStateRequest(BaseModel):
    state: dict


@app.put("/sessions/{session_id}/scenes/{scene_id}/state")
def save_scene_state(session_id: str, scene_id: str, req: SceneStateRequest):
    _game().save_scene_state(session_id, scene_id, req.state, _ctx())
    return JSONResponse(_game().load_scene(session_id, scene_id))


class ClueRequest(BaseModel):
    source: str = ""


@app.post("/sessions/{session_id}/clues/{clue_id}")
def collect_clue(session_id: str, clue_id: str, req: Optional[ClueRequest] = None):
    source = req.source if req else ""
    return JSONResponse(_game().collect_clue(session_id, clue_id, source, _ctx()))


@app.get("/sessions/{session_id}/clues")
def collected_clues(session_id: str):
    return JSONResponse({"clues": _game().collected_clues(session_id)})


@app.get("/sessions/{session_id}/clues/progress")
def clue_progress(session_id: str):
    return JSONResponse(_game().clue_progress(session_id))


@app.get("/sessions/{session_id}/report")
def investigation_report(session_id: str):
    return JSONResponse(_game().investigation_report(session_id))


@app.get("/sessions/{session_id}/report.html", response_class=HTMLResponse)
def investigation_report_html(session_id: str):
    return HTMLResponse(content=_game().investigation_report_html(session_id))


@app.get("/sessions/{session_id}/npcs/{npc_id}")
def get_npc(session_id: str, npc_id: str):
    return JSONResponse(_game().get_npc(session_id, npc_id))


class NPCUpdateRequest(BaseModel):
    current_state: Optional[str] = None
    relationship: Optional[int] = None
    relationship_delta: Optional[int] = None
    custom_data: Optional[dict] = None


@app.put("/sessions/{session_id}/npcs/{npc_id}")
def update_npc(session_id: str, npc_id: str, req: NPCUpdateRequest):
    return JSONResponse(_game().update_npc(
        session_id, npc_id,
        current_state=req.current_state,
        relationship=req.relationship,
        relationship_delta=req.relationship_delta,
        custom_data=req.custom_data,
        ctx=_ctx(),
    ))


class InfluenceRequest(BaseModel):
    influence: str


@app.post("/sessions/{session_id}/npcs/{npc_id}/influences")
def influence_npc(session_id: str, npc_id: str, req: InfluenceRequest):
    return JSONResponse(_game().influence_npc(session_id, npc_id, req.influence, _ctx()))


# ─────────────────────────────────────────────────────
# SAVES
# ─────────────────────────────────────────────────────

class SaveRequest(BaseModel):
    name: str


@app.post("/sessions/{session_id}/saves")
def create_save(session_id: str, req: SaveRequest):
    save = _game().create_save(session_id, req.name)
    return JSONResponse(save_to_dict(save), status_code=201)


@app.get("/sessions/{session_id}/saves")
def list_saves(session_id: str):
    saves = _game().saves.list(session_id)
    return JSONResponse({"saves": [
        {"id": s.id, "name": s.name, "version": s.version,
         "metadata": s.metadata, "created_at": s.created_at}
        for s in saves
    ]})


@app.get("/saves/{save_id}")
def get_save(save_id: str):
    return JSONResponse(save_to_dict(_game().saves.get(save_id)))


@app.post("/saves/{save_id}/load")
def load_save(save_id: str):
    session = _game().restore_save(save_id)
    return JSONResponse(session_to_dict(session), status_code=201)


@app.delete("/saves/{save_id}")
def delete_save(save_id: str):
    _game().saves.delete(save_id)
    return JSONResponse({"success": True})


# ─────────────────────────────────────────────────────
# NARRATION API (for MCP bridge)
# ─────────────────────────────────────────────────────

@app.get("/narration/pending")
def narration_pending():
    """Pending narration requests. The MCP server calls this endpoint."""
    return JSONResponse({"count": narration.pending_count(), "requests": narration.pending()})


class NarrationSubmitRequest(BaseModel):
    request_id: str
    text: str


@app.post("/narration/submit")
def narration_submit(req: NarrationSubmitRequest):
    if not req.text.strip():
        raise invalid_input("narration text is required", field="text")
    if not narration.submit(req.request_id, req.text):
        raise not_found("narration request", req.request_id)
    return JSONResponse({"success": True, "request_id": req.request_id})
