"""
Agency Engine v1.0: MCP Server (Thin Bridge)
An LLM narrator connects to this via stdio. It bridges to the engine's HTTP API.

The narrator's role: describe scenes, NPCs and consequences when the engine
asks, and play the Anomaly in the Encounter. It does NOT roll dice, spend
QA or move phases on its own; every mechanic goes through the engine.

Tools:
  Narration flow:
    get_narration_requests    - Pull pending narration requests
    submit_narration          - Push prose back for one request
  State inspection (read-only):
    get_session_state         - Compact session summary
    get_agent_sheet           - Agent ARC, QA and standing
    get_investigation_report  - Clues, locations, facts
    get_npc                   - One NPC's session state
  Anomaly actions:
    invoke_chaos_effect       - Spend chaos on an authored effect
    influence_npc             - Record an anomaly influence on an NPC
"""

import json
import os
import sys
import urllib.error
import urllib.request

ENGINE_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, ENGINE_DIR)

from mcp.server.fastmcp import FastMCP

from config import PORT

server = FastMCP("agency-engine")

GAME_SERVER = os.environ.get("AGENCY_SERVER", f"http://localhost:{PORT}")


def _request(method: str, path: str, data: dict = None, timeout: int = 30) -> str:
    """HTTP call to the engine. Returns response text; error envelopes pass through."""
    url = f"{GAME_SERVER}{path}"
    body = json.dumps(data).encode("utf-8") if data is not None else None
    req = urllib.request.Request(url, data=body, method=method)
    if body is not None:
        req.add_header("Content-Type", "application/json")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        return e.read().decode("utf-8")
    except (urllib.error.URLError, OSError) as e:
        return json.dumps({"code": "Internal", "message": f"Engine unavailable: {e}", "details": {}})


def _get(path: str) -> str:
    return _request("GET", path, timeout=10)


def _post(path: str, data: dict = None) -> str:
    return _request("POST", path, data or {})


def _error(data: dict) -> str:
    """Non-empty when the engine answered with an error envelope."""
    if isinstance(data, dict) and "code" in data and "message" in data:
        return f"Error [{data['code']}]: {data['message']}"
    return ""


# ─────────────────────────────────────────────────────
# NARRATION FLOW
# ─────────────────────────────────────────────────────

@server.tool()
def get_narration_requests() -> str:
    """
    Get pending narration requests from the engine.
    The engine queues one whenever it enters a scene, fires an event,
    resolves an ability or a failed reality change, or spends chaos.

    Each request already has a plain template text ('fallback'). Write
    richer prose in its place and call submit_narration once per request.
    """
    data = json.loads(_get("/narration/pending"))
    err = _error(data)
    if err:
        return err

    requests = data.get("requests", [])
    if not requests:
        return "No pending narration requests. The engine is not waiting for prose."

    output = [f"PENDING NARRATION REQUESTS ({data.get('count', len(requests))})", ""]
    for req in requests:
        output.append(f"--- [{req['id']}] {req['type']} ---")
        for k, v in req.get("context", {}).items():
            if isinstance(v, (dict, list)):
                output.append(f"  {k}: {json.dumps(v, ensure_ascii=False)}")
            else:
                output.append(f"  {k}: {v}")
        output.append(f"  fallback: {req.get('fallback', '')}")
        output.append("")

    output.append("Call submit_narration(request_id, text) for each request.")
    output.append("Reality changes never control minds; describe consequences, not thoughts.")
    return "\n".join(output)


@server.tool()
def submit_narration(request_id: str, text: str) -> str:
    """Submit narration prose for one pending request."""
    data = json.loads(_post("/narration/submit", {"request_id": request_id, "text": text}))
    err = _error(data)
    if err:
        return err
    return f"Narration for {request_id} accepted."


# ─────────────────────────────────────────────────────
# STATE INSPECTION (read-only)
# ─────────────────────────────────────────────────────

@server.tool()
def get_session_state(session_id: str) -> str:
    """
    Summary of one session: phase, scene, chaos, loose ends, clues.
    """
    data = json.loads(_get(f"/sessions/{session_id}"))
    err = _error(data)
    if err:
        return err

    state = data.get("state", {})
    lines = [
        f"SESSION: {data.get('id', '?')}",
        f"SCENARIO: {data.get('scenario_id', '?')}",
        f"PHASE: {data.get('phase', '?')}",
        f"SCENE: {state.get('current_scene_id') or '(none)'}",
        f"CHAOS POOL: {state.get('chaos_pool', 0)}",
        f"LOOSE ENDS: {state.get('loose_ends', 0)}",
        f"ANOMALY: {state.get('anomaly_status', '?')}",
        f"DOMAIN UNLOCKED: {state.get('domain_unlocked', False)}",
        "",
        f"CLUES ({len(state.get('collected_clues', []))}):",
    ]
    for cid in state.get("collected_clues", []):
        lines.append(f"  {cid}")

    overloads = state.get("location_overloads", {})
    if overloads:
        lines.append("\nOVERLOADED LOCATIONS:")
        for loc, n in overloads.items():
            lines.append(f"  {loc}: {n}")
    return "\n".join(lines)


@server.tool()
def get_agent_sheet(agent_id: str) -> str:
    """The agent's ARC, current QA, relationships and standing."""
    data = json.loads(_get(f"/agents/{agent_id}"))
    err = _error(data)
    if err:
        return err

    lines = [
        f"AGENT: {data['name']} {('(' + data['pronouns'] + ')') if data.get('pronouns') else ''}",
        f"  Anomaly: {data['anomaly']['type']}  Reality: {data['reality']['type']}  "
        f"Career: {data['career']['type']}",
        f"  Commendations: {data['commendations']}  Reprimands: {data['reprimands']}  "
        f"Rating: {data['rating']}{'  IN DEBT' if data.get('in_debt') else ''}",
        "",
        "QA:",
    ]
    for quality, points in data.get("qa", {}).items():
        lines.append(f"  {quality}: {points}")
    lines.append("\nABILITIES:")
    for ab in data["anomaly"].get("abilities", []):
        lines.append(f"  [{ab['id']}] {ab['name']} ({ab['trigger']['kind']}, {ab['roll']['quality']})")
    lines.append("\nRELATIONSHIPS:")
    for rel in data.get("relationships", []):
        lines.append(f"  {rel['name']}: {rel['connection']}")
    return "\n".join(lines)


@server.tool()
def get_investigation_report(session_id: str) -> str:
    """Collected and outstanding clues, visited locations and established facts."""
    data = json.loads(_get(f"/sessions/{session_id}/report"))
    err = _error(data)
    if err:
        return err

    progress = data.get("progress", {})
    lines = [
        f"INVESTIGATION: {data.get('scenario_name', '?')}",
        f"  Progress: {progress.get('collected', 0)}/{progress.get('total', 0)}",
        "",
        "COLLECTED:",
    ]
    for c in data.get("collected_clues", []):
        lines.append(f"  {c['name']}: {c['description']}")
    lines.append("\nOUTSTANDING:")
    for c in data.get("missing_clues", []):
        lines.append(f"  {c['name']}")
    facts = data.get("established_facts", [])
    if facts:
        lines.append("\nESTABLISHED FACTS:")
        for f in facts:
            lines.append(f"  {f}")
    return "\n".join(lines)


@server.tool()
def get_npc(session_id: str, npc_id: str) -> str:
    """One NPC's state in this session."""
    data = json.loads(_get(f"/sessions/{session_id}/npcs/{npc_id}"))
    err = _error(data)
    if err:
        return err
    affected = " [ANOMALY-AFFECTED]" if data.get("anomaly_affected") else ""
    return (f"NPC: {data['name']}{affected}\n"
            f"  State: {data['current_state']}\n"
            f"  Relationship: {data['relationship']}\n"
            f"  Personality: {data.get('personality', '')}\n"
            f"  Influences: {len(data.get('influences', []))}")


# ─────────────────────────────────────────────────────
# ANOMALY ACTIONS
# ─────────────────────────────────────────────────────

@server.tool()
def invoke_chaos_effect(session_id: str, effect_id: str) -> str:
    """Spend chaos from the pool on one of the Anomaly's authored effects."""
    data = json.loads(_post(f"/sessions/{session_id}/chaos/effects/{effect_id}"))
    err = _error(data)
    if err:
        return err
    effect = data.get("effect", {})
    return (f"{effect.get('name', effect_id)} (cost {effect.get('cost', '?')}). "
            f"Chaos pool now {data.get('chaos_pool', '?')}.\n{data.get('narration', '')}")


@server.tool()
def influence_npc(session_id: str, npc_id: str, influence: str) -> str:
    """Record that the Anomaly has influenced an NPC."""
    data = json.loads(_post(f"/sessions/{session_id}/npcs/{npc_id}/influences",
                            {"influence": influence}))
    err = _error(data)
    if err:
        return err
    return f"{data['name']} is now anomaly-affected ({len(data.get('influences', []))} influences)."


if __name__ == "__main__":
    server.run(transport="stdio")
