import pytest

from errors import ErrorCode, GameError
from game_loop import SessionRuntime
from locks import RequestContext
from narrative import NarrationQueue, QueuedNarrator
from scenario_loader import ScenarioLoader


def investigating(runtime, session):
    runtime.transition_phase(session.id, "Investigation")
    runtime.start_investigation(session.id)


def test_investigation_enters_starting_scene(runtime, session):
    runtime.transition_phase(session.id, "Investigation")
    out = runtime.start_investigation(session.id)
    assert out["current_scene"]["id"] == "commercial-avenue"
    assert out["entered"]["first_visit"]
    assert [e["id"] for e in out["entered"]["events"]] == ["arrival"]
    assert out["available_scenes"] == ["city-archive"]
    s = runtime.get_session(session.id)
    assert s.state.visited_scenes == ["commercial-avenue"]


def test_first_visit_event_fires_once(runtime, session):
    investigating(runtime, session)
    runtime.enter_scene(session.id, "city-archive")
    back = runtime.enter_scene(session.id, "commercial-avenue")
    assert not back["first_visit"]
    assert back["events"] == []
    assert back["previous_scene_id"] == "city-archive"


def test_scene_state_survives_round_trip(runtime, session):
    investigating(runtime, session)
    sigma = {"crowd": "gone", "posters_torn": True}
    runtime.save_scene_state(session.id, "commercial-avenue", sigma)
    runtime.enter_scene(session.id, "city-archive")
    runtime.enter_scene(session.id, "commercial-avenue")
    assert runtime.load_scene(session.id, "commercial-avenue")["state"] == sigma


def test_unknown_scene(runtime, session):
    with pytest.raises(GameError) as exc:
        runtime.enter_scene(session.id, "moon-base")
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_clue_requirements_and_unlocks(runtime, session):
    investigating(runtime, session)
    with pytest.raises(GameError) as exc:
        runtime.collect_clue(session.id, "florist-testimony")
    assert exc.value.code == ErrorCode.INVALID_ACTION
    assert exc.value.details["missing_requirements"] == ["clinic-flyer"]

    out = runtime.collect_clue(session.id, "clinic-flyer", source="lamppost")
    assert out["unlocked"] == ["evermore-clinic"]
    s = runtime.get_session(session.id)
    assert s.state.unlocked_locations == ["evermore-clinic"]
    assert "evermore-clinic" in runtime.available_scenes(session.id)

    with pytest.raises(GameError) as exc:
        runtime.collect_clue(session.id, "clinic-flyer")
    assert exc.value.code == ErrorCode.INVALID_ACTION

    clues = runtime.collected_clues(session.id)
    assert clues[0]["id"] == "clinic-flyer"
    assert clues[0]["source"] == "lamppost"


def test_domain_unlock(runtime, session):
    investigating(runtime, session)
    runtime.collect_clue(session.id, "clinic-flyer")
    runtime.enter_scene(session.id, "evermore-clinic")
    runtime.collect_clue(session.id, "patient-ledger")
    s = runtime.get_session(session.id)
    assert s.state.domain_unlocked
    entered = runtime.enter_scene(session.id, "spring-grotto")
    assert [e["id"] for e in entered["events"]] == ["domain-found"]


def test_interact_with_clue_and_npc(runtime, session):
    investigating(runtime, session)
    out = runtime.interact(session.id, "clinic-flyer", "read", "commercial-avenue")
    assert out["type"] == "clue"
    npc = runtime.interact(session.id, "maya-ng", "talk")
    assert npc["type"] == "npc"
    assert npc["npc"]["dialogues"]
    state = runtime.load_scene(session.id, "commercial-avenue")["state"]
    assert state["clue_clinic-flyer_collected"] is True
    assert state["npc_maya-ng_interacted"] is True
    assert state["crowd"] == "busy"

    with pytest.raises(GameError) as exc:
        runtime.interact(session.id, "lamppost")
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_progress_and_report(runtime, session):
    investigating(runtime, session)
    runtime.collect_clue(session.id, "clinic-flyer")
    progress = runtime.clue_progress(session.id)
    assert progress["collected"] == 1
    assert progress["total"] == 6
    report = runtime.investigation_report(session.id)
    assert report["scenario_id"] == "eternal-spring"
    assert len(report["missing_clues"]) == 5
    html = runtime.investigation_report_html(session.id)
    assert "Clinic Flyer" in html
    assert "Agent Sora" in html


def test_npc_state_and_influence(runtime, session):
    npc = runtime.get_npc(session.id, "maya-ng")
    assert npc["current_state"] == "curious"
    assert npc["relationship"] == 1
    updated = runtime.update_npc(session.id, "maya-ng", current_state="wary",
                                 relationship_delta=2)
    assert updated["current_state"] == "wary"
    assert updated["relationship"] == 3
    influenced = runtime.influence_npc(session.id, "serena-evermore", "A glass of still water")
    assert influenced["anomaly_affected"]
    assert len(influenced["influences"]) == 1
    s = runtime.get_session(session.id)
    assert s.state.npc_states["serena-evermore"].anomaly_affected
    assert s.state.npc_states["maya-ng"].relationship == 3


def cancel_after(ctx, fn):
    def wrapped(*args, **kwargs):
        out = fn(*args, **kwargs)
        ctx.cancel()
        return out
    return wrapped


def test_cancelled_influence_is_not_logged(runtime, session, monkeypatch):
    ctx = RequestContext()
    monkeypatch.setattr(runtime.npcs, "record_influence",
                        cancel_after(ctx, runtime.npcs.record_influence))
    with pytest.raises(GameError):
        runtime.influence_npc(session.id, "serena-evermore", "A glass of still water", ctx)
    monkeypatch.undo()

    assert runtime.npcs.influences(session.id, "serena-evermore") == []
    assert not runtime.get_npc(session.id, "serena-evermore")["anomaly_affected"]

    influenced = runtime.influence_npc(session.id, "serena-evermore", "A glass of still water")
    assert [i["influence"] for i in influenced["influences"]] == ["A glass of still water"]


def test_failed_collect_keeps_no_clue_metadata(runtime, session, monkeypatch):
    investigating(runtime, session)

    def broken(*args):
        raise RuntimeError("boom")

    monkeypatch.setattr(runtime.clues, "get_clue_progress", broken)
    with pytest.raises(RuntimeError):
        runtime.collect_clue(session.id, "clinic-flyer", source="street")
    monkeypatch.undo()
    assert runtime.collected_clues(session.id) == []

    # Mark the clue collected without going through add_clue
    runtime.update_state(session.id, lambda st: st.collected_clues.append("clinic-flyer"))
    collected = runtime.collected_clues(session.id)
    assert collected[0]["source"] == ""
    assert collected[0]["collected_at"] is None


def test_collect_records_clue_metadata(runtime, session, clock):
    investigating(runtime, session)
    runtime.collect_clue(session.id, "clinic-flyer", source="street")
    collected = runtime.collected_clues(session.id)
    assert collected[0]["source"] == "street"
    assert collected[0]["collected_at"] == int(clock())


def test_narration_requests_wait_for_the_write(repos, scenarios_dir, rng, clock, ids, session,
                                               monkeypatch):
    queue = NarrationQueue()
    runtime = SessionRuntime(repos, ScenarioLoader(scenarios_dir), rng=rng, clock=clock,
                             new_id=ids, narrator=QueuedNarrator(queue))
    runtime.transition_phase(session.id, "Investigation")

    ctx = RequestContext()
    monkeypatch.setattr(runtime.scenes, "transition_to_scene",
                        cancel_after(ctx, runtime.scenes.transition_to_scene))
    with pytest.raises(GameError):
        runtime.start_investigation(session.id, ctx)
    monkeypatch.undo()
    assert queue.pending_count() == 0

    runtime.start_investigation(session.id)
    assert [r["type"] for r in queue.pending()][0] == "SCENE"
