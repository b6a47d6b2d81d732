import os
import threading

import pytest

import qa
from errors import ErrorCode, GameError
from game_loop import PHASE_CYCLE, can_transition
from scenario_loader import ScenarioLoader

PHASES = ["Morning", "Investigation", "Encounter", "Aftermath"]


def test_phase_cycle(runtime, session):
    assert session.phase == "Morning"
    assert runtime.transition_phase(session.id, "Investigation").phase == "Investigation"

    with pytest.raises(GameError) as exc:
        runtime.transition_phase(session.id, "Aftermath")
    assert exc.value.code == ErrorCode.INVALID_PHASE
    assert runtime.get_session(session.id).phase == "Investigation"

    runtime.transition_phase(session.id, "Encounter")
    runtime.transition_phase(session.id, "Aftermath")
    assert runtime.transition_phase(session.id, "Morning").phase == "Morning"


@pytest.mark.parametrize("current", PHASES)
@pytest.mark.parametrize("target", PHASES + ["Lunch", ""])
def test_only_cycle_edges_are_legal(current, target):
    assert can_transition(current, target) == (PHASE_CYCLE[current] == target)


def test_phase_gated_starts(runtime, session):
    briefing = runtime.start_morning(session.id)
    assert briefing["briefing"]["objectives"]
    assert len(briefing["morning_scenes"]) == 2
    for start in (runtime.start_investigation, runtime.start_encounter):
        with pytest.raises(GameError) as exc:
            start(session.id)
        assert exc.value.code == ErrorCode.INVALID_PHASE

    runtime.transition_phase(session.id, "Investigation")
    with pytest.raises(GameError):
        runtime.start_morning(session.id)
    runtime.transition_phase(session.id, "Encounter")
    encounter = runtime.start_encounter(session.id)
    assert encounter["anomaly"]["name"] == "The Keeper of the Spring"
    assert runtime.get_session(session.id).state.anomaly_status == "engaged"


def test_update_state_leaves_nothing_behind_on_error(runtime, session):
    def boom(state):
        state.chaos_pool = 99
        state.collected_clues.append("clinic-flyer")
        raise ValueError("nope")

    with pytest.raises(ValueError):
        runtime.update_state(session.id, boom)
    s = runtime.get_session(session.id)
    assert s.state.chaos_pool == 0
    assert s.state.collected_clues == []

    runtime.update_state(session.id, lambda st: setattr(st, "chaos_pool", 4))
    assert runtime.get_session(session.id).state.chaos_pool == 4


def test_loose_ends_seed_the_pool(runtime, sora):
    s = runtime.create_session(sora.id, "eternal-spring", loose_ends=3)
    assert s.state.chaos_pool == 3
    assert s.state.loose_ends == 0


def test_unknown_agent_or_scenario(runtime, sora):
    with pytest.raises(GameError) as exc:
        runtime.create_session("ghost", "eternal-spring")
    assert exc.value.code == ErrorCode.NOT_FOUND
    with pytest.raises(GameError) as exc:
        runtime.create_session(sora.id, "nowhere")
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_damage_persists_agent_and_loose_ends(runtime, session, sora):
    out = runtime.apply_damage(session.id, 10, witnesses=True)
    assert out["died"] and out["loose_ends"] == 10
    agent = runtime.agents.get(sora.id)
    assert agent.commendations == -5
    assert agent.in_debt
    assert runtime.get_session(session.id).state.loose_ends == 10

    out = runtime.apply_damage(session.id, 3)
    assert out["used_insurance"]
    assert qa.total_qa(runtime.agents.get(sora.id)) == 6


def test_new_mission_reseeds_from_loose_ends(runtime, session, sora):
    runtime.apply_damage(session.id, 10, witnesses=True)
    runtime.apply_damage(session.id, 3)
    for phase in ("Investigation", "Encounter", "Aftermath"):
        runtime.transition_phase(session.id, phase)
    result = runtime.end_mission(session.id, "Captured")
    assert result["reward"]["commendations"] == 3
    s = runtime.get_session(session.id)
    assert s.state.mission_outcome == "Captured"
    assert s.state.anomaly_status == "captured"
    assert s.state.chaos_pool == 0
    assert qa.total_qa(runtime.agents.get(sora.id)) == 9

    s = runtime.transition_phase(session.id, "Morning")
    assert s.state.chaos_pool == 10
    assert s.state.loose_ends == 0
    assert s.state.mission_outcome == "in_progress"

    # A clean second mission leaves nothing for the third
    for phase in ("Investigation", "Encounter", "Aftermath"):
        runtime.transition_phase(session.id, phase)
    runtime.end_mission(session.id, "Neutralized")
    s = runtime.transition_phase(session.id, "Morning")
    assert (s.state.chaos_pool, s.state.loose_ends) == (0, 0)

    # Loose ends left in the third mission seed only the fourth
    runtime.apply_damage(session.id, 20, witnesses=True)
    assert runtime.get_session(session.id).state.loose_ends == 20
    for phase in ("Investigation", "Encounter", "Aftermath", "Morning"):
        s = runtime.transition_phase(session.id, phase)
    assert (s.state.chaos_pool, s.state.loose_ends) == (20, 0)


def test_end_mission_only_in_aftermath(runtime, session):
    with pytest.raises(GameError) as exc:
        runtime.end_mission(session.id, "Captured")
    assert exc.value.code == ErrorCode.INVALID_PHASE


def test_chaos_effects(runtime, sora):
    s = runtime.create_session(sora.id, "eternal-spring", loose_ends=3)
    out = runtime.invoke_chaos_effect(s.id, "same-day")
    assert out["chaos_pool"] == 0
    assert out["narration"]
    with pytest.raises(GameError) as exc:
        runtime.invoke_chaos_effect(s.id, "still-water")
    assert exc.value.code == ErrorCode.INSUFFICIENT_CHAOS
    with pytest.raises(GameError) as exc:
        runtime.invoke_chaos_effect(s.id, "no-such-effect")
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_request_with_supplied_roll(runtime, session):
    request = {
        "effect": "The clinic's back door was left unlocked",
        "causal_chain": "The night cleaner props it open to smoke",
        "quality": "Subtlety",
        "location_id": "evermore-clinic",
    }
    failing = {"dice": [1, 2, 4, 1, 2, 4], "threes": 0, "success": False, "chaos": 6}
    out = runtime.process_request(session.id, request, failing)
    assert out["overload"] == 1
    s = runtime.get_session(session.id)
    assert s.state.chaos_pool == 6
    assert s.state.location_overloads == {"evermore-clinic": 1}

    runtime.clear_location_overload(session.id, "evermore-clinic")
    assert runtime.get_session(session.id).state.location_overloads == {}


def test_ability_through_runtime_records_reprimand(runtime, session, sora):
    out = runtime.use_ability(session.id, "whisper-1")
    assert out["reprimand_added"]
    assert runtime.agents.get(sora.id).reprimands == 1


def test_adjust_roll_spends_qa(runtime, session, sora):
    roll = {"dice": [1, 1, 1, 1, 1, 1], "threes": 0, "success": False, "chaos": 6}
    out = runtime.adjust_roll(session.id, "Presence", roll, [{"index": 0, "value": 3}])
    assert out["roll"]["success"]
    assert out["qa_remaining"] == 2
    assert runtime.agents.get(sora.id).qa["Presence"] == 2

    with pytest.raises(GameError) as exc:
        runtime.adjust_roll(session.id, "Focus", roll, [[0, 3], [1, 3]])
    assert exc.value.code == ErrorCode.INSUFFICIENT_QA
    assert runtime.agents.get(sora.id).qa["Focus"] == 1


def test_bare_roll_is_not_persisted(runtime, session):
    before = runtime.get_session(session.id)
    out = runtime.roll(session.id, "Vitality")
    assert out["overload"] == 1
    assert runtime.get_session(session.id).updated_at == before.updated_at


def test_delete_session(runtime, session, repos):
    runtime.delete_session(session.id)
    assert session.id not in repos.locks
    with pytest.raises(GameError) as exc:
        runtime.get_session(session.id)
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_list_sessions_by_agent(runtime, sora, session):
    other = runtime.agents.create("Agent Kim", "Catalog", "Star", "CEO")
    runtime.create_session(other.id, "eternal-spring")
    assert [s.id for s in runtime.list_sessions(sora.id)] == [session.id]
    assert len(runtime.list_sessions()) == 2


def test_concurrent_updates_are_not_lost(runtime, session):
    threads, per_thread = 8, 5

    def bump(state):
        state.chaos_pool += 1

    def worker():
        for _ in range(per_thread):
            runtime.update_state(session.id, bump)

    workers = [threading.Thread(target=worker) for _ in range(threads)]
    for t in workers:
        t.start()
    for t in workers:
        t.join()
    assert runtime.get_session(session.id).state.chaos_pool == threads * per_thread


def test_missing_sessions_leave_no_lock_entries(runtime, repos):
    for i in range(100):
        with pytest.raises(GameError):
            runtime.get_session(f"missing-{i}")
        with pytest.raises(GameError) as exc:
            runtime.transition_phase(f"missing-{i}", "Investigation")
        assert exc.value.code == ErrorCode.NOT_FOUND
    assert len(repos.locks) == 0


def test_missing_scenario_names_the_session(runtime, session, scenarios_dir):
    os.remove(os.path.join(scenarios_dir, "eternal-spring.json"))
    runtime.scenarios = ScenarioLoader(scenarios_dir)
    with pytest.raises(GameError) as exc:
        runtime.available_scenes(session.id)
    assert exc.value.code == ErrorCode.NOT_FOUND
    assert exc.value.details["resource"] == "scenario"
    assert exc.value.details["session_id"] == session.id


def test_current_scene_outside_the_scenario(runtime, session):
    runtime.update_state(session.id, lambda st: setattr(st, "current_scene_id", "torn-out-page"))
    with pytest.raises(GameError) as exc:
        runtime.current_scene(session.id)
    assert exc.value.code == ErrorCode.INVALID_STATE
    assert exc.value.details["scene_id"] == "torn-out-page"
