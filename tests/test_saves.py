import json

import pytest

from errors import ErrorCode, GameError
from models import session_to_dict
from saves import SaveManager


def prepared(runtime, session):
    def setup(state):
        state.chaos_pool = 10
        state.loose_ends = 5
        state.domain_unlocked = True
        state.scene_states["commercial-avenue"] = {"crowd": "gone"}
    return runtime.update_state(session.id, setup)


def test_serialize_round_trip(runtime, session):
    s = prepared(runtime, session)
    raw = SaveManager.serialize(s)
    assert json.loads(raw)["version"] == "1.0.0"
    assert SaveManager.deserialize(raw) == s


@pytest.mark.parametrize("raw", [
    b"not json",
    b"[]",
    json.dumps({"version": "0.9.0", "session": {}}).encode(),
    json.dumps({"version": "1.0.0"}).encode(),
])
def test_deserialize_rejects(raw):
    with pytest.raises(GameError) as exc:
        SaveManager.deserialize(raw)
    assert exc.value.code == ErrorCode.DATA_CORRUPTED


def test_version_mismatch_details():
    raw = json.dumps({"version": "2.0.0", "session": {"id": "x"}}).encode()
    with pytest.raises(GameError) as exc:
        SaveManager.deserialize(raw)
    assert exc.value.details == {"save_version": "2.0.0", "current_version": "1.0.0"}


def test_create_and_load(runtime, session, clock):
    s = prepared(runtime, session)
    save = runtime.create_save(session.id, "s1")
    assert save.version == "1.0.0"
    assert save.metadata["agent_name"] == "Agent Sora"
    assert save.metadata["phase"] == "Morning"

    clock.tick(60)
    loaded = runtime.saves.load(save.id)
    assert loaded.id != s.id
    assert loaded.created_at == clock.now
    assert loaded.scenario_id == s.scenario_id
    assert loaded.phase == s.phase
    assert session_to_dict(loaded)["state"] == session_to_dict(s)["state"]


def test_restore_persists_a_new_session(runtime, session):
    prepared(runtime, session)
    save = runtime.create_save(session.id, "s1")
    restored = runtime.restore_save(save.id)
    assert runtime.get_session(restored.id).state.chaos_pool == 10
    runtime.update_state(restored.id, lambda st: setattr(st, "chaos_pool", 0))
    assert runtime.get_session(session.id).state.chaos_pool == 10


def test_list_get_delete(runtime, session):
    a = runtime.create_save(session.id, "before the clinic")
    runtime.create_save(session.id, "after the clinic")
    assert [s.name for s in runtime.saves.list(session.id)] == ["before the clinic",
                                                                "after the clinic"]
    assert runtime.saves.get(a.id).name == "before the clinic"
    runtime.saves.delete(a.id)
    with pytest.raises(GameError) as exc:
        runtime.saves.get(a.id)
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_save_name_required(runtime, session):
    with pytest.raises(GameError) as exc:
        runtime.create_save(session.id, "  ")
    assert exc.value.code == ErrorCode.INVALID_INPUT
