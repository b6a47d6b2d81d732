import pytest

import qa
from errors import ErrorCode, GameError


def test_create_sora(runtime, sora):
    assert sora.commendations == 0
    assert sora.reprimands == 0
    assert sora.rating == "Excellent"
    assert qa.total_qa(sora) == 9
    assert sora.total_connection() == 12
    assert sora.alive
    assert not sora.in_debt
    assert [a.id for a in sora.anomaly.abilities] == ["whisper-1", "whisper-2", "whisper-3"]
    assert runtime.agents.get(sora.id) == sora


def test_default_relationships(runtime):
    agent = runtime.agents.create("Agent Lee", "Dream", "Newborn", "Intern")
    assert [r.connection for r in agent.relationships] == [6, 3, 3]
    assert len({r.id for r in agent.relationships}) == 3


@pytest.mark.parametrize("kwargs", [
    {"name": ""},
    {"anomaly_type": "Ghost"},
    {"reality_type": "Tourist"},
    {"career_type": "Pirate"},
    {"relationships": [{"connection": 6}, {"connection": 6}]},
    {"relationships": [{"connection": 6}, {"connection": 3}, {"connection": 2}]},
])
def test_invalid_builds(runtime, kwargs):
    args = {"name": "X", "anomaly_type": "Whisper", "reality_type": "Caretaker",
            "career_type": "PR"}
    args.update(kwargs)
    with pytest.raises(GameError) as exc:
        runtime.agents.create(**args)
    assert exc.value.code == ErrorCode.INVALID_INPUT
    assert runtime.agents.list() == []


def test_update_and_career_change(runtime, sora):
    updated = runtime.agents.update(sora.id, name="Agent Sora Tanaka", pronouns="they/them")
    assert updated.name == "Agent Sora Tanaka"
    changed = runtime.agents.set_career(sora.id, "Gravedigger")
    assert changed.qa["Vitality"] == 3
    assert qa.total_qa(changed) == 9
    assert runtime.agents.get(sora.id).career.type == "Gravedigger"


def test_relationship_update_revalidates(runtime, sora):
    rel = sora.relationships[1]
    with pytest.raises(GameError):
        runtime.agents.update_relationship(sora.id, rel.id, connection=5)
    assert runtime.agents.get(sora.id).relationships[1].connection == 3
    with pytest.raises(GameError) as exc:
        runtime.agents.update_relationship(sora.id, "rel-x", name="Nobody")
    assert exc.value.code == ErrorCode.NOT_FOUND


def test_qa_and_performance(runtime, sora):
    runtime.agents.spend_qa(sora.id, "Presence", 2)
    assert runtime.agents.get(sora.id).qa["Presence"] == 1
    runtime.agents.restore_qa(sora.id)
    assert qa.total_qa(runtime.agents.get(sora.id)) == 9
    runtime.agents.add_reprimands(sora.id, 4)
    assert runtime.agents.get(sora.id).rating == "FinalWarning"
    runtime.agents.add_commendations(sora.id, 2)
    assert runtime.agents.get(sora.id).commendations == 2


def test_delete(runtime, sora):
    runtime.agents.delete(sora.id)
    with pytest.raises(GameError) as exc:
        runtime.agents.get(sora.id)
    assert exc.value.code == ErrorCode.NOT_FOUND
