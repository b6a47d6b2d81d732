import random

import pytest

import qa
from dice import RollResult
from errors import ErrorCode, GameError
from models import QUALITIES
from conftest import FixedRandom, make_agent


def test_spend_reduces_quality():
    agent = make_agent()
    qa.spend_qa(agent, "Presence", 2)
    assert qa.available_qa(agent, "Presence") == 1
    assert qa.total_qa(agent) == 7


def test_overspend_leaves_agent_unchanged():
    agent = make_agent()
    before = dict(agent.qa)
    with pytest.raises(GameError) as exc:
        qa.spend_qa(agent, "Focus", 2)
    assert exc.value.code == ErrorCode.INSUFFICIENT_QA
    assert exc.value.details == {"quality": "Focus", "available": 1, "required": 2}
    assert agent.qa == before


def test_unknown_quality():
    with pytest.raises(GameError) as exc:
        qa.spend_qa(make_agent(), "Luck", 1)
    assert exc.value.code == ErrorCode.INVALID_INPUT


@pytest.mark.parametrize("seed", range(30))
def test_total_never_increases_under_spends(seed):
    r = random.Random(seed)
    agent = make_agent()
    previous = qa.total_qa(agent)
    assert previous <= 9
    for _ in range(20):
        quality = r.choice(QUALITIES)
        try:
            if r.random() < 0.5:
                qa.spend_qa(agent, quality, r.randint(0, 3))
            else:
                roll = RollResult(dice=[1, 1, 1, 1, 1, 1])
                qa.adjust_with_qa(agent, quality, roll, [(0, 3)] * r.randint(0, 2))
        except GameError as e:
            assert e.code == ErrorCode.INSUFFICIENT_QA
        assert qa.total_qa(agent) <= previous
        previous = qa.total_qa(agent)


@pytest.mark.parametrize("career", ["PR", "R&D", "Barista", "CEO", "Intern",
                                    "Gravedigger", "Reception", "Hotline", "Clown"])
def test_restore_returns_to_nine(career):
    agent = make_agent(career)
    for q in QUALITIES:
        agent.qa[q] = 0
    qa.restore_qa(agent)
    assert qa.total_qa(agent) == 9


def test_adjust_with_qa_is_atomic_on_bad_index():
    agent = make_agent()
    roll = RollResult(dice=[1, 1, 1, 1, 1, 1])
    with pytest.raises(GameError):
        qa.adjust_with_qa(agent, "Presence", roll, [(9, 3)])
    assert qa.available_qa(agent, "Presence") == 3


def test_adjust_with_qa_spends_one_per_die():
    agent = make_agent()
    roll = RollResult(dice=[1, 1, 1, 1, 1, 1], chaos=6)
    out = qa.adjust_with_qa(agent, "Presence", roll, [(0, 3), (1, 3)])
    assert out.threes == 2
    assert qa.available_qa(agent, "Presence") == 1


def test_roll_for_empty_quality_marks_overload():
    agent = make_agent()
    assert qa.needs_overload(agent, "Vitality")
    out = qa.roll_for_quality(agent, "Vitality", rng=FixedRandom([1]))
    assert out.overload == 1
    assert out.chaos == 7


def test_relief_predicate_waives_overload():
    agent = make_agent()
    out = qa.roll_for_quality(agent, "Vitality", rng=FixedRandom([1]),
                              predicate=lambda a, q: True)
    assert out.overload == 0
    assert not qa.overload_relief(agent, "Vitality")
