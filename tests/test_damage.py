import pytest

import qa
from damage import apply_damage, generate_loose_ends, use_life_insurance
from models import Rating
from conftest import make_agent


def test_insurance_pays_exactly():
    agent = make_agent()
    result = apply_damage(agent, 4)
    assert (result.died, result.used_insurance, result.loose_ends) == (False, True, 0)
    assert qa.total_qa(agent) == 5


def test_insurance_drains_fullest_quality_first():
    agent = make_agent()
    use_life_insurance(agent, 3)
    assert agent.qa["Presence"] == 0
    assert agent.qa["Deception"] == 2


@pytest.mark.parametrize("damage,witnesses,loose", [
    (10, True, 10), (10, False, 0), (1, True, 0),
])
def test_death_when_qa_insufficient(damage, witnesses, loose):
    agent = make_agent()
    if damage == 1:
        for q in agent.qa:
            agent.qa[q] = 0
    result = apply_damage(agent, damage, witnesses)
    assert result.died
    assert not result.used_insurance
    assert result.loose_ends == loose
    assert agent.commendations == -5
    assert agent.alive


def test_death_then_insurance():
    agent = make_agent()
    first = apply_damage(agent, 10, has_witnesses=True)
    assert first.died and first.loose_ends == 10
    assert agent.commendations == -5
    assert agent.in_debt
    assert agent.alive
    assert agent.rating == Rating.EXCELLENT.value

    second = apply_damage(agent, 3, has_witnesses=False)
    assert second.used_insurance
    assert second.loose_ends == 0
    assert qa.total_qa(agent) == 6


def test_loose_end_rule():
    assert generate_loose_ends(2, True) == 2
    assert generate_loose_ends(1, True) == 0
    assert generate_loose_ends(5, False) == 0


def test_zero_damage_is_a_no_op():
    agent = make_agent()
    result = apply_damage(agent, 0)
    assert not result.died and not result.used_insurance
    assert qa.total_qa(agent) == 9
