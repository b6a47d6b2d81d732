import random

import pytest

import chaos
from dice import RollResult
from errors import ErrorCode, GameError
from models import GameSession


def new_session():
    return GameSession(id="s1", agent_id="a1", scenario_id="eternal-spring")


def test_ledger_walkthrough():
    s = new_session()
    chaos.initialize(s, 3)
    assert s.state.chaos_pool == 3
    assert chaos.add_from_roll(s, RollResult(success=False, chaos=4)) == 4
    assert s.state.chaos_pool == 7
    chaos.spend_chaos(s, 5)
    assert s.state.chaos_pool == 2
    with pytest.raises(GameError) as exc:
        chaos.spend_chaos(s, 5)
    assert exc.value.code == ErrorCode.INSUFFICIENT_CHAOS
    assert s.state.chaos_pool == 2
    chaos.clear(s)
    assert s.state.chaos_pool == 0


def test_successful_roll_adds_nothing():
    s = new_session()
    assert chaos.add_from_roll(s, RollResult(success=True, threes=1, chaos=0)) == 0
    assert s.state.chaos_pool == 0


def test_initialize_uses_up_the_carry():
    s = new_session()
    s.state.loose_ends = 7
    chaos.initialize(s, s.state.loose_ends)
    assert (s.state.chaos_pool, s.state.loose_ends) == (7, 0)


@pytest.mark.parametrize("seed", range(40))
def test_pool_is_conserved(seed):
    r = random.Random(seed)
    s = new_session()
    k = r.randint(0, 10)
    chaos.initialize(s, k)
    expected = k
    for _ in range(30):
        op = r.randint(0, 2)
        if op == 0:
            n = r.randint(0, 5)
            chaos.add_chaos(s, n)
            expected += n
        elif op == 1:
            c = r.randint(1, 6)
            chaos.add_from_roll(s, RollResult(success=False, chaos=c))
            expected += c
        else:
            m = r.randint(0, 8)
            try:
                chaos.spend_chaos(s, m)
                expected -= m
            except GameError as e:
                assert e.code == ErrorCode.INSUFFICIENT_CHAOS
        assert s.state.chaos_pool == expected


def test_negative_amounts_rejected():
    s = new_session()
    for fn in (chaos.add_chaos, chaos.spend_chaos, chaos.initialize):
        with pytest.raises(GameError) as exc:
            fn(s, -1)
        assert exc.value.code == ErrorCode.INVALID_INPUT


def test_location_overloads_are_independent():
    s = new_session()
    for i in range(1, 4):
        assert chaos.add_location_overload(s, "L") == i
    chaos.add_location_overload(s, "M")
    assert chaos.get_location_overload(s, "L") == 3
    assert chaos.get_location_overload(s, "M") == 1
    chaos.clear_location_overload(s, "L")
    assert chaos.get_location_overload(s, "L") == 0
    assert chaos.get_location_overload(s, "M") == 1
