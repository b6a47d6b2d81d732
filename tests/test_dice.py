import random

import pytest

import dice
from dice import RollResult, adjust_dice, apply_overload, count_threes
from errors import ErrorCode, GameError
from conftest import FixedRandom


def test_roll_defaults_to_six_d4():
    result = dice.roll(0, random.Random(7))
    assert len(result.dice) == 6
    assert all(1 <= d <= 4 for d in result.dice)


def test_failed_roll_generates_chaos_per_die():
    result = dice.roll(6, FixedRandom([1, 2, 4]))
    assert result.threes == 0
    assert not result.success
    assert result.chaos == 6


def test_success_generates_no_chaos():
    result = dice.roll(4, FixedRandom([3, 1, 1, 1]))
    assert result.success
    assert result.threes == 1
    assert result.chaos == 0
    assert not result.triple_asc


def test_triple_ascension():
    result = dice.roll(6, FixedRandom([3, 3, 3, 1, 2, 4]))
    assert result.threes == 3
    assert result.triple_asc
    assert result.chaos == 0


@pytest.mark.parametrize("seed", range(50))
def test_overload_removes_a_three_and_adds_chaos(seed):
    r = dice.roll(6, random.Random(seed))
    out = apply_overload(r, 1)
    assert out.overload == 1
    assert out.chaos == r.chaos + 1
    if r.threes > 0:
        assert out.threes == r.threes - 1
        assert count_threes(out.dice) == out.threes
    else:
        assert out.threes == 0


def test_overload_can_turn_success_into_failure():
    r = RollResult(dice=[3, 1, 1, 1, 1, 1], threes=1, success=True, chaos=0)
    out = apply_overload(r)
    assert out.threes == 0
    assert not out.success
    assert out.chaos == 1


def test_overload_rejects_negative_amount():
    with pytest.raises(GameError) as exc:
        apply_overload(RollResult(), -1)
    assert exc.value.code == ErrorCode.INVALID_INPUT


def test_adjust_dice_rederives_outcome():
    r = RollResult(dice=[1, 2, 4, 1, 2, 4], threes=0, success=False, chaos=6, overload=1)
    out = adjust_dice(r, [(0, 3)])
    assert out.dice[0] == 3
    assert out.success
    assert out.chaos == 0
    assert out.overload == 1


@pytest.mark.parametrize("adj", [[(6, 3)], [(-1, 3)], [(0, 5)], [(0, 0)]])
def test_adjust_dice_validates(adj):
    r = RollResult(dice=[1] * 6)
    with pytest.raises(GameError) as exc:
        adjust_dice(r, adj)
    assert exc.value.code == ErrorCode.INVALID_INPUT
