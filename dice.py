"""
Agency Engine v1.0: Dice Core
d4 pools where only 3s count. Pure given the rng; every result
carries its dice so the roll can be audited or adjusted later.

Triple ascension (3+ threes) is decided here and nowhere else.
"""

import random
from dataclasses import dataclass, field, replace

from config import DEFAULT_DICE
from errors import invalid_input

DIE_FACES = 4
SUCCESS_FACE = 3


@dataclass
class RollResult:
    dice: list = field(default_factory=list)
    threes: int = 0
    success: bool = False
    chaos: int = 0
    overload: int = 0
    triple_asc: bool = False

    def to_dict(self) -> dict:
        return {
            "dice": list(self.dice),
            "threes": self.threes,
            "success": self.success,
            "chaos": self.chaos,
            "overload": self.overload,
            "triple_asc": self.triple_asc,
        }


def roll_from_dict(data: dict) -> RollResult:
    """Rebuild a caller-supplied roll. Derived fields are taken as given."""
    dice = list(data.get("dice", []))
    threes = data.get("threes", count_threes(dice))
    return RollResult(
        dice=dice,
        threes=threes,
        success=data.get("success", threes > 0),
        chaos=data.get("chaos", 0),
        overload=data.get("overload", 0),
        triple_asc=data.get("triple_asc", threes >= 3),
    )


def count_threes(dice: list) -> int:
    return sum(1 for d in dice if d == SUCCESS_FACE)


def _derive(dice: list, overload: int = 0, triple_asc: bool = False) -> RollResult:
    threes = count_threes(dice)
    success = threes > 0
    chaos = 0 if success else len(dice) - threes
    triple_asc = triple_asc or threes >= 3
    if triple_asc:
        chaos = 0
    return RollResult(dice=list(dice), threes=threes, success=success,
                      chaos=chaos, overload=overload, triple_asc=triple_asc)


def roll(count: int = DEFAULT_DICE, rng=None) -> RollResult:
    """
    Roll `count` d4. A count of zero or less falls back to the default
    pool. Every non-3 on a failed roll is one chaos.
    """
    if count <= 0:
        count = DEFAULT_DICE
    rng = rng or random
    dice = [rng.randint(1, DIE_FACES) for _ in range(count)]
    return _derive(dice)


def apply_overload(result: RollResult, amount: int = 1) -> RollResult:
    """
    Mark `amount` overload on a roll. Each unit turns one 3 into a 1
    while any remain, and always adds one chaos.
    """
    if amount < 0:
        raise invalid_input("overload must be non-negative", amount=amount)
    dice = list(result.dice)
    threes = result.threes
    for _ in range(amount):
        if threes <= 0:
            break
        idx = dice.index(SUCCESS_FACE) if SUCCESS_FACE in dice else -1
        if idx >= 0:
            dice[idx] = 1
        threes -= 1
    return replace(
        result,
        dice=dice,
        threes=threes,
        success=threes > 0,
        chaos=result.chaos + amount,
        overload=result.overload + amount,
    )


def adjust_dice(result: RollResult, adjustments: list) -> RollResult:
    """
    Replace dice by index. `adjustments` is a list of (index, value)
    pairs. Overload and triple ascension carry over from the source roll.
    """
    dice = list(result.dice)
    for index, value in adjustments:
        if not isinstance(index, int) or index < 0 or index >= len(dice):
            raise invalid_input("die index out of range", index=index, dice=len(dice))
        if not isinstance(value, int) or value < 1 or value > DIE_FACES:
            raise invalid_input("die value must be 1-4", index=index, value=value)
        dice[index] = value
    return _derive(dice, overload=result.overload, triple_asc=result.triple_asc)
