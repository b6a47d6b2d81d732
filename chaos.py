"""
Agency Engine v1.0: Chaos Ledger
Session counters the Anomaly feeds on: the chaos pool, the loose ends
left for the next mission, and per-location overload.
"""

from dice import RollResult
from errors import ErrorCode, GameError, invalid_input
from models import GameSession


def _check_amount(n: int):
    if n < 0:
        raise invalid_input("chaos amount must be non-negative", amount=n)


def initialize(session: GameSession, loose_ends: int):
    """
    Seed a mission: the pool starts at the carried loose ends and the
    carry is used up. Loose ends left during this mission accumulate
    again from zero and seed the next one.
    """
    _check_amount(loose_ends)
    session.state.chaos_pool = loose_ends
    session.state.loose_ends = 0


def add_chaos(session: GameSession, n: int):
    _check_amount(n)
    session.state.chaos_pool += n


def spend_chaos(session: GameSession, n: int):
    _check_amount(n)
    pool = session.state.chaos_pool
    if pool < n:
        raise GameError(ErrorCode.INSUFFICIENT_CHAOS, "insufficient chaos", {
            "available": pool, "required": n,
        })
    session.state.chaos_pool = pool - n


def add_from_roll(session: GameSession, result: RollResult) -> int:
    """Failed rolls feed the pool. Returns what was added."""
    if result.success or result.chaos <= 0:
        return 0
    session.state.chaos_pool += result.chaos
    return result.chaos


def clear(session: GameSession):
    session.state.chaos_pool = 0


def add_location_overload(session: GameSession, location_id: str) -> int:
    overloads = session.state.location_overloads
    overloads[location_id] = overloads.get(location_id, 0) + 1
    return overloads[location_id]


def get_location_overload(session: GameSession, location_id: str) -> int:
    return session.state.location_overloads.get(location_id, 0)


def clear_location_overload(session: GameSession, location_id: str):
    session.state.location_overloads.pop(location_id, None)
