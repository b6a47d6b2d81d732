"""
Agency Engine v1.0: Game Errors
One exception type for every rule violation. The code is the tag,
details is the shared payload. HTTP status mapping lives here so the
web layer and the MCP bridge agree on it.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    NOT_FOUND = "NotFound"
    INVALID_INPUT = "InvalidInput"
    INVALID_ACTION = "InvalidAction"
    INVALID_PHASE = "InvalidPhase"
    INVALID_STATE = "InvalidState"
    INSUFFICIENT_QA = "InsufficientQA"
    INSUFFICIENT_CHAOS = "InsufficientChaos"
    DATA_CORRUPTED = "DataCorrupted"
    INTERNAL = "Internal"


HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.INVALID_ACTION: 400,
    ErrorCode.INVALID_PHASE: 400,
    ErrorCode.INVALID_STATE: 400,
    ErrorCode.INSUFFICIENT_QA: 409,
    ErrorCode.INSUFFICIENT_CHAOS: 409,
    ErrorCode.DATA_CORRUPTED: 422,
    ErrorCode.INTERNAL: 500,
}


class GameError(Exception):
    """A rule or data violation with a machine-readable code."""

    def __init__(self, code: ErrorCode, message: str,
                 details: Optional[dict] = None):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.details: dict = dict(details or {})

    def with_details(self, **fields: Any) -> "GameError":
        self.details.update(fields)
        return self

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    @property
    def status(self) -> int:
        return http_status_for(self.code)

    def __repr__(self):
        return f"GameError({self.code.value}, {self.message!r}, {self.details!r})"


def http_status_for(code: ErrorCode) -> int:
    return HTTP_STATUS.get(ErrorCode(code), 500)


# ─────────────────────────────────────────────────────
# CONSTRUCTORS
# ─────────────────────────────────────────────────────

def not_found(what: str, ident: str) -> GameError:
    return GameError(ErrorCode.NOT_FOUND, f"{what} not found",
                     {"resource": what, "id": ident})


def invalid_input(message: str, **details) -> GameError:
    return GameError(ErrorCode.INVALID_INPUT, message, details)


def invalid_action(message: str, **details) -> GameError:
    return GameError(ErrorCode.INVALID_ACTION, message, details)


def invalid_phase(message: str, **details) -> GameError:
    return GameError(ErrorCode.INVALID_PHASE, message, details)


def invalid_state(message: str, **details) -> GameError:
    return GameError(ErrorCode.INVALID_STATE, message, details)


def data_corrupted(message: str, **details) -> GameError:
    return GameError(ErrorCode.DATA_CORRUPTED, message, details)


def internal(message: str, **details) -> GameError:
    return GameError(ErrorCode.INTERNAL, message, details)
