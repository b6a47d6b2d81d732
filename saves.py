"""
Agency Engine v1.0: Save Manager
Versioned snapshots of a session. A snapshot is a deep copy; loading it
yields a brand-new session (fresh id and timestamps), so a save can be
restored any number of times without touching the original.

Wire format:  {"version": "1.0.0", "session": {...GameSession...}}
Any other version is DataCorrupted.
"""

import json
import logging
import time
import uuid
from typing import Callable

from config import SAVE_VERSION
from errors import data_corrupted, invalid_input
from models import (
    GameSession, SaveSnapshot, session_to_dict, session_from_dict,
)

logger = logging.getLogger("agency.saves")


def check_version(version: str):
    if version != SAVE_VERSION:
        raise data_corrupted("save version mismatch",
                             save_version=version, current_version=SAVE_VERSION)


def serialize(session: GameSession) -> bytes:
    payload = {"version": SAVE_VERSION, "session": session_to_dict(session)}
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def deserialize(raw: bytes) -> GameSession:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise data_corrupted("save payload is not valid JSON") from e
    if not isinstance(payload, dict):
        raise data_corrupted("save payload must be an object")
    check_version(payload.get("version"))
    data = payload.get("session")
    if not isinstance(data, dict):
        raise data_corrupted("save payload has no session")
    try:
        return session_from_dict(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise data_corrupted("save session is malformed") from e


class SaveManager:

    def __init__(self, repos, clock: Callable[[], float] = time.time,
                 new_id: Callable[[], str] = lambda: str(uuid.uuid4())):
        self.repos = repos
        self.clock = clock
        self.new_id = new_id

    serialize = staticmethod(serialize)
    deserialize = staticmethod(deserialize)

    def create(self, session_id: str, name: str) -> SaveSnapshot:
        if not name or not name.strip():
            raise invalid_input("save name is required", field="name")
        session = self.repos.sessions.get(session_id)
        agent = self.repos.agents.get(session.agent_id)
        save = SaveSnapshot(
            id=self.new_id(),
            session_id=session.id,
            name=name.strip(),
            version=SAVE_VERSION,
            session=session,
            metadata={
                "agent_name": agent.name,
                "scenario_id": session.scenario_id,
                "phase": session.phase,
            },
            created_at=int(self.clock()),
        )
        self.repos.saves.create(save)
        logger.info(f"Save {save.id} ({save.name}) created for session {session_id}")
        return save

    def get(self, save_id: str) -> SaveSnapshot:
        return self.repos.saves.get(save_id)

    def list(self, session_id: str) -> list:
        return self.repos.saves.list(session_id)

    def delete(self, save_id: str):
        self.repos.saves.delete(save_id)

    def load(self, save_id: str) -> GameSession:
        """A detached copy of the saved session under a new id."""
        save = self.get(save_id)
        check_version(save.version)
        session = session_from_dict(session_to_dict(save.session))
        now = int(self.clock())
        session.id = self.new_id()
        session.created_at = now
        session.updated_at = now
        return session

    def restore(self, save_id: str) -> GameSession:
        """Load and persist as a new session."""
        session = self.load(save_id)
        self.repos.sessions.create(session)
        logger.info(f"Save {save_id} restored as session {session.id}")
        return session
