"""
Agency Engine v1.0: Persistence
SQLite system of record for agents, sessions and saves. Aggregates are
stored as JSON columns next to the handful of scalar columns that are
indexed or listed on.

Every repository can be re-bound to an open transaction with
with_tx(conn). The bound view shares the cache and the session lock
table with the plain one, so transactional and non-transactional
writers still serialize per session.
"""

import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import Optional

from cache import CacheError, RedisCache, agent_key, session_key
from config import AGENT_CACHE_TTL, SESSION_CACHE_TTL
from errors import ErrorCode, GameError, data_corrupted, internal, not_found
from locks import RequestContext, SessionLockTable
from models import (
    Agent, GameSession, SaveSnapshot,
    agent_to_dict, agent_to_json, agent_from_json,
    anomaly_from_dict, reality_from_dict, career_from_dict, relationship_from_dict,
    session_to_dict, session_from_dict, session_to_json, session_from_json,
    game_state_from_dict,
)

logger = logging.getLogger("agency.storage")

_DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    pronouns TEXT NOT NULL DEFAULT '',
    anomaly_type TEXT NOT NULL,
    reality_type TEXT NOT NULL,
    career_type TEXT NOT NULL,
    qa TEXT NOT NULL,
    relationships TEXT NOT NULL,
    arc TEXT NOT NULL,
    commendations INTEGER NOT NULL DEFAULT 0,
    reprimands INTEGER NOT NULL DEFAULT 0,
    rating TEXT NOT NULL,
    alive INTEGER NOT NULL DEFAULT 1,
    in_debt INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_agents_name ON agents(name);

CREATE TABLE IF NOT EXISTS game_sessions (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    scenario_id TEXT NOT NULL,
    phase TEXT NOT NULL,
    state TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sessions_agent ON game_sessions(agent_id);
CREATE INDEX IF NOT EXISTS idx_sessions_phase ON game_sessions(phase);

CREATE TABLE IF NOT EXISTS saves (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    name TEXT NOT NULL,
    version TEXT NOT NULL,
    snapshot TEXT NOT NULL,
    metadata TEXT NOT NULL,
    created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_saves_session ON saves(session_id);
"""


# ─────────────────────────────────────────────────────
# DATABASE
# ─────────────────────────────────────────────────────

class Database:
    """
    One shared connection guarded by a re-entrant lock. Transactions nest:
    only the outermost one issues BEGIN / COMMIT / ROLLBACK.
    """

    def __init__(self, path: str = ":memory:"):
        self.path = path
        if path != ":memory:":
            directory = os.path.dirname(os.path.abspath(path))
            os.makedirs(directory, exist_ok=True)
        self._lock = threading.RLock()
        self._depth = 0
        try:
            self.conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            self.conn.row_factory = sqlite3.Row
            with self._lock:
                self.conn.executescript(_DB_SCHEMA)
        except sqlite3.Error as e:
            logger.error(f"Failed to open database {path}: {e}")
            raise internal("database unavailable", path=path) from e
        logger.info(f"Database ready at {path}")

    @contextmanager
    def transaction(self):
        """Commits on success, rolls back on any exception."""
        with self._lock:
            outer = self._depth == 0
            try:
                if outer:
                    self.conn.execute("BEGIN")
            except sqlite3.Error as e:
                logger.error(f"BEGIN failed: {e}")
                raise internal("failed to start transaction") from e
            self._depth += 1
            try:
                yield self.conn
            except sqlite3.Error as e:
                self._depth -= 1
                if outer:
                    self.conn.execute("ROLLBACK")
                logger.error(f"Transaction rolled back: {e}")
                raise internal("database error", error=str(e)) from e
            except BaseException:
                self._depth -= 1
                if outer:
                    self.conn.execute("ROLLBACK")
                raise
            else:
                self._depth -= 1
                if outer:
                    try:
                        self.conn.execute("COMMIT")
                    except sqlite3.Error as e:
                        self.conn.execute("ROLLBACK")
                        logger.error(f"COMMIT failed: {e}")
                        raise internal("failed to commit transaction") from e

    def close(self):
        with self._lock:
            self.conn.close()


def _loads(raw: str, what: str, ident: str):
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise data_corrupted(f"stored {what} is not valid JSON", id=ident) from e


class _Repository:
    """Shared plumbing: connection scope and cache access that never fails a request."""

    def __init__(self, db: Database, cache: RedisCache, tx: Optional[sqlite3.Connection] = None):
        self.db = db
        self.cache = cache
        self.tx = tx

    @contextmanager
    def _scope(self):
        if self.tx is not None:
            yield self.tx
        else:
            with self.db.transaction() as conn:
                yield conn

    def _cache_get(self, key: str) -> Optional[str]:
        try:
            return self.cache.get(key)
        except CacheError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    def _cache_set(self, key: str, value: str, ttl: int):
        try:
            self.cache.set(key, value, ttl)
        except CacheError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def _cache_delete(self, key: str):
        try:
            self.cache.delete(key)
        except CacheError as e:
            logger.warning(f"Cache invalidation failed for {key}: {e}")


# ─────────────────────────────────────────────────────
# AGENTS
# ─────────────────────────────────────────────────────

class AgentRepository(_Repository):

    def with_tx(self, tx: sqlite3.Connection) -> "AgentRepository":
        return AgentRepository(self.db, self.cache, tx)

    @staticmethod
    def _row_to_agent(row: sqlite3.Row) -> Agent:
        ident = row["id"]
        arc = _loads(row["arc"], "agent ARC", ident)
        return Agent(
            id=ident,
            name=row["name"],
            pronouns=row["pronouns"],
            anomaly=anomaly_from_dict(arc.get("anomaly", {"type": row["anomaly_type"]})),
            reality=reality_from_dict(arc.get("reality", {"type": row["reality_type"]})),
            career=career_from_dict(arc.get("career", {"type": row["career_type"]})),
            qa=_loads(row["qa"], "agent QA", ident),
            relationships=[relationship_from_dict(r)
                           for r in _loads(row["relationships"], "agent relationships", ident)],
            commendations=row["commendations"],
            reprimands=row["reprimands"],
            rating=row["rating"],
            alive=bool(row["alive"]),
            in_debt=bool(row["in_debt"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _params(agent: Agent) -> dict:
        data = agent_to_dict(agent)
        return {
            "id": agent.id,
            "name": agent.name,
            "pronouns": agent.pronouns,
            "anomaly_type": agent.anomaly.type,
            "reality_type": agent.reality.type,
            "career_type": agent.career.type,
            "qa": json.dumps(agent.qa),
            "relationships": json.dumps(data["relationships"], ensure_ascii=False),
            "arc": json.dumps({"anomaly": data["anomaly"], "reality": data["reality"],
                               "career": data["career"]}, ensure_ascii=False),
            "commendations": agent.commendations,
            "reprimands": agent.reprimands,
            "rating": agent.rating,
            "alive": int(agent.alive),
            "in_debt": int(agent.in_debt),
            "created_at": agent.created_at,
            "updated_at": agent.updated_at,
        }

    def create(self, agent: Agent):
        with self._scope() as conn:
            conn.execute(
                "INSERT INTO agents (id, name, pronouns, anomaly_type, reality_type, career_type, "
                "qa, relationships, arc, commendations, reprimands, rating, alive, in_debt, "
                "created_at, updated_at) VALUES (:id, :name, :pronouns, :anomaly_type, "
                ":reality_type, :career_type, :qa, :relationships, :arc, :commendations, "
                ":reprimands, :rating, :alive, :in_debt, :created_at, :updated_at)",
                self._params(agent),
            )
        self._cache_delete(agent_key(agent.id))

    def get(self, agent_id: str) -> Agent:
        cached = self._cache_get(agent_key(agent_id))
        if cached is not None:
            try:
                return agent_from_json(cached)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping unreadable cache entry for agent {agent_id}: {e}")
                self._cache_delete(agent_key(agent_id))

        with self._scope() as conn:
            row = conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,)).fetchone()
        if row is None:
            raise not_found("agent", agent_id)
        agent = self._row_to_agent(row)
        self._cache_set(agent_key(agent_id), agent_to_json(agent), AGENT_CACHE_TTL)
        return agent

    def list(self) -> list:
        with self._scope() as conn:
            rows = conn.execute("SELECT * FROM agents ORDER BY created_at, name").fetchall()
        return [self._row_to_agent(r) for r in rows]

    def update(self, agent: Agent):
        with self._scope() as conn:
            cur = conn.execute(
                "UPDATE agents SET name = :name, pronouns = :pronouns, "
                "anomaly_type = :anomaly_type, reality_type = :reality_type, "
                "career_type = :career_type, qa = :qa, relationships = :relationships, "
                "arc = :arc, commendations = :commendations, reprimands = :reprimands, "
                "rating = :rating, alive = :alive, in_debt = :in_debt, "
                "updated_at = :updated_at WHERE id = :id",
                self._params(agent),
            )
            found = cur.rowcount > 0
        self._cache_delete(agent_key(agent.id))
        if not found:
            raise not_found("agent", agent.id)

    def delete(self, agent_id: str):
        with self._scope() as conn:
            cur = conn.execute("DELETE FROM agents WHERE id = ?", (agent_id,))
            found = cur.rowcount > 0
        self._cache_delete(agent_key(agent_id))
        if not found:
            raise not_found("agent", agent_id)


# ─────────────────────────────────────────────────────
# SESSIONS
# ─────────────────────────────────────────────────────

class SessionRepository(_Repository):

    def __init__(self, db: Database, cache: RedisCache, locks: SessionLockTable,
                 tx: Optional[sqlite3.Connection] = None):
        super().__init__(db, cache, tx)
        self.locks = locks

    def with_tx(self, tx: sqlite3.Connection) -> "SessionRepository":
        return SessionRepository(self.db, self.cache, self.locks, tx)

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> GameSession:
        ident = row["id"]
        return GameSession(
            id=ident,
            agent_id=row["agent_id"],
            scenario_id=row["scenario_id"],
            phase=row["phase"],
            state=game_state_from_dict(_loads(row["state"], "session state", ident)),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _params(session: GameSession) -> dict:
        return {
            "id": session.id,
            "agent_id": session.agent_id,
            "scenario_id": session.scenario_id,
            "phase": session.phase,
            "state": json.dumps(session_to_dict(session)["state"], ensure_ascii=False),
            "created_at": session.created_at,
            "updated_at": session.updated_at,
        }

    def invalidate(self, session_id: str):
        self._cache_delete(session_key(session_id))

    def create(self, session: GameSession):
        with self.locks.write_locked(session.id):
            with self._scope() as conn:
                conn.execute(
                    "INSERT INTO game_sessions (id, agent_id, scenario_id, phase, state, "
                    "created_at, updated_at) VALUES (:id, :agent_id, :scenario_id, :phase, "
                    ":state, :created_at, :updated_at)",
                    self._params(session),
                )
            self.invalidate(session.id)

    def _load(self, session_id: str) -> GameSession:
        cached = self._cache_get(session_key(session_id))
        if cached is not None:
            try:
                return session_from_json(cached)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping unreadable cache entry for session {session_id}: {e}")
                self.invalidate(session_id)

        with self._scope() as conn:
            row = conn.execute("SELECT * FROM game_sessions WHERE id = ?",
                               (session_id,)).fetchone()
        if row is None:
            raise not_found("session", session_id)
        session = self._row_to_session(row)
        self._cache_set(session_key(session_id), session_to_json(session), SESSION_CACHE_TTL)
        return session

    def get(self, session_id: str, ctx: Optional[RequestContext] = None) -> GameSession:
        """Read-through: cache first, then the store. Returns a private copy."""
        try:
            with self.locks.read_locked(session_id, ctx):
                return self._load(session_id)
        except GameError as e:
            if e.code == ErrorCode.NOT_FOUND:
                self.locks.discard_if_idle(session_id)
            raise

    def list(self, agent_id: Optional[str] = None) -> list:
        with self._scope() as conn:
            if agent_id:
                rows = conn.execute(
                    "SELECT * FROM game_sessions WHERE agent_id = ? ORDER BY created_at, rowid",
                    (agent_id,)).fetchall()
            else:
                rows = conn.execute("SELECT * FROM game_sessions ORDER BY created_at, rowid").fetchall()
        return [self._row_to_session(r) for r in rows]

    def update(self, session: GameSession, ctx: Optional[RequestContext] = None):
        with self.locks.write_locked(session.id, ctx):
            try:
                with self._scope() as conn:
                    cur = conn.execute(
                        "UPDATE game_sessions SET agent_id = :agent_id, "
                        "scenario_id = :scenario_id, phase = :phase, state = :state, "
                        "updated_at = :updated_at WHERE id = :id",
                        self._params(session),
                    )
                    found = cur.rowcount > 0
            finally:
                self.invalidate(session.id)
            if not found:
                raise not_found("session", session.id)

    def delete(self, session_id: str, ctx: Optional[RequestContext] = None):
        with self.locks.write_locked(session_id, ctx):
            try:
                with self._scope() as conn:
                    cur = conn.execute("DELETE FROM game_sessions WHERE id = ?", (session_id,))
                    found = cur.rowcount > 0
            finally:
                self.invalidate(session_id)
        self.locks.discard_if_idle(session_id)
        if not found:
            raise not_found("session", session_id)


# ─────────────────────────────────────────────────────
# SAVES
# ─────────────────────────────────────────────────────

class SaveRepository(_Repository):

    def with_tx(self, tx: sqlite3.Connection) -> "SaveRepository":
        return SaveRepository(self.db, self.cache, tx)

    @staticmethod
    def _row_to_save(row: sqlite3.Row) -> SaveSnapshot:
        ident = row["id"]
        snapshot = _loads(row["snapshot"], "save snapshot", ident)
        try:
            session = session_from_dict(snapshot)
        except (KeyError, TypeError, AttributeError) as e:
            raise data_corrupted("stored save snapshot is malformed", id=ident) from e
        return SaveSnapshot(
            id=ident,
            session_id=row["session_id"],
            name=row["name"],
            version=row["version"],
            session=session,
            metadata=_loads(row["metadata"], "save metadata", ident),
            created_at=row["created_at"],
        )

    def create(self, save: SaveSnapshot):
        with self._scope() as conn:
            conn.execute(
                "INSERT INTO saves (id, session_id, name, version, snapshot, metadata, "
                "created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (save.id, save.session_id, save.name, save.version,
                 session_to_json(save.session),
                 json.dumps(save.metadata, ensure_ascii=False),
                 save.created_at),
            )

    def get(self, save_id: str) -> SaveSnapshot:
        with self._scope() as conn:
            row = conn.execute("SELECT * FROM saves WHERE id = ?", (save_id,)).fetchone()
        if row is None:
            raise not_found("save", save_id)
        return self._row_to_save(row)

    def list(self, session_id: str) -> list:
        with self._scope() as conn:
            rows = conn.execute(
                "SELECT * FROM saves WHERE session_id = ? ORDER BY created_at, rowid",
                (session_id,)).fetchall()
        return [self._row_to_save(r) for r in rows]

    def delete(self, save_id: str):
        with self._scope() as conn:
            cur = conn.execute("DELETE FROM saves WHERE id = ?", (save_id,))
            found = cur.rowcount > 0
        if not found:
            raise not_found("save", save_id)


class Repositories:
    """The three repositories over one database, cache and lock table."""

    def __init__(self, db: Database, cache: Optional[RedisCache] = None,
                 locks: Optional[SessionLockTable] = None):
        self.db = db
        self.cache = cache or RedisCache.from_url()
        self.locks = locks or SessionLockTable()
        self.agents = AgentRepository(db, self.cache)
        self.sessions = SessionRepository(db, self.cache, self.locks)
        self.saves = SaveRepository(db, self.cache)

    @contextmanager
    def transaction(self):
        """Yields (agents, sessions, saves) bound to one transaction."""
        with self.db.transaction() as tx:
            yield (self.agents.with_tx(tx), self.sessions.with_tx(tx), self.saves.with_tx(tx))
