import threading

import pytest
import redis

from agents import AgentService
from cache import CacheError, RedisCache, agent_key, session_key
from config import AGENT_CACHE_TTL, SESSION_CACHE_TTL
from errors import ErrorCode, GameError
from locks import AfterCommit, RequestContext, RWLock, SessionLockTable
from storage import Database, Repositories


class DownRedis:
    """Every call fails the way an unreachable server does."""

    def _fail(self, *args, **kwargs):
        raise redis.ConnectionError("connection refused")

    get = setex = delete = ttl = _fail


# ─────────────────────────────────────────────────────
# CACHE
# ─────────────────────────────────────────────────────

def test_cache_set_get_delete(cache):
    cache.set("k", "v", ttl=10)
    assert cache.get("k") == "v"
    assert 0 < cache.ttl("k") <= 10
    cache.delete("k")
    assert cache.get("k") is None
    assert "k" not in cache


def test_entries_carry_their_ttl(runtime, sora, session, repos):
    repos.agents.get(sora.id)
    repos.sessions.get(session.id)
    assert AGENT_CACHE_TTL - 5 <= repos.cache.ttl(agent_key(sora.id)) <= AGENT_CACHE_TTL
    assert SESSION_CACHE_TTL - 5 <= repos.cache.ttl(session_key(session.id)) <= SESSION_CACHE_TTL


def test_redis_errors_become_cache_errors():
    cache = RedisCache(DownRedis())
    with pytest.raises(CacheError):
        cache.get("k")
    with pytest.raises(CacheError):
        cache.set("k", "v", ttl=5)


def test_unreachable_cache_is_a_miss():
    db = Database(":memory:")
    repos = Repositories(db, cache=RedisCache(DownRedis()))
    agents = AgentService(repos.agents)
    agent = agents.create("Agent Lee", "Dream", "Newborn", "Intern")
    assert agents.get(agent.id).name == "Agent Lee"
    agents.spend_qa(agent.id, "Grit", 1)
    assert agents.get(agent.id).qa["Grit"] == 1
    db.close()


def test_cached_agent_is_a_copy(runtime, sora, repos):
    first = repos.agents.get(sora.id)
    assert agent_key(sora.id) in repos.cache
    first.qa["Presence"] = 0
    assert repos.agents.get(sora.id).qa["Presence"] == 3


def test_write_invalidates(runtime, sora, repos):
    repos.agents.get(sora.id)
    runtime.agents.spend_qa(sora.id, "Presence", 1)
    assert repos.agents.get(sora.id).qa["Presence"] == 2


# ─────────────────────────────────────────────────────
# LOCKS
# ─────────────────────────────────────────────────────

def test_write_lock_is_reentrant():
    lock = RWLock()
    assert lock.acquire_write(0.1)
    assert lock.acquire_read(0.1)
    assert lock.acquire_write(0.1)
    lock.release_write()
    lock.release_read()
    assert lock.write_held
    lock.release_write()
    assert not lock.write_held


def test_writer_excludes_other_threads():
    lock = RWLock()
    lock.acquire_write()
    results = []

    def other():
        results.append(lock.acquire_read(0.05))
        results.append(lock.acquire_write(0.05))

    t = threading.Thread(target=other)
    t.start()
    t.join()
    assert results == [False, False]
    lock.release_write()


def test_readers_share():
    lock = RWLock()
    assert lock.acquire_read(0.1)
    results = []
    t = threading.Thread(target=lambda: results.append(lock.acquire_read(0.1)))
    t.start()
    t.join()
    assert results == [True]
    assert lock.readers == 2
    assert not lock.acquire_write(0.05)


def test_lock_timeout_is_internal():
    table = SessionLockTable(timeout=0.05)
    errors = []

    def writer():
        try:
            with table.write_locked("s1"):
                pass
        except GameError as e:
            errors.append(e.code)

    with table.read_locked("s1"):
        t = threading.Thread(target=writer)
        t.start()
        t.join()
    assert errors == [ErrorCode.INTERNAL]


def test_idle_lock_entries_can_be_dropped():
    table = SessionLockTable()
    assert not table.discard_if_idle("s1")
    with table.write_locked("s1"):
        assert "s1" in table
        assert not table.discard_if_idle("s1")
    assert table.discard_if_idle("s1")
    assert "s1" not in table
    assert len(table) == 0


def test_missing_sessions_leave_no_lock_entries(repos):
    for i in range(100):
        with pytest.raises(GameError):
            repos.sessions.get(f"missing-{i}")
    assert len(repos.locks) == 0


def test_after_commit_holds_records_while_collecting():
    hooks = AfterCommit()
    seen = []
    hooks.run(lambda: seen.append("now"))
    with hooks.collecting() as pending:
        hooks.run(lambda: seen.append("later"))
        assert seen == ["now"]
    assert len(pending) == 1
    pending[0]()
    assert seen == ["now", "later"]


def test_request_context():
    ctx = RequestContext()
    ctx.check()
    ctx.cancel()
    with pytest.raises(GameError) as exc:
        ctx.check()
    assert exc.value.details["reason"] == "cancelled"
    expired = RequestContext.with_timeout(0)
    with pytest.raises(GameError) as exc:
        expired.check()
    assert exc.value.details["reason"] == "deadline"


# ─────────────────────────────────────────────────────
# DATABASE
# ─────────────────────────────────────────────────────

def test_transaction_rolls_back(runtime, sora, repos):
    agent = repos.agents.get(sora.id)
    agent.name = "Changed"
    with pytest.raises(RuntimeError):
        with repos.transaction() as (agents, sessions, saves):
            agents.update(agent)
            raise RuntimeError("boom")
    assert repos.agents.get(sora.id).name == "Agent Sora"


def test_corrupt_state_is_data_corrupted(session, repos):
    with repos.db.transaction() as conn:
        conn.execute("UPDATE game_sessions SET state = ? WHERE id = ?", ("{oops", session.id))
    repos.sessions.invalidate(session.id)
    with pytest.raises(GameError) as exc:
        repos.sessions.get(session.id)
    assert exc.value.code == ErrorCode.DATA_CORRUPTED
    assert exc.value.status == 422


def test_missing_rows(repos):
    for fn in (repos.agents.get, repos.sessions.get, repos.saves.get, repos.sessions.delete):
        with pytest.raises(GameError) as exc:
            fn("nope")
        assert exc.value.code == ErrorCode.NOT_FOUND
