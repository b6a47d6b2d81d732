import itertools
import os
import random
import shutil

import fakeredis
import pytest

from arc_catalog import default_anomaly, default_career, default_reality, default_relationships
from cache import RedisCache
from game_loop import SessionRuntime
from models import Agent
from scenario_loader import ScenarioLoader
from storage import Database, Repositories

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
BUNDLED_SCENARIOS = os.path.join(ROOT, "data", "scenarios")


class FixedRandom:
    """Hands out preset die faces in order; randint bounds are ignored."""

    def __init__(self, faces):
        self._faces = itertools.cycle(faces)

    def randint(self, a, b):
        return next(self._faces)


class Clock:
    def __init__(self, start=1_700_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def tick(self, seconds=1):
        self.now += seconds


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def ids():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter):04d}"


@pytest.fixture
def scenarios_dir(tmp_path):
    target = tmp_path / "scenarios"
    shutil.copytree(BUNDLED_SCENARIOS, target)
    return str(target)


@pytest.fixture
def cache():
    return RedisCache(fakeredis.FakeRedis(decode_responses=True))


@pytest.fixture
def repos(cache):
    db = Database(":memory:")
    yield Repositories(db, cache=cache)
    db.close()


@pytest.fixture
def runtime(repos, scenarios_dir, rng, clock, ids):
    return SessionRuntime(repos, ScenarioLoader(scenarios_dir), rng=rng, clock=clock, new_id=ids)


@pytest.fixture
def sora(runtime):
    return runtime.agents.create(
        "Agent Sora", "Whisper", "Caretaker", "PR",
        relationships=[{"name": "Sister", "connection": 6},
                       {"name": "Mentor", "connection": 3},
                       {"name": "Neighbour", "connection": 3}],
    )


@pytest.fixture
def session(runtime, sora):
    return runtime.create_session(sora.id, "eternal-spring")


def make_agent(career="PR", anomaly="Whisper", reality="Caretaker"):
    """A valid agent that never touches storage."""
    c = default_career(career)
    return Agent(
        id="agent-1", name="Test Agent", anomaly=default_anomaly(anomaly),
        reality=default_reality(reality), career=c, qa=dict(c.qa),
        relationships=default_relationships(),
    )
