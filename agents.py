"""
Agency Engine v1.0: Agent Service
Character-sheet operations over the agent repository. These run outside
any session lock; every write re-validates the ARC and goes through
the repository so the cache entry is invalidated.
"""

import time
import uuid
from typing import Callable, Optional

import arc_catalog
import performance
import qa
from errors import invalid_input, not_found
from models import (
    Agent, Relationship, AnomalyType, RealityType, CareerType, QUALITIES, is_valid_value,
)
from storage import AgentRepository

MAX_TOTAL_QA = 9
TOTAL_CONNECTION = 12
RELATIONSHIP_COUNT = 3
ABILITY_COUNT = 3


def validate_arc(agent: Agent):
    """Raise InvalidInput unless the agent is a legal ARC build."""
    if not agent.name or not agent.name.strip():
        raise invalid_input("agent name is required", field="name")
    if not is_valid_value(AnomalyType, agent.anomaly.type):
        raise invalid_input("invalid anomaly type", field="anomaly", value=agent.anomaly.type)
    if not is_valid_value(RealityType, agent.reality.type):
        raise invalid_input("invalid reality type", field="reality", value=agent.reality.type)
    if not is_valid_value(CareerType, agent.career.type):
        raise invalid_input("invalid career type", field="career", value=agent.career.type)
    if len(agent.anomaly.abilities) != ABILITY_COUNT:
        raise invalid_input("an anomaly must have exactly 3 abilities", field="abilities",
                            count=len(agent.anomaly.abilities))
    if len(agent.relationships) != RELATIONSHIP_COUNT:
        raise invalid_input("an agent must have exactly 3 relationships",
                            field="relationships", count=len(agent.relationships))
    if any(r.connection < 0 for r in agent.relationships):
        raise invalid_input("connection must be non-negative", field="relationships")
    if agent.total_connection() != TOTAL_CONNECTION:
        raise invalid_input("relationships must total 12 connection", field="relationships",
                            total=agent.total_connection())
    for quality, points in agent.qa.items():
        if quality not in QUALITIES:
            raise invalid_input(f"unknown quality: {quality}", field="qa", quality=quality)
        if points < 0:
            raise invalid_input("QA must be non-negative", field="qa", quality=quality)
    if qa.total_qa(agent) > MAX_TOTAL_QA:
        raise invalid_input("total QA may not exceed 9", field="qa", total=qa.total_qa(agent))
    deg = agent.reality.degradation
    if deg.filled < 0 or deg.filled > deg.total:
        raise invalid_input("degradation track out of range", field="degradation",
                            filled=deg.filled, total=deg.total)


def _relationship(data, new_id: Callable[[], str]) -> Relationship:
    if isinstance(data, Relationship):
        rel = data
    elif isinstance(data, dict):
        rel = Relationship(
            id=data.get("id") or "",
            name=data.get("name", ""),
            connection=data.get("connection", 0),
            description=data.get("description", ""),
        )
    else:
        raise invalid_input("relationship must be an object", field="relationships")
    if not rel.id:
        rel.id = new_id()
    return rel


class AgentService:

    def __init__(self, repo: AgentRepository,
                 clock: Callable[[], float] = time.time,
                 new_id: Callable[[], str] = lambda: str(uuid.uuid4())):
        self.repo = repo
        self.clock = clock
        self.new_id = new_id

    def _now(self) -> int:
        return int(self.clock())

    def create(self, name: str, anomaly_type: str, reality_type: str, career_type: str,
               pronouns: str = "", relationships: Optional[list] = None) -> Agent:
        career = arc_catalog.default_career(career_type)
        now = self._now()
        agent = Agent(
            id=self.new_id(),
            name=name,
            pronouns=pronouns,
            anomaly=arc_catalog.default_anomaly(anomaly_type),
            reality=arc_catalog.default_reality(reality_type),
            career=career,
            qa=dict(career.qa),
            relationships=[_relationship(r, self.new_id) for r in (relationships or [])],
            created_at=now,
            updated_at=now,
        )
        if not agent.relationships:
            agent.relationships = arc_catalog.default_relationships()
            for rel in agent.relationships:
                rel.id = self.new_id()
        performance.refresh(agent)
        validate_arc(agent)
        self.repo.create(agent)
        return agent

    def get(self, agent_id: str) -> Agent:
        return self.repo.get(agent_id)

    def list(self) -> list:
        return self.repo.list()

    def save(self, agent: Agent) -> Agent:
        validate_arc(agent)
        performance.refresh(agent)
        agent.updated_at = self._now()
        self.repo.update(agent)
        return agent

    def update(self, agent_id: str, name: Optional[str] = None,
               pronouns: Optional[str] = None,
               relationships: Optional[list] = None,
               anomaly_type: Optional[str] = None,
               reality_type: Optional[str] = None,
               career_type: Optional[str] = None) -> Agent:
        agent = self.get(agent_id)
        if name is not None:
            agent.name = name
        if pronouns is not None:
            agent.pronouns = pronouns
        if relationships is not None:
            agent.relationships = [_relationship(r, self.new_id) for r in relationships]
        if anomaly_type is not None and anomaly_type != agent.anomaly.type:
            agent.anomaly = arc_catalog.default_anomaly(anomaly_type)
        if reality_type is not None and reality_type != agent.reality.type:
            agent.reality = arc_catalog.default_reality(reality_type)
        if career_type is not None and career_type != agent.career.type:
            agent.career = arc_catalog.default_career(career_type)
            qa.restore_qa(agent)
        return self.save(agent)

    def delete(self, agent_id: str):
        self.repo.delete(agent_id)

    # ── ARC ──

    def set_anomaly(self, agent_id: str, anomaly_type: str) -> Agent:
        return self.update(agent_id, anomaly_type=anomaly_type)

    def set_reality(self, agent_id: str, reality_type: str) -> Agent:
        return self.update(agent_id, reality_type=reality_type)

    def set_career(self, agent_id: str, career_type: str) -> Agent:
        return self.update(agent_id, career_type=career_type)

    # ── QA ──

    def spend_qa(self, agent_id: str, quality: str, amount: int) -> Agent:
        agent = self.get(agent_id)
        qa.spend_qa(agent, quality, amount)
        return self.save(agent)

    def restore_qa(self, agent_id: str) -> Agent:
        agent = self.get(agent_id)
        qa.restore_qa(agent)
        return self.save(agent)

    # ── RELATIONSHIPS / PERFORMANCE ──

    def update_relationship(self, agent_id: str, relationship_id: str,
                            connection: Optional[int] = None,
                            name: Optional[str] = None) -> Agent:
        agent = self.get(agent_id)
        for rel in agent.relationships:
            if rel.id == relationship_id:
                if connection is not None:
                    rel.connection = connection
                if name is not None:
                    rel.name = name
                return self.save(agent)
        raise not_found("relationship", relationship_id)

    def add_commendations(self, agent_id: str, amount: int) -> Agent:
        agent = self.get(agent_id)
        performance.add_commendations(agent, amount)
        return self.save(agent)

    def add_reprimands(self, agent_id: str, amount: int) -> Agent:
        agent = self.get(agent_id)
        performance.add_reprimands(agent, amount)
        return self.save(agent)
