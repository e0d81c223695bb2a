"""
Memory Store for Mason

Long-term memories of goals and actions, kept in Neo4j. The planning
loop stores an entry after every action and goal, and pulls similar
entries back into its prompts as plain text.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from neo4j import GraphDatabase

logger = logging.getLogger(__name__)


class MemoryKind(Enum):
    """Collections a memory can belong to."""
    SUCCESSFUL_GOALS = "successful goals"
    FAILED_GOALS = "failed goals"
    SUCCESSFUL_ACTIONS = "successful actions"
    FAILED_ACTIONS = "failed actions"
    RELATIONSHIPS = "relationships"


@dataclass
class Memory:
    """A stored memory."""
    id: str
    kind: MemoryKind
    content: str
    timestamp: str
    metadata: dict = field(default_factory=dict)

    def to_props(self, agent: str) -> dict:
        return {
            'id': self.id,
            'agent': agent,
            'kind': self.kind.value,
            'content': self.content,
            'timestamp': self.timestamp,
            'metadata': json.dumps(self.metadata)
        }

    @classmethod
    def from_props(cls, props: dict) -> 'Memory':
        return cls(
            id=props['id'],
            kind=MemoryKind(props['kind']),
            content=props['content'],
            timestamp=props['timestamp'],
            metadata=json.loads(props.get('metadata') or '{}')
        )


@dataclass
class ScoredMemory:
    """A memory with its relevance to a query."""
    memory: Memory
    score: float


WORD = re.compile(r'[a-z0-9_]+')


def keywords(text: str) -> set[str]:
    """Lowercase words of three or more characters."""
    return {w for w in WORD.findall(text.lower()) if len(w) >= 3}


def word_overlap(text1: str, text2: str) -> float:
    """
    Jaccard similarity over keywords.

    Simple stand-in for embedding similarity; 0.0 when either side is empty.
    """
    words1 = keywords(text1)
    words2 = keywords(text2)
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def format_memories(memories: list[ScoredMemory]) -> str:
    """Render memories for a prompt, best first."""
    return "\n".join(f"- [{m.memory.kind.value}] {m.memory.content}" for m in memories)


class MemoryStore:
    """
    Interface to the Neo4j memory store.

    Each agent only sees its own memories.
    """

    def __init__(self, agent_name: str, uri: str, user: str, password: str, database: str = "neo4j"):
        self.agent_name = agent_name
        self.driver = GraphDatabase.driver(uri, auth=(user, password))
        self.database = database
        self._ensure_indexes()

    def close(self):
        """Close the database connection."""
        self.driver.close()

    def _ensure_indexes(self):
        with self.driver.session(database=self.database) as session:
            session.run("""
                CREATE INDEX memory_agent_kind IF NOT EXISTS
                FOR (m:Memory) ON (m.agent, m.kind)
            """)

    def store(self, kind: MemoryKind, content: str, metadata: Optional[dict] = None) -> str:
        """Store a memory and return its ID."""
        memory = Memory(
            id=f"memory_{uuid.uuid4().hex[:12]}",
            kind=kind,
            content=content,
            timestamp=datetime.now(timezone.utc).isoformat(),
            metadata=metadata or {}
        )
        with self.driver.session(database=self.database) as session:
            result = session.run("""
                CREATE (m:Memory $props)
                RETURN m.id as id
            """, props=memory.to_props(self.agent_name))
            return result.single()["id"]

    def query(
        self,
        text: str,
        kinds: Optional[list[MemoryKind]] = None,
        limit: int = 5,
        candidates: int = 50
    ) -> list[ScoredMemory]:
        """
        Find memories similar to the text.

        Neo4j narrows to memories sharing at least one keyword; ranking
        is word overlap. Memories with no overlap are not returned.
        """
        words = sorted(keywords(text))
        if not words:
            return []
        kind_values = [k.value for k in (kinds or list(MemoryKind))]

        with self.driver.session(database=self.database) as session:
            result = session.run("""
                MATCH (m:Memory {agent: $agent})
                WHERE m.kind IN $kinds
                  AND any(w IN $words WHERE toLower(m.content) CONTAINS w)
                RETURN properties(m) as props
                LIMIT $candidates
            """, agent=self.agent_name, kinds=kind_values, words=words, candidates=candidates)
            memories = [Memory.from_props(record["props"]) for record in result]

        scored = [ScoredMemory(m, word_overlap(text, m.content)) for m in memories]
        scored = [s for s in scored if s.score > 0]
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:limit]

    def delete(self, memory_id: str):
        with self.driver.session(database=self.database) as session:
            session.run("""
                MATCH (m:Memory {id: $id, agent: $agent})
                DETACH DELETE m
            """, id=memory_id, agent=self.agent_name)

    def get_all(self, kind: MemoryKind) -> list[Memory]:
        with self.driver.session(database=self.database) as session:
            result = session.run("""
                MATCH (m:Memory {agent: $agent, kind: $kind})
                RETURN properties(m) as props
                ORDER BY m.timestamp
            """, agent=self.agent_name, kind=kind.value)
            return [Memory.from_props(record["props"]) for record in result]


class NullMemory:
    """Used when the memory store is disabled: remembers nothing."""

    def store(self, kind: MemoryKind, content: str, metadata: Optional[dict] = None) -> str:
        return ""

    def query(self, text: str, kinds: Optional[list[MemoryKind]] = None, limit: int = 5) -> list[ScoredMemory]:
        return []

    def close(self):
        pass
