"""
Tests for the memory store module.
"""

import json
import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from memory import (
    Memory, MemoryKind, MemoryStore, NullMemory, ScoredMemory,
    format_memories, keywords, word_overlap
)


def memory_props(content, kind=MemoryKind.SUCCESSFUL_ACTIONS, memory_id="memory_abc"):
    return {
        'id': memory_id,
        'agent': 'andy',
        'kind': kind.value,
        'content': content,
        'timestamp': '2024-01-01T00:00:00+00:00',
        'metadata': '{}'
    }


class TestWordOverlap:
    """Tests for keyword similarity."""

    def test_identical(self):
        assert word_overlap("collect oak logs", "collect oak logs") == 1.0

    def test_empty(self):
        assert word_overlap("", "collect oak logs") == 0.0

    def test_short_words_ignored(self):
        assert keywords("go to a big oak") == {"big", "oak"}

    def test_partial(self):
        score = word_overlap("collect oak logs", "collect birch logs")
        assert 0.0 < score < 1.0


class TestMemory:
    """Tests for the Memory dataclass."""

    def test_props_round_trip(self):
        memory = Memory("memory_1", MemoryKind.FAILED_GOALS, "find shelter", "2024-01-01", {'summary': 'x'})
        props = memory.to_props("andy")
        assert props['agent'] == "andy"
        assert props['kind'] == "failed goals"
        assert json.loads(props['metadata']) == {'summary': 'x'}
        assert Memory.from_props(props) == memory

    def test_format_memories(self):
        memories = [ScoredMemory(Memory.from_props(memory_props("chopped 4 oak logs")), 0.5)]
        assert format_memories(memories) == "- [successful actions] chopped 4 oak logs"


class TestMemoryStore:
    """Tests for the Neo4j-backed store."""

    @patch('memory.GraphDatabase')
    def test_init_creates_index(self, mock_gdb, mock_neo4j_driver):
        driver, session = mock_neo4j_driver
        mock_gdb.driver.return_value = driver

        MemoryStore("andy", "bolt://localhost:7687", "neo4j", "password")

        mock_gdb.driver.assert_called_once_with("bolt://localhost:7687", auth=("neo4j", "password"))
        assert "CREATE INDEX" in session.run.call_args[0][0]

    @patch('memory.GraphDatabase')
    def test_store(self, mock_gdb, mock_neo4j_driver):
        driver, session = mock_neo4j_driver
        mock_gdb.driver.return_value = driver
        session.run.return_value.single.return_value = {"id": "memory_123"}

        store = MemoryStore("andy", "bolt://localhost:7687", "neo4j", "password")
        memory_id = store.store(MemoryKind.SUCCESSFUL_GOALS, "chop wood", {'summary': '2 steps'})

        assert memory_id == "memory_123"
        props = session.run.call_args[1]['props']
        assert props['agent'] == "andy"
        assert props['kind'] == "successful goals"
        assert props['content'] == "chop wood"

    @patch('memory.GraphDatabase')
    def test_query_ranks_by_overlap(self, mock_gdb, mock_neo4j_driver):
        driver, session = mock_neo4j_driver
        mock_gdb.driver.return_value = driver
        store = MemoryStore("andy", "bolt://localhost:7687", "neo4j", "password")

        session.run.return_value = [
            {"props": memory_props("walked around the village", memory_id="m1")},
            {"props": memory_props("collect oak logs near home", memory_id="m2")},
            {"props": memory_props("collect oak logs", memory_id="m3")},
        ]
        results = store.query("collect oak logs")

        assert [r.memory.id for r in results] == ["m3", "m2"]
        assert results[0].score == 1.0
        kwargs = session.run.call_args[1]
        assert kwargs['agent'] == "andy"
        assert kwargs['words'] == ["collect", "logs", "oak"]

    @patch('memory.GraphDatabase')
    def test_query_filters_kinds_and_limits(self, mock_gdb, mock_neo4j_driver):
        driver, session = mock_neo4j_driver
        mock_gdb.driver.return_value = driver
        store = MemoryStore("andy", "bolt://localhost:7687", "neo4j", "password")

        session.run.return_value = [
            {"props": memory_props(f"collect oak logs {i}", memory_id=f"m{i}")} for i in range(4)
        ]
        results = store.query("collect oak logs", kinds=[MemoryKind.FAILED_ACTIONS], limit=2)

        assert len(results) == 2
        assert session.run.call_args[1]['kinds'] == ["failed actions"]

    @patch('memory.GraphDatabase')
    def test_query_without_keywords_skips_database(self, mock_gdb, mock_neo4j_driver):
        driver, session = mock_neo4j_driver
        mock_gdb.driver.return_value = driver
        store = MemoryStore("andy", "bolt://localhost:7687", "neo4j", "password")
        session.run.reset_mock()

        assert store.query("a b") == []
        session.run.assert_not_called()

    @patch('memory.GraphDatabase')
    def test_close(self, mock_gdb, mock_neo4j_driver):
        driver, _ = mock_neo4j_driver
        mock_gdb.driver.return_value = driver
        store = MemoryStore("andy", "bolt://localhost:7687", "neo4j", "password")
        store.close()
        driver.close.assert_called_once()


class TestNullMemory:
    """Tests for the disabled store."""

    def test_remembers_nothing(self):
        memory = NullMemory()
        assert memory.store(MemoryKind.SUCCESSFUL_GOALS, "chop wood") == ""
        assert memory.query("chop wood") == []
        memory.close()
