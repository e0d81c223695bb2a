"""
Shared fixtures for Mason tests.
"""

import asyncio
import sys
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from commands import Command, CommandParam, CommandRegistry
from llm import Oracle
from world import World, build_query_commands


class ScriptedOracle(Oracle):
    """
    Oracle that answers from a script.

    ``responses`` is either a list (answers in order, the last one
    repeats) or a callable taking the system prompt. Tracks how many
    requests were ever in flight at once.
    """

    def __init__(self, responses):
        self.responses = responses if callable(responses) else list(responses)
        self.prompts = []
        self.turns = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def send_request(self, turns, system_prompt):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.prompts.append(system_prompt)
            self.turns.append(list(turns))
            # Give any concurrent caller a chance to overlap
            await asyncio.sleep(0)
            if callable(self.responses):
                return self.responses(system_prompt)
            if len(self.responses) > 1:
                return self.responses.pop(0)
            return self.responses[0]
        finally:
            self.in_flight -= 1


class FakeWorld(World):
    """In-memory world that records chat and answers queries with fixed text."""

    def __init__(self, commands=None):
        self.chats = []
        self.connected = False
        self.closed = False
        self.interrupts = 0
        self._commands = commands or []
        self.on_chat = None
        self.on_disconnect = None

    def set_listeners(self, on_chat, on_disconnect):
        self.on_chat = on_chat
        self.on_disconnect = on_disconnect

    def receive_chat(self, username, message):
        """Deliver a chat message the way a live server would."""
        return self.on_chat(username, message)

    def drop(self, reason):
        return self.on_disconnect(reason)

    async def connect(self):
        self.connected = True

    async def chat(self, message):
        self.chats.append(message)

    def interrupt(self):
        self.interrupts += 1

    async def close(self):
        self.closed = True

    async def stats(self):
        return "STATS\n- Health: 20 / 20\n- Hunger: 14 / 20"

    async def inventory(self):
        return "INVENTORY\n- oak_log: 3"

    async def craftable(self):
        return "CRAFTABLE_ITEMS\n- oak_planks"

    async def entities(self):
        return "NEARBY_ENTITIES\n- cow"

    async def nearby_blocks(self):
        return "NEARBY_BLOCKS\n- grass_block\n- oak_log"

    async def saved_places(self):
        return "Saved place names: home"

    def blueprints(self):
        return ["small_house"]

    def action_commands(self):
        return self._commands


def make_action_commands() -> list[Command]:
    """A handful of world actions for tests."""

    async def collect_blocks(agent, block_type, num):
        return f"Collected {num} {block_type}."

    async def craft_recipe(agent, recipe_name, num):
        return f"Crafted {num} {recipe_name}."

    def go_to_player(agent, player_name, closeness):
        return f"Arrived at {player_name}."

    async def rest(agent):
        return None

    return [
        Command(
            "!collectBlocks", "Collect the nearest blocks of a given type.", collect_blocks,
            params=[
                CommandParam("type", "BlockName", "The block type to collect."),
                CommandParam("num", "int", "The number of blocks to collect.", domain=(1, 64)),
            ]
        ),
        Command(
            "!craftRecipe", "Craft the given recipe a given number of times.", craft_recipe,
            params=[
                CommandParam("recipe_name", "ItemName", "The name of the output item to craft."),
                CommandParam("num", "int", "The number of times to craft the recipe."),
            ]
        ),
        Command(
            "!goToPlayer", "Go to the given player.", go_to_player,
            params=[
                CommandParam("player_name", "string", "The name of the player to go to."),
                CommandParam("closeness", "float", "How close to get to the player."),
            ]
        ),
        Command("!rest", "Stand still for a moment.", rest),
    ]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_config():
    """Return a mock configuration dictionary."""
    return {
        'profile': {
            'name': 'andy',
            'model': 'claude-sonnet-4-20250514',
            'max_tokens': 1024,
            'cooldown_seconds': 0,
            'conversing': "You are a minecraft bot named $NAME.\n$COMMAND_DOCS\n$CONVO",
            'saving_memory': "Old memory: $MEMORY\n$TO_SUMMARIZE",
        },
        'planning': {
            'goal_score_retries': 3,
            'action_list_attempts': 3,
            'refine_attempts': 2,
            'feasibility_attempts': 3,
            'hallucination_retries': 4,
            'max_refinements': 5,
            'retry_delay': 0,
            'last_goals_kept': 2,
        },
        'history': {
            'max_messages': 50,
            'max_tokens': 100000,
            'summary_chunk': 5,
        },
        'agent': {
            'max_commands': 5,
            'verbose_commands': False,
            'spawn_timeout': 1,
            'spawn_settle': 0,
        },
        'memory': {
            'enabled': False,
            'limit': 5,
            'neo4j': {
                'uri': 'bolt://localhost:7687',
                'user': 'neo4j',
                'password': 'password',
                'database': 'neo4j'
            }
        },
        'agenda': ['chop wood', 'find shelter'],
    }


@pytest.fixture
def scripted_oracle():
    """Factory for scripted oracles."""
    return ScriptedOracle


@pytest.fixture
def fake_world():
    return FakeWorld(make_action_commands())


@pytest.fixture
def registry():
    """Registry with the world queries and test actions registered."""
    reg = CommandRegistry()
    reg.register_all(build_query_commands() + make_action_commands())
    return reg


@pytest.fixture
def mock_prompter():
    """Prompter stand-in whose send() is driven by the test."""
    prompter = MagicMock()
    prompter.send = AsyncMock()
    return prompter


@pytest.fixture
def mock_neo4j_driver():
    """Create a mock Neo4j driver."""
    mock_driver = MagicMock()
    mock_session = MagicMock()
    mock_driver.session.return_value.__enter__ = MagicMock(return_value=mock_session)
    mock_driver.session.return_value.__exit__ = MagicMock(return_value=False)
    return mock_driver, mock_session
