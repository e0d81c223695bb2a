"""
World Interface for Mason

The game-world connection is an external collaborator. This module
defines what the agent needs from it and registers the world query
commands every agent has. Physical actions (movement, crafting,
combat) come from the concrete world via action_commands().
"""

import importlib
from abc import ABC, abstractmethod
from typing import Callable

from commands import Command
from errors import ConfigError


class World(ABC):
    """A live actor in the simulated world."""

    @abstractmethod
    def set_listeners(self, on_chat: Callable[[str, str], object], on_disconnect: Callable[[str], object]):
        """
        Register the agent's event callbacks.

        on_chat(username, message) is called for every chat (or whisper)
        message the actor receives. on_disconnect(reason) is called once
        when the actor is kicked or the connection ends. Both are plain
        callables invoked on the event loop thread.
        """

    @abstractmethod
    async def connect(self):
        """Log in and wait until the actor has spawned."""

    @abstractmethod
    async def chat(self, message: str):
        """Say something in the world's chat channel."""

    @abstractmethod
    def interrupt(self):
        """Ask in-flight actions to stop as soon as they can."""

    @abstractmethod
    async def close(self):
        """Disconnect."""

    @abstractmethod
    async def stats(self) -> str: ...

    @abstractmethod
    async def inventory(self) -> str: ...

    @abstractmethod
    async def craftable(self) -> str: ...

    @abstractmethod
    async def entities(self) -> str: ...

    @abstractmethod
    async def nearby_blocks(self) -> str: ...

    @abstractmethod
    async def saved_places(self) -> str: ...

    def blueprints(self) -> list[str]:
        """Names of constructions the actor knows how to build."""
        return []

    def action_commands(self) -> list[Command]:
        """Commands that act on the world."""
        return []


# Queries included in every planning context, in this order
STATUS_QUERIES = ["!stats", "!inventory", "!craftable", "!entities", "!nearbyBlocks", "!savedPlaces"]


def build_query_commands() -> list[Command]:
    """World queries plus the agent's own control commands."""

    async def stats(agent):
        return await agent.world.stats()

    async def inventory(agent):
        return await agent.world.inventory()

    async def craftable(agent):
        return await agent.world.craftable()

    async def entities(agent):
        return await agent.world.entities()

    async def nearby_blocks(agent):
        return await agent.world.nearby_blocks()

    async def saved_places(agent):
        return await agent.world.saved_places()

    def stop(agent):
        agent.request_interrupt()
        return "Agent stopped."

    def stfu(agent):
        agent.shut_up()
        return None

    return [
        Command("!stats", "Get your bot's location, health, hunger, and time of day.", stats, is_action=False),
        Command("!inventory", "Get your bot's inventory.", inventory, is_action=False),
        Command("!craftable", "Get the craftable items with the bot's inventory.", craftable, is_action=False),
        Command("!entities", "Get the nearby players and entities.", entities, is_action=False),
        Command("!nearbyBlocks", "Get the blocks near the bot.", nearby_blocks, is_action=False),
        Command("!savedPlaces", "List all saved locations.", saved_places, is_action=False),
        Command("!stop", "Force stop all actions and commands that are currently executing.", stop),
        Command("!stfu", "Stop all chatting, but continue current action.", stfu),
    ]


def load_world(factory_path: str, options: dict) -> World:
    """Build the world from a ``module:callable`` path in the config."""
    if not factory_path or ':' not in factory_path:
        raise ConfigError(f"world.factory must look like 'module:callable', got {factory_path!r}")
    module_name, attr = factory_path.split(':', 1)
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot load world factory {factory_path}: {e}")
    world = factory(**options)
    if not isinstance(world, World):
        raise ConfigError(f"{factory_path} did not return a World")
    return world
