#!/usr/bin/env python3
"""
Mason: An Autonomous Minecraft Planning Agent

Main entry point for running the agent.

Usage:
    python main.py                    # Normal operation
    python main.py --load-memory      # Resume from saved history and agenda
    python main.py --status           # Show current status
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path

import yaml

from errors import MasonError


def load_config(config_path: str = "config/settings.yaml") -> dict:
    """Load configuration from YAML file."""
    config_file = Path(config_path)
    if not config_file.exists():
        print(f"Error: Config file not found: {config_path}")
        sys.exit(1)

    with open(config_file) as f:
        config = yaml.safe_load(f) or {}

    # Override Neo4j URI from environment if set
    if os.environ.get('NEO4J_URI'):
        config.setdefault('memory', {}).setdefault('neo4j', {})['uri'] = os.environ['NEO4J_URI']

    return config


def check_api_key():
    """Check that Anthropic API key is set."""
    if not os.environ.get('ANTHROPIC_API_KEY'):
        print("Error: ANTHROPIC_API_KEY environment variable not set")
        print("Set it with: export ANTHROPIC_API_KEY='your-key-here'")
        sys.exit(1)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr
    )


def show_status(config: dict, base_path: str = "."):
    """Show current agent status."""
    base = Path(base_path)
    name = config.get('profile', {}).get('name', 'agent')

    print("\n" + "=" * 60)
    print("MASON STATUS")
    print("=" * 60)

    agenda_file = base / "state" / "agenda.json"
    if agenda_file.exists():
        agenda = json.loads(agenda_file.read_text()).get('agenda', [])
        print("\nAgenda:")
        for goal in agenda:
            print(f"  {goal['score']:>3}  {goal['description']}")
    else:
        print("\nNo saved agenda. Agent has not run yet.")

    history_file = base / "state" / f"{name}_history.json"
    if history_file.exists():
        history = json.loads(history_file.read_text())
        print(f"\nHistory turns: {len(history.get('turns', []))}")
        if history.get('memory'):
            print(f"Memory: {history['memory'][:80]}...")
        last_goals = history.get('last_goals', [])
        if last_goals:
            print("\nRecent goals:")
            for outcome in last_goals:
                mark = "done" if outcome.get('achieved') else "failed"
                print(f"  [{mark}] {outcome.get('goal')}")

    print("\n" + "=" * 60 + "\n")


def build_memory(config: dict, agent_name: str):
    """Neo4j memory store when enabled, otherwise a store that remembers nothing."""
    from memory import MemoryStore, NullMemory

    memory_config = config.get('memory', {})
    if not memory_config.get('enabled', False):
        return NullMemory()

    neo4j_config = memory_config.get('neo4j', {})
    return MemoryStore(
        agent_name=agent_name,
        uri=neo4j_config.get('uri', 'bolt://localhost:7687'),
        user=neo4j_config.get('user', 'neo4j'),
        password=neo4j_config.get('password', ''),
        database=neo4j_config.get('database', 'neo4j')
    )


async def run_agent(config: dict, base_path: str = ".", load_memory: bool = False) -> int:
    """Start the agent and run until shutdown. Returns the exit status."""
    from agent import MasonAgent, validate_profile
    from world import load_world

    validate_profile(config.get('profile') or {})
    world_config = config.get('world', {})
    world = load_world(world_config.get('factory'), world_config.get('options') or {})
    agent = MasonAgent(
        config,
        world,
        memory=build_memory(config, config['profile']['name']),
        base_path=base_path
    )

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def request_shutdown():
        print("\nShutdown requested...")
        agent.shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_shutdown)

    print(f"\n{'=' * 60}")
    print("MASON STARTING")
    print(f"{'=' * 60}")
    print(f"Agent: {agent.name}")
    print(f"Goals on agenda: {len(agent.agenda)}")
    print(f"{'=' * 60}\n")

    try:
        await agent.start(load_memory=load_memory)
    except MasonError as e:
        print(f"Error: {e}")
        await agent.close()
        return 1

    status = await agent.run()
    print("\nMason shut down cleanly." if status == 0 else f"\nMason stopped with status {status}.")
    return status


def main():
    parser = argparse.ArgumentParser(
        description="Mason: An Autonomous Minecraft Planning Agent"
    )
    parser.add_argument(
        '--config', '-c',
        default='config/settings.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--load-memory', '-m',
        action='store_true',
        help='Resume from saved history and agenda'
    )
    parser.add_argument(
        '--status', '-s',
        action='store_true',
        help='Show current agent status'
    )
    parser.add_argument(
        '--log-level',
        default='INFO',
        help='Logging level (DEBUG, INFO, WARNING, ERROR)'
    )
    parser.add_argument(
        '--base-path',
        default='.',
        help='Base path for agent files'
    )

    args = parser.parse_args()
    setup_logging(args.log_level)

    config = load_config(args.config)

    # Handle status command (doesn't need API key)
    if args.status:
        show_status(config, args.base_path)
        return

    # Everything else needs API key
    check_api_key()

    try:
        status = asyncio.run(run_agent(config, args.base_path, load_memory=args.load_memory))
    except MasonError as e:
        print(f"Error: {e}")
        status = 1
    sys.exit(status)


if __name__ == '__main__':
    main()
