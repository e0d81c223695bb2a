"""
Command Registry for Mason

Maps command names to parameter schemas and handlers, answers
existence queries, and parses command invocations embedded in free
text such as ``I'll grab some wood. !collectBlocks("oak_log", 5)``.
"""

import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from errors import CommandArgumentError, ConfigError, HallucinatedCommandError

logger = logging.getLogger(__name__)


PARAM_TYPES = ('int', 'float', 'string', 'boolean', 'ItemName', 'BlockName')

COMMAND_NAME_PATTERN = re.compile(r'^![a-zA-Z]\w*$')

_ARG = r'(?:-?\d+(?:\.\d+)?|true|false|"[^"]*"|\'[^\']*\')'
COMMAND_PATTERN = re.compile(
    rf'!(\w+)(?:\(\s*({_ARG}(?:\s*,\s*{_ARG})*)?\s*\))?'
)
ARG_PATTERN = re.compile(_ARG)


@dataclass
class CommandParam:
    """A single parameter in a command's schema."""
    name: str
    type: str
    description: str = ""
    # Inclusive numeric bounds, only checked for int/float params
    domain: Optional[tuple[float, float]] = None


@dataclass
class Command:
    """A registered command the agent can invoke."""
    name: str
    description: str
    handler: Callable[..., Any]
    params: list[CommandParam] = field(default_factory=list)
    # Query commands read world state; actions change it
    is_action: bool = True

    def to_doc(self) -> str:
        lines = [f"{self.name}: {self.description}"]
        if self.params:
            lines.append("Params:")
            for p in self.params:
                lines.append(f"{p.name}: ({p.type}) {p.description}")
        return "\n".join(lines)


def contains_command(text: Optional[str]) -> Optional[str]:
    """Return the first ``!name`` token in the text, if any."""
    if not text:
        return None
    match = COMMAND_PATTERN.search(text)
    return f"!{match.group(1)}" if match else None


def trunc_command_message(text: str) -> str:
    """Drop everything after the first command invocation."""
    match = COMMAND_PATTERN.search(text)
    if not match:
        return text
    return text[:match.end()]


def parse_command_message(text: str) -> tuple[str, list[str]]:
    """
    Split an embedded invocation into its name and raw argument tokens.

    Raises HallucinatedCommandError (with no name) when there is no
    invocation at all.
    """
    match = COMMAND_PATTERN.search(text or "")
    if not match:
        raise HallucinatedCommandError(None)
    name = f"!{match.group(1)}"
    raw_args = match.group(2)
    args = ARG_PATTERN.findall(raw_args) if raw_args else []
    return name, args


def _convert_arg(raw: str, param: CommandParam) -> Any:
    value = raw.strip()
    if value[:1] in ('"', "'") and value[-1:] == value[:1]:
        value = value[1:-1]

    if param.type == 'int':
        try:
            converted = int(value)
        except ValueError:
            raise CommandArgumentError(f"Param '{param.name}' must be an integer, got {raw}")
    elif param.type == 'float':
        try:
            converted = float(value)
        except ValueError:
            raise CommandArgumentError(f"Param '{param.name}' must be a number, got {raw}")
    elif param.type == 'boolean':
        if value.lower() not in ('true', 'false'):
            raise CommandArgumentError(f"Param '{param.name}' must be true or false, got {raw}")
        converted = value.lower() == 'true'
    else:
        converted = value

    if param.domain and param.type in ('int', 'float'):
        low, high = param.domain
        if not low <= converted <= high:
            raise CommandArgumentError(
                f"Param '{param.name}' must be between {low} and {high}, got {converted}"
            )
    return converted


class CommandRegistry:
    """
    Catalogue of every command the agent can run.

    Commands are registered once at startup and read-only afterwards.
    Handler invocation is the only place the core touches the world.
    """

    def __init__(self):
        self._commands: dict[str, Command] = {}

    def register(self, command: Command):
        """Register a command, validating its schema."""
        if not COMMAND_NAME_PATTERN.match(command.name):
            raise ConfigError(f"Invalid command name: {command.name!r}")
        if command.name in self._commands:
            raise ConfigError(f"Command {command.name} registered twice")
        if not callable(command.handler):
            raise ConfigError(f"Command {command.name} has no callable handler")
        seen = set()
        for param in command.params:
            if param.type not in PARAM_TYPES:
                raise ConfigError(
                    f"Command {command.name} param '{param.name}' has unknown type {param.type!r}"
                )
            if param.name in seen:
                raise ConfigError(f"Command {command.name} repeats param '{param.name}'")
            seen.add(param.name)
        self._commands[command.name] = command

    def register_all(self, commands: list[Command]):
        for command in commands:
            self.register(command)

    def exists(self, name: Optional[str]) -> bool:
        return bool(name) and name in self._commands

    def get(self, name: str) -> Optional[Command]:
        return self._commands.get(name)

    def names(self) -> list[str]:
        return list(self._commands)

    def is_action(self, name: str) -> bool:
        command = self._commands.get(name)
        return bool(command and command.is_action)

    def get_command_docs(self) -> str:
        """Catalogue text injected into prompts."""
        docs = "\n".join(c.to_doc() for c in self._commands.values())
        return (
            "*COMMAND DOCS\n"
            "You can use the following commands to perform actions and get information about the world.\n"
            "Use the commands with the syntax: !commandName or !commandName(\"arg1\", 1.2, ...) if the command takes arguments.\n"
            "Do not use codeblocks. Only use one command in each response, trailing commands and comments will be ignored.\n"
            f"{docs}\n*"
        )

    def parse(self, message: str) -> tuple[Command, list[Any]]:
        """Resolve and type-check the invocation embedded in a message."""
        name, raw_args = parse_command_message(message)
        command = self._commands.get(name)
        if command is None:
            raise HallucinatedCommandError(name)
        if len(raw_args) != len(command.params):
            raise CommandArgumentError(
                f"Command {name} was given {len(raw_args)} args, but requires {len(command.params)} args."
            )
        args = [_convert_arg(raw, param) for raw, param in zip(raw_args, command.params)]
        return command, args

    async def execute(self, agent, message: str) -> Optional[str]:
        """
        Run the command embedded in the message.

        Argument problems come back as text so the oracle can correct
        itself; an unregistered name raises HallucinatedCommandError.
        """
        try:
            command, args = self.parse(message)
        except CommandArgumentError as e:
            logger.warning("Bad command arguments in %r: %s", message, e)
            return f"Error: {e}"

        result = command.handler(agent, *args)
        if inspect.isawaitable(result):
            result = await result
        return result
