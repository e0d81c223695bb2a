"""
Command Resolution for Mason

Turns a natural-language step into one concrete command invocation and
runs it. Hallucinated command names are fed back to the oracle as
warnings; past the retry ceiling the step is handed to the agent's
conversational handler instead of failing the cycle.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from commands import contains_command, trunc_command_message
from errors import HallucinatedCommandError
from prompts import COMMAND_PROMPT, HALLUCINATION_WARNING

logger = logging.getLogger(__name__)


@dataclass
class ActionLogEntry:
    """What one step became and what it produced."""
    step: object
    command_invocation: Optional[str]
    result: Optional[str]

    def __str__(self) -> str:
        if self.command_invocation is None:
            return str(self.step)
        return f"{self.step} -> {self.command_invocation}: {self.result}"

    def to_dict(self) -> dict:
        return {
            'step': str(self.step),
            'command_invocation': self.command_invocation,
            'result': self.result
        }


@dataclass
class Resolution:
    """Outcome of resolving a step to a command."""
    command_name: Optional[str]
    message: Optional[str]
    # True when the resolver gave up and the conversational loop handled it
    escalated: bool = False


class CommandExecutor:
    """Resolves steps to registered commands and dispatches them."""

    def __init__(self, prompter, registry, agent, max_attempts: int = 10, verbose_commands: bool = False):
        self.prompter = prompter
        self.registry = registry
        self.agent = agent
        self.max_attempts = max_attempts
        self.verbose_commands = verbose_commands

    async def resolve(self, action_context: str) -> Resolution:
        """
        Ask the oracle which command performs the step.

        Makes at most max_attempts oracle calls. Every miss appends a
        warning naming the bad command to the same prompt.
        """
        prompt = COMMAND_PROMPT.format(
            action_context=action_context,
            command_docs=self.registry.get_command_docs()
        )

        for attempt in range(1, self.max_attempts + 1):
            response = await self.prompter.send(prompt)
            command_name = contains_command(response)
            if command_name and self.registry.exists(command_name):
                return Resolution(command_name, trunc_command_message(response))

            logger.info("Hallucinated command (attempt %d): %s", attempt, command_name or response)
            prompt += HALLUCINATION_WARNING.format(command_name=command_name or response.strip())

        logger.warning("No valid command after %d attempts, handing step to conversation", self.max_attempts)
        await self.agent.handle_message("system", prompt, max_responses=5)
        return Resolution(None, None, escalated=True)

    async def dispatch(self, message: str) -> Optional[str]:
        """Narrate the command into chat, then run it under the executing lock."""
        command_name = contains_command(message)
        if not command_name:
            raise HallucinatedCommandError(None)

        if self.verbose_commands:
            await self.agent.chat(message)
        else:
            pre_message = message[:message.index(command_name)].strip()
            chat_message = f"*used {command_name[1:]}*"
            if pre_message:
                chat_message = f"{pre_message} {chat_message}"
            await self.agent.chat(chat_message)

        async with self.agent.state.executing_action():
            result = await self.registry.execute(self.agent, message)
        logger.info("%s -> %s", command_name, result)
        return result

    async def execute_step(self, action_context: str) -> tuple[Optional[str], Optional[str]]:
        """Resolve and run one step; returns (invocation, result)."""
        resolution = await self.resolve(action_context)
        if resolution.escalated:
            return None, None
        result = await self.dispatch(resolution.message)
        return resolution.message, result
