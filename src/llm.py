"""
Oracle Interface for Mason

The oracle is anything that turns (prior turns, system prompt) into
text. The Anthropic backend talks to Claude; the Prompter wraps any
oracle with the agent's cooldown gate and renders profile prompts.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import anthropic

from history import Turn, format_turns
from pacing import CooldownGate
from prompts import (
    Placeholder, PromptProviders, render_prompt, resolve_placeholders
)

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Structured response from the LLM."""
    content: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    model: str
    stop_reason: str


class Oracle(ABC):
    """Send a prompt, get back text. Must be safe to retry."""

    @abstractmethod
    async def send_request(self, turns: list[Turn], system_prompt: str) -> str:
        ...


def turns_to_messages(turns: list[Turn], agent_name: str) -> list[dict]:
    """
    Convert turns to alternating user/assistant messages.

    The agent's own turns become assistant messages; everyone else is
    a user message prefixed with the speaker. Consecutive turns from
    the same side are merged.
    """
    messages = []
    for turn in turns:
        if turn.speaker == agent_name:
            role, content = "assistant", turn.text
        else:
            role, content = "user", f"{turn.speaker}: {turn.text}"
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += "\n" + content
        else:
            messages.append({"role": role, "content": content})
    # The conversation has to open with a user message
    if messages and messages[0]["role"] == "assistant":
        messages.insert(0, {"role": "user", "content": "(conversation start)"})
    return messages


class AnthropicOracle(Oracle):
    """Oracle backed by Claude."""

    def __init__(
        self,
        agent_name: str,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 2048,
        temperature: float = 1.0
    ):
        self.client = anthropic.AsyncAnthropic(
            api_key=os.environ.get("ANTHROPIC_API_KEY")
        )
        self.agent_name = agent_name
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.last_response: Optional[LLMResponse] = None

    async def send_request(self, turns: list[Turn], system_prompt: str) -> str:
        """
        Send a request to Claude.

        With no prior turns the system prompt itself is the user message.
        """
        start_time = time.time()

        messages = turns_to_messages(turns, self.agent_name)
        kwargs = {}
        if messages:
            kwargs["system"] = system_prompt
        else:
            messages = [{"role": "user", "content": system_prompt}]

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=messages,
            temperature=self.temperature,
            **kwargs
        )

        latency_ms = (time.time() - start_time) * 1000
        self.last_response = LLMResponse(
            content=response.content[0].text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            latency_ms=latency_ms,
            model=self.model,
            stop_reason=response.stop_reason
        )
        logger.debug(
            "Oracle answered in %.0fms (%d in / %d out tokens)",
            latency_ms, response.usage.input_tokens, response.usage.output_tokens
        )
        return self.last_response.content


class Prompter:
    """
    The agent's only path to the oracle.

    Every request, whether from the planner, decomposer, feasibility
    gate, resolver or message loop, goes through the same cooldown gate.
    """

    def __init__(self, oracle: Oracle, profile: dict, gate: Optional[CooldownGate] = None):
        self.oracle = oracle
        self.profile = profile
        self.gate = gate or CooldownGate(profile.get('cooldown_seconds', 0))
        self.providers: Optional[PromptProviders] = None

    @property
    def name(self) -> str:
        return self.profile['name']

    def bind_providers(self, providers: PromptProviders):
        self.providers = providers

    async def send(self, system_prompt: str, turns: Optional[list[Turn]] = None) -> str:
        """Send one gated request."""
        async with self.gate.slot():
            return await self.oracle.send_request(list(turns or []), system_prompt)

    async def render(self, template: str, **overrides: str) -> str:
        """
        Render a profile prompt.

        Keyword overrides (keyed by lowercase placeholder name) take
        precedence over the bound providers.
        """
        values = {Placeholder[key.upper()]: value for key, value in overrides.items()}
        if self.providers is not None:
            resolved = await resolve_placeholders(template, self.providers, skip=set(values))
            values.update(resolved)
        return render_prompt(template, values)

    async def prompt_convo(self, turns: list[Turn]) -> str:
        """Conversational reply to the current history."""
        system_prompt = await self.render(
            self.profile['conversing'],
            convo='Recent conversation:\n' + format_turns(turns)
        )
        return await self.send(system_prompt, turns)

    async def prompt_mem_saving(self, to_summarize: list[Turn]) -> str:
        """Summarize turns into the agent's running memory."""
        template = self.profile.get('saving_memory') or (
            "You are a minecraft bot named $NAME. Update your memory by summarizing the "
            "following conversation and your old memory in under 500 characters.\n"
            "Old memory: $MEMORY\n$TO_SUMMARIZE"
        )
        system_prompt = await self.render(template, to_summarize=format_turns(to_summarize))
        return await self.send(system_prompt)
