"""
Tests for the oracle interface module.
"""

import asyncio
import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from history import Turn
from llm import AnthropicOracle, LLMResponse, Prompter, turns_to_messages
from prompts import PromptProviders


def make_providers(**values):
    """Providers that return fixed text, defaulting to the placeholder name."""
    fields = ['name', 'stats', 'inventory', 'command_docs', 'memory',
              'convo', 'to_summarize', 'last_goals', 'blueprints']

    def provider(text):
        async def get():
            return text
        return get

    return PromptProviders(**{f: provider(values.get(f, f.upper())) for f in fields})


class TestLLMResponse:
    """Tests for the LLMResponse dataclass."""

    def test_response_creation(self):
        response = LLMResponse(
            content="Test response",
            input_tokens=100,
            output_tokens=50,
            latency_ms=1234.5,
            model="claude-sonnet-4-20250514",
            stop_reason="end_turn"
        )
        assert response.content == "Test response"
        assert response.input_tokens == 100
        assert response.output_tokens == 50


class TestTurnsToMessages:
    """Tests for converting history turns to chat messages."""

    def test_roles(self):
        turns = [Turn("steve", "hi"), Turn("andy", "hello")]
        assert turns_to_messages(turns, "andy") == [
            {"role": "user", "content": "steve: hi"},
            {"role": "assistant", "content": "hello"},
        ]

    def test_consecutive_same_role_merged(self):
        turns = [Turn("steve", "hi"), Turn("system", "Collected 3 oak_log.")]
        messages = turns_to_messages(turns, "andy")
        assert messages == [{"role": "user", "content": "steve: hi\nsystem: Collected 3 oak_log."}]

    def test_leading_assistant_gets_user_opener(self):
        messages = turns_to_messages([Turn("andy", "I'm back")], "andy")
        assert messages[0] == {"role": "user", "content": "(conversation start)"}
        assert messages[1]["role"] == "assistant"

    def test_empty(self):
        assert turns_to_messages([], "andy") == []


class TestAnthropicOracle:
    """Tests for the Anthropic backend."""

    def _mock_response(self, text="!stats"):
        response = MagicMock()
        response.content = [MagicMock(text=text)]
        response.usage.input_tokens = 100
        response.usage.output_tokens = 10
        response.stop_reason = "end_turn"
        return response

    @patch('llm.anthropic.AsyncAnthropic')
    def test_send_with_turns(self, mock_anthropic):
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=self._mock_response("hello"))
        mock_anthropic.return_value = mock_client

        oracle = AnthropicOracle("andy", model="test-model")
        text = asyncio.run(oracle.send_request([Turn("steve", "hi")], "You are andy."))

        assert text == "hello"
        kwargs = mock_client.messages.create.call_args[1]
        assert kwargs["system"] == "You are andy."
        assert kwargs["messages"] == [{"role": "user", "content": "steve: hi"}]
        assert kwargs["model"] == "test-model"
        assert oracle.last_response.output_tokens == 10

    @patch('llm.anthropic.AsyncAnthropic')
    def test_send_without_turns(self, mock_anthropic):
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=self._mock_response())
        mock_anthropic.return_value = mock_client

        oracle = AnthropicOracle("andy")
        asyncio.run(oracle.send_request([], "Score these goals."))

        kwargs = mock_client.messages.create.call_args[1]
        assert "system" not in kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "Score these goals."}]


class TestPrompter:
    """Tests for the Prompter class."""

    def test_send_goes_through_oracle(self, scripted_oracle):
        oracle = scripted_oracle(["yes"])
        prompter = Prompter(oracle, {'name': 'andy'})

        assert asyncio.run(prompter.send("Is it day?")) == "yes"
        assert oracle.prompts == ["Is it day?"]
        assert oracle.turns == [[]]
        assert prompter.gate.stats.requests == 1

    def test_concurrent_sends_serialized(self, scripted_oracle):
        oracle = scripted_oracle(["ok"])
        prompter = Prompter(oracle, {'name': 'andy'})

        async def run():
            await asyncio.gather(*(prompter.send(f"prompt {i}") for i in range(6)))

        asyncio.run(run())
        assert oracle.calls == 6
        assert oracle.max_in_flight == 1

    def test_render_uses_only_needed_providers(self, scripted_oracle):
        prompter = Prompter(scripted_oracle(["ok"]), {'name': 'andy'})
        stats = AsyncMock(return_value="health 20")
        providers = make_providers(name="andy")
        providers.stats = stats
        prompter.bind_providers(providers)

        text = asyncio.run(prompter.render("I am $NAME."))

        assert text == "I am andy."
        stats.assert_not_called()

    def test_render_override_wins(self, scripted_oracle):
        prompter = Prompter(scripted_oracle(["ok"]), {'name': 'andy'})
        convo = AsyncMock(return_value="from provider")
        providers = make_providers()
        providers.convo = convo
        prompter.bind_providers(providers)

        text = asyncio.run(prompter.render("$CONVO", convo="from override"))

        assert text == "from override"
        convo.assert_not_called()

    def test_prompt_convo(self, scripted_oracle):
        oracle = scripted_oracle(["hey steve"])
        profile = {'name': 'andy', 'conversing': "You are $NAME.\n$CONVO"}
        prompter = Prompter(oracle, profile)
        prompter.bind_providers(make_providers(name="andy"))
        turns = [Turn("steve", "hi andy")]

        reply = asyncio.run(prompter.prompt_convo(turns))

        assert reply == "hey steve"
        assert oracle.prompts[0] == "You are andy.\nRecent conversation:\nsteve: hi andy"
        assert oracle.turns[0] == turns

    def test_prompt_mem_saving(self, scripted_oracle):
        oracle = scripted_oracle(["steve likes wood"])
        profile = {'name': 'andy', 'saving_memory': "Old: $MEMORY\n$TO_SUMMARIZE"}
        prompter = Prompter(oracle, profile)
        prompter.bind_providers(make_providers(memory="nothing yet"))

        summary = asyncio.run(prompter.prompt_mem_saving([Turn("steve", "get wood")]))

        assert summary == "steve likes wood"
        assert oracle.prompts[0] == "Old: nothing yet\nsteve: get wood"

    def test_cooldown_from_profile(self, scripted_oracle):
        prompter = Prompter(scripted_oracle(["ok"]), {'name': 'andy', 'cooldown_seconds': 2.5})
        assert prompter.gate.cooldown == 2.5
