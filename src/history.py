"""
Conversation History for Mason

The append-only log of turns the agent has seen and said. Turns feed
every conversational prompt in chronological order and are persisted
to the agent's state directory after each turn.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional

import tiktoken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Turn:
    """A single entry in the history. Immutable once appended."""
    speaker: str
    text: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {'speaker': self.speaker, 'text': self.text, 'timestamp': self.timestamp}

    @classmethod
    def from_dict(cls, d: dict) -> 'Turn':
        return cls(**d)


def format_turns(turns: list[Turn]) -> str:
    """Render turns as prompt text."""
    return "\n".join(f"{t.speaker}: {t.text}" for t in turns)


class History:
    """
    Ordered, append-only sequence of turns.

    Nothing here reorders or drops turns except summarize(), which
    replaces the oldest chunk with a summary produced by an explicit
    summarizer collaborator.
    """

    def __init__(
        self,
        agent_name: str,
        state_path: str,
        max_messages: int = 15,
        max_tokens: int = 6000,
        summary_chunk: int = 5
    ):
        self.agent_name = agent_name
        self.state_path = Path(state_path)
        self.max_messages = max_messages
        self.max_tokens = max_tokens
        self.summary_chunk = summary_chunk

        self._turns: list[Turn] = []
        self.memory = ""  # Running summary of turns that were summarized away
        self.last_goals: list[dict] = []

        try:
            self.tokenizer = tiktoken.get_encoding("cl100k_base")
        except Exception:
            self.tokenizer = None

    def add(self, speaker: str, text: str) -> Turn:
        """Append a turn. The same content added twice produces two turns."""
        turn = Turn(speaker=speaker, text=text)
        self._turns.append(turn)
        return turn

    def turns(self) -> list[Turn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def estimate_tokens(self) -> int:
        text = format_turns(self._turns)
        if self.tokenizer:
            return len(self.tokenizer.encode(text))
        # Fallback: rough estimate
        return len(text) // 4

    def needs_summary(self) -> bool:
        """Whether the log has grown past its message or token budget."""
        if len(self._turns) > self.max_messages:
            return True
        return self.estimate_tokens() > self.max_tokens

    async def summarize(self, summarizer: Callable[[list[Turn]], Awaitable[str]]) -> Optional[str]:
        """
        Replace the oldest chunk of turns with a summary.

        The summarizer receives the chunk and returns the new memory text.
        Turns are only removed once the summarizer succeeds.
        """
        if not self._turns:
            return None
        chunk = self._turns[:self.summary_chunk]
        summary = await summarizer(chunk)
        self.memory = summary.strip()
        del self._turns[:len(chunk)]
        logger.info("Summarized %d oldest turns into memory", len(chunk))
        return self.memory

    def save(self):
        """Persist history to the state file."""
        data = {
            'name': self.agent_name,
            'memory': self.memory,
            'turns': [t.to_dict() for t in self._turns],
            'last_goals': self.last_goals
        }
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(json.dumps(data, indent=2))

    def load(self) -> Optional[dict]:
        """
        Reload history from the state file.

        Returns the raw saved data, or None if nothing was saved yet.
        """
        if not self.state_path.exists():
            return None
        data = json.loads(self.state_path.read_text())
        self.memory = data.get('memory', '')
        self._turns = [Turn.from_dict(t) for t in data.get('turns', [])]
        self.last_goals = data.get('last_goals', [])
        logger.info("Loaded %d turns from %s", len(self._turns), self.state_path)
        return data
