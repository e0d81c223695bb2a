"""
Oracle Output Parsing for Mason

Turns the oracle's free text into typed values: numbered step lists,
per-goal scores, and yes/no answers. Parsers never guess; anything
they cannot read comes back empty so the caller can re-prompt.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class StepKind(Enum):
    """What a plan step asks for."""
    ACTION = "action"   # Must map to exactly one registered command
    LOGIC = "logic"     # Checkpoint: re-assess whether prior actions sufficed


@dataclass(frozen=True)
class Step:
    """One unit of a decomposed plan."""
    kind: StepKind
    text: str

    def __str__(self) -> str:
        if self.kind == StepKind.LOGIC:
            return f"Logic: {self.text}"
        return self.text


NUMBERED_LINE = re.compile(r'^\s*\d+\s*[.)]\s*(.*)$')
TRAILING_EXPLANATION = re.compile(r'\s+[-–]\s+')
SEQUENCING_WORD = re.compile(r'^(?:first|then|next|finally|lastly|afterwards),?\s*', re.IGNORECASE)
LOGIC_PREFIX = re.compile(r'^logic\s*:\s*', re.IGNORECASE)
MAX_STEP_LENGTH = 200


def parse_action_list(text: Optional[str]) -> list[Step]:
    """
    Parse a numbered list into steps.

    ``1. Search for a cow`` becomes an action step; lines starting with
    ``Logic:`` become logic steps. Unnumbered lines are ignored.
    """
    if not text or not isinstance(text, str):
        return []

    steps = []
    for line in text.splitlines():
        match = NUMBERED_LINE.match(line)
        if not match:
            continue
        step_text = TRAILING_EXPLANATION.split(match.group(1))[0]
        step_text = SEQUENCING_WORD.sub('', step_text.strip())
        step_text = step_text.rstrip('.').strip()
        if not step_text or len(step_text) >= MAX_STEP_LENGTH:
            continue

        logic = LOGIC_PREFIX.match(step_text)
        if logic:
            remainder = step_text[logic.end():].strip()
            if remainder:
                steps.append(Step(StepKind.LOGIC, remainder))
        else:
            steps.append(Step(StepKind.ACTION, step_text))
    return steps


GOAL_PREFIX = re.compile(r'^\s*(?:[-*•]\s*|\d+\s*[.)]\s*)?(?:goal\s*:\s*)?', re.IGNORECASE)
SCORE_LINE = re.compile(r'^(.+):\s*(\d+)\s*$')


def normalize_goal(description: str) -> str:
    """Case-folded goal text without list markers or a leading GOAL: token."""
    return GOAL_PREFIX.sub('', description).strip().lower()


def parse_goal_scores(text: Optional[str], goals: list[str]) -> dict[str, int]:
    """
    Read ``description: score`` lines for the given goals.

    Keys of the result are the original goal descriptions. Lines for
    unknown goals or scores outside 0..100 are skipped; if a goal is
    scored twice the first score wins.
    """
    if not text:
        return {}

    by_normalized = {normalize_goal(g): g for g in goals}
    scores: dict[str, int] = {}
    for line in text.splitlines():
        match = SCORE_LINE.match(line.strip())
        if not match:
            continue
        goal = by_normalized.get(normalize_goal(match.group(1)))
        score = int(match.group(2))
        if goal is None or not 0 <= score <= 100:
            continue
        scores.setdefault(goal, score)
    return scores


HEDGING_PREFIX = re.compile(r'^(?:let me|i think|based on|after|given|analysis:|answer:)', re.IGNORECASE)
PUNCTUATION = re.compile(r'[.,!?:;\n\r"\'`*]+')


def normalize_yes_no(text: Optional[str]) -> Optional[str]:
    """
    Reduce an answer to 'yes' or 'no'.

    Matches on substrings, so "Nope" and "Not feasible" both read as
    'no'. Returns None when neither is present, so the caller can
    re-prompt. 'yes' wins if both appear.
    """
    if not text:
        return None
    cleaned = text.strip().lower()
    cleaned = HEDGING_PREFIX.sub('', cleaned)
    cleaned = PUNCTUATION.sub(' ', cleaned).strip()
    if 'yes' in cleaned:
        return 'yes'
    if 'no' in cleaned:
        return 'no'
    return None
