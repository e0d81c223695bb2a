"""
Goal Management for Mason

Handles the agenda of candidate goals and the planner that re-scores
it against the current world context at the start of every cycle.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from errors import GoalScoringError
from parsing import normalize_goal, parse_goal_scores
from prompts import GOAL_SCORE_PROMPT, GOAL_SCORE_REMINDER, format_last_goals

logger = logging.getLogger(__name__)


@dataclass
class Goal:
    """A candidate goal and its latest score (0-100)."""
    description: str
    score: int = 0

    def to_dict(self) -> dict:
        return {'description': self.description, 'score': self.score}

    @classmethod
    def from_dict(cls, d: dict) -> 'Goal':
        return cls(description=d['description'], score=int(d.get('score', 0)))


@dataclass
class GoalOutcome:
    """How a goal cycle ended."""
    goal: str
    achieved: bool
    summary: str = ""

    def to_dict(self) -> dict:
        return {'goal': self.goal, 'achieved': self.achieved, 'summary': self.summary}

    @classmethod
    def from_dict(cls, d: dict) -> 'GoalOutcome':
        return cls(**d)


def sort_agenda(agenda: list[Goal]) -> list[Goal]:
    """Highest score first; equal scores keep their agenda order."""
    return sorted(agenda, key=lambda g: g.score, reverse=True)


def dedupe_agenda(agenda: list[Goal]) -> list[Goal]:
    """Drop goals whose normalized description repeats an earlier one."""
    seen = set()
    unique = []
    for goal in agenda:
        key = normalize_goal(goal.description)
        if key in seen:
            logger.warning("Dropping duplicate goal: %s", goal.description)
            continue
        seen.add(key)
        unique.append(goal)
    return unique


def format_agenda(agenda: list[Goal]) -> str:
    return "\n".join(f"- {g.description}: {g.score}" for g in agenda)


class GoalPlanner:
    """
    Scores the agenda and picks the next goal.

    The agenda is replaced wholesale each cycle. Every goal that went in
    comes out with a score, or the cycle fails with GoalScoringError.
    """

    def __init__(
        self,
        prompter,
        recall: Callable[[str], Awaitable[str]],
        state_path: str,
        max_attempts: int = 10
    ):
        self.prompter = prompter
        self.recall = recall
        self.state_path = Path(state_path)
        self.max_attempts = max_attempts

    async def build_goal_prompt(self, last_goals: list[GoalOutcome], agenda: list[Goal], context: str) -> str:
        """Agenda with prior scores and per-goal memories, then the cycle context."""
        prompt_context = f"__GOALS OF LAST CYCLES__\n{format_last_goals(last_goals)}"
        prompt_context += context

        sections = ["__AGENDA__\n"]
        for goal in agenda:
            memories = await self.recall(goal.description + prompt_context)
            sections.append(f"GOAL:{goal.description}: {goal.score}")
            sections.append(f"GOAL SIMILAR MEMORIES: \n{memories}\n")
        sections.append(prompt_context)
        return "\n".join(sections)

    async def score_goals(self, goal_prompt: str, goals: list[str]) -> dict[str, int]:
        """
        Ask the oracle for a score per goal.

        Missing goals are listed in a reminder appended to the prompt
        before each retry.
        """
        prompt = GOAL_SCORE_PROMPT.format(goal_prompt=goal_prompt)
        missing = list(goals)
        response = None

        for attempt in range(1, self.max_attempts + 1):
            response = await self.prompter.send(prompt)
            scores = parse_goal_scores(response, goals)
            missing = [g for g in goals if g not in scores]
            if not missing:
                return scores
            logger.info("Missing scores for goals (attempt %d): %s", attempt, missing)
            prompt += GOAL_SCORE_REMINDER.format(missing="\n".join(missing))

        raise GoalScoringError(missing=missing, attempts=self.max_attempts, last_response=response)

    async def select_goal(
        self,
        last_goals: list[GoalOutcome],
        agenda: list[Goal],
        context: str
    ) -> tuple[str, list[Goal]]:
        """Re-score the agenda and return (top goal, new agenda)."""
        if not agenda:
            raise ValueError("Cannot select a goal from an empty agenda")

        goal_prompt = await self.build_goal_prompt(last_goals, agenda, context)
        scores = await self.score_goals(goal_prompt, [g.description for g in agenda])

        new_agenda = sort_agenda([Goal(g.description, scores[g.description]) for g in agenda])
        self.save_state(new_agenda)

        logger.info("New agenda:\n%s", format_agenda(new_agenda))
        return new_agenda[0].description, new_agenda

    def save_state(self, agenda: list[Goal]):
        """Save agenda to file."""
        data = {'agenda': [g.to_dict() for g in agenda]}
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(json.dumps(data, indent=2))

    def load_state(self) -> Optional[list[Goal]]:
        """Load the saved agenda, if any."""
        if not self.state_path.exists():
            return None
        data = json.loads(self.state_path.read_text())
        return dedupe_agenda([Goal.from_dict(g) for g in data.get('agenda', [])])
