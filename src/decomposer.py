"""
Action Decomposition for Mason

Breaks a goal into an ordered list of steps, and breaks an infeasible
step into finer ones. Both calls insist on a well-formed numbered list
and re-prompt, within a bound, until they get one.
"""

import logging

from errors import OracleFormatError
from parsing import Step, parse_action_list
from prompts import ACTION_LIST_PROMPT, BREAKDOWN_CORRECTION, BREAKDOWN_PROMPT, format_steps

logger = logging.getLogger(__name__)

MIN_REFINEMENT_STEPS = 1
MAX_REFINEMENT_STEPS = 10


class ActionDecomposer:
    """Turns goals and coarse steps into executable plans."""

    def __init__(self, prompter, registry, action_list_attempts: int = 5, refine_attempts: int = 2):
        self.prompter = prompter
        self.registry = registry
        self.action_list_attempts = action_list_attempts
        self.refine_attempts = refine_attempts

    async def decompose(self, goal: str, context: str) -> list[Step]:
        """
        Initial plan for a goal.

        The same prompt is re-sent until at least one step parses.
        """
        prompt = ACTION_LIST_PROMPT.format(
            context=f"GOAL: {goal}{context}",
            command_docs=self.registry.get_command_docs()
        )
        response = None
        for attempt in range(1, self.action_list_attempts + 1):
            response = await self.prompter.send(prompt)
            steps = parse_action_list(response)
            if steps:
                logger.info("Action list for %r:\n%s", goal, format_steps(steps))
                return steps
            logger.info("Action list attempt %d had no parsable steps", attempt)

        raise OracleFormatError(
            f"No action list for goal {goal!r} after {self.action_list_attempts} attempts",
            attempts=self.action_list_attempts,
            last_response=response
        )

    async def refine(self, step: str, preceding_log: list, following_steps: list[Step]) -> list[Step]:
        """
        Break one step into 1-10 finer steps.

        A malformed answer gets a correction appended to the same
        prompt rather than a fresh prompt.
        """
        prompt = BREAKDOWN_PROMPT.format(
            action=step,
            previous=format_steps(preceding_log),
            following=format_steps(following_steps),
            command_docs=self.registry.get_command_docs()
        )
        response = None
        for attempt in range(1, self.refine_attempts + 1):
            response = await self.prompter.send(prompt)
            steps = parse_action_list(response)
            if MIN_REFINEMENT_STEPS <= len(steps) <= MAX_REFINEMENT_STEPS:
                logger.info("Broke down step into:\n%s", format_steps(steps))
                return steps
            logger.info("Breakdown attempt %d returned %d steps", attempt, len(steps))
            prompt += BREAKDOWN_CORRECTION

        raise OracleFormatError(
            f"Could not break down step after {self.refine_attempts} attempts",
            attempts=self.refine_attempts,
            last_response=response
        )
