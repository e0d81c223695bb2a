"""
Feasibility Gate for Mason

Before a step is dispatched, the oracle is asked whether it maps onto
one available command. A "no" sends the step back to the decomposer
and the gate returns the finer steps that should replace it.
"""

import logging
from dataclasses import dataclass, field

from errors import OracleFormatError
from parsing import Step, StepKind, normalize_yes_no
from prompts import FEASIBILITY_PROMPT, YES_NO_CORRECTION, format_steps

logger = logging.getLogger(__name__)


@dataclass
class FeasibilityResult:
    """Verdict for one step."""
    feasible: bool
    refinement: list[Step] = field(default_factory=list)


class FeasibilityGate:
    """Validates steps against the command catalogue."""

    def __init__(self, prompter, registry, decomposer, max_attempts: int = 5):
        self.prompter = prompter
        self.registry = registry
        self.decomposer = decomposer
        self.max_attempts = max_attempts

    async def ask(self, prompt: str) -> str:
        """
        Ask a yes/no question until the answer normalizes.

        Each invalid answer appends a correction to the prompt.
        """
        response = None
        for attempt in range(1, self.max_attempts + 1):
            response = await self.prompter.send(prompt)
            answer = normalize_yes_no(response)
            if answer is not None:
                return answer
            logger.info("Invalid yes/no answer (attempt %d): %r", attempt, response)
            prompt += YES_NO_CORRECTION

        raise OracleFormatError(
            f"No yes/no answer after {self.max_attempts} attempts",
            attempts=self.max_attempts,
            last_response=response
        )

    async def check(
        self,
        step: Step,
        action_context: str,
        preceding_log: list,
        following_steps: list[Step]
    ) -> FeasibilityResult:
        """
        Decide whether a step can run as-is.

        Logic checkpoints are not gated yet: they always pass and are
        never decomposed.
        """
        if step.kind == StepKind.LOGIC:
            return FeasibilityResult(feasible=True)

        prompt = FEASIBILITY_PROMPT.format(
            action=action_context,
            previous=format_steps(preceding_log),
            following=format_steps(following_steps),
            command_docs=self.registry.get_command_docs()
        )
        answer = await self.ask(prompt)
        if answer == 'yes':
            return FeasibilityResult(feasible=True)

        logger.info("Step not feasible, breaking down: %s", step)
        refinement = await self.decomposer.refine(action_context, preceding_log, following_steps)
        return FeasibilityResult(feasible=False, refinement=refinement)
