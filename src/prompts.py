"""
Prompt Templates for Mason

Holds the fixed prompts for each planning call and the placeholder
renderer used for profile prompts. Rendering is a pure function over a
closed set of placeholders; the values come from typed providers that
the Prompter resolves beforehand.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Placeholder(Enum):
    """Every placeholder a profile prompt may contain."""
    NAME = "$NAME"
    STATS = "$STATS"
    INVENTORY = "$INVENTORY"
    COMMAND_DOCS = "$COMMAND_DOCS"
    MEMORY = "$MEMORY"
    TO_SUMMARIZE = "$TO_SUMMARIZE"
    CONVO = "$CONVO"
    LAST_GOALS = "$LAST_GOALS"
    BLUEPRINTS = "$BLUEPRINTS"


PLACEHOLDER_PATTERN = re.compile(r'\$[A-Z_]+')

# Longest first so $TO_SUMMARIZE is never split by a shorter token
_BY_LENGTH = sorted(Placeholder, key=lambda p: len(p.value), reverse=True)


Provider = Callable[[], Awaitable[str]]


@dataclass
class PromptProviders:
    """Where each placeholder's text comes from."""
    name: Provider
    stats: Provider
    inventory: Provider
    command_docs: Provider
    memory: Provider
    convo: Provider
    to_summarize: Provider
    last_goals: Provider
    blueprints: Provider

    def for_placeholder(self, placeholder: Placeholder) -> Provider:
        return getattr(self, placeholder.name.lower())


def required_placeholders(template: str) -> list[Placeholder]:
    """Placeholders present in the template, in enum order."""
    return [p for p in Placeholder if p.value in template]


def render_prompt(template: str, values: dict[Placeholder, str]) -> str:
    """
    Substitute placeholder values into a template.

    Placeholders without a value are left as-is. Unknown ``$UPPER``
    tokens are reported and left intact.
    """
    prompt = template
    for placeholder in _BY_LENGTH:
        if placeholder in values:
            prompt = prompt.replace(placeholder.value, values[placeholder])

    known = {p.value for p in Placeholder}
    unknown = [t for t in PLACEHOLDER_PATTERN.findall(prompt) if t not in known]
    if unknown:
        logger.warning("Unknown prompt placeholders: %s", ", ".join(unknown))
    return prompt


async def resolve_placeholders(
    template: str,
    providers: PromptProviders,
    skip: Optional[set] = None
) -> dict[Placeholder, str]:
    """Fetch values only for the placeholders the template uses."""
    values = {}
    for placeholder in required_placeholders(template):
        if skip and placeholder in skip:
            continue
        values[placeholder] = await providers.for_placeholder(placeholder)()
    return values


def format_last_goals(outcomes: list) -> str:
    """Describe recent goal outcomes for $LAST_GOALS."""
    lines = []
    for outcome in outcomes:
        if outcome.achieved:
            lines.append(f"You recently successfully completed the goal {outcome.goal}.")
        else:
            lines.append(f"You recently failed to complete the goal {outcome.goal}.")
    return "\n".join(lines)


def format_steps(steps: list) -> str:
    """Render steps (or action log entries) one per line."""
    return "\n".join(str(s) for s in steps)


GOAL_SCORE_PROMPT = """You are playing minecraft, score the importance and feasibility of each goal below by considering your current status and surroundings.

IMPORTANT: You must attribute a score to each goal with a number between 0 and 100, where:
- 0 means completely impossible or irrelevant
- 50 means moderately important and feasible
- 100 means urgent and extremely important

Rules for scoring:
1. Consider both importance AND feasibility
2. Higher scores for goals that:
   - Match the bot's current needs
   - Are achievable with more attainable resources: give priority to goals that are achievable with items in your inventory, then with the surrounding blocks, then close saved locations, then biome, then other saved locations.
   - Are prerequisites for other goals
   - Have an approaching deadline
3. Lower scores for goals that:
   - Require unavailable resources, or resources that are stored further away than for other goals
   - Are too complex for the current situation
   - Are less urgent

FORMAT: For each goal STRICTLY respond with EXACTLY this format:

goal description: score

DO NOT use any symbols, numbers, or bullet points like:
- goal description: score
1. goal description: score
* goal description: score


__CONTEXT AND GOALS__

{goal_prompt}"""

GOAL_SCORE_REMINDER = "\n\nPlease provide scores for ALL goals. Missing scores for:\n{missing}"


ACTION_LIST_PROMPT = """You are playing minecraft and need to break down a given goal into simple steps to execute one after another in minecraft to achieve the goal.
Each step should be written in natural language but achievable using only one of the given commands, do not combine them or create new ones.
You have no limit of steps, but a limit of 2000 tokens for your output.
If you require a step for analyzing your current situation, such as the progress of a certain part of the goal, start the line with "Logic: "
Be as detailed as possible for each step and be sure to analyse the given context when thinking about how to achieve the goal and the conditions for each step you are coming up with.

GOAL TO ACHIEVE:
{context}

FORMAT YOUR RESPONSE AS:
1. Clear action in natural language
2. Next clear action in natural language
3. Following clear action in natural language

EXAMPLE:
GOAL : Eat food to heal and fill hunger bar

important context you have selected from all the context given the goal :
- 10/20 Health
- 13/20 Hunger
- No food in inventory
- Cows nearby
- No nearby oven
- No beef in inventory
- No oak logs in inventory but block available nearby
- No coal in inventory
- 21 blocks of cobble stone in inventory

Expected answer :
1. Search for a cow
2. Move near cow
3. Kill cow
4. Pick up dropped items
5. Logic: Verify if enough raw beef has been collected to fill health and hunger bars or if hunger is too low to sprint, else repeat actions
6. Collect oak logs for crafting table and burning fuel
7. Craft crafting table
8. Place crafting table
9. Craft oven
10. Place oven
11. Place uncooked beef and planks in oven
12. Wait for beef to cook and collect cooked beef
13. Eat beef
14. Logic: Verify if bars are filled up, else repeat actions

Bad answer :
1. Search for a cow
2. Kill cow
3. Cook meat
4. If there are no cows nearby, search for a pig
5. Kill pig
6. Cook meat
7. Eat cooked meat

The bad answer has the following problems:
- The steps are not clear enough to be executed and need to be broken down into simpler steps
- The steps are not in chronological order, the verification of nearby cows should be done before killing them
- You could verify if you have enough food at the end

WHEN TO USE "Logic:"
- Use "Logic:" when you want to verify if your previous actions were enough or need to be repeated but only in this format
- Use "Logic:" when you want to analyse if the following actions are necessary
- Use "Logic:" when you want to analyse if the conditions for the following actions are met

WRITING RULES
- Write each step in natural language that maps to ONE available command
- Do NOT write the commands, your goal is to explain the action in natural language
- Start each line with a number and period
- Be specific about blocks, items, and locations
- Keep steps in chronological order
- Write complete, clear actions
- Do not add Action: for regular actions
- Avoid repeating the same action multiple times in a row. You can use Logic: to verify if a repeat of the previous actions are still needed
- NO additional text or explanations

Available commands for reference:
{command_docs}

Now list ONLY the numbered steps needed to achieve the goal above. NO other text."""


FEASIBILITY_PROMPT = """You are charged with evaluating if the current action can be executed using the available commands so that a minecraft bot can perform said action.
You are given a list of commands that the bot can use to perform actions.
You need to determine if the action can be performed using any of the commands given.
You are given the actions that have already been performed under PREVIOUS ACTIONS and the actions that are still to be performed under FOLLOWING ACTIONS.

Say 'yes' if:
- The prompt could be executed using a command from the list
- The intent is clear enough to map to a command

Say 'no' if:
- The prompt doesn't have any available command that seems to be able to execute it

CURRENT ACTION AND CONTEXT:
{action}

PREVIOUS ACTIONS:
{previous}

FOLLOWING ACTIONS:
{following}


EXAMPLE:
GOAL : Eat food to heal and fill hunger bar

CURRENT ACTION AND CONTEXT:
craft oven and cook beef

PREVIOUS ACTIONS:
Search for a cow
Move near cow
Kill cow
Pick up dropped items
Logic: Verify if enough raw beef has been collected to fill health and hunger bars or if hunger is too low to sprint, else repeat actions
Collect oak logs for crafting table and burning fuel
Craft crafting table
Place crafting table

FOLLOWING ACTIONS:
Eat beef
Logic: Verify if bars are filled up, else repeat actions

Expected answer :
no

Bad answer :
yes

AVAILABLE COMMANDS:
{command_docs}

Answer with ONLY 'yes' or 'no'."""

YES_NO_CORRECTION = """

Your last answer was invalid. You MUST respond with ONLY the single word 'yes' or 'no'.
Do not add any explanation, punctuation, or additional text.
Response must be exactly 'yes' or 'no'."""


BREAKDOWN_PROMPT = """You are tasked with breaking down the following action further down into simpler actions so that it can be realised with the available commands.
You are given a list of commands that will be needed to perform actions.

Each step should be written in natural language but achievable using only the given commands, do not create new ones.
Limit your response to 2-5 new steps, but if you need more you have a maximum of 10.

IMPORTANT: Respond ONLY with a numbered list of prompts to break down the action into simpler actions.
Base yourself on the commands given and the rest of the action list that the bot has to perform to achieve his goal.
Each action should be achievable with a single command.
Use the minimum possible of command. Keep the steps simple and direct, give the command and a short description of the action to be taken.

ACTION TO BREAK DOWN AND CONTEXT:
{action}

PREVIOUS ACTIONS:
{previous}

FOLLOWING ACTIONS:
{following}

EXAMPLE:
GOAL : Eat food to heal and fill hunger bar

CURRENT ACTION AND CONTEXT:
craft oven and cook beef

PREVIOUS ACTIONS:
Search for a cow
Move near cow
Kill cow
Pick up dropped items
Logic: Verify if enough raw beef has been collected to fill health and hunger bars or if hunger is too low to sprint, else repeat actions
Collect oak logs for crafting table and burning fuel
Craft crafting table
Place crafting table

FOLLOWING ACTIONS:
Eat beef
Logic: Verify if bars are filled up, else repeat actions

Expected answer :
1. Craft oven
2. Place oven
3. Place uncooked beef and planks in oven
4. Wait for beef to cook and collect cooked beef

Bad answer :
1. Craft oven
2. Cook meat in oven
3. Collect cooked meat

WRITING RULES:
- Write each step in natural language that maps to ONE available command
- Start each line with a number and period
- Be specific about blocks, items, and locations
- Keep steps in chronological order
- Write complete, clear actions
- NO additional text or explanations
- Quantify the number of items you estimate would be needed for steps that could be done with multiple items

Available commands for reference:
{command_docs}"""

BREAKDOWN_CORRECTION = (
    "\n\nYour last answer wasn't in the correct format. Respond with a numbered list "
    "of between 1 and 10 simple steps, one per line, each starting with a number and period."
)


COMMAND_PROMPT = """You are playing minecraft through the use of commands and are tasked with returning the command that should be executed to perform the given action below.
You are given a list of commands that the bot can use to perform actions.
Given the context of the action, you need to determine which command should be executed to perform the action and what parameters to input into it.
This is the action you need to perform:
{action_context}

Available commands:
{command_docs}"""

HALLUCINATION_WARNING = "\n\nWARNING\nYou have hallucinated the following command: {command_name}"


GOAL_RESULT_PROMPT = """You are playing minecraft and just finished working on a goal. Decide whether the goal was achieved.

GOAL:
{goal}

ACTIONS TAKEN AND THEIR RESULTS:
{action_log}

CURRENT SITUATION:
{context}

Answer with ONLY 'yes' if the goal was achieved or 'no' if it was not."""
