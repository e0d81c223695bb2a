"""
Core Agent for Mason

Owns everything one agent needs and runs its two loops on the same
event loop:

1. The planning loop: select a goal, decompose it into steps, gate and
   execute each step, evaluate the goal, repeat.
2. The message-response loop: react to chat by prompting the oracle and
   running the commands it answers with.

Both loops share one Prompter (so one oracle request at a time) and one
executing lock (so one world action at a time).
"""

import asyncio
import contextlib
import logging
import math
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from commands import CommandRegistry, contains_command, trunc_command_message
from decomposer import ActionDecomposer
from errors import ConfigError, GoalScoringError, OracleFormatError, WorldConnectionError
from executor import ActionLogEntry, CommandExecutor
from feasibility import FeasibilityGate
from goals import Goal, GoalOutcome, GoalPlanner, dedupe_agenda
from history import History, format_turns
from llm import AnthropicOracle, Prompter
from memory import MemoryKind, NullMemory, format_memories
from parsing import Step, StepKind
from prompts import GOAL_RESULT_PROMPT, PromptProviders, format_last_goals, format_steps
from world import STATUS_QUERIES, build_query_commands

logger = logging.getLogger(__name__)


REQUIRED_PROFILE_FIELDS = ('name', 'model', 'conversing')

# Server notices that arrive on the chat channel but are not messages
IGNORED_MESSAGES = (
    "Set own game mode to",
    "Set the time to",
    "Set the difficulty to",
    "Teleported ",
    "Set the weather to",
    "Gamerule ",
)


class AgentState:
    """
    Mutable per-agent flags.

    Owned by the Agent and handed to whatever needs to read or flip
    them; nothing here is shared between agents.
    """

    def __init__(self):
        self.executing = False
        self.shut_up = False
        self.interrupted = False
        self.self_prompting = False
        self.idle = asyncio.Event()
        self.idle.set()
        self._execution_lock = asyncio.Lock()

    @asynccontextmanager
    async def executing_action(self):
        """Hold the world for one command; later callers queue behind it."""
        async with self._execution_lock:
            self.executing = True
            self.idle.clear()
            try:
                yield
            finally:
                self.executing = False
                self.idle.set()


def splice_refinement(action_list: list[Step], refinement: list[Step]) -> list[Step]:
    """Replace the front step with its refinement, keeping the rest in order."""
    return list(refinement) + list(action_list[1:])


def validate_profile(profile: dict):
    """Fail fast on a profile the agent cannot run with."""
    missing = [f for f in REQUIRED_PROFILE_FIELDS if not profile.get(f)]
    if missing:
        raise ConfigError(f"Profile is missing required fields: {', '.join(missing)}")


class MasonAgent:
    """
    The main Mason agent.

    Wires the planner, decomposer, feasibility gate and executor around
    a shared Prompter, History and CommandRegistry.
    """

    def __init__(self, config: dict, world, oracle=None, memory=None, base_path: str = "."):
        self.config = config
        self.profile = config.get('profile') or {}
        validate_profile(self.profile)

        self.base_path = Path(base_path)
        self.world = world
        self.state = AgentState()

        planning = config.get('planning', {})
        agent_config = config.get('agent', {})
        history_config = config.get('history', {})

        self.max_commands = agent_config.get('max_commands', 10)
        self.spawn_timeout = agent_config.get('spawn_timeout', 30)
        self.spawn_settle = agent_config.get('spawn_settle', 1.0)
        self.max_refinements = planning.get('max_refinements', 20)
        self.retry_delay = planning.get('retry_delay', 5.0)
        self.last_goals_kept = planning.get('last_goals_kept', 5)
        self.memory_limit = config.get('memory', {}).get('limit', 5)

        # Oracle
        self.oracle = oracle or AnthropicOracle(
            agent_name=self.profile['name'],
            model=self.profile['model'],
            max_tokens=self.profile.get('max_tokens', 2048)
        )
        self.prompter = Prompter(self.oracle, self.profile)

        # Commands are registered in start(), once the world is up
        self.registry = CommandRegistry()

        # History
        self.history = History(
            agent_name=self.name,
            state_path=str(self.base_path / "state" / f"{self.name}_history.json"),
            max_messages=history_config.get('max_messages', 15),
            max_tokens=history_config.get('max_tokens', 6000),
            summary_chunk=history_config.get('summary_chunk', 5)
        )

        # Long-term memory
        self.memory = memory or NullMemory()

        # Planning components
        self.decomposer = ActionDecomposer(
            self.prompter, self.registry,
            action_list_attempts=planning.get('action_list_attempts', 5),
            refine_attempts=planning.get('refine_attempts', 2)
        )
        self.feasibility = FeasibilityGate(
            self.prompter, self.registry, self.decomposer,
            max_attempts=planning.get('feasibility_attempts', 5)
        )
        self.executor = CommandExecutor(
            self.prompter, self.registry, self,
            max_attempts=planning.get('hallucination_retries', 10),
            verbose_commands=agent_config.get('verbose_commands', False)
        )
        self.planner = GoalPlanner(
            self.prompter, self.recall,
            state_path=str(self.base_path / "state" / "agenda.json"),
            max_attempts=planning.get('goal_score_retries', 10)
        )

        self.agenda = dedupe_agenda([Goal(description) for description in config.get('agenda', [])])
        self.last_goals: list[GoalOutcome] = []

        self.exit_status: Optional[int] = None
        self._shutdown = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

        self.prompter.bind_providers(self._build_providers())

    @property
    def name(self) -> str:
        return self.profile['name']

    def _build_providers(self) -> PromptProviders:
        async def name():
            return self.name

        async def stats():
            return await self.world.stats()

        async def inventory():
            return await self.world.inventory()

        async def command_docs():
            return self.registry.get_command_docs()

        async def memory():
            return self.history.memory

        async def convo():
            return format_turns(self.history.turns())

        async def to_summarize():
            return ""

        async def last_goals():
            return format_last_goals(self.last_goals)

        async def blueprints():
            return ", ".join(self.world.blueprints())

        return PromptProviders(
            name=name, stats=stats, inventory=inventory, command_docs=command_docs,
            memory=memory, convo=convo, to_summarize=to_summarize,
            last_goals=last_goals, blueprints=blueprints
        )

    # ==================== Lifecycle ====================

    def load_state(self):
        """Restore history, recent goal outcomes and the last agenda."""
        if self.history.load() is not None:
            self.last_goals = [GoalOutcome.from_dict(g) for g in self.history.last_goals]
        agenda = self.planner.load_state()
        if agenda:
            self.agenda = agenda

    async def start(self, load_memory: bool = False):
        """Connect to the world and register commands."""
        if load_memory:
            self.load_state()

        self.world.set_listeners(self.on_chat, self.on_disconnect)
        try:
            await asyncio.wait_for(self.world.connect(), timeout=self.spawn_timeout)
        except asyncio.TimeoutError:
            raise WorldConnectionError(f"{self.name} did not spawn within {self.spawn_timeout}s")
        except OSError as e:
            raise WorldConnectionError(f"{self.name} could not connect: {e}") from e

        # Stats are not populated the instant the actor spawns
        await asyncio.sleep(self.spawn_settle)

        self.registry.register_all(build_query_commands() + self.world.action_commands())
        logger.info("%s spawned with %d commands", self.name, len(self.registry.names()))

    async def run(self) -> int:
        """Run the planning loop until shutdown; returns the exit status."""
        planning = asyncio.create_task(self._run_planning())
        await self._shutdown.wait()
        planning.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await planning
        await self.close()
        return self.exit_status or 0

    async def _run_planning(self):
        try:
            await self.planning_loop()
        except GoalScoringError as e:
            logger.error("Goal scoring failed: %s", e)
            await self.clean_kill(f"Goal scoring failed: {e}")
        except Exception as e:
            logger.exception("Planning loop crashed")
            await self.clean_kill(f"Planning loop crashed: {e}")

    def shutdown(self):
        """Request a graceful stop."""
        if self.exit_status is None:
            self.exit_status = 0
        self._shutdown.set()

    async def clean_kill(self, msg: str = "Killing agent process..."):
        """Flush history, say goodbye and stop with a failure status."""
        self.history.add('system', msg)
        try:
            await self.world.chat("Goodbye world.")
        except Exception as e:
            logger.warning("Could not say goodbye: %s", e)
        self.history.save()
        self.exit_status = 1
        self._shutdown.set()

    async def close(self):
        for task in list(self._tasks):
            task.cancel()
        self.history.save()
        await self.world.close()
        await asyncio.to_thread(self.memory.close)

    # ==================== Chat ====================

    async def chat(self, message: str):
        """Say something in world chat unless told to be quiet."""
        if self.state.shut_up:
            return
        # Newlines would arrive as separate chat messages
        await self.world.chat(message.replace('\n', ' '))

    def on_chat(self, username: str, message: str) -> Optional[asyncio.Task]:
        """World chat callback; schedules a response."""
        if username == self.name:
            return None
        if any(message.startswith(m) for m in IGNORED_MESSAGES):
            return None

        self.state.shut_up = False
        task = asyncio.create_task(self._respond(username, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def on_disconnect(self, reason: str) -> Optional[asyncio.Task]:
        """World disconnect callback; a kicked or dropped actor ends the process."""
        if self._shutdown.is_set():
            return None
        logger.warning("%s disconnected: %s", self.name, reason)
        task = asyncio.create_task(self.clean_kill(f"Bot disconnected! Killing agent process. {reason}"))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _respond(self, username: str, message: str):
        try:
            await self.handle_message(username, message)
        except Exception:
            logger.exception("Error handling message from %s", username)

    def request_interrupt(self):
        self.state.interrupted = True
        self.world.interrupt()

    def shut_up(self):
        self.state.shut_up = True

    def add_turn(self, speaker: str, text: str):
        self.history.add(speaker, text)
        self.history.save()

    async def handle_message(self, source: str, message: str, max_responses: Optional[int] = None) -> bool:
        """
        Respond to a message, running any commands the oracle answers with.

        Command results go back into history as system turns and the
        oracle is prompted again. The loop ends when a command returns
        nothing, on a purely conversational reply, on interrupt, or after
        max_responses replies. Returns whether any command ran.
        """
        if not message or not isinstance(message, str):
            logger.error("Invalid or empty message from %s: %r", source, message)
            return False

        if max_responses is None:
            max_responses = self.max_commands
        if max_responses == -1:
            max_responses = math.inf

        self.add_turn(source, message)

        used_command = False
        responses = 0
        while responses < max_responses:
            responses += 1
            res = await self.prompter.prompt_convo(self.history.turns())

            command_name = contains_command(res)
            if not command_name:
                logger.info("Purely conversational response: %s", res)
                self.add_turn(self.name, res)
                await self.chat(res)
                break

            # Everything after the command is ignored
            res = trunc_command_message(res)
            self.add_turn(self.name, res)
            if not self.registry.exists(command_name):
                logger.warning("Agent hallucinated command: %s", command_name)
                self.add_turn('system', f"Command {command_name} does not exist.")
                continue

            result = await self.executor.dispatch(res)
            used_command = True
            if not result:
                break
            self.add_turn('system', result)
            if self.state.interrupted or self.state.shut_up:
                break

        await self.maybe_summarize()
        return used_command

    async def maybe_summarize(self):
        if self.history.needs_summary():
            await self.history.summarize(self.prompter.prompt_mem_saving)
            self.history.save()

    # ==================== Context ====================

    async def status_query(self) -> str:
        """Current world status from the registered query commands."""
        parts = []
        for name in STATUS_QUERIES:
            if self.registry.exists(name):
                result = await self.registry.execute(self, name)
                if result:
                    parts.append(result)
        return "\n".join(parts)

    async def vision_query(self) -> str:
        return ""

    async def context_query(self) -> str:
        context = "\n\n__CONTEXT__"
        context += f"\n\nSTATUS: \n{await self.status_query()}"
        context += f"\nVISION: \n{await self.vision_query()}"
        return context

    async def recall(self, text: str) -> str:
        """Similar memories as prompt text."""
        memories = await asyncio.to_thread(self.memory.query, text, None, self.memory_limit)
        return format_memories(memories)

    async def remember(self, kind: MemoryKind, content: str, metadata: Optional[dict] = None) -> str:
        return await asyncio.to_thread(self.memory.store, kind, content, metadata)

    # ==================== Planning Loop ====================

    async def planning_loop(self, max_cycles: Optional[int] = None):
        """
        Goal cycles, forever unless max_cycles is given.

        A failing cycle is logged and abandoned; the next one starts
        from goal selection. GoalScoringError propagates.
        """
        self.state.self_prompting = True
        cycles = 0
        try:
            while max_cycles is None or cycles < max_cycles:
                cycles += 1
                try:
                    await self.run_cycle()
                except GoalScoringError:
                    raise
                except Exception as e:
                    logger.exception("Goal cycle abandoned: %s", e)
                    await asyncio.sleep(self.retry_delay)
        finally:
            self.state.self_prompting = False

    async def run_cycle(self) -> GoalOutcome:
        """SelectGoal, BuildActionList, ExecuteActions, EvaluateGoal."""
        context = await self.context_query()
        goal, self.agenda = await self.planner.select_goal(self.last_goals, self.agenda, context)
        logger.info("GOAL: %s", goal)

        action_list = await self.build_action_list(goal, context)
        action_log = await self.execute_actions(action_list)

        final_context = await self.context_query()
        outcome = await self.evaluate_goal(goal, final_context, action_log)
        await self.record_outcome(outcome)
        return outcome

    async def build_action_list(self, goal: str, context: str) -> list[Step]:
        memories = await self.recall(f"GOAL: {goal}{context}")
        return await self.decomposer.decompose(goal, f"{context}\n\nSIMILAR MEMORIES: \n{memories}")

    async def action_context(self, step: Step, action_log: list[ActionLogEntry]) -> str:
        prompt = f"ACTION: {step.text}"
        prompt += await self.context_query()
        prompt += f"\n\nSIMILAR MEMORIES: \n{await self.recall(prompt)}"
        prompt += f"\nMEMORY STREAM: \n{format_steps(action_log)}"
        return prompt

    async def execute_actions(self, action_list: list[Step]) -> list[ActionLogEntry]:
        """
        Consume the action list front to back.

        Every step is gated just before it runs. An infeasible step is
        replaced in place by its refinement, which is then gated in turn.
        Logic steps are logged as checkpoints and never dispatched.
        """
        action_log: list[ActionLogEntry] = []
        pending = list(action_list)
        refinements = 0

        while pending:
            if self.state.interrupted:
                logger.info("Interrupted, dropping %d remaining steps", len(pending))
                self.state.interrupted = False
                break

            step = pending[0]
            following = pending[1:]
            logger.info("Current action: %s", step)
            prompt = await self.action_context(step, action_log)

            verdict = await self.feasibility.check(step, prompt, action_log, following)
            if not verdict.feasible:
                refinements += 1
                if refinements > self.max_refinements:
                    raise OracleFormatError(f"Gave up after {self.max_refinements} step refinements")
                pending = splice_refinement(pending, verdict.refinement)
                continue

            pending = following
            if step.kind == StepKind.LOGIC:
                action_log.append(ActionLogEntry(step, None, None))
                continue

            invocation, result = await self.executor.execute_step(prompt)
            entry = ActionLogEntry(step, invocation, result)
            action_log.append(entry)

            failed = invocation is None or (result or "").startswith("Error")
            kind = MemoryKind.FAILED_ACTIONS if failed else MemoryKind.SUCCESSFUL_ACTIONS
            await self.remember(kind, str(entry), {'step': step.text})

        return action_log

    async def evaluate_goal(self, goal: str, context: str, action_log: list[ActionLogEntry]) -> GoalOutcome:
        """Ask the oracle whether the goal was achieved."""
        prompt = GOAL_RESULT_PROMPT.format(
            goal=goal,
            action_log=format_steps(action_log) or "(no actions)",
            context=context
        )
        answer = await self.feasibility.ask(prompt)
        achieved = answer == 'yes'
        logger.info("Goal %r %s", goal, "achieved" if achieved else "not achieved")
        return GoalOutcome(goal=goal, achieved=achieved, summary=f"{len(action_log)} steps taken")

    async def record_outcome(self, outcome: GoalOutcome):
        self.last_goals = (self.last_goals + [outcome])[-self.last_goals_kept:]
        self.history.last_goals = [o.to_dict() for o in self.last_goals]
        self.history.save()

        kind = MemoryKind.SUCCESSFUL_GOALS if outcome.achieved else MemoryKind.FAILED_GOALS
        await self.remember(kind, outcome.goal, {'summary': outcome.summary})
