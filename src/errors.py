"""
Error taxonomy for Mason.

Malformed oracle output, hallucinated commands, world failures and
configuration problems each get their own type so the planning loop can
decide which ones abandon a cycle and which ones end the process.
"""

from typing import Optional


class MasonError(Exception):
    """Base class for all Mason errors."""


class ConfigError(MasonError):
    """Missing profile fields or an invalid command schema. Fatal at startup."""


class WorldConnectionError(MasonError):
    """The world connection could not be established or was lost."""


class OracleFormatError(MasonError):
    """The oracle kept answering in a shape we could not parse."""

    def __init__(self, message: str, attempts: int = 0, last_response: Optional[str] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_response = last_response


class GoalScoringError(OracleFormatError):
    """Scoring retries ran out with goals still unscored."""

    def __init__(self, missing: list[str], attempts: int, last_response: Optional[str] = None):
        super().__init__(
            f"No score for {len(missing)} goal(s) after {attempts} attempts: {', '.join(missing)}",
            attempts=attempts,
            last_response=last_response
        )
        self.missing = missing


class HallucinatedCommandError(MasonError):
    """The oracle named a command that is not registered."""

    def __init__(self, command_name: Optional[str]):
        super().__init__(f"Command {command_name} does not exist.")
        self.command_name = command_name


class CommandArgumentError(MasonError):
    """A command invocation had the wrong number or type of arguments."""
