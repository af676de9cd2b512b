"""Structured error hierarchy for piece execution."""

from __future__ import annotations


class ConductorError(Exception):
    def __init__(self, code: str, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause


class ConfigError(ConductorError):
    """Invalid piece definition. Raised before any agent is invoked."""

    def __init__(self, message: str, piece_name: str | None = None) -> None:
        super().__init__("CONFIG_INVALID", message)
        self.piece_name = piece_name


class SessionError(ConductorError):
    """A resume phase was requested without a session handle to resume."""

    def __init__(self, movement: str, session_key: str, phase: str) -> None:
        super().__init__(
            "SESSION_MISSING",
            f'{phase.capitalize()} phase requires a session to resume, but no session '
            f'found for "{session_key}" in movement "{movement}"',
        )
        self.movement = movement
        self.session_key = session_key
        self.phase = phase


class RuleResolutionError(ConductorError):
    def __init__(self, movement: str) -> None:
        super().__init__(
            "RULE_NOT_MATCHED",
            f'Status not found for movement "{movement}": no rule matched after all detection phases',
        )
        self.movement = movement


class ExecutionError(ConductorError):
    """An Agent/Judge Invoker call failed while executing a movement."""

    def __init__(self, movement: str, message: str, cause: Exception | None = None) -> None:
        super().__init__("EXECUTION_FAILED", message, cause)
        self.movement = movement
