"""Exceptions and failure kinds for borg-driver."""

from __future__ import annotations

from enum import Enum


class BorgDriverError(Exception):
    """Base class for every error raised by borg-driver."""


class ValidationError(BorgDriverError, ValueError):
    """Raised when an option set is structurally invalid."""


class UnsupportedOptionCombination(BorgDriverError):
    """Raised when a credential mode cannot be used with the chosen operation."""


class ConfigError(BorgDriverError):
    """Raised when configuration is invalid or missing."""


class SpawnError(BorgDriverError):
    """Raised when the borg process could not be started."""


class ExecutionTimeout(BorgDriverError):
    """Raised when the borg process was killed for exceeding its deadline."""

    def __init__(self, argv: tuple[str, ...], timeout: float, duration_seconds: float):
        super().__init__(f"borg did not finish within {timeout}s and was terminated")
        self.argv = argv
        self.timeout = timeout
        self.duration_seconds = duration_seconds


class DecodeError(BorgDriverError):
    """Raised when borg output does not match the expected document."""


class ErrorKind(str, Enum):
    """Why an operation produced a Failure outcome."""

    UNSUPPORTED_OPTION_COMBINATION = "unsupported_option_combination"
    SPAWN = "spawn"
    TIMEOUT = "timeout"
    TOOL = "tool"
    PROCESS = "process"
    DECODE = "decode"


class OperationFailed(BorgDriverError):
    """Raised by ``Outcome.unwrap()`` on a Failure."""

    def __init__(self, failure):
        super().__init__(f"{failure.kind.value}: {failure.detail}")
        self.failure = failure
