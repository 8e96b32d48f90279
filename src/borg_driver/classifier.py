"""Exit code classification for borg 1.x (legacy exit-code table)."""

from __future__ import annotations

from enum import Enum

from borg_driver.errors import ErrorKind
from borg_driver.logjson import LogStream


class OutcomeCategory(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


def classify(exit_code: int) -> OutcomeCategory:
    """0 is success, 1 a warning, anything else (including signals) an error."""
    if exit_code == 0:
        return OutcomeCategory.SUCCESS
    if exit_code == 1:
        return OutcomeCategory.WARNING
    return OutcomeCategory.ERROR


def failure_kind(exit_code: int) -> ErrorKind:
    """2 means borg itself reported an error; any other code means the process failed."""
    if exit_code == 2:
        return ErrorKind.TOOL
    return ErrorKind.PROCESS


def error_detail(stderr_text: str, log: LogStream) -> str:
    """Human-readable error text: borg's error-level messages, else the raw stderr."""
    errors = log.errors()
    if errors:
        return "\n".join(m.message for m in errors)
    return stderr_text.strip()
