"""Outcome values returned by every borg-driver operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from borg_driver.classifier import OutcomeCategory
from borg_driver.errors import ErrorKind, OperationFailed

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def category(self) -> OutcomeCategory:
        return OutcomeCategory.SUCCESS

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Warned(Generic[T]):
    """borg finished but exited 1; ``warning`` is its full stderr text."""

    value: T
    warning: str

    @property
    def category(self) -> OutcomeCategory:
        return OutcomeCategory.WARNING

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    """The operation did not produce a value.

    ``exit_code`` is set when borg ran to completion. ``raw`` holds the full
    stderr for TOOL and PROCESS failures and the undecodable stdout for DECODE
    failures. ``message_ids`` are the msgids borg logged.
    """

    kind: ErrorKind
    detail: str
    exit_code: int | None = None
    raw: str | None = None
    message_ids: tuple[str, ...] = ()

    @property
    def category(self) -> OutcomeCategory:
        return OutcomeCategory.ERROR

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        raise OperationFailed(self)


Outcome = Union[Success[T], Warned[T], Failure]
