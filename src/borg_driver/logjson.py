"""Decoding of borg's ``--log-json`` standard-error stream.

With ``--log-json`` borg writes one JSON object per stderr line. The ``type``
field tells them apart: ``log_message`` carries ordinary log records (with an
optional ``msgid`` such as ``Repository.DoesNotExist``), ``archive_progress``
carries ``create --progress`` counters. Lines that are not JSON (ssh noise,
tracebacks) are kept as plain text.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

borg_logger = logging.getLogger("borg_driver.borg")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


@dataclass(frozen=True)
class LogMessage:
    levelname: str
    name: str
    message: str
    msgid: str | None = None
    time: float | None = None

    @property
    def level(self) -> int:
        return _LEVELS.get(self.levelname.upper(), logging.WARNING)


@dataclass(frozen=True)
class CreateProgress:
    """One ``archive_progress`` record. The final record only sets ``finished``."""

    original_size: int | None = None
    compressed_size: int | None = None
    deduplicated_size: int | None = None
    nfiles: int | None = None
    path: str | None = None
    time: float | None = None
    finished: bool = False


@dataclass
class LogStream:
    messages: list[LogMessage] = field(default_factory=list)
    progress: list[CreateProgress] = field(default_factory=list)
    plain_lines: list[str] = field(default_factory=list)

    @property
    def message_ids(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for m in self.messages:
            if m.msgid:
                seen.setdefault(m.msgid, None)
        return tuple(seen)

    def errors(self) -> list[LogMessage]:
        return [m for m in self.messages if m.level >= logging.ERROR]


def parse_record(line: str) -> dict[str, Any] | None:
    """Parse one stderr line; None if it is not a JSON object."""
    line = line.strip()
    if not line.startswith("{"):
        return None
    try:
        record = json.loads(line)
    except json.JSONDecodeError:
        return None
    return record if isinstance(record, dict) else None


def _optional(record: dict[str, Any], key: str, kind: type) -> Any:
    value = record.get(key)
    if isinstance(value, bool) and kind is not bool:
        return None
    return value if isinstance(value, kind) else None


def progress_from_record(record: dict[str, Any]) -> CreateProgress | None:
    if record.get("type") != "archive_progress":
        return None
    timestamp = record.get("time")
    return CreateProgress(
        original_size=_optional(record, "original_size", int),
        compressed_size=_optional(record, "compressed_size", int),
        deduplicated_size=_optional(record, "deduplicated_size", int),
        nfiles=_optional(record, "nfiles", int),
        path=_optional(record, "path", str),
        time=float(timestamp) if isinstance(timestamp, (int, float)) else None,
        finished=record.get("finished") is True,
    )


def _message_from_record(record: dict[str, Any]) -> LogMessage:
    timestamp = record.get("time")
    return LogMessage(
        levelname=str(record.get("levelname", "WARNING")),
        name=str(record.get("name", "borg")),
        message=str(record.get("message", "")),
        msgid=_optional(record, "msgid", str) or None,
        time=float(timestamp) if isinstance(timestamp, (int, float)) else None,
    )


def parse_log_stream(text: str, *, forward: bool = True) -> LogStream:
    """Split captured stderr into log messages, progress records and plain lines.

    When ``forward`` is true every borg log message is re-emitted on the
    ``borg_driver.borg`` logger at the level borg reported.
    """
    stream = LogStream()
    for line in text.splitlines():
        if not line.strip():
            continue
        record = parse_record(line)
        if record is None:
            stream.plain_lines.append(line)
            if forward:
                borg_logger.info("%s", line)
            continue

        kind = record.get("type")
        if kind == "log_message":
            message = _message_from_record(record)
            stream.messages.append(message)
            if forward:
                borg_logger.log(
                    message.level,
                    "%s",
                    message.message,
                    extra={"borg_name": message.name, "borg_msgid": message.msgid},
                )
        elif kind == "archive_progress":
            progress = progress_from_record(record)
            if progress is not None:
                stream.progress.append(progress)
    return stream
