"""Shared fixtures: canned executors and stand-in borg scripts."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from borg_driver.runner import ExecutionResult


def log_line(message: str, levelname: str = "ERROR", msgid: str | None = None) -> str:
    record = {
        "type": "log_message",
        "time": 1700000000.0,
        "levelname": levelname,
        "name": "borg.archiver",
        "message": message,
    }
    if msgid:
        record["msgid"] = msgid
    return json.dumps(record)


class FakeExecutor:
    """Returns a canned ExecutionResult and records what it was asked to run."""

    def __init__(self, exit_code: int = 0, stdout: str = "", stderr: str = "", raises=None):
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.raises = raises
        self.calls = []

    def _result(self, command, binary):
        if self.raises is not None:
            raise self.raises
        return ExecutionResult(
            argv=(binary, *command.args),
            exit_code=self.exit_code,
            stdout=self.stdout.encode(),
            stderr=self.stderr.encode(),
            duration_seconds=0.01,
        )

    def run(self, command, binary, timeout=None):
        self.calls.append((command, binary, timeout))
        return self._result(command, binary)


class AsyncFakeExecutor(FakeExecutor):
    """Async variant; replays ``stderr`` through the line callback."""

    async def run(self, command, binary, timeout=None, on_stderr_line=None):
        self.calls.append((command, binary, timeout))
        if on_stderr_line is not None:
            for line in self.stderr.splitlines():
                on_stderr_line(line)
        return self._result(command, binary)


@pytest.fixture
def write_script(tmp_path: Path):
    """Write an executable /bin/sh script into tmp_path and return its path."""

    def _write(body: str, name: str = "borg") -> str:
        script = tmp_path / name
        script.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _write
