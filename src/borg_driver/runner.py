"""Subprocess execution for borg-driver.

Two executors share one contract: ``SubprocessExecutor`` blocks the calling
thread, ``AsyncioExecutor`` runs under the caller's event loop. Both resolve the
binary, build a scrubbed child environment, feed the passphrase file on stdin
when asked to, and kill the child on timeout. Output is buffered in memory.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import shutil
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from borg_driver.builder import CommandLine
from borg_driver.errors import ExecutionTimeout, SpawnError

logger = logging.getLogger(__name__)

# Removed from the inherited environment so the overlay is the only credential
# source and borg keeps its legacy exit codes.
SCRUBBED_VARIABLES = (
    "BORG_PASSPHRASE",
    "BORG_PASSPHRASE_FD",
    "BORG_PASSCOMMAND",
    "BORG_NEW_PASSPHRASE",
    "BORG_EXIT_CODES",
)

# asyncio's default 64 KiB line limit is too small for long paths in log records
_STREAM_LIMIT = 16 * 1024 * 1024

# exec failures that mean the binary itself cannot be run
_SPAWN_ERRNOS = frozenset(
    {
        errno.ENOENT,
        errno.EACCES,
        errno.EPERM,
        errno.ENOTDIR,
        errno.ENOEXEC,
        errno.ELOOP,
        errno.ENAMETOOLONG,
        errno.ETXTBSY,
    }
)


def _is_spawn_failure(e: OSError) -> bool:
    """True when exec rejected the binary; resource exhaustion is not a spawn failure."""
    return e.errno in _SPAWN_ERRNOS


@dataclass(frozen=True)
class ExecutionResult:
    """Result of one borg process execution."""

    argv: tuple[str, ...]
    exit_code: int
    stdout: bytes
    stderr: bytes
    duration_seconds: float

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")

    def summary(self) -> str:
        status = "OK" if self.exit_code == 0 else f"exit {self.exit_code}"
        return f"[{status}] {' '.join(self.argv)} ({self.duration_seconds:.1f}s)"


class ProcessExecutor(Protocol):
    def run(
        self, command: CommandLine, binary: str, timeout: float | None = None
    ) -> ExecutionResult: ...


class AsyncProcessExecutor(Protocol):
    async def run(
        self,
        command: CommandLine,
        binary: str,
        timeout: float | None = None,
        on_stderr_line: Callable[[str], None] | None = None,
    ) -> ExecutionResult: ...


def resolve_binary(name: str) -> str:
    """Locate the borg executable.

    Raises:
        SpawnError: If ``name`` is not an executable file or not found on PATH.
    """
    path = shutil.which(name)
    if path is None:
        raise SpawnError(f"borg executable not found: {name}")
    return path


def child_environment(overlay: dict[str, str]) -> dict[str, str]:
    """Copy of the current environment, scrubbed, with the credential overlay applied."""
    env = {k: v for k, v in os.environ.items() if k not in SCRUBBED_VARIABLES}
    env.update(overlay)
    return env


def read_passphrase(path: Path | None) -> bytes | None:
    """Read a passphrase file for stdin delivery, dropping one trailing newline."""
    if path is None:
        return None
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise SpawnError(f"Cannot read passphrase file {path}: {e.strerror or e}") from e
    if data.endswith(b"\r\n"):
        return data[:-2]
    if data.endswith(b"\n"):
        return data[:-1]
    return data


class SubprocessExecutor:
    """Runs borg with ``subprocess.Popen`` and blocks until it exits."""

    def run(
        self, command: CommandLine, binary: str, timeout: float | None = None
    ) -> ExecutionResult:
        executable = resolve_binary(binary)
        argv = (executable, *command.args)
        stdin_data = read_passphrase(command.stdin_file)
        env = child_environment(command.env)

        logger.debug("Running: %s", command.render(executable))
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE if stdin_data is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                cwd=command.cwd,
            )
        except OSError as e:
            if not _is_spawn_failure(e):
                raise
            raise SpawnError(f"Cannot start {executable}: {e}") from e

        try:
            stdout, stderr = proc.communicate(input=stdin_data, timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            elapsed = time.monotonic() - start
            logger.warning("borg %s killed after %.1fs", command.operation, elapsed)
            raise ExecutionTimeout(argv, timeout, elapsed) from None
        except BaseException:
            proc.kill()
            proc.wait()
            raise

        result = ExecutionResult(
            argv=argv,
            exit_code=proc.returncode,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=time.monotonic() - start,
        )
        logger.debug(result.summary())
        return result


async def _feed_stdin(proc: asyncio.subprocess.Process, data: bytes | None) -> None:
    if data is None or proc.stdin is None:
        return
    try:
        proc.stdin.write(data)
        await proc.stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # child exited before reading the passphrase; its exit code tells why
        pass
    finally:
        proc.stdin.close()


async def _read_lines(
    stream: asyncio.StreamReader, on_line: Callable[[str], None] | None
) -> bytes:
    chunks: list[bytes] = []
    while True:
        line = await stream.readline()
        if not line:
            break
        chunks.append(line)
        if on_line is not None:
            on_line(line.decode("utf-8", errors="replace").rstrip("\r\n"))
    return b"".join(chunks)


async def _communicate(
    proc: asyncio.subprocess.Process,
    stdout_stream: asyncio.StreamReader,
    stderr_stream: asyncio.StreamReader,
    stdin_data: bytes | None,
    on_stderr_line: Callable[[str], None] | None,
) -> tuple[bytes, bytes]:
    _, stdout, stderr = await asyncio.gather(
        _feed_stdin(proc, stdin_data),
        stdout_stream.read(),
        _read_lines(stderr_stream, on_stderr_line),
    )
    await proc.wait()
    return stdout, stderr


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill the child if it is still running and reap it."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


class AsyncioExecutor:
    """Runs borg with ``asyncio.create_subprocess_exec``."""

    async def run(
        self,
        command: CommandLine,
        binary: str,
        timeout: float | None = None,
        on_stderr_line: Callable[[str], None] | None = None,
    ) -> ExecutionResult:
        executable = resolve_binary(binary)
        argv = (executable, *command.args)
        stdin_data = read_passphrase(command.stdin_file)
        env = child_environment(command.env)

        logger.debug("Running: %s", command.render(executable))
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=subprocess.PIPE if stdin_data is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                cwd=command.cwd,
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            if not _is_spawn_failure(e):
                raise
            raise SpawnError(f"Cannot start {executable}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                _communicate(proc, proc.stdout, proc.stderr, stdin_data, on_stderr_line), timeout
            )
        except TimeoutError:
            await _terminate(proc)
            elapsed = time.monotonic() - start
            logger.warning("borg %s killed after %.1fs", command.operation, elapsed)
            raise ExecutionTimeout(argv, timeout, elapsed) from None
        except asyncio.CancelledError:
            await _terminate(proc)
            logger.debug("borg %s cancelled, child reaped", command.operation)
            raise
        except BaseException:
            # e.g. an exception raised by on_stderr_line
            await _terminate(proc)
            raise

        result = ExecutionResult(
            argv=argv,
            exit_code=proc.returncode,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=time.monotonic() - start,
        )
        logger.debug(result.summary())
        return result
