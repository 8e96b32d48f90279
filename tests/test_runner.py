"""Tests for borg_driver.runner."""

from __future__ import annotations

import asyncio
import errno
import os
import subprocess
import time

import pytest

from borg_driver.builder import CommandLine
from borg_driver.errors import ExecutionTimeout, SpawnError
from borg_driver.runner import (
    AsyncioExecutor,
    ExecutionResult,
    SubprocessExecutor,
    child_environment,
    read_passphrase,
    resolve_binary,
)


def sh(script: str, **kwargs) -> CommandLine:
    """A CommandLine that runs ``script`` when executed with binary "sh"."""
    return CommandLine(operation="test", args=("-c", script), **kwargs)


def wait_for_pid(pidfile) -> int:
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline:
        if pidfile.exists():
            text = pidfile.read_text().strip()
            if text:
                return int(text)
        time.sleep(0.02)
    raise AssertionError("child never wrote its pid")


def assert_gone(pid: int) -> None:
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


@pytest.fixture()
def not_a_program(tmp_path):
    """An executable file the kernel refuses to exec."""
    path = tmp_path / "borg"
    path.write_bytes(b"\x00\x01\x02\x03 not a program\n")
    path.chmod(0o755)
    return str(path)


class TestExecutionResult:
    def test_text_accessors_replace_bad_utf8(self):
        r = ExecutionResult(("borg",), 0, b"ok \xff", b"err", 0.1)
        assert r.stdout_text == "ok �"
        assert r.stderr_text == "err"

    def test_summary_ok(self):
        r = ExecutionResult(("borg", "list"), 0, b"", b"", 1.23)
        assert "OK" in r.summary()
        assert "1.2s" in r.summary()

    def test_summary_fail(self):
        r = ExecutionResult(("borg", "list"), 2, b"", b"", 0.5)
        assert "exit 2" in r.summary()


class TestResolveBinary:
    def test_finds_on_path(self):
        assert os.path.isabs(resolve_binary("sh"))

    def test_missing_binary(self):
        with pytest.raises(SpawnError, match="not found"):
            resolve_binary("nonexistent_binary_xyz")


class TestChildEnvironment:
    def test_scrubs_inherited_credentials(self, monkeypatch):
        monkeypatch.setenv("BORG_PASSPHRASE", "inherited")
        monkeypatch.setenv("BORG_PASSCOMMAND", "pass show borg")
        monkeypatch.setenv("BORG_NEW_PASSPHRASE", "new")
        monkeypatch.setenv("BORG_EXIT_CODES", "modern")
        env = child_environment({"BORG_PASSPHRASE_FD": "0"})
        assert env["BORG_PASSPHRASE_FD"] == "0"
        for var in ("BORG_PASSPHRASE", "BORG_PASSCOMMAND", "BORG_NEW_PASSPHRASE", "BORG_EXIT_CODES"):
            assert var not in env

    def test_keeps_unrelated_variables(self, monkeypatch):
        monkeypatch.setenv("BORG_RSH", "ssh -p 2222")
        env = child_environment({})
        assert env["BORG_RSH"] == "ssh -p 2222"

    def test_does_not_touch_parent_environment(self, monkeypatch):
        monkeypatch.setenv("BORG_PASSPHRASE", "inherited")
        monkeypatch.delenv("BORG_PASSCOMMAND", raising=False)
        child_environment({"BORG_PASSCOMMAND": "x"})
        assert os.environ["BORG_PASSPHRASE"] == "inherited"
        assert "BORG_PASSCOMMAND" not in os.environ


class TestReadPassphrase:
    def test_none(self):
        assert read_passphrase(None) is None

    def test_strips_one_trailing_newline(self, tmp_path):
        f = tmp_path / "pass"
        f.write_bytes(b"s3cret\n\n")
        assert read_passphrase(f) == b"s3cret\n"

    def test_keeps_content_without_newline(self, tmp_path):
        f = tmp_path / "pass"
        f.write_bytes(b"s3cret")
        assert read_passphrase(f) == b"s3cret"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SpawnError, match="passphrase file"):
            read_passphrase(tmp_path / "missing")


class TestSubprocessExecutor:
    def test_successful_command(self):
        result = SubprocessExecutor().run(sh("echo hello"), "sh")
        assert result.exit_code == 0
        assert result.stdout_text.strip() == "hello"
        assert result.duration_seconds >= 0
        assert result.argv[1:] == ("-c", "echo hello")

    def test_exit_code(self):
        result = SubprocessExecutor().run(sh("exit 3"), "sh")
        assert result.exit_code == 3

    def test_captures_stderr(self):
        result = SubprocessExecutor().run(sh("echo err >&2"), "sh")
        assert "err" in result.stderr_text

    def test_signal_gives_negative_exit_code(self):
        result = SubprocessExecutor().run(sh("kill -TERM $$"), "sh")
        assert result.exit_code < 0

    def test_command_not_found(self):
        with pytest.raises(SpawnError):
            SubprocessExecutor().run(sh("true"), "nonexistent_binary_xyz")

    def test_unexecutable_file(self, not_a_program):
        with pytest.raises(SpawnError, match="Cannot start"):
            SubprocessExecutor().run(sh("true"), not_a_program)

    def test_resource_exhaustion_is_not_a_spawn_error(self, monkeypatch):
        def popen(*args, **kwargs):
            raise OSError(errno.EMFILE, "Too many open files")

        monkeypatch.setattr(subprocess, "Popen", popen)
        with pytest.raises(OSError) as excinfo:
            SubprocessExecutor().run(sh("true"), "sh")
        assert not isinstance(excinfo.value, SpawnError)
        assert excinfo.value.errno == errno.EMFILE

    def test_missing_cwd(self, tmp_path):
        with pytest.raises(SpawnError):
            SubprocessExecutor().run(sh("pwd", cwd=tmp_path / "missing"), "sh")

    def test_runs_in_cwd(self, tmp_path):
        result = SubprocessExecutor().run(sh("pwd", cwd=tmp_path), "sh")
        assert os.path.samefile(result.stdout_text.strip(), tmp_path)

    def test_env_overlay(self, monkeypatch):
        monkeypatch.setenv("BORG_PASSCOMMAND", "inherited")
        cmd = sh('echo "$BORG_PASSPHRASE:${BORG_PASSCOMMAND:-unset}"', env={"BORG_PASSPHRASE": "pw"})
        result = SubprocessExecutor().run(cmd, "sh")
        assert result.stdout_text.strip() == "pw:unset"

    def test_stdin_is_closed_without_passphrase_file(self):
        result = SubprocessExecutor().run(sh("cat"), "sh", timeout=5)
        assert result.exit_code == 0
        assert result.stdout == b""

    def test_passphrase_file_on_stdin(self, tmp_path):
        f = tmp_path / "pass"
        f.write_text("s3cret\n")
        result = SubprocessExecutor().run(sh("cat", stdin_file=f), "sh", timeout=5)
        assert result.stdout == b"s3cret"

    def test_timeout_kills_child(self, tmp_path):
        pidfile = tmp_path / "pid"
        cmd = sh(f"echo $$ > {pidfile}; exec sleep 30")
        with pytest.raises(ExecutionTimeout) as excinfo:
            SubprocessExecutor().run(cmd, "sh", timeout=0.5)
        assert excinfo.value.timeout == 0.5
        assert excinfo.value.duration_seconds < 30
        assert_gone(wait_for_pid(pidfile))


class TestAsyncioExecutor:
    def test_successful_command(self):
        result = asyncio.run(AsyncioExecutor().run(sh("echo hello; echo err >&2"), "sh"))
        assert result.exit_code == 0
        assert result.stdout_text.strip() == "hello"
        assert result.stderr_text.strip() == "err"

    def test_stderr_lines_delivered_as_they_arrive(self):
        lines = []
        cmd = sh("echo one >&2; echo two >&2; echo out")
        result = asyncio.run(AsyncioExecutor().run(cmd, "sh", on_stderr_line=lines.append))
        assert lines == ["one", "two"]
        assert result.stderr_text == "one\ntwo\n"

    def test_passphrase_file_on_stdin(self, tmp_path):
        f = tmp_path / "pass"
        f.write_text("s3cret\n")
        result = asyncio.run(AsyncioExecutor().run(sh("cat", stdin_file=f), "sh", timeout=5))
        assert result.stdout == b"s3cret"

    def test_command_not_found(self):
        with pytest.raises(SpawnError):
            asyncio.run(AsyncioExecutor().run(sh("true"), "nonexistent_binary_xyz"))

    def test_unexecutable_file(self, not_a_program):
        with pytest.raises(SpawnError, match="Cannot start"):
            asyncio.run(AsyncioExecutor().run(sh("true"), not_a_program))

    def test_resource_exhaustion_is_not_a_spawn_error(self, monkeypatch):
        async def spawn(*args, **kwargs):
            raise OSError(errno.EAGAIN, "Resource temporarily unavailable")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", spawn)
        with pytest.raises(OSError) as excinfo:
            asyncio.run(AsyncioExecutor().run(sh("true"), "sh"))
        assert not isinstance(excinfo.value, SpawnError)
        assert excinfo.value.errno == errno.EAGAIN

    def test_timeout_kills_child(self, tmp_path):
        pidfile = tmp_path / "pid"
        cmd = sh(f"echo $$ > {pidfile}; exec sleep 30")
        with pytest.raises(ExecutionTimeout):
            asyncio.run(AsyncioExecutor().run(cmd, "sh", timeout=0.5))
        assert_gone(wait_for_pid(pidfile))

    def test_cancellation_kills_child(self, tmp_path):
        pidfile = tmp_path / "pid"
        cmd = sh(f"echo $$ > {pidfile}; exec sleep 30")

        async def scenario():
            task = asyncio.create_task(AsyncioExecutor().run(cmd, "sh"))
            while not (pidfile.exists() and pidfile.read_text().strip()):
                await asyncio.sleep(0.02)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert_gone(int(pidfile.read_text()))

    def test_callback_error_kills_child(self, tmp_path):
        pidfile = tmp_path / "pid"
        cmd = sh(f"echo $$ > {pidfile}; echo boom >&2; exec sleep 30")

        def explode(line):
            raise RuntimeError(line)

        with pytest.raises(RuntimeError, match="boom"):
            asyncio.run(AsyncioExecutor().run(cmd, "sh", timeout=10, on_stderr_line=explode))
        assert_gone(wait_for_pid(pidfile))
