"""Run borg operations and return typed outcomes.

``execute`` and ``execute_async`` share everything except the process
primitive: both build the command line, hand it to an executor, classify the
exit code and decode stdout. Expected failures come back as ``Failure``
values; only validation errors (raised when the options are constructed),
unexpected OS errors from the spawn primitive and cancellation escape.

Usage:

    repo = Repository("/srv/backups/repo", passphrase_file="/run/secrets/borg")
    outcome = create(CreateOptions(repo, "home-2024-05-01", paths=("/home",)))
    if outcome.ok:
        print(outcome.value.archive.stats.original_size)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from borg_driver.builder import CommandLine, build_command
from borg_driver.classifier import OutcomeCategory, classify, error_detail, failure_kind
from borg_driver.config import BorgConfig
from borg_driver.decoder import decode
from borg_driver.errors import (
    DecodeError,
    ErrorKind,
    ExecutionTimeout,
    SpawnError,
    UnsupportedOptionCombination,
)
from borg_driver.logjson import CreateProgress, parse_log_stream, parse_record, progress_from_record
from borg_driver.models import ArchiveItem, CreateResult, InfoResult, ListResult
from borg_driver.options import (
    CheckOptions,
    CompactOptions,
    CreateOptions,
    DeleteOptions,
    ExtractOptions,
    InfoOptions,
    InitOptions,
    ListOptions,
    MountOptions,
    Operation,
    PruneOptions,
    UmountOptions,
)
from borg_driver.outcome import Failure, Outcome, Success, Warned
from borg_driver.runner import (
    AsyncioExecutor,
    AsyncProcessExecutor,
    ExecutionResult,
    ProcessExecutor,
    SubprocessExecutor,
)

logger = logging.getLogger(__name__)


def _prepare(
    operation: Operation, config: BorgConfig, progress: bool = False
) -> CommandLine | Failure:
    try:
        return build_command(operation, config.common, progress=progress)
    except UnsupportedOptionCombination as e:
        logger.error("Refusing to run borg: %s", e)
        return Failure(ErrorKind.UNSUPPORTED_OPTION_COMBINATION, str(e))


def _finish(operation: Operation, command: CommandLine, result: ExecutionResult) -> Outcome[Any]:
    """Classify the exit code, then decode stdout for non-error outcomes."""
    stderr_text = result.stderr_text
    log = parse_log_stream(stderr_text)
    category = classify(result.exit_code)

    if category is OutcomeCategory.ERROR:
        detail = error_detail(stderr_text, log) or f"borg exited with code {result.exit_code}"
        logger.error("borg %s failed (exit %d): %s", command.operation, result.exit_code, detail)
        return Failure(
            failure_kind(result.exit_code),
            detail,
            exit_code=result.exit_code,
            raw=stderr_text,
            message_ids=log.message_ids,
        )

    try:
        value = decode(operation, result.stdout_text)
    except DecodeError as e:
        logger.error("Could not decode borg %s output: %s", command.operation, e)
        return Failure(
            ErrorKind.DECODE,
            str(e),
            exit_code=result.exit_code,
            raw=result.stdout_text,
            message_ids=log.message_ids,
        )

    if category is OutcomeCategory.WARNING:
        logger.warning("borg %s finished with warnings", command.operation)
        return Warned(value, stderr_text)

    logger.info("borg %s finished in %.1fs", command.operation, result.duration_seconds)
    return Success(value)


def _timeout(timeout: float | None, config: BorgConfig) -> float | None:
    return timeout if timeout is not None else config.timeout


def execute(
    operation: Operation,
    *,
    config: BorgConfig | None = None,
    timeout: float | None = None,
    executor: ProcessExecutor | None = None,
) -> Outcome[Any]:
    """Run one borg operation, blocking until it finishes.

    Args:
        operation: A validated option set.
        config: Binary, default timeout and common options. Defaults to BorgConfig().
        timeout: Seconds before the child is killed. Overrides config.timeout.
        executor: Process primitive. Defaults to SubprocessExecutor().
    """
    config = config or BorgConfig()
    executor = executor or SubprocessExecutor()

    command = _prepare(operation, config)
    if isinstance(command, Failure):
        return command

    try:
        result = executor.run(command, config.binary, _timeout(timeout, config))
    except SpawnError as e:
        logger.error("%s", e)
        return Failure(ErrorKind.SPAWN, str(e))
    except ExecutionTimeout as e:
        return Failure(ErrorKind.TIMEOUT, str(e))

    return _finish(operation, command, result)


def _progress_listener(on_progress: Callable[[CreateProgress], None]) -> Callable[[str], None]:
    def on_line(line: str) -> None:
        record = parse_record(line)
        if record is None:
            return
        progress = progress_from_record(record)
        if progress is not None:
            on_progress(progress)

    return on_line


async def execute_async(
    operation: Operation,
    *,
    config: BorgConfig | None = None,
    timeout: float | None = None,
    executor: AsyncProcessExecutor | None = None,
    on_progress: Callable[[CreateProgress], None] | None = None,
) -> Outcome[Any]:
    """Async counterpart of ``execute``.

    ``on_progress`` only applies to create; it adds ``--progress`` and is called
    for every ``archive_progress`` record while borg runs. Cancelling the
    awaiting task kills and reaps the child before CancelledError propagates.
    """
    config = config or BorgConfig()
    executor = executor or AsyncioExecutor()
    wants_progress = on_progress is not None and isinstance(operation, CreateOptions)

    command = _prepare(operation, config, progress=wants_progress)
    if isinstance(command, Failure):
        return command

    try:
        result = await executor.run(
            command,
            config.binary,
            _timeout(timeout, config),
            _progress_listener(on_progress) if wants_progress else None,
        )
    except SpawnError as e:
        logger.error("%s", e)
        return Failure(ErrorKind.SPAWN, str(e))
    except ExecutionTimeout as e:
        return Failure(ErrorKind.TIMEOUT, str(e))

    return _finish(operation, command, result)


# Per-operation entry points. Keyword arguments are passed to execute().


def init(options: InitOptions, **kwargs: Any) -> Outcome[None]:
    return execute(options, **kwargs)


def create(options: CreateOptions, **kwargs: Any) -> Outcome[CreateResult]:
    return execute(options, **kwargs)


def list_archives(options: ListOptions, **kwargs: Any) -> Outcome[ListResult | list[ArchiveItem]]:
    """List a repository (ListResult) or the items of one archive (list[ArchiveItem])."""
    return execute(options, **kwargs)


def info(options: InfoOptions, **kwargs: Any) -> Outcome[InfoResult]:
    return execute(options, **kwargs)


def extract(options: ExtractOptions, **kwargs: Any) -> Outcome[None]:
    return execute(options, **kwargs)


def check(options: CheckOptions, **kwargs: Any) -> Outcome[None]:
    return execute(options, **kwargs)


def prune(options: PruneOptions, **kwargs: Any) -> Outcome[None]:
    return execute(options, **kwargs)


def compact(options: CompactOptions, **kwargs: Any) -> Outcome[None]:
    return execute(options, **kwargs)


def delete(options: DeleteOptions, **kwargs: Any) -> Outcome[None]:
    return execute(options, **kwargs)


def mount(options: MountOptions, **kwargs: Any) -> Outcome[None]:
    return execute(options, **kwargs)


def umount(options: UmountOptions, **kwargs: Any) -> Outcome[None]:
    return execute(options, **kwargs)


async def init_async(options: InitOptions, **kwargs: Any) -> Outcome[None]:
    return await execute_async(options, **kwargs)


async def create_async(
    options: CreateOptions,
    *,
    on_progress: Callable[[CreateProgress], None] | None = None,
    **kwargs: Any,
) -> Outcome[CreateResult]:
    return await execute_async(options, on_progress=on_progress, **kwargs)


async def list_archives_async(
    options: ListOptions, **kwargs: Any
) -> Outcome[ListResult | list[ArchiveItem]]:
    return await execute_async(options, **kwargs)


async def info_async(options: InfoOptions, **kwargs: Any) -> Outcome[InfoResult]:
    return await execute_async(options, **kwargs)


async def extract_async(options: ExtractOptions, **kwargs: Any) -> Outcome[None]:
    return await execute_async(options, **kwargs)


async def check_async(options: CheckOptions, **kwargs: Any) -> Outcome[None]:
    return await execute_async(options, **kwargs)


async def prune_async(options: PruneOptions, **kwargs: Any) -> Outcome[None]:
    return await execute_async(options, **kwargs)


async def compact_async(options: CompactOptions, **kwargs: Any) -> Outcome[None]:
    return await execute_async(options, **kwargs)


async def delete_async(options: DeleteOptions, **kwargs: Any) -> Outcome[None]:
    return await execute_async(options, **kwargs)


async def mount_async(options: MountOptions, **kwargs: Any) -> Outcome[None]:
    return await execute_async(options, **kwargs)


async def umount_async(options: UmountOptions, **kwargs: Any) -> Outcome[None]:
    return await execute_async(options, **kwargs)
