"""Command builder: turns a validated Operation into a borg CommandLine.

The builder is pure. It does not resolve the binary, read passphrase files or
touch the environment; that is the runner's job.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import assert_never

from borg_driver.errors import UnsupportedOptionCombination
from borg_driver.options import (
    CheckOptions,
    CommonOptions,
    CompactOptions,
    CreateOptions,
    CredentialSource,
    DeleteOptions,
    EncryptionMode,
    EnvironmentPassphrase,
    ExtractOptions,
    InfoOptions,
    InitOptions,
    ListOptions,
    MountOptions,
    NoCredential,
    Operation,
    PassphraseCommand,
    PassphraseFile,
    PruneOptions,
    Repository,
    UmountOptions,
)


@dataclass(frozen=True)
class CommandLine:
    """A fully built borg invocation, minus the binary itself."""

    operation: str
    args: tuple[str, ...]
    env: dict[str, str] = field(default_factory=dict, repr=False, hash=False)
    stdin_file: Path | None = None
    cwd: Path | None = None

    def render(self, binary: str = "borg") -> str:
        """Shell-quoted form for log lines. Never includes the env overlay."""
        return shlex.join((binary, *self.args))


def _common_args(common: CommonOptions) -> list[str]:
    args = ["--log-json"]
    if common.lock_wait is not None:
        args += ["--lock-wait", str(common.lock_wait)]
    if common.rsh is not None:
        args += ["--rsh", common.rsh]
    if common.remote_path is not None:
        args += ["--remote-path", common.remote_path]
    if common.upload_ratelimit is not None:
        args += ["--upload-ratelimit", str(common.upload_ratelimit)]
    return args


def _credential(credential: CredentialSource) -> tuple[dict[str, str], Path | None]:
    """Env overlay and stdin source for a credential."""
    match credential:
        case NoCredential():
            return {}, None
        case EnvironmentPassphrase(secret=secret):
            return {"BORG_PASSPHRASE": secret}, None
        case PassphraseFile(path=path):
            return {"BORG_PASSPHRASE_FD": "0"}, path
        case PassphraseCommand(command=command):
            return {"BORG_PASSCOMMAND": command}, None
        case _:
            assert_never(credential)


def _selection(glob_archives: str | None, first: int | None, last: int | None) -> list[str]:
    args: list[str] = []
    if glob_archives is not None:
        args += ["--glob-archives", glob_archives]
    if first is not None:
        args += ["--first", str(first)]
    if last is not None:
        args += ["--last", str(last)]
    return args


def _target(repository: Repository, archive: str | None) -> str:
    return repository.location if archive is None else repository.archive(archive)


def _init(op: InitOptions) -> list[str]:
    has_credential = not isinstance(op.repository.credential, NoCredential)
    if op.encryption is EncryptionMode.NONE and has_credential:
        raise UnsupportedOptionCombination("init with encryption 'none' does not take a credential")
    if op.encryption is not EncryptionMode.NONE and not has_credential:
        raise UnsupportedOptionCombination(
            f"init with encryption '{op.encryption.value}' needs a credential"
        )

    args = ["init", "--encryption", op.encryption.value]
    if op.append_only:
        args.append("--append-only")
    if op.make_parent_dirs:
        args.append("--make-parent-dirs")
    if op.storage_quota is not None:
        args += ["--storage-quota", op.storage_quota]
    args.append(op.repository.location)
    return args


def _create(op: CreateOptions, progress: bool) -> list[str]:
    if op.reads_stdin and isinstance(op.repository.credential, PassphraseFile):
        raise UnsupportedOptionCombination(
            "create cannot read file content from stdin while the passphrase is streamed on stdin"
        )

    args = ["create", "--json"]
    if progress:
        args.append("--progress")
    if op.comment is not None:
        args += ["--comment", op.comment]
    if op.compression is not None:
        args += ["--compression", str(op.compression)]
    if op.numeric_ids:
        args.append("--numeric-ids")
    if op.sparse:
        args.append("--sparse")
    if op.read_special:
        args.append("--read-special")
    if op.no_xattrs:
        args.append("--noxattrs")
    if op.no_acls:
        args.append("--noacls")
    if op.no_flags:
        args.append("--noflags")
    if op.exclude_caches:
        args.append("--exclude-caches")
    for pattern in op.patterns:
        args += ["--pattern", str(pattern)]
    for exclude in op.excludes:
        args += ["--exclude", str(exclude)]
    if op.pattern_file is not None:
        args += ["--patterns-from", op.pattern_file]
    if op.exclude_file is not None:
        args += ["--exclude-from", op.exclude_file]
    args.append(op.repository.archive(op.archive))
    args += op.paths
    return args


def _list(op: ListOptions) -> list[str]:
    if op.archive is not None:
        return ["list", "--json-lines", op.repository.archive(op.archive), *op.paths]
    return ["list", "--json", *_selection(op.glob_archives, op.first, op.last), op.repository.location]


def _info(op: InfoOptions) -> list[str]:
    return [
        "info",
        "--json",
        *_selection(op.glob_archives, op.first, op.last),
        _target(op.repository, op.archive),
    ]


def _extract(op: ExtractOptions) -> list[str]:
    args = ["extract"]
    if op.dry_run:
        args.append("--dry-run")
    if op.numeric_ids:
        args.append("--numeric-ids")
    if op.sparse:
        args.append("--sparse")
    if op.strip_components is not None:
        args += ["--strip-components", str(op.strip_components)]
    for pattern in op.patterns:
        args += ["--pattern", str(pattern)]
    for exclude in op.excludes:
        args += ["--exclude", str(exclude)]
    args.append(op.repository.archive(op.archive))
    args += op.paths
    return args


def _check(op: CheckOptions) -> list[str]:
    args = ["check"]
    if op.repository_only:
        args.append("--repository-only")
    if op.archives_only:
        args.append("--archives-only")
    if op.verify_data:
        args.append("--verify-data")
    args += _selection(op.glob_archives, op.first, op.last)
    args.append(_target(op.repository, op.archive))
    return args


def _prune(op: PruneOptions) -> list[str]:
    args = ["prune"]
    if op.dry_run:
        args.append("--dry-run")
    for name, value in op.retention():
        if value is not None:
            args += ["--" + name.replace("_", "-"), str(value)]
    if op.glob_archives is not None:
        args += ["--glob-archives", op.glob_archives]
    args.append(op.repository.location)
    return args


def _compact(op: CompactOptions) -> list[str]:
    if not isinstance(op.repository.credential, NoCredential):
        raise UnsupportedOptionCombination("compact never reads the key and takes no credential")

    args = ["compact"]
    if op.threshold is not None:
        args += ["--threshold", str(op.threshold)]
    args.append(op.repository.location)
    return args


def _delete(op: DeleteOptions) -> list[str]:
    args = ["delete"]
    if op.dry_run:
        args.append("--dry-run")
    if op.glob_archives is not None:
        args += ["--glob-archives", op.glob_archives]
    args.append(op.repository.location)
    args += op.archives
    return args


def _mount(op: MountOptions) -> list[str]:
    args = ["mount"]
    if op.foreground:
        args.append("--foreground")
    args += _selection(op.glob_archives, op.first, op.last)
    for exclude in op.excludes:
        args += ["--exclude", str(exclude)]
    args.append(_target(op.repository, op.archive))
    args.append(os.fspath(op.mountpoint))
    args += op.paths
    return args


def build_command(
    operation: Operation,
    common: CommonOptions | None = None,
    *,
    progress: bool = False,
) -> CommandLine:
    """Build the argv, env overlay, stdin source and cwd for an operation.

    Args:
        operation: A validated option set.
        common: Options placed before the subcommand.
        progress: Ask ``create`` for ``--progress`` records. Ignored otherwise.

    Raises:
        UnsupportedOptionCombination: If the credential cannot be used with the operation.
    """
    common = common if common is not None else CommonOptions()
    cwd: Path | None = None

    match operation:
        case InitOptions():
            args = _init(operation)
        case CreateOptions():
            args = _create(operation, progress)
        case ListOptions():
            args = _list(operation)
        case InfoOptions():
            args = _info(operation)
        case ExtractOptions():
            args = _extract(operation)
            cwd = operation.destination
        case CheckOptions():
            args = _check(operation)
        case PruneOptions():
            args = _prune(operation)
        case CompactOptions():
            args = _compact(operation)
        case DeleteOptions():
            args = _delete(operation)
        case MountOptions():
            args = _mount(operation)
        case UmountOptions():
            args = ["umount", os.fspath(operation.mountpoint)]
        case _:
            assert_never(operation)

    repository = getattr(operation, "repository", None)
    env, stdin_file = _credential(repository.credential) if repository else ({}, None)

    return CommandLine(
        operation=args[0],
        args=tuple(_common_args(common) + args),
        env=env,
        stdin_file=stdin_file,
        cwd=cwd,
    )
