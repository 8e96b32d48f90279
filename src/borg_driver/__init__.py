"""borg-driver: build, run and decode BorgBackup commands."""

import logging

from borg_driver.builder import CommandLine, build_command
from borg_driver.classifier import OutcomeCategory, classify
from borg_driver.client import (
    check,
    check_async,
    compact,
    compact_async,
    create,
    create_async,
    delete,
    delete_async,
    execute,
    execute_async,
    extract,
    extract_async,
    info,
    info_async,
    init,
    init_async,
    list_archives,
    list_archives_async,
    mount,
    mount_async,
    prune,
    prune_async,
    umount,
    umount_async,
)
from borg_driver.config import BorgConfig, load_config
from borg_driver.errors import (
    BorgDriverError,
    ConfigError,
    DecodeError,
    ErrorKind,
    ExecutionTimeout,
    OperationFailed,
    SpawnError,
    UnsupportedOptionCombination,
    ValidationError,
)
from borg_driver.logjson import CreateProgress
from borg_driver.options import (
    CheckOptions,
    CommonOptions,
    CompactOptions,
    Compression,
    CreateOptions,
    DeleteOptions,
    EncryptionMode,
    EnvironmentPassphrase,
    ExtractOptions,
    InfoOptions,
    InitOptions,
    InstructionKind,
    KeepWithin,
    ListOptions,
    MountOptions,
    NoCredential,
    Operation,
    PassphraseCommand,
    PassphraseFile,
    Pattern,
    PatternInstruction,
    PatternStyle,
    PruneOptions,
    Repository,
    UmountOptions,
    WithinUnit,
)
from borg_driver.outcome import Failure, Outcome, Success, Warned
from borg_driver.runner import AsyncioExecutor, ExecutionResult, SubprocessExecutor

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "AsyncioExecutor",
    "BorgConfig",
    "BorgDriverError",
    "CheckOptions",
    "CommandLine",
    "CommonOptions",
    "CompactOptions",
    "Compression",
    "ConfigError",
    "CreateOptions",
    "CreateProgress",
    "DecodeError",
    "DeleteOptions",
    "EncryptionMode",
    "EnvironmentPassphrase",
    "ErrorKind",
    "ExecutionResult",
    "ExecutionTimeout",
    "ExtractOptions",
    "Failure",
    "InfoOptions",
    "InitOptions",
    "InstructionKind",
    "KeepWithin",
    "ListOptions",
    "MountOptions",
    "NoCredential",
    "Operation",
    "OperationFailed",
    "Outcome",
    "OutcomeCategory",
    "PassphraseCommand",
    "PassphraseFile",
    "Pattern",
    "PatternInstruction",
    "PatternStyle",
    "PruneOptions",
    "Repository",
    "SpawnError",
    "SubprocessExecutor",
    "Success",
    "UmountOptions",
    "UnsupportedOptionCombination",
    "ValidationError",
    "Warned",
    "WithinUnit",
    "build_command",
    "check",
    "check_async",
    "classify",
    "compact",
    "compact_async",
    "create",
    "create_async",
    "delete",
    "delete_async",
    "execute",
    "execute_async",
    "extract",
    "extract_async",
    "info",
    "info_async",
    "init",
    "init_async",
    "list_archives",
    "list_archives_async",
    "load_config",
    "mount",
    "mount_async",
    "prune",
    "prune_async",
    "umount",
    "umount_async",
]
