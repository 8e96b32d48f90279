"""Option model: validated parameter sets for every supported borg operation.

Every class here is a frozen dataclass that validates itself on construction.
Validation is pure: it never looks at the filesystem or the network, it only
rejects values borg would refuse (or misinterpret) before a process is spawned.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union

from borg_driver.errors import ValidationError

_CHECKPOINT_SUFFIX = re.compile(r"\.checkpoint(\.\d+)?$")


def _require_text(value: Any, name: str) -> None:
    """Raise ValidationError unless value is a non-blank string."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")


def _optional_text(value: Any, name: str) -> None:
    if value is not None:
        _require_text(value, name)


def _require_path(value: Any, name: str) -> None:
    if isinstance(value, Path):
        return
    _require_text(value, name)


def _check_int(value: Any, name: str, minimum: int, maximum: int | None = None) -> None:
    """Range-check an optional integer option."""
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{name} must be <= {maximum}, got {value}")


def _check_exclusive(**values: Any) -> None:
    """Raise ValidationError if more than one of the given options is set."""
    given = [name for name, value in values.items() if value not in (None, False, (), "")]
    if len(given) > 1:
        raise ValidationError(f"options are mutually exclusive: {', '.join(given)}")


def _check_archive_name(name: Any) -> None:
    _require_text(name, "archive name")
    if "/" in name:
        raise ValidationError(f"archive name must not contain '/': {name!r}")
    if "::" in name:
        raise ValidationError(f"archive name must not contain '::': {name!r}")
    if _CHECKPOINT_SUFFIX.search(name):
        raise ValidationError(f"archive name is reserved for checkpoints: {name!r}")


def _check_repository(value: Any) -> None:
    if not isinstance(value, Repository):
        raise ValidationError(f"repository must be a Repository, got {type(value).__name__}")


def _freeze(obj: Any, name: str) -> tuple:
    """Store a sequence field as a tuple on a frozen dataclass."""
    value = getattr(obj, name)
    if isinstance(value, (str, bytes)):
        raise ValidationError(f"{name} must be a sequence, not a single string")
    frozen = tuple(value)
    object.__setattr__(obj, name, frozen)
    return frozen


def _coerce_enum(obj: Any, name: str, enum_type: type[Enum]) -> None:
    value = getattr(obj, name)
    if isinstance(value, enum_type):
        return
    try:
        object.__setattr__(obj, name, enum_type(value))
    except ValueError as e:
        raise ValidationError(f"invalid {name}: {value!r}") from e


@dataclass(frozen=True)
class NoCredential:
    """The repository is not encrypted, or borg needs no key for the operation."""


@dataclass(frozen=True)
class EnvironmentPassphrase:
    """Passphrase handed to borg through ``BORG_PASSPHRASE``."""

    secret: str = field(repr=False)


@dataclass(frozen=True)
class PassphraseFile:
    """Passphrase streamed to borg on stdin (``BORG_PASSPHRASE_FD=0``)."""

    path: Path


@dataclass(frozen=True)
class PassphraseCommand:
    """Command borg runs itself to obtain the passphrase (``BORG_PASSCOMMAND``)."""

    command: str


CredentialSource = Union[NoCredential, EnvironmentPassphrase, PassphraseFile, PassphraseCommand]


@dataclass(frozen=True)
class Repository:
    """A borg repository location plus at most one way to unlock it.

    Example locations:
        - ``/srv/backups/repo``
        - ``user@example.com:/opt/repo``
        - ``ssh://user@example.com:2323/opt/repo``
    """

    location: str
    passphrase: str | None = field(default=None, repr=False)
    passphrase_file: Path | None = None
    passphrase_command: str | None = None

    def __post_init__(self) -> None:
        _require_text(self.location, "repository location")
        if self.passphrase is not None and not isinstance(self.passphrase, str):
            raise ValidationError("passphrase must be a string")
        if self.passphrase_file is not None:
            _require_path(self.passphrase_file, "passphrase_file")
            object.__setattr__(self, "passphrase_file", Path(self.passphrase_file))
        _optional_text(self.passphrase_command, "passphrase_command")
        # an empty passphrase is a real credential, so only None means unset
        given = [
            name
            for name, value in (
                ("passphrase", self.passphrase),
                ("passphrase_file", self.passphrase_file),
                ("passphrase_command", self.passphrase_command),
            )
            if value is not None
        ]
        if len(given) > 1:
            raise ValidationError(f"credential options are mutually exclusive: {', '.join(given)}")

    @property
    def credential(self) -> CredentialSource:
        if self.passphrase is not None:
            return EnvironmentPassphrase(self.passphrase)
        if self.passphrase_file is not None:
            return PassphraseFile(self.passphrase_file)
        if self.passphrase_command is not None:
            return PassphraseCommand(self.passphrase_command)
        return NoCredential()

    def archive(self, name: str) -> str:
        """Return the ``REPO::ARCHIVE`` location of an archive in this repository."""
        return f"{self.location}::{name}"


class EncryptionMode(str, Enum):
    """Encryption modes accepted by ``borg init --encryption``."""

    NONE = "none"
    AUTHENTICATED = "authenticated"
    AUTHENTICATED_BLAKE2 = "authenticated-blake2"
    REPOKEY = "repokey"
    KEYFILE = "keyfile"
    REPOKEY_BLAKE2 = "repokey-blake2"
    KEYFILE_BLAKE2 = "keyfile-blake2"


# algorithm -> allowed level range (None: takes no level)
_COMPRESSION_LEVELS: dict[str, tuple[int, int] | None] = {
    "none": None,
    "lz4": None,
    "zstd": (1, 22),
    "zlib": (0, 9),
    "lzma": (0, 9),
}


@dataclass(frozen=True)
class Compression:
    """A ``--compression`` value, e.g. ``Compression("zstd", 3)``.

    ``auto`` and ``obfuscate`` are not supported.
    """

    algorithm: str
    level: int | None = None

    def __post_init__(self) -> None:
        if self.algorithm not in _COMPRESSION_LEVELS:
            raise ValidationError(
                f"unknown compression {self.algorithm!r} "
                f"(expected one of {', '.join(_COMPRESSION_LEVELS)})"
            )
        levels = _COMPRESSION_LEVELS[self.algorithm]
        if levels is None:
            if self.level is not None:
                raise ValidationError(f"compression {self.algorithm!r} takes no level")
            return
        _check_int(self.level, f"{self.algorithm} level", levels[0], levels[1])

    def __str__(self) -> str:
        if self.level is None:
            return self.algorithm
        return f"{self.algorithm},{self.level}"


class PatternStyle(str, Enum):
    FNMATCH = "fm"
    SHELL = "sh"
    REGEX = "re"
    PATH_PREFIX = "pp"
    PATH_FULL_MATCH = "pf"


@dataclass(frozen=True)
class Pattern:
    """A path pattern in borg's ``style:value`` form.

    Regex, shell and fnmatch patterns run on Python's SRE engine inside borg;
    do not pass regex patterns from untrusted users.
    """

    style: PatternStyle
    value: str

    def __post_init__(self) -> None:
        _coerce_enum(self, "style", PatternStyle)
        _require_text(self.value, "pattern")

    def __str__(self) -> str:
        return f"{self.style.value}:{self.value}"


class InstructionKind(str, Enum):
    ROOT = "P"
    INCLUDE = "+"
    EXCLUDE = "-"
    EXCLUDE_NO_RECURSE = "!"


@dataclass(frozen=True)
class PatternInstruction:
    """One ``--pattern`` argument. The first matching instruction wins.

    ``ROOT`` takes a plain path to recurse from; the other kinds take a Pattern.
    """

    kind: InstructionKind
    pattern: Pattern | str

    def __post_init__(self) -> None:
        _coerce_enum(self, "kind", InstructionKind)
        if self.kind is InstructionKind.ROOT:
            _require_text(self.pattern, "root path")
        elif not isinstance(self.pattern, Pattern):
            raise ValidationError(f"{self.kind.name.lower()} instruction needs a Pattern")

    def __str__(self) -> str:
        return f"{self.kind.value} {self.pattern}"


class WithinUnit(str, Enum):
    HOUR = "H"
    DAY = "d"
    WEEK = "w"
    MONTH = "m"
    YEAR = "y"


@dataclass(frozen=True)
class KeepWithin:
    """Interval in which prune keeps every archive, e.g. ``KeepWithin(7, WithinUnit.DAY)``."""

    quantity: int
    unit: WithinUnit

    def __post_init__(self) -> None:
        _check_int(self.quantity, "keep_within quantity", 1)
        if self.quantity is None:
            raise ValidationError("keep_within quantity is required")
        _coerce_enum(self, "unit", WithinUnit)

    def __str__(self) -> str:
        return f"{self.quantity}{self.unit.value}"


@dataclass(frozen=True)
class CommonOptions:
    """Options that go before the subcommand of every borg call."""

    lock_wait: int | None = None
    rsh: str | None = None
    remote_path: str | None = None
    upload_ratelimit: int | None = None

    def __post_init__(self) -> None:
        _check_int(self.lock_wait, "lock_wait", 0)
        _check_int(self.upload_ratelimit, "upload_ratelimit", 0)
        _optional_text(self.rsh, "rsh")
        _optional_text(self.remote_path, "remote_path")


def _check_selection(archive: Any, glob_archives: Any, first: Any, last: Any) -> None:
    """Shared rules for operations that target one archive or a filtered set."""
    if archive is not None:
        _check_archive_name(archive)
        _check_exclusive(archive=archive, glob_archives=glob_archives)
        _check_exclusive(archive=archive, first=first)
        _check_exclusive(archive=archive, last=last)
    _optional_text(glob_archives, "glob_archives")
    _check_int(first, "first", 1)
    _check_int(last, "last", 1)
    _check_exclusive(first=first, last=last)


@dataclass(frozen=True)
class InitOptions:
    """Create a new, empty repository."""

    repository: Repository
    encryption: EncryptionMode
    append_only: bool = False
    make_parent_dirs: bool = False
    storage_quota: str | None = None

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        _coerce_enum(self, "encryption", EncryptionMode)
        _optional_text(self.storage_quota, "storage_quota")


@dataclass(frozen=True)
class CreateOptions:
    """Create an archive from the given paths and/or root patterns.

    Relative paths are stored as given, so they resolve against the working
    directory of the calling process.
    """

    repository: Repository
    archive: str
    paths: tuple[str, ...] = ()
    patterns: tuple[PatternInstruction, ...] = ()
    comment: str | None = None
    compression: Compression | None = None
    excludes: tuple[Pattern, ...] = ()
    pattern_file: str | None = None
    exclude_file: str | None = None
    exclude_caches: bool = False
    numeric_ids: bool = False
    sparse: bool = False
    read_special: bool = False
    no_xattrs: bool = False
    no_acls: bool = False
    no_flags: bool = False

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        _check_archive_name(self.archive)
        for p in _freeze(self, "paths"):
            _require_text(p, "path")
        patterns = _freeze(self, "patterns")
        for pattern in patterns:
            if not isinstance(pattern, PatternInstruction):
                raise ValidationError("patterns must be PatternInstruction values")
        for exclude in _freeze(self, "excludes"):
            if not isinstance(exclude, Pattern):
                raise ValidationError("excludes must be Pattern values")
        if self.comment is not None and not isinstance(self.comment, str):
            raise ValidationError("comment must be a string")
        if self.compression is not None and not isinstance(self.compression, Compression):
            raise ValidationError("compression must be a Compression")
        _optional_text(self.pattern_file, "pattern_file")
        _optional_text(self.exclude_file, "exclude_file")
        has_root = any(p.kind is InstructionKind.ROOT for p in patterns)
        if not self.paths and not has_root and self.pattern_file is None:
            raise ValidationError("create needs at least one path or root pattern")

    @property
    def reads_stdin(self) -> bool:
        return "-" in self.paths


@dataclass(frozen=True)
class ListOptions:
    """List the archives of a repository, or the items of one archive."""

    repository: Repository
    archive: str | None = None
    paths: tuple[str, ...] = ()
    glob_archives: str | None = None
    first: int | None = None
    last: int | None = None

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        _check_selection(self.archive, self.glob_archives, self.first, self.last)
        paths = _freeze(self, "paths")
        for p in paths:
            _require_text(p, "path")
        if paths and self.archive is None:
            raise ValidationError("paths can only be listed inside an archive")


@dataclass(frozen=True)
class InfoOptions:
    """Show repository statistics, or archive statistics when an archive is selected."""

    repository: Repository
    archive: str | None = None
    glob_archives: str | None = None
    first: int | None = None
    last: int | None = None

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        _check_selection(self.archive, self.glob_archives, self.first, self.last)


@dataclass(frozen=True)
class ExtractOptions:
    """Extract an archive into ``destination``."""

    repository: Repository
    archive: str
    destination: Path
    paths: tuple[str, ...] = ()
    patterns: tuple[PatternInstruction, ...] = ()
    excludes: tuple[Pattern, ...] = ()
    strip_components: int | None = None
    numeric_ids: bool = False
    sparse: bool = False
    dry_run: bool = False

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        _check_archive_name(self.archive)
        _require_path(self.destination, "destination")
        object.__setattr__(self, "destination", Path(self.destination))
        for p in _freeze(self, "paths"):
            _require_text(p, "path")
        for pattern in _freeze(self, "patterns"):
            if not isinstance(pattern, PatternInstruction):
                raise ValidationError("patterns must be PatternInstruction values")
            if pattern.kind is InstructionKind.ROOT:
                raise ValidationError("extract does not accept root patterns")
        for exclude in _freeze(self, "excludes"):
            if not isinstance(exclude, Pattern):
                raise ValidationError("excludes must be Pattern values")
        _check_int(self.strip_components, "strip_components", 0)


@dataclass(frozen=True)
class CheckOptions:
    """Verify repository and/or archive consistency (never repairs)."""

    repository: Repository
    archive: str | None = None
    repository_only: bool = False
    archives_only: bool = False
    verify_data: bool = False
    glob_archives: str | None = None
    first: int | None = None
    last: int | None = None

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        _check_exclusive(repository_only=self.repository_only, archives_only=self.archives_only)
        _check_exclusive(repository_only=self.repository_only, verify_data=self.verify_data)
        _check_selection(self.archive, self.glob_archives, self.first, self.last)
        if self.repository_only and (self.archive or self.glob_archives or self.first or self.last):
            raise ValidationError("archive selection has no effect with repository_only")


@dataclass(frozen=True)
class PruneOptions:
    """Thin out archives according to retention rules.

    Rules apply from secondly to yearly; archives kept by an earlier rule do not
    count towards later ones. ``keep_within`` archives count towards none.
    """

    repository: Repository
    keep_within: KeepWithin | None = None
    keep_secondly: int | None = None
    keep_minutely: int | None = None
    keep_hourly: int | None = None
    keep_daily: int | None = None
    keep_weekly: int | None = None
    keep_monthly: int | None = None
    keep_yearly: int | None = None
    glob_archives: str | None = None
    dry_run: bool = False

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        if self.keep_within is not None and not isinstance(self.keep_within, KeepWithin):
            raise ValidationError("keep_within must be a KeepWithin")
        for name, value in self.retention():
            if name != "keep_within":
                _check_int(value, name, 1)
        if all(value is None for _, value in self.retention()):
            raise ValidationError("prune needs at least one keep_* rule")
        _optional_text(self.glob_archives, "glob_archives")

    def retention(self) -> list[tuple[str, Any]]:
        """Keep rules in borg's documented order."""
        return [
            ("keep_within", self.keep_within),
            ("keep_secondly", self.keep_secondly),
            ("keep_minutely", self.keep_minutely),
            ("keep_hourly", self.keep_hourly),
            ("keep_daily", self.keep_daily),
            ("keep_weekly", self.keep_weekly),
            ("keep_monthly", self.keep_monthly),
            ("keep_yearly", self.keep_yearly),
        ]


@dataclass(frozen=True)
class CompactOptions:
    """Free space by compacting segment files."""

    repository: Repository
    threshold: int | None = None

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        _check_int(self.threshold, "threshold", 0, 100)


@dataclass(frozen=True)
class DeleteOptions:
    """Delete archives by name or by glob. Deleting a whole repository is not supported."""

    repository: Repository
    archives: tuple[str, ...] = ()
    glob_archives: str | None = None
    dry_run: bool = False

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        archives = _freeze(self, "archives")
        for name in archives:
            _check_archive_name(name)
        _optional_text(self.glob_archives, "glob_archives")
        _check_exclusive(archives=archives, glob_archives=self.glob_archives)
        if not archives and self.glob_archives is None:
            raise ValidationError("delete needs archive names or glob_archives")


@dataclass(frozen=True)
class MountOptions:
    """Mount a repository, or one archive of it, as a FUSE filesystem.

    Unless ``foreground`` is set borg daemonizes once the mount is up.
    """

    repository: Repository
    mountpoint: Path
    archive: str | None = None
    paths: tuple[str, ...] = ()
    excludes: tuple[Pattern, ...] = ()
    glob_archives: str | None = None
    first: int | None = None
    last: int | None = None
    foreground: bool = False

    def __post_init__(self) -> None:
        _check_repository(self.repository)
        _require_path(self.mountpoint, "mountpoint")
        object.__setattr__(self, "mountpoint", Path(self.mountpoint))
        _check_selection(self.archive, self.glob_archives, self.first, self.last)
        for p in _freeze(self, "paths"):
            _require_text(p, "path")
        for exclude in _freeze(self, "excludes"):
            if not isinstance(exclude, Pattern):
                raise ValidationError("excludes must be Pattern values")


@dataclass(frozen=True)
class UmountOptions:
    """Unmount a previously mounted repository or archive."""

    mountpoint: Path

    def __post_init__(self) -> None:
        _require_path(self.mountpoint, "mountpoint")
        object.__setattr__(self, "mountpoint", Path(self.mountpoint))


Operation = Union[
    InitOptions,
    CreateOptions,
    ListOptions,
    InfoOptions,
    ExtractOptions,
    CheckOptions,
    PruneOptions,
    CompactOptions,
    DeleteOptions,
    MountOptions,
    UmountOptions,
]
