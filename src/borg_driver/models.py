"""Pydantic models for borg's ``--json`` and ``--json-lines`` output.

Models ignore unknown fields so newer borg releases that add keys keep
decoding. Timestamps must be ISO-8601 strings; borg writes naive local time,
which is made timezone-aware here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be an ISO-8601 string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


Timestamp = Annotated[datetime, BeforeValidator(_parse_timestamp)]


class BorgModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class RepositoryInfo(BorgModel):
    id: str
    location: str
    last_modified: Timestamp | None = None


class Encryption(BorgModel):
    mode: str
    keyfile: str | None = None


class CacheStats(BorgModel):
    total_chunks: int = 0
    total_csize: int = 0
    total_size: int = 0
    total_unique_chunks: int = 0
    unique_csize: int = 0
    unique_size: int = 0


class Cache(BorgModel):
    path: str | None = None
    stats: CacheStats = Field(default_factory=CacheStats)


class Limits(BorgModel):
    max_archive_size: float | None = None


class ArchiveStats(BorgModel):
    """Sizes in bytes as reported by borg, never recomputed."""

    compressed_size: int = 0
    deduplicated_size: int = 0
    nfiles: int = 0
    original_size: int = 0


class ArchiveDetail(BorgModel):
    id: str
    name: str
    command_line: list[str] = Field(default_factory=list)
    limits: Limits | None = None
    duration: float | None = None
    chunker_params: list[Any] | None = None
    start: Timestamp | None = None
    end: Timestamp | None = None
    stats: ArchiveStats = Field(default_factory=ArchiveStats)
    hostname: str | None = None
    username: str | None = None
    comment: str | None = None


class CreateResult(BorgModel):
    """Output of ``borg create --json``."""

    repository: RepositoryInfo
    cache: Cache | None = None
    encryption: Encryption | None = None
    archive: ArchiveDetail


class ArchiveSummary(BorgModel):
    id: str
    name: str
    start: Timestamp


class ListResult(BorgModel):
    """Output of ``borg list --json REPO``."""

    repository: RepositoryInfo
    encryption: Encryption | None = None
    archives: list[ArchiveSummary] = Field(default_factory=list)


class ArchiveItem(BorgModel):
    """One line of ``borg list --json-lines REPO::ARCHIVE``."""

    type: str
    path: str
    mode: str | None = None
    user: str | None = None
    group: str | None = None
    uid: int | None = None
    gid: int | None = None
    healthy: bool | None = None
    source: str | None = None
    linktarget: str | None = None
    flags: int | None = None
    mtime: Timestamp | None = None
    size: int | None = None

    @property
    def is_dir(self) -> bool:
        return self.type == "d"


class InfoResult(BorgModel):
    """Output of ``borg info --json``; ``archives`` is empty for repository-only info."""

    repository: RepositoryInfo
    cache: Cache | None = None
    encryption: Encryption | None = None
    security_dir: str | None = None
    archives: list[ArchiveDetail] = Field(default_factory=list)
