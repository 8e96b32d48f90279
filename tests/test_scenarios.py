"""End-to-end scenarios against a real borg binary (skipped when borg is absent)."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import pytest

from borg_driver.client import (
    check,
    compact,
    create,
    create_async,
    delete,
    extract,
    info,
    init,
    list_archives,
    prune,
)
from borg_driver.errors import ErrorKind
from borg_driver.models import ArchiveItem, ListResult
from borg_driver.options import (
    CheckOptions,
    CompactOptions,
    CreateOptions,
    DeleteOptions,
    EncryptionMode,
    ExtractOptions,
    InfoOptions,
    InitOptions,
    ListOptions,
    PruneOptions,
    Repository,
)
from borg_driver.outcome import Failure, Success

pytestmark = pytest.mark.skipif(shutil.which("borg") is None, reason="borg is not installed")


@pytest.fixture()
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A scratch directory holding a 10-byte file, with borg's state kept inside it."""
    monkeypatch.setenv("BORG_BASE_DIR", str(tmp_path / "borg-home"))
    monkeypatch.chdir(tmp_path)
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "file.txt").write_bytes(b"0123456789")
    return tmp_path


@pytest.fixture()
def repo(workdir: Path) -> Repository:
    repository = Repository(str(workdir / "repo"))
    assert init(InitOptions(repository, EncryptionMode.NONE)) == Success(None)
    return repository


class TestUnencryptedRepository:
    def test_create_reports_original_size(self, repo: Repository):
        outcome = create(CreateOptions(repo, "first", paths=("data",)))
        assert isinstance(outcome, Success)
        assert outcome.value.archive.stats.original_size == 10
        assert outcome.value.archive.name == "first"
        assert outcome.value.archive.start.tzinfo is not None

    def test_list_and_info(self, repo: Repository):
        create(CreateOptions(repo, "first", paths=("data",))).unwrap()

        listing = list_archives(ListOptions(repo)).unwrap()
        assert isinstance(listing, ListResult)
        assert [a.name for a in listing.archives] == ["first"]

        items = list_archives(ListOptions(repo, archive="first")).unwrap()
        assert all(isinstance(i, ArchiveItem) for i in items)
        assert "data/file.txt" in [i.path for i in items]

        details = info(InfoOptions(repo, archive="first")).unwrap()
        assert details.archives[0].stats.nfiles == 1

    def test_extract_into_destination(self, repo: Repository, workdir: Path):
        create(CreateOptions(repo, "first", paths=("data",))).unwrap()
        dest = workdir / "restore"
        dest.mkdir()
        assert extract(ExtractOptions(repo, "first", dest)).ok
        assert (dest / "data" / "file.txt").read_bytes() == b"0123456789"

    def test_maintenance(self, repo: Repository):
        for name in ("a1", "a2", "a3"):
            create(CreateOptions(repo, name, paths=("data",))).unwrap()
        assert prune(PruneOptions(repo, keep_daily=1)).ok
        assert [a.name for a in list_archives(ListOptions(repo)).unwrap().archives] == ["a3"]
        assert delete(DeleteOptions(repo, archives=("a3",))).ok
        assert compact(CompactOptions(repo)).ok
        assert check(CheckOptions(repo)).ok

    def test_duplicate_archive_is_tool_error(self, repo: Repository):
        create(CreateOptions(repo, "first", paths=("data",))).unwrap()
        outcome = create(CreateOptions(repo, "first", paths=("data",)))
        assert isinstance(outcome, Failure)
        assert outcome.kind is ErrorKind.TOOL
        assert "Archive.AlreadyExists" in outcome.message_ids

    def test_async_create_with_progress(self, repo: Repository):
        events = []
        outcome = asyncio.run(create_async(CreateOptions(repo, "first", paths=("data",)), on_progress=events.append))
        assert outcome.ok
        assert events and events[-1].finished


class TestErrors:
    def test_missing_repository(self, workdir: Path):
        outcome = list_archives(ListOptions(Repository(str(workdir / "nope"))))
        assert isinstance(outcome, Failure)
        assert outcome.kind is ErrorKind.TOOL
        assert "Repository.DoesNotExist" in outcome.message_ids


class TestEncryptedRepository:
    def test_passphrase_file(self, workdir: Path):
        secret = workdir / "secret"
        secret.write_text("correct horse\n")
        repo = Repository(str(workdir / "repo"), passphrase_file=secret)
        assert init(InitOptions(repo, EncryptionMode.REPOKEY_BLAKE2)).ok
        assert create(CreateOptions(repo, "first", paths=("data",))).ok

        wrong = Repository(str(workdir / "repo"), passphrase="wrong")
        outcome = list_archives(ListOptions(wrong))
        assert isinstance(outcome, Failure)
        assert outcome.kind is ErrorKind.TOOL
