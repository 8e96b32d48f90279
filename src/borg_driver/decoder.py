"""Result decoding: borg stdout text -> typed payload per operation."""

from __future__ import annotations

import logging
from typing import Any, TypeVar, assert_never

import pydantic

from borg_driver.errors import DecodeError
from borg_driver.models import ArchiveItem, BorgModel, CreateResult, InfoResult, ListResult
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

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BorgModel)


def _document(model: type[M], text: str) -> M:
    try:
        return model.model_validate_json(text)
    except pydantic.ValidationError as e:
        raise DecodeError(f"borg output is not a valid {model.__name__}: {e}") from e


def _lines(model: type[M], text: str) -> list[M]:
    items: list[M] = []
    for number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            items.append(model.model_validate_json(line))
        except pydantic.ValidationError as e:
            raise DecodeError(f"line {number} is not a valid {model.__name__}: {e}") from e
    return items


def decode(operation: Operation, stdout_text: str) -> Any:
    """Decode the stdout of a finished borg call.

    Returns:
        ``CreateResult``, ``ListResult``, ``list[ArchiveItem]`` or ``InfoResult``
        for operations that request JSON, ``None`` for every other operation.

    Raises:
        DecodeError: If the text is not the document the operation produces.
    """
    match operation:
        case CreateOptions():
            return _document(CreateResult, stdout_text)
        case ListOptions(archive=None):
            return _document(ListResult, stdout_text)
        case ListOptions():
            return _lines(ArchiveItem, stdout_text)
        case InfoOptions():
            return _document(InfoResult, stdout_text)
        case (
            InitOptions()
            | ExtractOptions()
            | CheckOptions()
            | PruneOptions()
            | CompactOptions()
            | DeleteOptions()
            | MountOptions()
            | UmountOptions()
        ):
            if stdout_text.strip():
                logger.debug("Ignoring %d bytes of stdout", len(stdout_text))
            return None
        case _:
            assert_never(operation)
