"""Configuration loader and validator for borg-driver."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomllib

from borg_driver.errors import ConfigError, ValidationError
from borg_driver.options import CommonOptions

DEFAULT_CONFIG_PATH = "~/.config/borg-driver/config.toml"


@dataclass
class BorgConfig:
    binary: str = "borg"
    timeout: float | None = None
    common: CommonOptions = field(default_factory=CommonOptions)


def expand_path(p: str) -> Path:
    """Expand ~ and environment variables in a path string."""
    return Path(os.path.expandvars(os.path.expanduser(p)))


def _check_type(section: dict[str, Any], key: str, types: tuple[type, ...], section_name: str) -> None:
    """Raise ConfigError if a present key holds a value of the wrong type."""
    if key not in section:
        return
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, types):
        expected = " or ".join(t.__name__ for t in types)
        raise ConfigError(f"Key '{key}' in [{section_name}] must be {expected}, got {value!r}")


def _parse_borg(raw: dict[str, Any]) -> tuple[str, float | None]:
    _check_type(raw, "binary", (str,), "borg")
    _check_type(raw, "timeout", (int, float), "borg")

    binary = raw.get("binary", "borg")
    if not binary.strip():
        raise ConfigError("Key 'binary' in [borg] must not be empty")
    # bare names are looked up on PATH, anything with a separator is a path
    if os.sep in binary or binary.startswith("~"):
        binary = str(expand_path(binary))

    timeout = raw.get("timeout")
    if timeout is not None and timeout <= 0:
        raise ConfigError(f"Key 'timeout' in [borg] must be positive, got {timeout}")
    return binary, timeout


def _parse_common(raw: dict[str, Any]) -> CommonOptions:
    for key in ("lock_wait", "upload_ratelimit"):
        _check_type(raw, key, (int,), "common")
    for key in ("rsh", "remote_path"):
        _check_type(raw, key, (str,), "common")

    try:
        return CommonOptions(
            lock_wait=raw.get("lock_wait"),
            rsh=raw.get("rsh"),
            remote_path=raw.get("remote_path"),
            upload_ratelimit=raw.get("upload_ratelimit"),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid value in [common]: {e}") from e


def load_config(path: str | Path | None = None) -> BorgConfig:
    """Load and validate the borg-driver configuration file.

    Example:

        [borg]
        binary = "/usr/local/bin/borg"
        timeout = 3600

        [common]
        lock_wait = 30
        rsh = "ssh -i ~/.ssh/backup_key"

    Args:
        path: Path to config file. Defaults to ~/.config/borg-driver/config.toml,
            which may be absent (defaults are used then).

    Returns:
        A validated BorgConfig object.

    Raises:
        ConfigError: If an explicit file is missing, or any file is unreadable or invalid.
    """
    config_path = expand_path(str(path)) if path else expand_path(DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        if path:
            raise ConfigError(f"Config file not found: {config_path}")
        return BorgConfig()
    if not config_path.is_file():
        raise ConfigError(f"Config path is not a file: {config_path}")

    try:
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    config = BorgConfig()

    if "borg" in raw:
        if not isinstance(raw["borg"], dict):
            raise ConfigError("[borg] must be a table")
        config.binary, config.timeout = _parse_borg(raw["borg"])

    if "common" in raw:
        if not isinstance(raw["common"], dict):
            raise ConfigError("[common] must be a table")
        config.common = _parse_common(raw["common"])

    return config
