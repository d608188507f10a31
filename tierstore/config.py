"""Storage configuration: profiles, YAML files and environment overrides."""

import logging
import os
from pathlib import Path
from typing import Any

import msgspec
import yaml

from tierstore.backends import BACKEND_PRIORITY

logger = logging.getLogger(__name__)


class Profile(msgspec.Struct, frozen=True):
    """Named bundle of pipeline and retry defaults."""

    serialization: str
    compression: str
    max_retries: int


PROFILES: dict[str, Profile] = {
    "ultra-fast": Profile(serialization="json", compression="none", max_retries=1),
    "max-compression": Profile(serialization="msgpack", compression="zlib", max_retries=3),
    "low-memory": Profile(serialization="json", compression="zlib", max_retries=1),
    "safe-mode": Profile(serialization="json", compression="none", max_retries=5),
}

DEFAULT_PROFILE = "safe-mode"


def default_data_dir() -> Path:
    """XDG data home location for persistent backends."""
    xdg_data_home = Path(
        os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")
    )
    return xdg_data_home / "tierstore"


class StorageConfig(msgspec.Struct, kw_only=True):
    """Settings for one storage instance.

    ``serialization``, ``compression`` and ``max_retries`` override the
    profile's values when set.
    """

    namespace: str = ""
    profile: str = DEFAULT_PROFILE
    version: int = 1
    data_dir: str | None = None
    backends: list[str] = msgspec.field(default_factory=lambda: list(BACKEND_PRIORITY))
    cache_ttl: float = 300.0
    debug: bool = False
    safe_mode: bool = False
    serialization: str | None = None
    compression: str | None = None
    max_retries: int | None = None

    def __post_init__(self):
        if self.profile not in PROFILES:
            logger.warning("Unknown profile %r, using %s", self.profile, DEFAULT_PROFILE)
            self.profile = DEFAULT_PROFILE
        unknown = [name for name in self.backends if name not in BACKEND_PRIORITY]
        if unknown:
            raise ValueError(f"Unknown backends: {', '.join(unknown)}")

    @property
    def resolved_profile(self) -> Profile:
        """The profile with any explicit overrides applied."""
        base = PROFILES[self.profile]
        return Profile(
            serialization=self.serialization or base.serialization,
            compression=self.compression or base.compression,
            max_retries=base.max_retries if self.max_retries is None else self.max_retries,
        )

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser() if self.data_dir else default_data_dir()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StorageConfig":
        """Build a config from plain data, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__struct_fields__}
        if isinstance(known.get("data_dir"), Path):
            known["data_dir"] = str(known["data_dir"])
        try:
            return msgspec.convert(known, cls)
        except msgspec.ValidationError as e:
            raise ValueError(f"Invalid storage configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return msgspec.to_builtins(self)


def from_file(path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}")
    except OSError as e:
        raise ValueError(f"Error reading config file: {e}")
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def get_config_paths() -> list[Path]:
    """Get configuration paths in precedence order (last wins)."""
    paths = []

    # User config
    xdg_config_home = Path(
        os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
    )
    paths.append(xdg_config_home / "tierstore" / "config.yaml")

    # Project config
    paths.append(Path(".tierstore.yaml"))
    paths.append(Path("tierstore.yaml"))

    return paths


def env_overrides() -> dict[str, Any]:
    """Settings taken from ``TIERSTORE_*`` environment variables."""
    overrides: dict[str, Any] = {}
    if namespace := os.environ.get("TIERSTORE_NAMESPACE"):
        overrides["namespace"] = namespace
    if profile := os.environ.get("TIERSTORE_PROFILE"):
        overrides["profile"] = profile
    if data_dir := os.environ.get("TIERSTORE_DATA_DIR"):
        overrides["data_dir"] = data_dir
    if backends := os.environ.get("TIERSTORE_BACKENDS"):
        overrides["backends"] = [b.strip() for b in backends.split(",") if b.strip()]
    if cache_ttl := os.environ.get("TIERSTORE_CACHE_TTL"):
        overrides["cache_ttl"] = float(cache_ttl)
    if debug := os.environ.get("TIERSTORE_DEBUG"):
        overrides["debug"] = debug.lower() in ("1", "true", "yes", "on")
    return overrides


def load_config(path: Path | None = None, **overrides: Any) -> StorageConfig:
    """Load configuration from files, environment variables and keyword overrides.

    An explicit ``path`` replaces the default search paths.
    """
    config: dict[str, Any] = {}

    paths = [path] if path is not None else get_config_paths()
    for candidate in paths:
        if candidate.exists():
            try:
                config = merge_configs(config, from_file(candidate))
            except ValueError:
                if path is not None:
                    raise
                logger.warning("Skipping unreadable config file %s", candidate)

    config = merge_configs(config, env_overrides(), overrides)
    return StorageConfig.from_dict(config)


def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Merge multiple configuration dictionaries."""
    result: dict[str, Any] = {}
    for config in configs:
        result = _deep_merge(result, config)
    return result


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
