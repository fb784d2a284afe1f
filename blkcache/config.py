"""
Configuration management for blkcache.

The configuration is stored as a TOML file in the config directory.
It controls lazy probing, device verification, the priority table, and
the device inventory used by the static prober.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

# tomli_w for writing TOML (tomllib is read-only)
try:
    import tomli_w
except ImportError:
    tomli_w = None  # type: ignore

from .types import PRI_DM, PRI_MD, validate_tag_name


CONFIG_FILENAME = "blkcache.toml"
CONFIG_VERSION = 1

DEFAULT_PRIORITIES = {
    "dm-": PRI_DM,
    "md": PRI_MD,
}


@dataclass
class DeviceSpec:
    """One inventory entry: a device name, optional priority, and tags."""
    name: str
    priority: Optional[int] = None
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class CacheConfig:
    """Complete blkcache configuration."""
    path: Path
    version: int = CONFIG_VERSION
    probe_on_miss: bool = True
    verify_paths: bool = False
    priorities: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_PRIORITIES))
    devices: list[DeviceSpec] = field(default_factory=list)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_config_dir() -> Path:
    """Config directory: BLKCACHE_CONFIG_DIR, or ~/.blkcache."""
    env = os.environ.get("BLKCACHE_CONFIG_DIR")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".blkcache"


def _parse_device(entry: dict[str, Any]) -> DeviceSpec:
    name = entry.get("name")
    if not name or not isinstance(name, str):
        raise ValueError(f"[[device]] entry needs a name: {entry!r}")
    priority = entry.get("priority")
    if priority is not None and not isinstance(priority, int):
        raise ValueError(f"Device {name}: priority must be an integer")
    tags = entry.get("tags", {})
    if not isinstance(tags, dict):
        raise ValueError(f"Device {name}: tags must be a table")
    for key, value in tags.items():
        validate_tag_name(key)
        if not isinstance(value, str):
            raise ValueError(f"Device {name}: tag {key} must be a string")
    return DeviceSpec(name=name, priority=priority, tags=dict(tags))


def load_config(config_dir: Path) -> CacheConfig:
    """
    Load configuration from a config directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = config_dir / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    cache_section = data.get("cache", {})
    if not isinstance(cache_section, dict):
        raise ValueError("[cache] must be a table")

    # Validate version
    version = cache_section.get("version", 1)
    if not isinstance(version, int) or isinstance(version, bool):
        raise ValueError(f"Config version must be an integer: {version!r}")
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    priorities = data.get("priority", DEFAULT_PRIORITIES)
    if not isinstance(priorities, dict):
        raise ValueError("[priority] must be a table of prefix = integer")
    for prefix, pri in priorities.items():
        if not isinstance(pri, int) or isinstance(pri, bool):
            raise ValueError(f"Priority for {prefix!r} must be an integer")

    devices = data.get("device", [])
    if not isinstance(devices, list) or not all(isinstance(d, dict) for d in devices):
        raise ValueError("Devices must be declared as [[device]] tables")

    return CacheConfig(
        path=config_dir,
        version=version,
        probe_on_miss=bool(cache_section.get("probe_on_miss", True)),
        verify_paths=bool(cache_section.get("verify_paths", False)),
        priorities=dict(priorities),
        devices=[_parse_device(d) for d in devices],
    )


def save_config(config: CacheConfig) -> None:
    """
    Save configuration to the config directory.

    Creates the directory if it doesn't exist.
    """
    if tomli_w is None:
        raise RuntimeError("tomli_w is required to save config. Install with: pip install tomli-w")

    # Ensure directory exists
    config.path.mkdir(parents=True, exist_ok=True)

    def device_to_dict(d: DeviceSpec) -> dict:
        out: dict[str, Any] = {"name": d.name}
        if d.priority is not None:
            out["priority"] = d.priority
        out["tags"] = dict(d.tags)
        return out

    data: dict[str, Any] = {
        "cache": {
            "version": config.version,
            "probe_on_miss": config.probe_on_miss,
            "verify_paths": config.verify_paths,
        },
        "priority": dict(config.priorities),
    }
    if config.devices:
        data["device"] = [device_to_dict(d) for d in config.devices]

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(config_dir: Path) -> CacheConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = config_dir / CONFIG_FILENAME

    if config_path.exists():
        return load_config(config_dir)
    else:
        config = CacheConfig(path=config_dir)
        save_config(config)
        return config


def build_cache(config: CacheConfig):
    """
    Create a Cache wired to the configured prober and verifier.

    With ``probe_on_miss`` the cache starts empty and the inventory is
    probed by the first lookup that misses. Without it the inventory is
    probed here, up front, and lookups never probe.
    """
    from .cache import Cache
    from .probe import PathVerifier, StaticProber
    from .protocol import AcceptVerifier

    prober = StaticProber(config.devices, config.priorities)
    verifier = PathVerifier() if config.verify_paths else AcceptVerifier()
    if config.probe_on_miss:
        return Cache(prober=prober, verifier=verifier)
    cache = Cache(verifier=verifier)
    prober.probe_all(cache)
    return cache
