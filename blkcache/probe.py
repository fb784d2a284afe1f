"""
Inventory-driven prober and path-based verifier.

Superblock probing is not done here. StaticProber fills a cache from a
declared device inventory (usually the ``[[device]]`` tables of
blkcache.toml), which is enough to exercise lazy probing end to end and to
describe fixed systems.
"""

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .tag import set_tag
from .types import PRI_DEFAULT, DeviceFlag

if TYPE_CHECKING:
    from .cache import Cache
    from .config import DeviceSpec
    from .types import Device

logger = logging.getLogger(__name__)


def priority_for(devname: str, priorities: dict[str, int]) -> int:
    """
    Priority for a device name from a prefix table.

    The basename of ``devname`` is matched against each prefix; the longest
    matching prefix wins. Unmatched names get PRI_DEFAULT.
    """
    base = os.path.basename(devname)
    best = None
    for prefix, pri in priorities.items():
        if base.startswith(prefix) and (best is None or len(prefix) > len(best)):
            best = prefix
    return priorities[best] if best is not None else PRI_DEFAULT


class StaticProber:
    """
    Prober that (re)creates devices from a fixed inventory.

    Each pass creates missing devices, refreshes priorities and replaces
    tag values, then marks the cache PROBED. Running it twice leaves the
    cache unchanged.
    """

    def __init__(self, devices: list["DeviceSpec"], priorities: Optional[dict[str, int]] = None):
        self.devices = list(devices)
        self.priorities = dict(priorities or {})

    def probe_all(self, cache: "Cache") -> None:
        logger.debug("Probing %d inventory devices", len(self.devices))
        for spec in self.devices:
            dev = cache.get_dev(spec.name, create=True)
            if spec.priority is not None:
                dev.priority = spec.priority
            else:
                dev.priority = priority_for(spec.name, self.priorities)
            for name, value in spec.tags.items():
                set_tag(dev, name, value, replace=True)
        cache.mark_probed()
        logger.info("Probe complete: %d devices in cache", len(cache.devices))


class PathVerifier:
    """
    Verifier that checks the device node still exists.

    A device whose path has disappeared is removed from the cache together
    with its tags.
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = root

    def _path(self, devname: str) -> Path:
        if self.root is None:
            return Path(devname)
        return self.root / devname.lstrip("/")

    def verify_devname(self, cache: "Cache", device: "Device") -> Optional["Device"]:
        if self._path(device.name).exists():
            device.flags |= DeviceFlag.VERIFIED
            device.flags &= ~DeviceFlag.INVALID
            return device
        logger.info("Device %s no longer exists, removing from cache", device.name)
        device.flags |= DeviceFlag.INVALID
        if device.cache is cache:
            cache.remove_device(device)
        return None
