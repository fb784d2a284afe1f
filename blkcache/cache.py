"""
In-memory device cache with a reverse tag index.

The cache owns one IndexHead per tag type. Every tag on an attached device
is linked into the head for its name, so a ``NAME=value`` lookup only walks
the tags of that type instead of every device.
"""

import logging
from typing import Iterator, Optional

from .errors import ParameterError, ResourceError
from .types import CacheFlag, Device, IndexHead, Tag

logger = logging.getLogger(__name__)


class Cache:
    """
    Container of devices plus the type -> tags reverse index.

    Args:
        prober: Default probing collaborator used by lookups that miss
        verifier: Default collaborator that re-validates lookup candidates

    Not thread-safe: a host that shares a cache between threads must
    serialize access to it.
    """

    def __init__(self, *, prober=None, verifier=None):
        self.heads: dict[str, IndexHead] = {}
        self.devices: list[Device] = []
        self.flags = CacheFlag.NONE
        self.prober = prober
        self.verifier = verifier

    def __repr__(self) -> str:
        return (
            f"Cache(devices={len(self.devices)}, heads={len(self.heads)}, "
            f"flags={self.flags!r})"
        )

    # -------------------------------------------------------------------------
    # Flags
    # -------------------------------------------------------------------------

    @property
    def probed(self) -> bool:
        return bool(self.flags & CacheFlag.PROBED)

    @property
    def changed(self) -> bool:
        return bool(self.flags & CacheFlag.CHANGED)

    def mark_probed(self) -> None:
        self.flags |= CacheFlag.PROBED

    def mark_changed(self) -> None:
        self.flags |= CacheFlag.CHANGED

    def clear_changed(self) -> None:
        self.flags &= ~CacheFlag.CHANGED

    # -------------------------------------------------------------------------
    # Reverse index
    # -------------------------------------------------------------------------

    def find_head_cache(self, name: str) -> Optional[IndexHead]:
        """Return the index head for a tag type, or None if never seen."""
        if not name:
            raise ParameterError("Tag type is required")
        return self.heads.get(name)

    def link_tag(self, tag: Tag) -> IndexHead:
        """Link a tag into the head for its name, creating the head if needed."""
        head = self.heads.get(tag.name)
        if head is None:
            head = IndexHead(name=tag.name)
            self.heads[tag.name] = head
            logger.debug("Creating new cache tag head %s", tag.name)
        tag.head = head
        head.tags.append(tag)
        return head

    def unlink_tag(self, tag: Tag) -> None:
        """Remove a tag from its head only; the device list is untouched."""
        if tag.head is not None:
            if tag in tag.head.tags:
                tag.head.tags.remove(tag)
            tag.head = None

    def discard_new_heads(self, existing: set[str]) -> None:
        """Drop empty heads whose names are not in ``existing``.

        Used to roll back a mutation that failed part way through.
        """
        for name in [n for n, h in self.heads.items() if n not in existing and not h.tags]:
            del self.heads[name]

    # -------------------------------------------------------------------------
    # Devices
    # -------------------------------------------------------------------------

    def add_device(self, device: Device) -> None:
        """
        Attach a device, indexing any tags it already carries.

        Raises:
            ParameterError: If the device belongs to another cache
            ResourceError: If indexing runs out of memory (nothing stays linked)
        """
        if device is None:
            raise ParameterError("Device is required")
        if device in self.devices:
            return
        if device.cache is not None and device.cache is not self:
            raise ParameterError(f"Device {device.name} is attached to another cache")

        existing = set(self.heads)
        linked = []
        try:
            for tag in device.tags:
                if tag.head is None:
                    linked.append(tag)
                    self.link_tag(tag)
        except MemoryError as e:
            for tag in linked:
                self.unlink_tag(tag)
            self.discard_new_heads(existing)
            raise ResourceError(f"Out of memory attaching {device.name}") from e

        device.cache = self
        self.devices.append(device)
        self.mark_changed()
        logger.debug("Attached device %s (%d tags)", device.name, len(device.tags))

    def remove_device(self, device: Device) -> None:
        """Destroy all tags of a device and detach it. Index heads survive."""
        if device is None:
            raise ParameterError("Device is required")
        if device not in self.devices:
            raise ParameterError(f"Device {device.name} is not in this cache")
        logger.debug("Freeing device %s", device.name)
        for tag in list(device.tags):
            tag.unlink()
        device.cache = None
        self.devices.remove(device)
        self.mark_changed()

    def get_dev(self, devname: str, create: bool = False) -> Optional[Device]:
        """
        Find an attached device by name.

        Args:
            devname: Device path, e.g. ``/dev/sda1``
            create: Create and attach an empty device if none exists

        Returns:
            The device, or None if not found and ``create`` is False
        """
        if not devname:
            raise ParameterError("Device name is required")
        for device in self.devices:
            if device.name == devname:
                return device
        if not create:
            return None
        device = Device(name=devname)
        self.add_device(device)
        return device

    def iter_devices(self) -> Iterator[Device]:
        """Iterate over attached devices in attach order."""
        return iter(list(self.devices))

    def index_problems(self) -> list[str]:
        """
        Check that device tag lists and index heads agree.

        Returns:
            Human-readable descriptions of each inconsistency; empty when
            every attached tag is in exactly the head for its name and every
            head entry belongs to an attached device.
        """
        problems = []
        for device in self.devices:
            if device.cache is not self:
                problems.append(f"{device.name}: back-reference to another cache")
            for tag in device.tags:
                if tag.device is not device:
                    problems.append(f"{device.name}: tag {tag.name} owned by another device")
                head = self.heads.get(tag.name)
                if head is None or tag.head is not head:
                    problems.append(f"{device.name}: tag {tag.name} not linked to its head")
                elif sum(1 for t in head.tags if t is tag) != 1:
                    problems.append(f"{device.name}: tag {tag.name} missing or repeated in head")

        for name, head in self.heads.items():
            for tag in head.tags:
                if tag.name != name:
                    problems.append(f"head {name}: holds tag named {tag.name}")
                owner = tag.device
                if owner is None or owner.cache is not self or tag not in owner.tags:
                    problems.append(f"head {name}: dangling tag {tag.name}={tag.value}")
                elif owner not in self.devices:
                    problems.append(f"head {name}: tag {tag.name}={tag.value} on unregistered device {owner.name}")
        return problems
