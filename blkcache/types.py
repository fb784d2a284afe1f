"""
Data types for the block device tag cache.

A Device owns an ordered list of Tags. When the device is attached to a
Cache, each Tag is also linked into the IndexHead for its name, which is
the reverse index used for ``NAME=value`` lookups.
"""

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from .errors import ParameterError

if TYPE_CHECKING:
    from .cache import Cache


# Well-known tag names aliased directly on the device
TYPE_TAG = "TYPE"
LABEL_TAG = "LABEL"
UUID_TAG = "UUID"

# Device priorities: higher wins when several devices share a tag value
PRI_DM = 40
PRI_EVMS = 30
PRI_LVM = 20
PRI_MD = 10
PRI_DEFAULT = 0


class DeviceFlag(enum.IntFlag):
    """Per-device state bits."""
    NONE = 0
    VERIFIED = 0x0001
    MTYPE = 0x0002      # more than one value seen for a tag name
    INVALID = 0x0004


class CacheFlag(enum.IntFlag):
    """Per-cache state bits."""
    NONE = 0
    PROBED = 0x0002     # a full probe pass has been done
    CHANGED = 0x0004    # modified since last written


def validate_tag_name(name: Optional[str]) -> None:
    """Reject a missing or empty tag name."""
    if name is None or not isinstance(name, str) or not name:
        raise ParameterError(f"Tag name must be a non-empty string: {name!r}")


@dataclass(eq=False)
class Tag:
    """
    A single NAME=value attribute.

    Tags compare by identity: two tags with the same name and value on the
    same device are still distinct entries.

    Attributes:
        name: Tag type, e.g. ``TYPE`` or ``UUID``
        value: Tag value
        device: The device owning this tag
        head: The index head this tag is linked into (None when the
            device is not attached to a cache)
    """
    name: str
    value: str
    device: Optional["Device"] = field(default=None, repr=False)
    head: Optional["IndexHead"] = field(default=None, repr=False)

    def unlink(self) -> None:
        """Remove the tag from its device list and its index head."""
        if self.device is not None:
            self.device.tags.remove(self)
            self.device = None
        if self.head is not None:
            self.head.tags.remove(self)
            self.head = None


@dataclass(eq=False)
class IndexHead:
    """Reverse-index bucket holding every attached tag of one type."""
    name: str
    tags: list[Tag] = field(default_factory=list)


@dataclass(eq=False)
class Device:
    """
    A block device and its tags.

    ``type``, ``label`` and ``uuid`` are read through references to the
    aliased Tag objects, so they always reflect the tag's current value and
    are cleared when the tag is destroyed.

    ``tags`` and ``cache`` are not constructor arguments: set_tag() and
    Cache.add_device() maintain them.
    """
    name: str
    priority: int = PRI_DEFAULT
    tags: list[Tag] = field(default_factory=list, init=False, repr=False)
    flags: DeviceFlag = DeviceFlag.NONE
    cache: Optional["Cache"] = field(default=None, init=False, repr=False)
    _type_tag: Optional[Tag] = field(default=None, init=False, repr=False)
    _label_tag: Optional[Tag] = field(default=None, init=False, repr=False)
    _uuid_tag: Optional[Tag] = field(default=None, init=False, repr=False)

    def _alias(self, tag: Optional[Tag]) -> Optional[str]:
        if tag is None or tag.device is not self:
            return None
        return tag.value

    @property
    def type(self) -> Optional[str]:
        return self._alias(self._type_tag)

    @property
    def label(self) -> Optional[str]:
        return self._alias(self._label_tag)

    @property
    def uuid(self) -> Optional[str]:
        return self._alias(self._uuid_tag)

    def as_dict(self) -> dict:
        """JSON-ready view: name, priority and tags as (name, value) pairs."""
        return {
            "name": self.name,
            "priority": self.priority,
            "tags": [[t.name, t.value] for t in self.tags],
        }

    def __str__(self) -> str:
        pairs = " ".join(f'{t.name}="{t.value}"' for t in self.tags)
        return f"{self.name}: {pairs}" if pairs else f"{self.name}:"
