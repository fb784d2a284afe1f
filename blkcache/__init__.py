"""
blkcache

An in-memory cache of block device tags (TYPE, LABEL, UUID, ...) with a
reverse index for "which device has UUID=X" lookups.

Quick Start:
    from blkcache import Cache, set_tag, find_dev_with_tag

    cache = Cache()
    dev = cache.get_dev("/dev/sda1", create=True)
    set_tag(dev, "UUID", "1234-abcd")
    find_dev_with_tag(cache, "UUID", "1234-abcd")   # -> dev

Lookups that miss call the cache's prober once (see ProberProtocol)
before giving up, unless the cache is already marked as fully probed.

CLI Usage:
    blkcache find UUID=1234-abcd
    blkcache tags /dev/sda1
    blkcache list --json

Environment Variables:
    BLKCACHE_CONFIG_DIR  - Config directory (default ~/.blkcache)
    BLKCACHE_VERBOSE     - Set to 1 for debug logging from the CLI
"""

from .cache import Cache
from .errors import BlkidError, FormatError, InvalidIteratorError, ParameterError, ResourceError
from .protocol import AcceptVerifier, NullProber, ProberProtocol, VerifierProtocol
from .resolve import find_dev_with_tag, get_devname, get_tag_value, iter_devs_with_tag
from .tag import (
    TagIterator,
    dev_has_tag,
    find_tag_dev,
    parse_tag_string,
    set_tag,
    tag_iterate_begin,
    tag_iterate_end,
    tag_iterate_next,
)
from .types import CacheFlag, Device, DeviceFlag, IndexHead, Tag

__version__ = "0.1.0"
__all__ = [
    "Cache",
    "Device",
    "Tag",
    "IndexHead",
    "DeviceFlag",
    "CacheFlag",
    "set_tag",
    "find_tag_dev",
    "dev_has_tag",
    "parse_tag_string",
    "TagIterator",
    "tag_iterate_begin",
    "tag_iterate_next",
    "tag_iterate_end",
    "find_dev_with_tag",
    "iter_devs_with_tag",
    "get_devname",
    "get_tag_value",
    "ProberProtocol",
    "VerifierProtocol",
    "NullProber",
    "AcceptVerifier",
    "BlkidError",
    "ParameterError",
    "InvalidIteratorError",
    "ResourceError",
    "FormatError",
]
