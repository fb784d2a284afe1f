"""
Resolve NAME=value specifications to devices.

find_dev_with_tag() answers "which device has UUID=X" from the reverse
index. If nothing matches and the cache has not been fully probed yet, it
asks the prober for one full pass and searches once more.
"""

import logging
from typing import Iterator, Optional

from .cache import Cache
from .errors import ParameterError
from .protocol import AcceptVerifier
from .tag import dev_has_tag, find_tag_dev, parse_tag_string
from .types import Device, Tag

logger = logging.getLogger(__name__)

# One pass over the current index, plus one after probing
MAX_ATTEMPTS = 2


def _check_args(cache: Cache, type: str, value: str) -> None:
    if cache is None:
        raise ParameterError("Cache is required")
    if not type:
        raise ParameterError("Tag type is required")
    if value is None:
        raise ParameterError("Tag value is required")


def _best_match(cache: Cache, type: str, value: str) -> Optional[Tag]:
    """Highest-priority tag matching type=value; earlier tags win ties."""
    head = cache.find_head_cache(type)
    if head is None:
        return None
    found = None
    for tag in head.tags:
        if tag.value != value:
            continue
        if found is None or tag.device.priority > found.device.priority:
            found = tag
    return found


def find_dev_with_tag(
    cache: Cache,
    type: str,
    value: str,
    *,
    prober=None,
    verifier=None,
) -> Optional[Device]:
    """
    Find the device carrying ``type=value``.

    When several devices match, the one with the highest priority is
    returned (this prefers device-mapper and RAID devices over their
    components). Only that single candidate is verified; if verification
    rejects it the attempt yields nothing, even if lower-priority matches
    exist.

    Args:
        cache: Cache to search
        type: Tag name, e.g. ``UUID``
        value: Exact tag value
        prober: Overrides ``cache.prober`` for this call
        verifier: Overrides ``cache.verifier`` for this call

    Returns:
        The verified device, or None if no device matches

    Raises:
        ParameterError: If cache, type or value is missing
    """
    _check_args(cache, type, value)
    prober = prober if prober is not None else cache.prober
    verifier = verifier if verifier is not None else cache.verifier
    if verifier is None:
        verifier = AcceptVerifier()

    logger.debug("Looking for %s=%s in cache", type, value)
    for attempt in range(MAX_ATTEMPTS):
        found = _best_match(cache, type, value)
        dev = None
        if found is not None:
            candidate = found.device
            dev = verifier.verify_devname(cache, candidate)
            if dev is None:
                logger.debug("Candidate %s failed verification", candidate.name)
            elif not dev_has_tag(dev, type, value):
                logger.debug("Device %s no longer has %s=%s", dev.name, type, value)
                dev = None

        if dev is not None:
            logger.debug("Found %s=%s on %s", type, value, dev.name)
            return dev
        if cache.probed or prober is None or attempt + 1 == MAX_ATTEMPTS:
            break
        logger.debug("No match for %s=%s, probing all devices", type, value)
        prober.probe_all(cache)
    return None


def iter_devs_with_tag(cache: Cache, type: str, value: str) -> Iterator[Device]:
    """
    Yield every attached device carrying ``type=value``.

    Highest priority first; devices of equal priority keep index order. A
    device with the tag set twice is yielded once. No probing or
    verification is done.
    """
    _check_args(cache, type, value)
    head = cache.find_head_cache(type)
    if head is None:
        return iter(())
    seen: list[Device] = []
    for tag in head.tags:
        if tag.value == value and all(d is not tag.device for d in seen):
            seen.append(tag.device)
    return iter(sorted(seen, key=lambda d: -d.priority))


def get_devname(cache: Cache, token: str, value: Optional[str] = None) -> Optional[str]:
    """
    Resolve a device specification to a device name.

    Args:
        cache: Cache to search
        token: Tag name when ``value`` is given; otherwise either a
            ``NAME=value`` string or a plain device name
        value: Tag value

    Returns:
        The matching device name, the token itself when it is already a
        device name, or None if nothing matches

    Raises:
        FormatError: If ``token`` looks like a tag but cannot be parsed
    """
    if cache is None:
        raise ParameterError("Cache is required")
    if not token:
        raise ParameterError("Token is required")

    if value is None:
        if "=" not in token:
            return token
        token, value = parse_tag_string(token)

    dev = find_dev_with_tag(cache, token, value)
    return dev.name if dev is not None else None


def get_tag_value(cache: Cache, name: str, devname: str) -> Optional[str]:
    """Value of the first ``name`` tag on the device called ``devname``."""
    if cache is None:
        raise ParameterError("Cache is required")
    dev = cache.get_dev(devname)
    if dev is None:
        return None
    tag = find_tag_dev(dev, name)
    return tag.value if tag is not None else None
