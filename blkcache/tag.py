"""
Tag operations on a single device.

set_tag() keeps the device tag list and the cache's reverse index in step:
every tag it creates is linked into both, and every tag it destroys is
unlinked from both.
"""

import logging
from typing import Iterator, Optional

from .errors import FormatError, InvalidIteratorError, ParameterError, ResourceError
from .types import (
    LABEL_TAG,
    TYPE_TAG,
    UUID_TAG,
    Device,
    DeviceFlag,
    Tag,
    validate_tag_name,
)

logger = logging.getLogger(__name__)

_QUOTES = ('"', "'")


def find_tag_dev(device: Device, name: str) -> Optional[Tag]:
    """
    Find the first tag called ``name`` on a device.

    The match is exact and case sensitive, regardless of value. A tag with
    an empty value is still a match.

    Returns:
        The tag, or None if the device has no tag of that name
    """
    if device is None:
        raise ParameterError("Device is required")
    validate_tag_name(name)
    for tag in device.tags:
        if tag.name == name:
            return tag
    return None


def dev_has_tag(device: Device, name: str, value: str) -> bool:
    """True if any tag on the device has exactly this name and value."""
    if device is None:
        raise ParameterError("Device is required")
    validate_tag_name(name)
    return any(t.name == name and t.value == value for t in device.tags)


def _link_alias(device: Device, name: str, tag: Optional[Tag]) -> None:
    """Point the device's TYPE/LABEL/UUID alias at ``tag`` (None clears)."""
    if name == TYPE_TAG:
        # First type wins; a later different TYPE only sets MTYPE
        if tag is None or device.type is None:
            device._type_tag = tag
    elif name == LABEL_TAG:
        device._label_tag = tag
    elif name == UUID_TAG:
        device._uuid_tag = tag


def _mark_changed(device: Device) -> None:
    if device.cache is not None:
        device.cache.mark_changed()


def set_tag(
    device: Device,
    name: str,
    value: Optional[str],
    replace: bool = False,
) -> None:
    """
    Set, add or delete a tag on a device.

    Args:
        device: Device to modify
        name: Tag name, e.g. ``TYPE``
        value: New value, or None to delete every tag called ``name``
        replace: If True the value becomes the only one for ``name``
            (the first existing tag is overwritten in place). If False a
            differing value is added alongside the existing ones and the
            device is flagged MTYPE.

    Raises:
        ParameterError: Missing device or name, or a non-string value
        ResourceError: Out of memory; the device and index are left as
            they were before the call
    """
    if device is None:
        raise ParameterError("Device is required")
    validate_tag_name(name)
    if value is not None and not isinstance(value, str):
        raise ParameterError(f"Tag value must be a string: {value!r}")

    if value is None:
        for tag in [t for t in device.tags if t.name == name]:
            logger.debug("Freeing tag %s=%s on %s", tag.name, tag.value, device.name)
            tag.unlink()
        # Tags appended by hand may lack a device back-reference
        device.tags[:] = [t for t in device.tags if t.name != name]
        _link_alias(device, name, None)
        _mark_changed(device)
        return

    tag = find_tag_dev(device, name)
    if tag is not None:
        if tag.value == value:
            return
        if replace:
            tag.value = value
            _link_alias(device, name, tag)
            _mark_changed(device)
            return

    cache = device.cache
    existing = set(cache.heads) if cache is not None else set()
    new_tag = None
    try:
        new_tag = Tag(name=name, value=value, device=device)
        device.tags.append(new_tag)
        if cache is not None:
            cache.link_tag(new_tag)
    except MemoryError as e:
        if new_tag is not None:
            if cache is not None:
                cache.unlink_tag(new_tag)
            if new_tag in device.tags:
                device.tags.remove(new_tag)
            new_tag.device = None
        if cache is not None:
            cache.discard_new_heads(existing)
        raise ResourceError(f"Out of memory setting {name} on {device.name}") from e

    if tag is not None:
        device.flags |= DeviceFlag.MTYPE
    _link_alias(device, name, new_tag)
    _mark_changed(device)


def parse_tag_string(token: str) -> tuple[str, str]:
    """
    Parse a ``NAME=value`` string.

    Unlike a shell-style tokenizer, an unquoted value runs to the end of the
    string, spaces included. A value starting with a quote runs to the last
    occurrence of that quote character.

    Examples:
        LABEL=my disk      -> ("LABEL", "my disk")
        LABEL="my disk"    -> ("LABEL", "my disk")
        UUID='1234-abcd'   -> ("UUID", "1234-abcd")

    Raises:
        FormatError: No ``=`` in the token, or an unterminated quote
    """
    logger.debug("Trying to parse %r as a tag", token)
    if token is None or "=" not in token:
        raise FormatError(f"Not a NAME=value tag: {token!r}")

    name, value = token.split("=", 1)
    if value[:1] in _QUOTES:
        quote = value[0]
        value = value[1:]
        end = value.rfind(quote)
        if end < 0:
            raise FormatError(f"Missing closing quote in tag: {token!r}")
        value = value[:end]
    return name, value


# -----------------------------------------------------------------------------
# Iteration
# -----------------------------------------------------------------------------

class TagIterator:
    """
    Cursor over a device's tags.

    The cursor walks the live tag list; tags added or removed while it is
    open shift what it yields next. Once released with end(), further use
    raises InvalidIteratorError.

    Usable directly or as a context manager::

        with tag_iterate_begin(dev) as it:
            for name, value in it:
                ...
    """

    def __init__(self, device: Device):
        if device is None:
            raise ParameterError("Device is required")
        self._device: Optional[Device] = device
        self._pos = 0

    @property
    def valid(self) -> bool:
        return self._device is not None

    def next(self) -> Optional[tuple[str, str]]:
        """Return the next (name, value) pair, or None at the end."""
        if self._device is None:
            raise InvalidIteratorError("Tag iterator has been released")
        if self._pos >= len(self._device.tags):
            return None
        tag = self._device.tags[self._pos]
        self._pos += 1
        return tag.name, tag.value

    def end(self) -> None:
        """Release the iterator. Releasing twice is harmless."""
        self._device = None

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return self

    def __next__(self) -> tuple[str, str]:
        item = self.next()
        if item is None:
            raise StopIteration
        return item

    def __enter__(self) -> "TagIterator":
        return self

    def __exit__(self, *exc) -> None:
        self.end()


def tag_iterate_begin(device: Device) -> TagIterator:
    return TagIterator(device)


def tag_iterate_next(iterator: Optional[TagIterator]) -> Optional[tuple[str, str]]:
    if not isinstance(iterator, TagIterator):
        raise InvalidIteratorError("Not a tag iterator")
    return iterator.next()


def tag_iterate_end(iterator: Optional[TagIterator]) -> None:
    if isinstance(iterator, TagIterator):
        iterator.end()
