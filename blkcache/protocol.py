"""
Protocol definitions for the collaborators a Cache calls out to.

- ProberProtocol: discovers devices and fills in their tags
- VerifierProtocol: re-validates a device before a lookup returns it

Both are synchronous; the cache blocks until they return.
"""

from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .cache import Cache
    from .types import Device


@runtime_checkable
class ProberProtocol(Protocol):
    """
    Populates a cache with devices and tags.

    Implementations are expected to set the cache's PROBED flag once a full
    pass has been made, so lookups stop asking for more probing. Probing
    twice must be harmless.
    """

    def probe_all(self, cache: "Cache") -> None: ...


@runtime_checkable
class VerifierProtocol(Protocol):
    """
    Confirms a device is still present and correctly described.

    May refresh the device's tags. Returns None when the device is gone,
    in which case the lookup discards it.
    """

    def verify_devname(self, cache: "Cache", device: "Device") -> Optional["Device"]: ...


class NullProber:
    """Prober that finds nothing but marks the cache as probed."""

    def probe_all(self, cache: "Cache") -> None:
        cache.mark_probed()


class AcceptVerifier:
    """Verifier that trusts every cached device."""

    def verify_devname(self, cache: "Cache", device: "Device") -> Optional["Device"]:
        return device
