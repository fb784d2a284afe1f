"""
Shared pytest fixtures for blkcache tests.

Provides recording collaborators so tests can count probe and verify
calls without touching real block devices.
"""

import pytest

from blkcache.cache import Cache
from blkcache.tag import set_tag
from blkcache.types import Device


class RecordingProber:
    """
    Prober double that records calls and optionally adds devices.

    Args:
        devices: (devname, priority, {tag: value}) tuples created on probe
        mark_probed: Whether probe_all sets the cache PROBED flag
    """

    def __init__(self, devices=None, mark_probed: bool = True):
        self.devices = list(devices or [])
        self.mark_probed = mark_probed
        self.calls = 0

    def probe_all(self, cache: Cache) -> None:
        self.calls += 1
        for devname, priority, tags in self.devices:
            dev = cache.get_dev(devname, create=True)
            dev.priority = priority
            for name, value in tags.items():
                set_tag(dev, name, value, replace=True)
        if self.mark_probed:
            cache.mark_probed()


class RecordingVerifier:
    """Verifier double that records candidates and rejects listed names."""

    def __init__(self, reject=()):
        self.reject = set(reject)
        self.seen: list[str] = []

    def verify_devname(self, cache: Cache, device: Device):
        self.seen.append(device.name)
        if device.name in self.reject:
            return None
        return device


@pytest.fixture
def cache():
    """An empty cache with no collaborators."""
    return Cache()


@pytest.fixture
def make_device(cache):
    """Factory: create an attached device with tags set in order."""

    def _make(devname: str, priority: int = 0, **tags: str) -> Device:
        dev = cache.get_dev(devname, create=True)
        dev.priority = priority
        for name, value in tags.items():
            set_tag(dev, name, value)
        return dev

    return _make


@pytest.fixture
def prober():
    return RecordingProber()


@pytest.fixture
def verifier():
    return RecordingVerifier()
