"""
Tests for find_dev_with_tag(): priority arbitration, verification, and
the single lazy probe-and-retry.
"""

import pytest

from blkcache.cache import Cache
from blkcache.errors import ParameterError
from blkcache.resolve import find_dev_with_tag, get_devname, get_tag_value, iter_devs_with_tag
from blkcache.tag import set_tag

from tests.conftest import RecordingProber, RecordingVerifier


class TestPriority:
    def test_highest_priority_wins(self, cache, make_device):
        cache.mark_probed()
        make_device("/dev/sda1", priority=5, TYPE="ext4")
        b = make_device("/dev/sdb1", priority=10, TYPE="ext4")
        assert find_dev_with_tag(cache, "TYPE", "ext4") is b

    def test_falls_back_after_removal(self, cache, make_device):
        cache.mark_probed()
        a = make_device("/dev/sda1", priority=5, TYPE="ext4")
        b = make_device("/dev/sdb1", priority=10, TYPE="ext4")
        assert find_dev_with_tag(cache, "TYPE", "ext4") is b
        cache.remove_device(b)
        assert find_dev_with_tag(cache, "TYPE", "ext4") is a

    def test_tie_goes_to_first_in_index(self, cache, make_device):
        cache.mark_probed()
        a = make_device("/dev/sda1", priority=7, UUID="same")
        make_device("/dev/sdb1", priority=7, UUID="same")
        assert find_dev_with_tag(cache, "UUID", "same") is a

    def test_value_must_match_exactly(self, cache, make_device):
        cache.mark_probed()
        make_device("/dev/sda1", LABEL="Root")
        assert find_dev_with_tag(cache, "LABEL", "root") is None

    def test_matches_duplicate_value(self, cache):
        cache.mark_probed()
        dev = cache.get_dev("/dev/sda1", create=True)
        set_tag(dev, "TYPE", "ext4")
        set_tag(dev, "TYPE", "jbd")
        assert find_dev_with_tag(cache, "TYPE", "jbd") is dev

    def test_replaced_value_no_longer_matches(self, cache, make_device):
        cache.mark_probed()
        dev = make_device("/dev/sda1", UUID="old")
        set_tag(dev, "UUID", "new", replace=True)
        assert find_dev_with_tag(cache, "UUID", "old") is None
        assert find_dev_with_tag(cache, "UUID", "new") is dev


class TestVerification:
    def test_candidate_is_verified(self, cache, make_device, verifier):
        cache.mark_probed()
        make_device("/dev/sda1", UUID="u1")
        assert find_dev_with_tag(cache, "UUID", "u1", verifier=verifier).name == "/dev/sda1"
        assert verifier.seen == ["/dev/sda1"]

    def test_rejected_best_candidate_not_replaced(self, cache, make_device):
        cache.mark_probed()
        make_device("/dev/sda1", priority=1, UUID="u1")
        make_device("/dev/md0", priority=10, UUID="u1")
        verifier = RecordingVerifier(reject={"/dev/md0"})
        assert find_dev_with_tag(cache, "UUID", "u1", verifier=verifier) is None
        assert verifier.seen == ["/dev/md0"]

    def test_verifier_that_drops_tag(self, cache, make_device):
        cache.mark_probed()
        make_device("/dev/sda1", UUID="u1")

        class Refreshing:
            def verify_devname(self, cache, device):
                set_tag(device, "UUID", "u2", replace=True)
                return device

        assert find_dev_with_tag(cache, "UUID", "u1", verifier=Refreshing()) is None

    def test_no_candidate_skips_verifier(self, cache, verifier):
        cache.mark_probed()
        assert find_dev_with_tag(cache, "UUID", "none", verifier=verifier) is None
        assert verifier.seen == []

    def test_cache_default_verifier_used(self):
        verifier = RecordingVerifier(reject={"/dev/sda1"})
        cache = Cache(verifier=verifier)
        cache.mark_probed()
        dev = cache.get_dev("/dev/sda1", create=True)
        set_tag(dev, "UUID", "u1")
        assert find_dev_with_tag(cache, "UUID", "u1") is None


class TestLazyProbe:
    def test_probes_once_on_miss(self, cache, prober):
        assert find_dev_with_tag(cache, "UUID", "missing", prober=prober) is None
        assert prober.calls == 1

    def test_no_probe_when_already_probed(self, cache, prober):
        cache.mark_probed()
        assert find_dev_with_tag(cache, "UUID", "missing", prober=prober) is None
        assert prober.calls == 0

    def test_no_probe_on_hit(self, cache, make_device, prober):
        dev = make_device("/dev/sda1", UUID="u1")
        assert find_dev_with_tag(cache, "UUID", "u1", prober=prober) is dev
        assert prober.calls == 0

    def test_probe_finds_new_device(self, cache):
        prober = RecordingProber(devices=[("/dev/sdb1", 0, {"UUID": "u9"})])
        dev = find_dev_with_tag(cache, "UUID", "u9", prober=prober)
        assert dev is not None
        assert dev.name == "/dev/sdb1"
        assert prober.calls == 1
        assert cache.probed

    def test_retry_bounded_when_prober_never_marks(self, cache):
        prober = RecordingProber(mark_probed=False)
        assert find_dev_with_tag(cache, "UUID", "missing", prober=prober) is None
        assert prober.calls == 1
        assert not cache.probed

    def test_probe_after_rejected_candidate(self, cache, make_device):
        make_device("/dev/sda1", UUID="u1")
        verifier = RecordingVerifier(reject={"/dev/sda1"})
        prober = RecordingProber()
        assert find_dev_with_tag(cache, "UUID", "u1", prober=prober, verifier=verifier) is None
        assert prober.calls == 1
        assert verifier.seen == ["/dev/sda1", "/dev/sda1"]

    def test_cache_default_prober_used(self):
        prober = RecordingProber(devices=[("/dev/sdc1", 0, {"LABEL": "data"})])
        cache = Cache(prober=prober)
        assert find_dev_with_tag(cache, "LABEL", "data").name == "/dev/sdc1"
        assert find_dev_with_tag(cache, "LABEL", "other") is None
        assert prober.calls == 1

    def test_no_prober_configured(self, cache):
        assert find_dev_with_tag(cache, "UUID", "missing") is None


class TestParameters:
    @pytest.mark.parametrize("args", [
        (None, "UUID", "u1"),
        ("cache", "", "u1"),
        ("cache", None, "u1"),
        ("cache", "UUID", None),
    ])
    def test_missing_arguments(self, cache, args):
        c, type_, value = args
        with pytest.raises(ParameterError):
            find_dev_with_tag(cache if c == "cache" else c, type_, value)


class TestIterDevsWithTag:
    def test_all_matches_by_priority(self, cache, make_device):
        a = make_device("/dev/sda1", priority=5, TYPE="ext4")
        b = make_device("/dev/sdb1", priority=10, TYPE="ext4")
        c = make_device("/dev/sdc1", priority=5, TYPE="ext4")
        make_device("/dev/sdd1", priority=50, TYPE="xfs")
        assert list(iter_devs_with_tag(cache, "TYPE", "ext4")) == [b, a, c]

    def test_duplicate_tag_yields_device_once(self, cache):
        dev = cache.get_dev("/dev/sda1", create=True)
        set_tag(dev, "LABEL", "y")
        set_tag(dev, "LABEL", "x")
        set_tag(dev, "LABEL", "x")
        assert [t.value for t in dev.tags] == ["y", "x", "x"]
        assert list(iter_devs_with_tag(cache, "LABEL", "x")) == [dev]

    def test_unknown_type(self, cache):
        assert list(iter_devs_with_tag(cache, "UUID", "u1")) == []


class TestGetDevname:
    def test_name_value_token(self, cache, make_device):
        cache.mark_probed()
        make_device("/dev/sda1", LABEL="my disk")
        assert get_devname(cache, 'LABEL="my disk"') == "/dev/sda1"

    def test_separate_value(self, cache, make_device):
        cache.mark_probed()
        make_device("/dev/sda1", UUID="u1")
        assert get_devname(cache, "UUID", "u1") == "/dev/sda1"

    def test_plain_devname_passes_through(self, cache):
        assert get_devname(cache, "/dev/sdz9") == "/dev/sdz9"

    def test_no_match(self, cache):
        cache.mark_probed()
        assert get_devname(cache, "UUID=none") is None

    def test_get_tag_value(self, cache, make_device):
        make_device("/dev/sda1", TYPE="ext4")
        assert get_tag_value(cache, "TYPE", "/dev/sda1") == "ext4"
        assert get_tag_value(cache, "LABEL", "/dev/sda1") is None
        assert get_tag_value(cache, "TYPE", "/dev/sdz") is None
