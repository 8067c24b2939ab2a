"""Tests for quality selector."""

import pytest

from streamgrid.config.models import BandwidthTier, SelectionPolicy
from streamgrid.errors import NoQualitiesAvailableError
from streamgrid.quality.catalog import (
    AUDIO,
    AUTO,
    DEFAULT_CATALOG,
    HD720P,
    HD720P60,
    HD1080P,
    HD1080P60,
    HD1440P,
    HD2160P,
    LOW,
    MEDIUM,
    MOBILE,
    SOURCE,
)
from streamgrid.quality.selector import QualitySelector
from streamgrid.types import DeviceClass, ResourceSnapshot

ALLOWED = (MOBILE, LOW, HD720P)
EVERYTHING = (AUDIO, MOBILE, LOW, MEDIUM, HD720P, HD720P60, HD1080P, HD1080P60, HD1440P, HD2160P)


@pytest.fixture
def selector():
    return QualitySelector()


class TestBandwidth:
    """Tests for bandwidth tiers."""

    def test_three_mbps_stays_below_720p(self, selector):
        """3 Mbps targets medium; medium is not offered so low is picked."""
        snapshot = ResourceSnapshot(bandwidth_mbps=3.0)
        assert selector.select(ALLOWED, snapshot) == LOW

    @pytest.mark.parametrize(
        "mbps,expected",
        [
            (0.5, MOBILE),
            (1.0, LOW),
            (2.0, MEDIUM),
            (4.0, HD720P),
            (6.0, HD720P60),
            (8.0, HD1080P),
            (12.0, HD1080P60),
            (16.0, HD1440P),
            (20.0, HD1440P),
            (25.0, HD2160P),
        ],
    )
    def test_tier_boundaries(self, selector, mbps, expected):
        assert selector.select(EVERYTHING, ResourceSnapshot(bandwidth_mbps=mbps)) == expected

    def test_fourteen_mbps_targets_hd1080p60(self, selector):
        allowed = (HD1080P60, HD1440P, HD2160P)
        assert selector.select(allowed, ResourceSnapshot(bandwidth_mbps=14.0)) == HD1080P60

    def test_hd1440p_reached_below_2160p(self, selector):
        """Without 2160p on offer, top bandwidth settles on 1440p."""
        allowed = (HD1080P60, HD1440P)
        assert selector.select(allowed, ResourceSnapshot(bandwidth_mbps=50.0)) == HD1440P

    def test_zero_bandwidth_falls_back_to_lowest(self, selector):
        """Nothing at or below the target means the lowest offered quality."""
        allowed = (HD720P, HD1080P)
        assert selector.select(allowed, ResourceSnapshot(bandwidth_mbps=0.0)) == HD720P

    def test_monotonic_in_bandwidth(self, selector):
        """More bandwidth never selects a lower rank."""
        picks = [
            DEFAULT_CATALOG.rank(selector.select(EVERYTHING, ResourceSnapshot(bandwidth_mbps=b)))
            for b in (0, 0.5, 1, 1.5, 2, 3, 4, 5, 6, 7, 8, 10, 12, 15, 16, 30)
        ]
        assert picks == sorted(picks)


class TestCaps:
    """Tests for cellular, battery and device caps."""

    def test_cellular_caps_at_720p(self, selector):
        snapshot = ResourceSnapshot(bandwidth_mbps=20.0, is_cellular=True)
        assert selector.select(ALLOWED, snapshot) == HD720P
        assert selector.select(EVERYTHING, snapshot) == HD720P

    def test_critical_battery(self, selector):
        snapshot = ResourceSnapshot(bandwidth_mbps=20.0, battery_level=0.1)
        assert selector.select(EVERYTHING, snapshot) == MOBILE

    def test_low_battery(self, selector):
        snapshot = ResourceSnapshot(bandwidth_mbps=20.0, battery_level=0.3)
        assert selector.select(EVERYTHING, snapshot) == LOW

    def test_healthy_battery_is_uncapped(self, selector):
        snapshot = ResourceSnapshot(bandwidth_mbps=30.0, battery_level=0.9)
        assert selector.select(EVERYTHING, snapshot) == HD2160P

    @pytest.mark.parametrize(
        "device,expected",
        [
            (DeviceClass.PHONE, HD1080P),
            (DeviceClass.TABLET, HD1080P60),
            (DeviceClass.TABLET_PRO, HD1440P),
            (DeviceClass.DESKTOP, HD1440P),
            (DeviceClass.TV, HD2160P),
            (DeviceClass.UNKNOWN, HD2160P),
        ],
    )
    def test_device_caps(self, selector, device, expected):
        snapshot = ResourceSnapshot(bandwidth_mbps=50.0, device_class=device)
        assert selector.select(EVERYTHING, snapshot) == expected

    def test_caps_only_lower(self, selector):
        """A cap above the bandwidth target leaves the target alone."""
        snapshot = ResourceSnapshot(bandwidth_mbps=2.0, is_cellular=True)
        assert selector.select(EVERYTHING, snapshot) == MEDIUM


class TestSelect:
    """Tests for selection edge cases."""

    def test_empty_allowed_raises(self, selector):
        with pytest.raises(NoQualitiesAvailableError):
            selector.select([], ResourceSnapshot(bandwidth_mbps=10.0))

    def test_auto_never_selected_over_finite(self, selector):
        """auto outranks every target, so it is only picked when alone."""
        allowed = (LOW, HD720P, AUTO)
        assert selector.select(allowed, ResourceSnapshot(bandwidth_mbps=100.0)) == HD720P
        assert selector.select((AUTO,), ResourceSnapshot(bandwidth_mbps=100.0)) == AUTO

    def test_source_needs_full_headroom(self, selector):
        """source ranks above 2160p, so default tiers never reach it."""
        allowed = (HD720P, SOURCE)
        assert selector.select(allowed, ResourceSnapshot(bandwidth_mbps=100.0)) == HD720P

    def test_deterministic(self, selector):
        snapshot = ResourceSnapshot(bandwidth_mbps=7.0, battery_level=0.5)
        assert {selector.select(EVERYTHING, snapshot) for _ in range(10)} == {HD720P60}

    def test_custom_policy(self):
        policy = SelectionPolicy(
            bandwidth_tiers=[
                BandwidthTier(min_mbps=0, quality="low"),
                BandwidthTier(min_mbps=5, quality="source"),
            ]
        )
        selector = QualitySelector(policy=policy)
        allowed = (LOW, HD720P, SOURCE)
        assert selector.select(allowed, ResourceSnapshot(bandwidth_mbps=4.0)) == LOW
        assert selector.select(allowed, ResourceSnapshot(bandwidth_mbps=5.0)) == SOURCE
