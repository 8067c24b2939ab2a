"""Tests for coordinator module."""

import pytest

from streamgrid.config.models import AdaptationThresholds, Config, LayoutSettings
from streamgrid.coordinator import MultiStreamCoordinator
from streamgrid.errors import (
    DuplicateSlotError,
    InvalidContainerError,
    NoQualitiesAvailableError,
    QualityUnavailableError,
    SlotOverflowError,
    TopologyTooSmallError,
    UnknownSlotError,
)
from streamgrid.layout.topology import GRID_2X2, GRID_3X3, SPLIT_VIEW, STACK, THEATER
from streamgrid.quality.catalog import (
    AUTO,
    HD720P,
    HD720P60,
    HD1080P,
    HD1080P60,
    LOW,
    MEDIUM,
    MOBILE,
)
from streamgrid.types import PlaybackState, Platform, ResourceSnapshot, Size, SlotTelemetry

QUALITIES = (MOBILE, LOW, MEDIUM, HD720P, HD720P60, HD1080P, HD1080P60)
FAST = ResourceSnapshot(bandwidth_mbps=100.0)
GOOD = SlotTelemetry(cpu_usage=0.2, memory_usage=0.2)
HOT_CPU = SlotTelemetry(cpu_usage=0.9, memory_usage=0.2)


def make_coordinator(topology=GRID_2X2, **kwargs) -> MultiStreamCoordinator:
    return MultiStreamCoordinator(topology, Size(800, 600), spacing=10, **kwargs)


def add(coordinator, stream_id, quality=HD1080P, state=PlaybackState.PLAYING, **kwargs):
    return coordinator.add_slot(
        stream_id,
        Platform.TWITCH,
        QUALITIES,
        playback_state=state,
        initial_quality=quality,
        **kwargs,
    )


class TestInit:
    """Tests for coordinator construction."""

    def test_starts_empty(self):
        coordinator = make_coordinator()
        assert coordinator.slots == ()
        assert len(coordinator.view()) == 0

    def test_rejects_invalid_container(self):
        with pytest.raises(InvalidContainerError):
            MultiStreamCoordinator(GRID_2X2, Size(0, 600))

    def test_from_config(self):
        config = Config(
            layout=LayoutSettings(topology="stack", spacing=4),
            adaptation=AdaptationThresholds(hysteresis_ticks=3),
        )
        coordinator = MultiStreamCoordinator.from_config(config, Size(400, 800))

        assert coordinator.topology == STACK
        assert coordinator.spacing == 4
        assert coordinator.adaptation.hysteresis_ticks == 3


class TestAddSlot:
    """Tests for adding slots."""

    def test_add_places_slot(self):
        coordinator = make_coordinator()
        add(coordinator, "a")

        view = coordinator.view()
        assert list(view) == ["a"]
        assert (view["a"].rect.width, view["a"].rect.height) == (395, 295)
        assert view["a"].priority == 3
        assert view["a"].platform_value == "720p60"

    def test_overflow_leaves_slots_unchanged(self):
        """A full split view rejects a third stream and keeps the first two."""
        coordinator = make_coordinator(SPLIT_VIEW)
        add(coordinator, "a")
        add(coordinator, "b")
        before = coordinator.view()

        with pytest.raises(SlotOverflowError) as exc_info:
            add(coordinator, "c")

        assert exc_info.value.max_slots == 2
        assert len(coordinator.slots) == 2
        assert coordinator.view() is before

    def test_duplicate(self):
        coordinator = make_coordinator()
        add(coordinator, "a")
        with pytest.raises(DuplicateSlotError):
            add(coordinator, "a")

    def test_empty_qualities(self):
        coordinator = make_coordinator()
        with pytest.raises(NoQualitiesAvailableError):
            coordinator.add_slot("a", Platform.TWITCH, [])

    def test_initial_quality_not_offered(self):
        coordinator = make_coordinator()
        with pytest.raises(QualityUnavailableError):
            coordinator.add_slot("a", Platform.TWITCH, (LOW, MEDIUM), initial_quality=HD720P)
        assert coordinator.slots == ()

    def test_platform_defaults(self):
        coordinator = make_coordinator()
        slot = coordinator.add_slot("a", "youtube")
        assert slot.platform is Platform.YOUTUBE
        assert slot.available_qualities[0] == LOW
        assert slot.available_qualities[-1] == AUTO

    def test_initial_quality_without_snapshot_is_lowest_video(self):
        coordinator = make_coordinator()
        slot = coordinator.add_slot("a", Platform.TWITCH)
        assert slot.current_quality == MOBILE

    def test_initial_quality_follows_last_snapshot(self):
        coordinator = make_coordinator()
        coordinator.tick(ResourceSnapshot(bandwidth_mbps=5.0))
        slot = coordinator.add_slot("a", Platform.TWITCH, QUALITIES)
        assert slot.current_quality == HD720P


class TestStructure:
    """Tests for remove, reorder, topology and resize."""

    def test_remove_compacts_order(self):
        coordinator = make_coordinator()
        for stream_id in "abc":
            add(coordinator, stream_id)

        removed = coordinator.remove_slot("a")

        assert removed.stream_id == "a"
        view = coordinator.view()
        assert list(view) == ["b", "c"]
        assert (view["b"].rect.x, view["b"].rect.y) == (0, 0)
        assert (view["c"].rect.x, view["c"].rect.y) == (405, 0)

    def test_remove_unknown(self):
        coordinator = make_coordinator()
        with pytest.raises(UnknownSlotError, match="unknown stream: ghost"):
            coordinator.remove_slot("ghost")

    def test_reorder(self):
        coordinator = make_coordinator()
        for stream_id in "abc":
            add(coordinator, stream_id)

        coordinator.reorder("c", 0)

        assert [s.stream_id for s in coordinator.slots] == ["c", "a", "b"]
        assert coordinator.view()["c"].rect.x == 0

    def test_reorder_out_of_range(self):
        coordinator = make_coordinator()
        add(coordinator, "a")
        with pytest.raises(IndexError):
            coordinator.reorder("a", 1)

    def test_set_topology_too_small(self):
        coordinator = make_coordinator()
        for stream_id in "abc":
            add(coordinator, stream_id)

        with pytest.raises(TopologyTooSmallError):
            coordinator.set_topology(SPLIT_VIEW)

        assert coordinator.topology == GRID_2X2
        assert len(coordinator.view()) == 3

    def test_set_topology(self):
        coordinator = make_coordinator()
        add(coordinator, "a")
        coordinator.set_topology(THEATER)
        assert coordinator.topology == THEATER
        assert coordinator.view()["a"].rect.width == 800

    def test_resize(self):
        coordinator = make_coordinator(GRID_3X3)
        add(coordinator, "a")
        coordinator.resize(Size(310, 310))
        assert coordinator.view()["a"].rect.width == pytest.approx(290 / 3)

    def test_resize_invalid_keeps_container(self):
        coordinator = make_coordinator()
        add(coordinator, "a")
        with pytest.raises(InvalidContainerError):
            coordinator.resize(Size(0, 0))
        assert coordinator.container == Size(800, 600)

    def test_playback_state_updates_priority(self):
        coordinator = make_coordinator()
        add(coordinator, "a", state=PlaybackState.LOADING)
        coordinator.set_playback_state("a", "paused")
        assert coordinator.slot("a").priority_tier == 2
        assert coordinator.view()["a"].priority == 2


class TestTick:
    """Tests for the tick cycle."""

    def test_high_cpu_downgrades_one_rank(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=HD1080P)

        view = coordinator.tick(FAST, {"a": HOT_CPU})

        assert view["a"].quality == HD720P60

    def test_ceiling_steps_down_one_rank_per_tick(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=HD1080P60)
        cellular = ResourceSnapshot(bandwidth_mbps=100.0, is_cellular=True)

        qualities = [coordinator.tick(cellular)["a"].quality for _ in range(4)]

        assert qualities == [HD1080P, HD720P60, HD720P, HD720P]

    def test_upgrade_needs_sustained_headroom(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=MEDIUM)

        first = coordinator.tick(FAST, {"a": GOOD})
        second = coordinator.tick(FAST, {"a": GOOD})

        assert first["a"].quality == MEDIUM
        assert second["a"].quality == HD720P

    def test_bad_telemetry_is_isolated(self):
        """One slot's malformed sample does not stop the others adapting."""
        coordinator = make_coordinator()
        add(coordinator, "a", quality=HD1080P)
        add(coordinator, "b", quality=HD1080P)

        view = coordinator.tick(
            FAST,
            {"a": SlotTelemetry(cpu_usage=2.0, memory_usage=0.1), "b": HOT_CPU},
        )

        assert view["a"].quality == HD1080P
        assert view["b"].quality == HD720P60
        assert len(view.warnings) == 1
        assert view.warnings[0].startswith("a: ")

    def test_non_adaptive_is_untouched(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=HD1080P60, is_adaptive=False)
        view = coordinator.tick(ResourceSnapshot(bandwidth_mbps=0.5), {"a": HOT_CPU})
        assert view["a"].quality == HD1080P60

    def test_unknown_telemetry_is_ignored(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=MEDIUM)
        view = coordinator.tick(FAST, {"ghost": HOT_CPU})
        assert list(view) == ["a"]
        assert view.warnings == ()

    def test_priorities_refreshed(self):
        coordinator = make_coordinator()
        add(coordinator, "a", state=PlaybackState.ERROR)
        assert coordinator.tick(FAST)["a"].priority == 0

    def test_last_snapshot(self):
        coordinator = make_coordinator()
        coordinator.tick(FAST)
        assert coordinator.last_snapshot == FAST


class TestBandwidthShedding:
    """Tests for stepping streams down when bitrate exceeds bandwidth."""

    def test_lowest_priority_sheds_first(self):
        coordinator = make_coordinator()
        add(coordinator, "playing", quality=HD720P, state=PlaybackState.PLAYING)
        add(coordinator, "paused", quality=HD720P, state=PlaybackState.PAUSED)

        # 2 x 2500 kbps against a 4.5 Mbps link
        view = coordinator.tick(ResourceSnapshot(bandwidth_mbps=4.5))

        assert view["paused"].quality == MEDIUM
        assert view["playing"].quality == HD720P

    def test_stops_once_within_budget(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=MEDIUM, state=PlaybackState.PAUSED)
        add(coordinator, "b", quality=MEDIUM, state=PlaybackState.PAUSED)
        add(coordinator, "c", quality=MEDIUM, state=PlaybackState.PAUSED)

        view = coordinator.tick(ResourceSnapshot(bandwidth_mbps=2.5))

        # last in layout goes first within a tier
        assert [view[s].quality for s in "abc"] == [MEDIUM, MEDIUM, LOW]

    def test_error_slots_do_not_count(self):
        coordinator = make_coordinator()
        add(coordinator, "live", quality=MEDIUM)
        add(coordinator, "broken", quality=HD1080P60, state=PlaybackState.ERROR)

        view = coordinator.tick(ResourceSnapshot(bandwidth_mbps=2.0))

        assert view["live"].quality == MEDIUM

    def test_moved_slots_are_not_shed_twice(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=HD1080P60)

        # the CPU downgrade to 1080p still exceeds 4 Mbps, but one move per tick
        view = coordinator.tick(ResourceSnapshot(bandwidth_mbps=4.0), {"a": HOT_CPU})

        assert view["a"].quality == HD1080P

    def test_upgrade_over_budget_is_taken_back(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=HD1080P)
        add(coordinator, "b", quality=MEDIUM, state=PlaybackState.LOADING)
        add(coordinator, "c", quality=HD1080P)
        snapshot = ResourceSnapshot(bandwidth_mbps=10.0)

        # 4500 + 1000 + 4500 fits exactly; b's second good tick would upgrade it
        coordinator.tick(snapshot, {"b": GOOD})
        view = coordinator.tick(snapshot, {"b": GOOD})

        assert view["a"].quality == HD1080P
        assert view["b"].quality == MEDIUM
        assert view["c"].quality == HD1080P

    def test_upgrade_within_budget_is_kept(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=HD1080P)
        add(coordinator, "b", quality=MEDIUM, state=PlaybackState.LOADING)
        snapshot = ResourceSnapshot(bandwidth_mbps=10.0)

        coordinator.tick(snapshot, {"b": GOOD})
        view = coordinator.tick(snapshot, {"b": GOOD})

        assert view["a"].quality == HD1080P
        assert view["b"].quality == HD720P

    def test_disabled(self):
        coordinator = make_coordinator(adaptation=AdaptationThresholds(shed_on_bandwidth=False))
        add(coordinator, "a", quality=HD720P, state=PlaybackState.PAUSED)
        add(coordinator, "b", quality=HD720P, state=PlaybackState.PAUSED)

        view = coordinator.tick(ResourceSnapshot(bandwidth_mbps=4.5))

        assert view["a"].quality == HD720P
        assert view["b"].quality == HD720P


class TestOverrides:
    """Tests for manual quality control."""

    def test_set_quality_pins(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=MEDIUM)

        coordinator.set_quality("a", HD1080P60)
        view = coordinator.tick(ResourceSnapshot(bandwidth_mbps=1.0), {"a": HOT_CPU})

        assert view["a"].quality == HD1080P60
        assert coordinator.slot("a").is_adaptive is False

    def test_set_quality_without_pin(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=MEDIUM)

        coordinator.set_quality("a", HD1080P60, pin=False)
        view = coordinator.tick(FAST, {"a": HOT_CPU})

        assert view["a"].quality == HD1080P

    def test_set_quality_unavailable(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=MEDIUM)
        with pytest.raises(QualityUnavailableError):
            coordinator.set_quality("a", AUTO)
        assert coordinator.slot("a").current_quality == MEDIUM

    def test_set_adaptive(self):
        coordinator = make_coordinator()
        add(coordinator, "a", quality=MEDIUM, is_adaptive=False)
        coordinator.set_adaptive("a", True)
        view = coordinator.tick(FAST, {"a": HOT_CPU})
        assert view["a"].quality == MEDIUM
        assert coordinator.slot("a").is_adaptive is True
