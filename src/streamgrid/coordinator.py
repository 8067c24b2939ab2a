"""Multi-stream coordinator: slots, qualities, priorities and layout."""

import threading
from collections.abc import Iterable, Mapping

import structlog

from streamgrid.config.models import AdaptationThresholds, Config, SelectionPolicy
from streamgrid.errors import (
    DuplicateSlotError,
    InvalidTelemetryError,
    NoQualitiesAvailableError,
    SlotOverflowError,
    TopologyTooSmallError,
    UnknownSlotError,
)
from streamgrid.layout.geometry import LayoutEngine, SlotConfig
from streamgrid.layout.topology import Topology
from streamgrid.priority import ResourcePriorityRanker
from streamgrid.quality.adapter import QualityAdapter
from streamgrid.quality.catalog import DEFAULT_CATALOG, QualityCatalog
from streamgrid.quality.selector import QualitySelector
from streamgrid.types import (
    PlaybackState,
    Platform,
    QualityLevel,
    ResourceSnapshot,
    Size,
    SlotTelemetry,
    SlotView,
    StreamSlot,
    ViewModel,
)

logger = structlog.get_logger()


class MultiStreamCoordinator:
    """Owns the slots of one multi-stream view and recomputes their views.

    All mutating operations are serialized by an internal lock because
    geometry and priorities are computed from the whole slot collection.
    The ViewModel returned by ``tick`` and ``view`` is immutable and may be
    shared freely.
    """

    def __init__(
        self,
        topology: Topology,
        container: Size,
        catalog: QualityCatalog = DEFAULT_CATALOG,
        selection: SelectionPolicy | None = None,
        adaptation: AdaptationThresholds | None = None,
        spacing: float | None = None,
        slot_config: SlotConfig | None = None,
    ):
        """
        Initialize coordinator.

        Args:
            topology: Initial layout topology
            container: Size of the area the streams are drawn in
            catalog: Quality table
            selection: Quality selection policy
            adaptation: Quality adaptation thresholds
            spacing: Gap between slots (None for the topology default)
            slot_config: Padding, size bounds and custom frames

        Raises:
            InvalidContainerError: If the container has no usable area
        """
        self.catalog = catalog
        self.adaptation = adaptation or AdaptationThresholds()
        self.selector = QualitySelector(catalog, selection)
        self.ranker = ResourcePriorityRanker()
        self.engine = LayoutEngine()
        self.spacing = spacing
        self.slot_config = slot_config or SlotConfig()

        self._lock = threading.RLock()
        self._topology = topology
        self._container = container
        self._slots: list[StreamSlot] = []
        self._adapters: dict[str, QualityAdapter] = {}
        self._snapshot: ResourceSnapshot | None = None

        # validates the container up front
        self.engine.place(topology, container, 0, spacing, self.slot_config)
        self._view = ViewModel()

    @classmethod
    def from_config(
        cls,
        config: Config,
        container: Size,
        catalog: QualityCatalog = DEFAULT_CATALOG,
    ) -> "MultiStreamCoordinator":
        """Build a coordinator from application configuration."""
        return cls(
            topology=config.layout.to_topology(),
            container=container,
            catalog=catalog,
            selection=config.selection,
            adaptation=config.adaptation,
            spacing=config.layout.spacing,
            slot_config=config.layout.to_slot_config(),
        )

    @property
    def topology(self) -> Topology:
        return self._topology

    @property
    def container(self) -> Size:
        return self._container

    @property
    def last_snapshot(self) -> ResourceSnapshot | None:
        return self._snapshot

    @property
    def slots(self) -> tuple[StreamSlot, ...]:
        """Slots in layout order (copy of the ordering, not of the slots)."""
        with self._lock:
            return tuple(self._slots)

    def slot(self, stream_id: str) -> StreamSlot:
        with self._lock:
            return self._find(stream_id)[1]

    def view(self) -> ViewModel:
        """Last computed view model."""
        return self._view

    def add_slot(
        self,
        stream_id: str,
        platform: Platform | str,
        available_qualities: Iterable[QualityLevel] | None = None,
        playback_state: PlaybackState = PlaybackState.LOADING,
        is_adaptive: bool = True,
        initial_quality: QualityLevel | None = None,
    ) -> StreamSlot:
        """
        Add a stream at the end of the layout.

        The initial quality is ``initial_quality`` if given, else the
        selector's pick for the last snapshot, else the lowest video quality.

        Args:
            stream_id: Unique stream id
            platform: Source platform
            available_qualities: Qualities offered (defaults to the platform's)
            playback_state: Initial playback state
            is_adaptive: Whether the quality follows telemetry
            initial_quality: Explicit starting quality

        Returns:
            The new slot

        Raises:
            DuplicateSlotError: If the stream id is already present
            SlotOverflowError: If the topology is full
            NoQualitiesAvailableError: If no qualities are offered
            QualityUnavailableError: If ``initial_quality`` is not offered
        """
        with self._lock:
            if any(s.stream_id == stream_id for s in self._slots):
                raise DuplicateSlotError(f"stream already present: {stream_id}")
            if len(self._slots) >= self._topology.max_slots:
                raise SlotOverflowError(
                    len(self._slots) + 1, self._topology.max_slots, self._topology.name
                )

            platform = Platform(platform)
            if available_qualities is None:
                available = self.catalog.available_for(platform)
            else:
                available = self.catalog.sorted_by_rank(available_qualities)
            if not available:
                raise NoQualitiesAvailableError(f"no qualities available for {stream_id}")

            quality = initial_quality or self._initial_quality(available)
            adapter = QualityAdapter(
                available, quality, self.catalog, self.adaptation, stream_id=stream_id
            )
            slot = StreamSlot(
                stream_id=stream_id,
                platform=platform,
                available_qualities=available,
                current_quality=quality,
                playback_state=PlaybackState(playback_state),
                priority_tier=self.ranker.priority_of(playback_state),
                is_adaptive=is_adaptive,
            )
            slots = [*self._slots, slot]
            self._view = self._build_view(slots, self._topology, self._container)
            self._slots = slots
            self._adapters[stream_id] = adapter

            logger.info(
                "slot added",
                stream_id=stream_id,
                platform=str(platform),
                quality=quality.name,
                slots=len(self._slots),
            )
            return slot

    def remove_slot(self, stream_id: str) -> StreamSlot:
        """
        Remove a stream; later slots move up one position.

        Raises:
            UnknownSlotError: If the stream id is not present
        """
        with self._lock:
            index, slot = self._find(stream_id)
            slots = self._slots[:index] + self._slots[index + 1 :]
            self._view = self._build_view(slots, self._topology, self._container)
            self._slots = slots
            del self._adapters[stream_id]
            logger.info("slot removed", stream_id=stream_id, slots=len(self._slots))
            return slot

    def reorder(self, stream_id: str, new_index: int) -> None:
        """
        Move a stream to ``new_index`` in the layout order.

        Raises:
            UnknownSlotError: If the stream id is not present
            IndexError: If ``new_index`` is outside the slot list
        """
        with self._lock:
            index, slot = self._find(stream_id)
            if not 0 <= new_index < len(self._slots):
                raise IndexError(f"index {new_index} out of range for {len(self._slots)} slots")
            slots = list(self._slots)
            slots.insert(new_index, slots.pop(index))
            self._view = self._build_view(slots, self._topology, self._container)
            self._slots = slots
            logger.debug("slot reordered", stream_id=stream_id, old=index, new=new_index)

    def set_topology(self, topology: Topology) -> None:
        """
        Switch layout topology.

        Raises:
            TopologyTooSmallError: If the topology cannot hold the current slots
        """
        with self._lock:
            if len(self._slots) > topology.max_slots:
                raise TopologyTooSmallError(len(self._slots), topology.max_slots, topology.name)
            self._view = self._build_view(self._slots, topology, self._container)
            logger.info("topology changed", old=self._topology.name, new=topology.name)
            self._topology = topology

    def resize(self, container: Size) -> None:
        """
        Change the container size.

        Raises:
            InvalidContainerError: If the container has no usable area
        """
        with self._lock:
            self._view = self._build_view(self._slots, self._topology, container)
            self._container = container

    def set_playback_state(self, stream_id: str, state: PlaybackState | str) -> None:
        """Record a playback state change and update the slot's priority."""
        with self._lock:
            _, slot = self._find(stream_id)
            slot.playback_state = PlaybackState(state)
            slot.priority_tier = self.ranker.priority_of(slot.playback_state)
            self._view = self._build_view(self._slots, self._topology, self._container)

    def set_quality(self, stream_id: str, quality: QualityLevel, pin: bool = True) -> None:
        """
        Apply a user-chosen quality.

        Args:
            stream_id: Stream to change
            quality: Quality to use
            pin: Stop adapting this stream so the choice sticks

        Raises:
            UnknownSlotError: If the stream id is not present
            QualityUnavailableError: If the stream does not offer ``quality``
        """
        with self._lock:
            _, slot = self._find(stream_id)
            self._adapters[stream_id].force(quality)
            slot.current_quality = quality
            if pin:
                slot.is_adaptive = False
            logger.info("quality override", stream_id=stream_id, quality=quality.name, pinned=pin)
            self._view = self._build_view(self._slots, self._topology, self._container)

    def set_adaptive(self, stream_id: str, enabled: bool) -> None:
        """Turn telemetry-driven adaptation on or off for one stream."""
        with self._lock:
            _, slot = self._find(stream_id)
            slot.is_adaptive = enabled
            self._adapters[stream_id].reset()

    def tick(
        self,
        snapshot: ResourceSnapshot,
        telemetry: Mapping[str, SlotTelemetry] | None = None,
    ) -> ViewModel:
        """
        Run one evaluation cycle.

        Algorithm:
        1. Refresh every slot's priority from its playback state
        2. For adaptive slots, adapt quality from telemetry under the
           selector's ceiling for this snapshot; bad telemetry holds the
           slot's quality and is recorded as a warning
        3. Shed bandwidth: while the summed bitrate exceeds the snapshot's
           bandwidth, first take back this tick's upgrades, then step down
           slots that have not moved this tick, lowest priority first
        4. Recompute geometry once and publish a new view model

        Args:
            snapshot: Device and network conditions
            telemetry: Player telemetry by stream id (missing ids are skipped)

        Returns:
            Immutable view model for all slots
        """
        telemetry = telemetry or {}
        with self._lock:
            self._snapshot = snapshot
            warnings: list[str] = []
            moved: set[str] = set()
            upgraded: set[str] = set()

            for slot in self._slots:
                slot.priority_tier = self.ranker.priority_of(slot.playback_state)
                if not slot.is_adaptive:
                    continue

                adapter = self._adapters[slot.stream_id]
                before = slot.current_quality
                ceiling = self.selector.select(slot.available_qualities, snapshot)
                sample = telemetry.get(slot.stream_id)
                try:
                    if sample is None:
                        adapter.enforce_ceiling(ceiling)
                    else:
                        adapter.adapt(sample, ceiling)
                except InvalidTelemetryError as e:
                    logger.warning(
                        "telemetry rejected, holding quality",
                        stream_id=slot.stream_id,
                        quality=before.name,
                        error=str(e),
                    )
                    warnings.append(f"{slot.stream_id}: {e}")
                    continue

                slot.current_quality = adapter.current_quality
                if slot.current_quality != before:
                    moved.add(slot.stream_id)
                if self.catalog.rank(slot.current_quality) > self.catalog.rank(before):
                    upgraded.add(slot.stream_id)

            if self.adaptation.shed_on_bandwidth:
                self._shed_bandwidth(snapshot, moved, upgraded)

            self._view = self._build_view(
                self._slots, self._topology, self._container, warnings
            )

            unknown = set(telemetry) - {s.stream_id for s in self._slots}
            if unknown:
                logger.debug("telemetry for unknown streams ignored", streams=sorted(unknown))

            return self._view

    def _shed_bandwidth(
        self, snapshot: ResourceSnapshot, moved: set[str], upgraded: set[str]
    ) -> None:
        """Step down slots in shed order until the bitrate fits the bandwidth."""
        budget_kbps = snapshot.bandwidth_mbps * 1000
        consuming = [s for s in self._slots if s.priority_tier > 0]
        total = sum(s.current_quality.bitrate_kbps for s in consuming)
        if total <= budget_kbps:
            return

        order = [s for s in self.ranker.shed_order(consuming) if s.is_adaptive]
        # an upgrade is a single step, so stepping it down restores the old quality
        candidates = [s for s in order if s.stream_id in upgraded]
        candidates += [
            s
            for s in order
            if s.stream_id not in moved and not s.current_quality.is_auto
        ]
        for slot in candidates:
            if total <= budget_kbps:
                break
            adapter = self._adapters[slot.stream_id]
            before = slot.current_quality
            slot.current_quality = adapter.step_down(reason="bandwidth")
            if slot.current_quality != before:
                total -= before.bitrate_kbps - slot.current_quality.bitrate_kbps
                moved.add(slot.stream_id)

        if total > budget_kbps:
            logger.warning(
                "bandwidth still exceeded after shedding",
                total_kbps=total,
                budget_kbps=budget_kbps,
            )
        else:
            logger.debug("bandwidth shed", total_kbps=total, budget_kbps=budget_kbps)

    def _initial_quality(self, available: tuple[QualityLevel, ...]) -> QualityLevel:
        if self._snapshot is not None:
            return self.selector.select(available, self._snapshot)
        video = [q for q in available if q.has_video]
        return video[0] if video else available[0]

    def _find(self, stream_id: str) -> tuple[int, StreamSlot]:
        for index, slot in enumerate(self._slots):
            if slot.stream_id == stream_id:
                return index, slot
        raise UnknownSlotError(stream_id)

    def _build_view(
        self,
        slots: list[StreamSlot],
        topology: Topology,
        container: Size,
        warnings: list[str] | None = None,
    ) -> ViewModel:
        """Lay out ``slots`` without touching coordinator state, so failures leave it intact."""
        rects = self.engine.place(topology, container, len(slots), self.spacing, self.slot_config)
        return ViewModel(
            slots={
                slot.stream_id: SlotView(
                    stream_id=slot.stream_id,
                    rect=rect,
                    quality=slot.current_quality,
                    priority=slot.priority_tier,
                    platform_value=self.catalog.platform_value(
                        slot.platform, slot.current_quality
                    ),
                )
                for slot, rect in zip(slots, rects)
            },
            warnings=tuple(warnings or ()),
        )
