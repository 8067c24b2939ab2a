"""Recorded telemetry traces replayed through a coordinator."""

from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator, model_validator
from ruamel.yaml import YAML

from streamgrid.config.models import Config
from streamgrid.coordinator import MultiStreamCoordinator
from streamgrid.layout.topology import Topology
from streamgrid.quality.catalog import DEFAULT_CATALOG, QualityCatalog
from streamgrid.scheduler import TickInput
from streamgrid.types import (
    DeviceClass,
    PlaybackState,
    Platform,
    ResourceSnapshot,
    Size,
    SlotTelemetry,
)

logger = structlog.get_logger()


class TraceNotFoundError(Exception):
    """Raised when a trace file does not exist."""


class TraceContainer(BaseModel):
    width: float
    height: float


class TraceSlot(BaseModel):
    """A stream present at the start of the trace.

    Attributes:
        stream_id: Unique stream id.
        platform: Source platform.
        qualities: Offered quality names, empty for the platform defaults.
        state: Initial playback state.
        adaptive: Whether the quality follows telemetry.
        quality: Explicit starting quality name.
    """

    stream_id: str
    platform: Platform = Platform.OTHER
    qualities: list[str] = Field(default_factory=list)
    state: PlaybackState = PlaybackState.LOADING
    adaptive: bool = True
    quality: str | None = None


class TraceSnapshot(BaseModel):
    bandwidth_mbps: float
    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    battery_level: float | None = None
    is_cellular: bool = False
    dropped_frames: int = 0
    device_class: DeviceClass = DeviceClass.UNKNOWN

    def to_snapshot(self) -> ResourceSnapshot:
        return ResourceSnapshot(**self.model_dump())


class TraceTelemetry(BaseModel):
    """Per-stream telemetry; ranges are checked by the adapter, not here."""

    cpu_usage: float
    memory_usage: float
    dropped_frames: int = 0

    def to_telemetry(self) -> SlotTelemetry:
        return SlotTelemetry(**self.model_dump())


class TraceTick(BaseModel):
    """One recorded tick.

    Attributes:
        snapshot: Device and network conditions.
        telemetry: Player telemetry by stream id.
        states: Playback state changes applied before the tick.
    """

    snapshot: TraceSnapshot
    telemetry: dict[str, TraceTelemetry] = Field(default_factory=dict)
    states: dict[str, PlaybackState] = Field(default_factory=dict)


class Trace(BaseModel):
    """A replayable multi-stream session."""

    container: TraceContainer
    topology: str | None = None
    spacing: float | None = Field(default=None, ge=0)
    slots: list[TraceSlot] = Field(default_factory=list)
    ticks: list[TraceTick] = Field(default_factory=list)

    @field_validator("topology")
    @classmethod
    def validate_topology(cls, v: str | None) -> str | None:
        return None if v is None else Topology.from_name(v).name

    @model_validator(mode="after")
    def validate_unique_streams(self) -> "Trace":
        """Reject traces that list a stream id twice."""
        ids = [slot.stream_id for slot in self.slots]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate stream ids in trace: {duplicates}")
        return self

    @model_validator(mode="after")
    def validate_state_streams(self) -> "Trace":
        """Reject state changes for streams the trace never adds."""
        known = {slot.stream_id for slot in self.slots}
        for index, tick in enumerate(self.ticks):
            unknown = sorted(set(tick.states) - known)
            if unknown:
                raise ValueError(f"Unknown stream ids in tick {index}: {unknown}")
        return self


def load_trace(path: str | Path) -> Trace:
    """
    Parse a YAML trace file.

    Args:
        path: Trace file path

    Returns:
        Validated Trace

    Raises:
        TraceNotFoundError: If the file does not exist
    """
    trace_path = Path(path).expanduser()
    if not trace_path.exists():
        raise TraceNotFoundError(f"Trace file not found: {trace_path}")

    yaml = YAML(typ="safe")
    with open(trace_path) as f:
        data = yaml.load(f) or {}

    trace = Trace(**data)
    logger.info("trace loaded", path=str(trace_path), slots=len(trace.slots), ticks=len(trace.ticks))
    return trace


class TraceReplay:
    """Builds a coordinator from a trace and hands out its ticks in order."""

    def __init__(
        self,
        trace: Trace,
        config: Config | None = None,
        catalog: QualityCatalog = DEFAULT_CATALOG,
    ):
        """
        Initialize replay and add the trace's streams to a new coordinator.

        Args:
            trace: Parsed trace
            config: Application configuration (defaults to Config())
            catalog: Quality table

        Raises:
            SlotOverflowError: If the trace has more streams than the topology holds
            UnknownQualityError: If a trace names an unknown quality
        """
        self.trace = trace
        self.config = config or Config()
        self.catalog = catalog
        self.position = 0

        layout = self.config.layout
        self.coordinator = MultiStreamCoordinator(
            topology=Topology.from_name(trace.topology or layout.topology),
            container=Size(trace.container.width, trace.container.height),
            catalog=catalog,
            selection=self.config.selection,
            adaptation=self.config.adaptation,
            spacing=layout.spacing if trace.spacing is None else trace.spacing,
            slot_config=layout.to_slot_config(),
        )

        for slot in trace.slots:
            self.coordinator.add_slot(
                slot.stream_id,
                slot.platform,
                [catalog.lookup(q) for q in slot.qualities] or None,
                playback_state=slot.state,
                is_adaptive=slot.adaptive,
                initial_quality=catalog.lookup(slot.quality) if slot.quality else None,
            )

    @property
    def remaining(self) -> int:
        return len(self.trace.ticks) - self.position

    def next_tick(self) -> TickInput | None:
        """Apply the next tick's state changes and return its inputs, None at the end."""
        if self.position >= len(self.trace.ticks):
            return None

        tick = self.trace.ticks[self.position]
        self.position += 1

        for stream_id, state in tick.states.items():
            self.coordinator.set_playback_state(stream_id, state)

        telemetry = {sid: sample.to_telemetry() for sid, sample in tick.telemetry.items()}
        return tick.snapshot.to_snapshot(), telemetry
