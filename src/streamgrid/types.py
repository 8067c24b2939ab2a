"""Core data types for streamgrid."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType


class Platform(StrEnum):
    """Streaming platforms with known quality tables."""

    TWITCH = "twitch"
    YOUTUBE = "youtube"
    KICK = "kick"
    RUMBLE = "rumble"
    DLIVE = "dlive"
    TROVO = "trovo"
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    NIMO = "nimo"
    BIGO = "bigo"
    DISCORD = "discord"
    MIXER = "mixer"
    OTHER = "other"


class PlaybackState(StrEnum):
    """Playback state of a displayed stream."""

    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"
    ERROR = "error"
    OFFLINE = "offline"
    ENDED = "ended"


class DeviceClass(StrEnum):
    """Coarse device class used to cap quality selection."""

    PHONE = "phone"
    TABLET = "tablet"
    TABLET_PRO = "tablet_pro"
    TV = "tv"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class QualityLevel:
    """A video quality tier.

    Attributes:
        name: Catalog key (e.g. ``hd720p``).
        label: Display/generic wire label (e.g. ``720p``).
        ordinal_rank: Position in perceptual order, higher is better.
        bitrate_kbps: Estimated bitrate.
        width: Frame width in pixels, 0 when variable or audio only.
        height: Frame height in pixels, 0 when variable or audio only.
        frame_rate: Frames per second, 0 when variable or audio only.
        is_audio_only: True for the audio-only tier.
    """

    name: str
    label: str
    ordinal_rank: int
    bitrate_kbps: int
    width: int = 0
    height: int = 0
    frame_rate: int = 0
    is_audio_only: bool = False

    @property
    def is_auto(self) -> bool:
        return self.name == "auto"

    @property
    def has_video(self) -> bool:
        return not self.is_audio_only and not self.is_auto

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Size:
    """Width and height of a container or stream."""

    width: float
    height: float


@dataclass(frozen=True)
class Insets:
    """Padding around a layout container."""

    top: float = 0.0
    left: float = 0.0
    bottom: float = 0.0
    right: float = 0.0


@dataclass(frozen=True)
class Rect:
    """Screen-space placement of one slot.

    Attributes:
        x: Left edge.
        y: Top edge.
        width: Width, always positive.
        height: Height, always positive.
        z_index: Stacking order, higher draws on top.
    """

    x: float
    y: float
    width: float
    height: float
    z_index: int = 0

    def __post_init__(self) -> None:
        if not (self.width > 0 and self.height > 0):
            raise ValueError(f"rect must have positive size, got {self.width}x{self.height}")

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def intersection_area(self, other: "Rect") -> float:
        """Area shared with another rect (0 when they only touch)."""
        overlap_w = min(self.right, other.right) - max(self.x, other.x)
        overlap_h = min(self.bottom, other.bottom) - max(self.y, other.y)
        # float noise from spacing arithmetic counts as touching
        if overlap_w <= 1e-9 or overlap_h <= 1e-9:
            return 0.0
        return overlap_w * overlap_h

    def within(self, width: float, height: float, tolerance: float = 1e-6) -> bool:
        """Check whether the rect lies inside ``[0, width] x [0, height]``."""
        return (
            self.x >= -tolerance
            and self.y >= -tolerance
            and self.right <= width + tolerance
            and self.bottom <= height + tolerance
        )


@dataclass(frozen=True)
class ResourceSnapshot:
    """Device and network conditions for one tick.

    Attributes:
        bandwidth_mbps: Measured downstream bandwidth.
        cpu_usage: Device CPU load in [0, 1].
        memory_usage: Device memory pressure in [0, 1].
        battery_level: Battery charge in [0, 1], None when on mains or unknown.
        is_cellular: True when on a metered cellular link.
        dropped_frames: Frames dropped across all players since the last tick.
        device_class: Coarse device class, caps selection.
    """

    bandwidth_mbps: float
    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    battery_level: float | None = None
    is_cellular: bool = False
    dropped_frames: int = 0
    device_class: DeviceClass = DeviceClass.UNKNOWN


@dataclass(frozen=True)
class SlotTelemetry:
    """Player-reported performance for one stream after a render tick."""

    cpu_usage: float
    memory_usage: float
    dropped_frames: int = 0


@dataclass
class StreamSlot:
    """One displayed stream instance managed by a coordinator.

    Attributes:
        stream_id: Unique id of the stream.
        platform: Source platform.
        available_qualities: Qualities this stream offers, ordered by rank.
        current_quality: Quality currently requested from the player.
        playback_state: Last reported playback state.
        priority_tier: Derived resource priority (0 lowest, 3 highest).
        is_adaptive: Whether the quality follows telemetry.
    """

    stream_id: str
    platform: Platform
    available_qualities: tuple[QualityLevel, ...]
    current_quality: QualityLevel
    playback_state: PlaybackState = PlaybackState.LOADING
    priority_tier: int = 1
    is_adaptive: bool = True


@dataclass(frozen=True)
class SlotView:
    """Consolidated per-stream output of a coordinator.

    Attributes:
        stream_id: Stream id.
        rect: Placement in the container.
        quality: Quality to request from the player.
        priority: Resource priority tier (0-3).
        platform_value: Platform-specific wire string for ``quality``.
    """

    stream_id: str
    rect: Rect
    quality: QualityLevel
    priority: int
    platform_value: str


@dataclass(frozen=True)
class ViewModel(Mapping[str, SlotView]):
    """Immutable snapshot of every slot's view, keyed by stream id in slot order.

    Attributes:
        slots: Read-only mapping of stream id to view.
        warnings: Per-slot problems recovered during the tick.
    """

    slots: Mapping[str, SlotView] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "slots", MappingProxyType(dict(self.slots)))

    def __getitem__(self, stream_id: str) -> SlotView:
        return self.slots[stream_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self.slots)

    def __len__(self) -> int:
        return len(self.slots)

    def to_dict(self) -> dict[str, dict[str, object]]:
        """Convert to plain dicts for logging or serialisation."""
        return {
            stream_id: {
                "rect": {
                    "x": view.rect.x,
                    "y": view.rect.y,
                    "width": view.rect.width,
                    "height": view.rect.height,
                    "z_index": view.rect.z_index,
                },
                "quality": view.quality.name,
                "priority": view.priority,
                "platform_value": view.platform_value,
            }
            for stream_id, view in self.slots.items()
        }
