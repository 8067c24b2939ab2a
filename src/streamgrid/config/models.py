"""Configuration models using Pydantic."""

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from streamgrid.errors import UnknownQualityError
from streamgrid.layout.geometry import SlotConfig
from streamgrid.layout.topology import Topology
from streamgrid.quality.catalog import DEFAULT_CATALOG
from streamgrid.types import DeviceClass, Insets, Size

# minimum gap kept between an upgrade threshold and its downgrade threshold
HYSTERESIS_MARGIN = 0.1


def _quality_name(value: str) -> str:
    """Normalize a quality name or label to its catalog name."""
    try:
        return DEFAULT_CATALOG.lookup(value).name
    except UnknownQualityError as e:
        raise ValueError(str(e)) from e


class BandwidthTier(BaseModel):
    """Minimum bandwidth needed to target a quality.

    Attributes:
        min_mbps: Bandwidth at or above which the quality becomes the target.
        quality: Quality name or label.
    """

    min_mbps: float = Field(ge=0)
    quality: str

    @field_validator("quality")
    @classmethod
    def validate_quality(cls, v: str) -> str:
        return _quality_name(v)


def default_bandwidth_tiers() -> list[BandwidthTier]:
    # each quality needs the full bandwidth of the band above it, so 3 Mbps
    # targets medium; 2160p gets the next step after the 16 Mbps band
    return [
        BandwidthTier(min_mbps=0.0, quality="mobile"),
        BandwidthTier(min_mbps=1.0, quality="low"),
        BandwidthTier(min_mbps=2.0, quality="medium"),
        BandwidthTier(min_mbps=4.0, quality="hd720p"),
        BandwidthTier(min_mbps=6.0, quality="hd720p60"),
        BandwidthTier(min_mbps=8.0, quality="hd1080p"),
        BandwidthTier(min_mbps=12.0, quality="hd1080p60"),
        BandwidthTier(min_mbps=16.0, quality="hd1440p"),
        BandwidthTier(min_mbps=25.0, quality="hd2160p"),
    ]


def default_device_caps() -> dict[DeviceClass, str]:
    return {
        DeviceClass.PHONE: "hd1080p",
        DeviceClass.TABLET: "hd1080p60",
        DeviceClass.TABLET_PRO: "hd1440p",
        DeviceClass.TV: "hd2160p",
        DeviceClass.DESKTOP: "hd1440p",
    }


class SelectionPolicy(BaseModel):
    """Rules for picking a quality from a resource snapshot.

    Attributes:
        bandwidth_tiers: Bandwidth floors per target quality.
        cellular_cap: Highest quality allowed on cellular links.
        battery_critical_below: Battery level under which the critical cap applies.
        battery_critical_cap: Quality cap for a critical battery.
        battery_low_below: Battery level under which the low cap applies.
        battery_low_cap: Quality cap for a low battery.
        device_caps: Highest quality per device class (absent means uncapped).
    """

    bandwidth_tiers: list[BandwidthTier] = Field(default_factory=default_bandwidth_tiers)
    cellular_cap: str = "hd720p"
    battery_critical_below: float = Field(default=0.2, ge=0, le=1)
    battery_critical_cap: str = "mobile"
    battery_low_below: float = Field(default=0.4, ge=0, le=1)
    battery_low_cap: str = "low"
    device_caps: dict[DeviceClass, str] = Field(default_factory=default_device_caps)

    @field_validator("cellular_cap", "battery_critical_cap", "battery_low_cap")
    @classmethod
    def validate_cap(cls, v: str) -> str:
        return _quality_name(v)

    @field_validator("device_caps")
    @classmethod
    def validate_device_caps(cls, v: dict[DeviceClass, str]) -> dict[DeviceClass, str]:
        return {device: _quality_name(name) for device, name in v.items()}

    @field_validator("bandwidth_tiers")
    @classmethod
    def validate_tiers(cls, v: list[BandwidthTier]) -> list[BandwidthTier]:
        """Require at least one tier and order tiers by bandwidth.

        Raises:
            ValueError: If no tiers are given.
        """
        if not v:
            raise ValueError("At least one bandwidth tier is required")
        return sorted(v, key=lambda tier: tier.min_mbps)

    @model_validator(mode="after")
    def validate_battery_levels(self) -> "SelectionPolicy":
        """Ensure the critical battery level sits at or below the low level."""
        if self.battery_critical_below > self.battery_low_below:
            raise ValueError(
                "battery_critical_below must not exceed battery_low_below "
                f"({self.battery_critical_below} > {self.battery_low_below})"
            )
        return self


class AdaptationThresholds(BaseModel):
    """Telemetry thresholds for stepping a stream's quality.

    Attributes:
        downgrade_cpu_above: CPU load that triggers a downgrade.
        cpu_floor: Quality at or below which CPU load no longer downgrades.
        downgrade_memory_above: Memory pressure that triggers a downgrade.
        memory_floor: Quality at or below which memory no longer downgrades.
        downgrade_dropped_frames_above: Dropped frames that trigger a downgrade.
        dropped_frames_floor: Quality at or below which dropped frames no longer downgrade.
        upgrade_cpu_below: CPU load required for a good tick.
        upgrade_memory_below: Memory pressure required for a good tick.
        upgrade_max_dropped_frames: Dropped frames allowed in a good tick.
        hysteresis_ticks: Consecutive good ticks required before upgrading.
        shed_on_bandwidth: Step streams down when their summed bitrate exceeds bandwidth.
    """

    downgrade_cpu_above: float = Field(default=0.8, ge=0, le=1)
    cpu_floor: str = "medium"
    downgrade_memory_above: float = Field(default=0.8, ge=0, le=1)
    memory_floor: str = "low"
    downgrade_dropped_frames_above: int = Field(default=10, ge=0)
    dropped_frames_floor: str = "medium"
    upgrade_cpu_below: float = Field(default=0.5, ge=0, le=1)
    upgrade_memory_below: float = Field(default=0.5, ge=0, le=1)
    upgrade_max_dropped_frames: int = Field(default=0, ge=0)
    hysteresis_ticks: int = Field(default=2, ge=1)
    shed_on_bandwidth: bool = True

    @field_validator("cpu_floor", "memory_floor", "dropped_frames_floor")
    @classmethod
    def validate_floor(cls, v: str) -> str:
        return _quality_name(v)

    @model_validator(mode="after")
    def validate_hysteresis(self) -> "AdaptationThresholds":
        """Keep upgrade thresholds below downgrade thresholds to prevent oscillation.

        Auto-adjusts the upgrade thresholds if too high rather than failing validation.

        Returns:
            Validated AdaptationThresholds instance.
        """
        if self.upgrade_cpu_below > self.downgrade_cpu_above - HYSTERESIS_MARGIN:
            self.upgrade_cpu_below = max(
                0.0, round(self.downgrade_cpu_above - HYSTERESIS_MARGIN, 3)
            )
        if self.upgrade_memory_below > self.downgrade_memory_above - HYSTERESIS_MARGIN:
            self.upgrade_memory_below = max(
                0.0, round(self.downgrade_memory_above - HYSTERESIS_MARGIN, 3)
            )
        if self.upgrade_max_dropped_frames > self.downgrade_dropped_frames_above:
            self.upgrade_max_dropped_frames = self.downgrade_dropped_frames_above
        return self


class StreamSize(BaseModel):
    """Width and height bound for a stream tile."""

    width: float = Field(gt=0)
    height: float = Field(gt=0)


class Padding(BaseModel):
    """Container padding."""

    top: float = Field(default=0.0, ge=0)
    left: float = Field(default=0.0, ge=0)
    bottom: float = Field(default=0.0, ge=0)
    right: float = Field(default=0.0, ge=0)


class LayoutSettings(BaseModel):
    """Default layout options.

    Attributes:
        topology: Topology name (stack, grid2x2, carousel, focus, split_view, ...).
        spacing: Gap between slots, None for the topology default.
        padding: Container padding.
        min_stream_size: Lower carousel tile bound.
        max_stream_size: Upper carousel tile bound.
    """

    topology: str = "grid2x2"
    spacing: float | None = Field(default=None, ge=0)
    padding: Padding = Field(default_factory=Padding)
    min_stream_size: StreamSize = Field(
        default_factory=lambda: StreamSize(width=100, height=75)
    )
    max_stream_size: StreamSize = Field(
        default_factory=lambda: StreamSize(width=800, height=600)
    )

    @field_validator("topology")
    @classmethod
    def validate_topology(cls, v: str) -> str:
        """Validate and normalize the topology name.

        Raises:
            ValueError: If the topology is not recognised.
        """
        return Topology.from_name(v).name

    @model_validator(mode="after")
    def validate_stream_sizes(self) -> "LayoutSettings":
        """Ensure the maximum tile size is larger than the minimum."""
        lo, hi = self.min_stream_size, self.max_stream_size
        if hi.width <= lo.width or hi.height <= lo.height:
            raise ValueError("max_stream_size must exceed min_stream_size in both dimensions")
        return self

    def to_topology(self) -> Topology:
        return Topology.from_name(self.topology)

    def to_slot_config(self) -> SlotConfig:
        return SlotConfig(
            padding=Insets(**self.padding.model_dump()),
            min_stream_size=Size(self.min_stream_size.width, self.min_stream_size.height),
            max_stream_size=Size(self.max_stream_size.width, self.max_stream_size.height),
        )


class Logging(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level (debug, info, warn, error, critical).
        format: Output format (json, text, console).
    """

    level: str = "info"
    format: str = "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level.

        Raises:
            ValueError: If level is not recognized.
        """
        valid_levels = ["debug", "info", "warn", "warning", "error", "critical"]
        if v.lower() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.lower()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate and normalize log format.

        Raises:
            ValueError: If format is not recognized.
        """
        valid_formats = ["json", "text", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v.lower()


class Config(BaseSettings):
    """Main application configuration.

    Supports environment variable overrides with SG_ prefix, e.g.
    ``SG_ADAPTATION__HYSTERESIS_TICKS=3``.

    Attributes:
        selection: Quality selection policy.
        adaptation: Quality adaptation thresholds.
        layout: Default layout options.
        logging: Logging configuration.
    """

    model_config = SettingsConfigDict(
        env_prefix="SG_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    selection: SelectionPolicy = Field(default_factory=SelectionPolicy)
    adaptation: AdaptationThresholds = Field(default_factory=AdaptationThresholds)
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    logging: Logging = Field(default_factory=Logging)
