"""Telemetry-driven quality adaptation with hysteresis."""

import math
from collections.abc import Iterable

import structlog

from streamgrid.config.models import AdaptationThresholds
from streamgrid.errors import InvalidTelemetryError, QualityUnavailableError
from streamgrid.quality.catalog import DEFAULT_CATALOG, QualityCatalog
from streamgrid.types import QualityLevel, SlotTelemetry

logger = structlog.get_logger()


class QualityAdapter:
    """Steps one stream's quality up or down from player telemetry.

    Every transition moves exactly one rank within the stream's available
    qualities. Upgrades need ``hysteresis_ticks`` consecutive good ticks;
    any other tick resets the streak. ``auto`` is left to the platform's
    own adaptive player and never changed here.

    One adapter belongs to one slot; calls must be serialized by the owner.
    """

    def __init__(
        self,
        available: Iterable[QualityLevel],
        current: QualityLevel,
        catalog: QualityCatalog = DEFAULT_CATALOG,
        thresholds: AdaptationThresholds | None = None,
        stream_id: str = "",
    ):
        """
        Initialize quality adapter.

        Args:
            available: Qualities the stream offers
            current: Starting quality, must be one of ``available``
            catalog: Quality table used for ranks
            thresholds: Adaptation thresholds (defaults to AdaptationThresholds())
            stream_id: Stream id for log context

        Raises:
            QualityUnavailableError: If ``current`` is not in ``available``
        """
        self.catalog = catalog
        self.thresholds = thresholds or AdaptationThresholds()
        self.available = catalog.sorted_by_rank(available)
        self.stream_id = stream_id
        if current not in self.available:
            raise QualityUnavailableError(f"{current.name} is not offered by {stream_id or 'stream'}")
        self.current_quality = current
        self.consecutive_good_ticks = 0
        self.consecutive_bad_ticks = 0

        self._cpu_floor = catalog.rank(catalog.lookup(self.thresholds.cpu_floor))
        self._memory_floor = catalog.rank(catalog.lookup(self.thresholds.memory_floor))
        self._frames_floor = catalog.rank(catalog.lookup(self.thresholds.dropped_frames_floor))

    def adapt(
        self, telemetry: SlotTelemetry, ceiling: QualityLevel | None = None
    ) -> QualityLevel:
        """
        Process one telemetry sample and return the quality to use.

        Algorithm:
        1. Validate the sample
        2. Downgrade triggers, first match wins: CPU, memory, dropped frames
        3. Good tick: count the streak, upgrade one rank once it is long enough
           (never above ``ceiling``)
        4. Anything else resets both streaks
        5. If nothing moved and the quality sits above ``ceiling``, step down

        Args:
            telemetry: Player telemetry since the last tick
            ceiling: Highest quality current conditions allow, if known

        Returns:
            The (possibly unchanged) current quality

        Raises:
            InvalidTelemetryError: If the sample is malformed; no state changes
        """
        self._validate(telemetry)
        if self.current_quality.is_auto:
            return self.current_quality

        before = self.current_quality
        rank = self.catalog.rank(before)
        t = self.thresholds

        trigger = None
        if telemetry.cpu_usage > t.downgrade_cpu_above and rank > self._cpu_floor:
            trigger = "cpu"
        elif telemetry.memory_usage > t.downgrade_memory_above and rank > self._memory_floor:
            trigger = "memory"
        elif (
            telemetry.dropped_frames > t.downgrade_dropped_frames_above
            and rank > self._frames_floor
        ):
            trigger = "dropped_frames"

        is_good = (
            telemetry.cpu_usage < t.upgrade_cpu_below
            and telemetry.memory_usage < t.upgrade_memory_below
            and telemetry.dropped_frames <= t.upgrade_max_dropped_frames
        )

        if trigger:
            self.consecutive_bad_ticks += 1
            self.consecutive_good_ticks = 0
            self.step_down(reason=trigger)
        elif is_good:
            self.consecutive_good_ticks += 1
            self.consecutive_bad_ticks = 0
            if self.consecutive_good_ticks >= t.hysteresis_ticks:
                higher = self.catalog.step_up(before, self.available)
                if higher is not None and (
                    ceiling is None or self.catalog.rank(higher) <= self.catalog.rank(ceiling)
                ):
                    self._move(higher, reason="sustained_headroom")
                    self.consecutive_good_ticks = 0
        else:
            self.consecutive_good_ticks = 0
            self.consecutive_bad_ticks = 0

        if self.current_quality == before and ceiling is not None:
            self.enforce_ceiling(ceiling)

        return self.current_quality

    def enforce_ceiling(self, ceiling: QualityLevel) -> QualityLevel:
        """Step down one rank if the current quality is above ``ceiling``."""
        if self.current_quality.is_auto:
            return self.current_quality
        if self.catalog.rank(self.current_quality) > self.catalog.rank(ceiling):
            self.step_down(reason="resource_ceiling")
        return self.current_quality

    def step_down(self, reason: str = "") -> QualityLevel:
        """Move to the next lower available quality, if any."""
        lower = self.catalog.step_down(self.current_quality, self.available)
        if lower is not None:
            self._move(lower, reason=reason)
        return self.current_quality

    def force(self, quality: QualityLevel) -> None:
        """
        Set the quality directly (user override) and reset the streaks.

        Raises:
            QualityUnavailableError: If the stream does not offer ``quality``
        """
        if quality not in self.available:
            raise QualityUnavailableError(
                f"{quality.name} is not offered by {self.stream_id or 'stream'}"
            )
        self.current_quality = quality
        self.reset()

    def reset(self) -> None:
        """Forget the good/bad streaks."""
        self.consecutive_good_ticks = 0
        self.consecutive_bad_ticks = 0

    def _move(self, quality: QualityLevel, reason: str) -> None:
        logger.debug(
            "quality changed",
            stream_id=self.stream_id,
            old=self.current_quality.name,
            new=quality.name,
            reason=reason,
        )
        self.current_quality = quality

    def _validate(self, telemetry: SlotTelemetry) -> None:
        """
        Reject samples the thresholds cannot be compared against.

        Raises:
            InvalidTelemetryError: If a field is missing, non-finite or out of range
        """
        try:
            cpu = float(telemetry.cpu_usage)
            memory = float(telemetry.memory_usage)
            frames = telemetry.dropped_frames
        except (AttributeError, TypeError, ValueError) as e:
            raise InvalidTelemetryError(f"malformed telemetry: {e}") from e

        for name, value in (("cpu_usage", cpu), ("memory_usage", memory)):
            if not math.isfinite(value) or not 0.0 <= value <= 1.0:
                raise InvalidTelemetryError(f"{name} must be within [0, 1], got {value}")
        if isinstance(frames, bool) or not isinstance(frames, int) or frames < 0:
            raise InvalidTelemetryError(f"dropped_frames must be an int >= 0, got {frames!r}")
