"""Slot placement for every layout topology."""

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from streamgrid.errors import InvalidContainerError, SlotOverflowError
from streamgrid.layout.topology import Topology, TopologyKind
from streamgrid.types import Insets, Rect, Size

logger = structlog.get_logger()

ASPECT_16_9 = 16 / 9


@dataclass(frozen=True)
class SlotConfig:
    """Per-layout placement options.

    Attributes:
        padding: Margin between the container edge and the slots.
        min_stream_size: Lower bound for carousel tiles.
        max_stream_size: Upper bound for carousel tiles.
        custom_frames: Caller-placed frames for the custom topology, by slot index.
    """

    padding: Insets = field(default_factory=Insets)
    min_stream_size: Size = field(default_factory=lambda: Size(100, 75))
    max_stream_size: Size = field(default_factory=lambda: Size(800, 600))
    custom_frames: Sequence[Rect | None] = ()


@dataclass(frozen=True)
class _Area:
    x: float
    y: float
    width: float
    height: float


class LayoutEngine:
    """Computes slot rectangles for a topology.

    Stateless; one instance may serve any number of coordinators.
    """

    def place(
        self,
        topology: Topology,
        container: Size,
        slot_count: int,
        spacing: float | None = None,
        slot_config: SlotConfig | None = None,
    ) -> list[Rect]:
        """
        Place ``slot_count`` slots inside ``container``.

        Args:
            topology: Layout family to use
            container: Container size
            slot_count: Number of slots to place
            spacing: Gap between slots (defaults to the topology's spacing)
            slot_config: Padding, size bounds and custom frames

        Returns:
            One Rect per slot, index i belongs to slot i

        Raises:
            InvalidContainerError: If the container (less padding) has no area
            SlotOverflowError: If slot_count exceeds the topology's capacity
        """
        if not (container.width > 0 and container.height > 0):
            raise InvalidContainerError(
                f"container must be positive, got {container.width}x{container.height}"
            )
        if slot_count < 0:
            raise ValueError(f"slot_count must be >= 0, got {slot_count}")
        if slot_count > topology.max_slots:
            raise SlotOverflowError(slot_count, topology.max_slots, topology.name)
        if slot_count == 0:
            return []

        config = slot_config or SlotConfig()
        gap = topology.default_spacing if spacing is None else spacing
        if gap < 0:
            raise ValueError(f"spacing must be >= 0, got {gap}")

        pad = config.padding
        area = _Area(
            x=pad.left,
            y=pad.top,
            width=container.width - pad.left - pad.right,
            height=container.height - pad.top - pad.bottom,
        )
        if area.width <= 0 or area.height <= 0:
            raise InvalidContainerError("padding leaves no room for slots")

        kind = topology.kind
        if kind is TopologyKind.GRID:
            rects = self._grid(area, slot_count, topology.columns, topology.rows, gap)
        elif kind is TopologyKind.STACK:
            rects = self._grid(area, slot_count, 1, slot_count, gap)
        elif kind is TopologyKind.CAROUSEL:
            rects = self._carousel(area, slot_count, gap, config)
        elif kind is TopologyKind.FOCUS:
            rects = self._focus(area, slot_count, gap)
        elif kind is TopologyKind.SPLIT_VIEW:
            rects = self._split_view(area, slot_count, gap)
        elif kind is TopologyKind.MOSAIC:
            rects = self._mosaic(area, slot_count, gap)
        elif kind is TopologyKind.THEATER:
            rects = [self._fit_aspect(area, ASPECT_16_9, z_index=0)]
        elif kind is TopologyKind.DASHBOARD:
            rects = self._dashboard(area, slot_count, gap)
        else:
            rects = self._custom(area, slot_count, gap, config.custom_frames)

        logger.debug(
            "layout computed",
            topology=topology.name,
            slots=slot_count,
            container=f"{container.width}x{container.height}",
        )
        return rects

    def _cells(self, length: float, count: int, gap: float) -> float:
        """Size of one of ``count`` cells sharing ``length`` with ``gap`` between them."""
        size = (length - gap * (count - 1)) / count
        if size <= 0:
            raise InvalidContainerError(f"spacing {gap} leaves no room for {count} slots")
        return size

    def _grid(
        self, area: _Area, slot_count: int, columns: int, rows: int, gap: float
    ) -> list[Rect]:
        width = self._cells(area.width, columns, gap)
        height = self._cells(area.height, rows, gap)

        rects = []
        for i in range(slot_count):
            column = i % columns
            row = i // columns
            rects.append(
                Rect(
                    x=area.x + column * (width + gap),
                    y=area.y + row * (height + gap),
                    width=width,
                    height=height,
                    z_index=i,
                )
            )
        return rects

    def _carousel(
        self, area: _Area, slot_count: int, gap: float, config: SlotConfig
    ) -> list[Rect]:
        # tiles scroll horizontally, so x may run past the container edge
        lo, hi = config.min_stream_size, config.max_stream_size
        width = min(max(area.width * 0.7, lo.width), hi.width, area.width)
        height = min(max(area.height * 0.8, lo.height), hi.height, area.height)
        y = area.y + (area.height - height) / 2

        return [
            Rect(x=area.x + i * (width + gap), y=y, width=width, height=height, z_index=i)
            for i in range(slot_count)
        ]

    def _focus(self, area: _Area, slot_count: int, gap: float) -> list[Rect]:
        if slot_count == 1:
            return [Rect(area.x, area.y, area.width, area.height, z_index=0)]

        thumb_width = area.width * 0.25
        main_width = area.width - thumb_width - gap
        if main_width <= 0:
            raise InvalidContainerError(f"spacing {gap} leaves no room for the main pane")
        rects = [Rect(area.x, area.y, main_width, area.height, z_index=0)]

        thumbs = slot_count - 1
        thumb_height = min(thumb_width * 9 / 16, self._cells(area.height, thumbs, gap))
        thumb_x = area.x + main_width + gap
        for i in range(thumbs):
            rects.append(
                Rect(
                    x=thumb_x,
                    y=area.y + i * (thumb_height + gap),
                    width=thumb_width,
                    height=thumb_height,
                    z_index=i + 1,
                )
            )
        return rects

    def _split_view(self, area: _Area, slot_count: int, gap: float) -> list[Rect]:
        if slot_count == 1:
            return [Rect(area.x, area.y, area.width, area.height, z_index=0)]
        if area.width >= area.height:
            return self._grid(area, slot_count, 2, 1, gap)
        return self._grid(area, slot_count, 1, 2, gap)

    def _mosaic(self, area: _Area, slot_count: int, gap: float) -> list[Rect]:
        per_row = 3
        rows = math.ceil(slot_count / per_row)
        height = self._cells(area.height, rows, gap)

        rects = []
        for row in range(rows):
            in_row = min(per_row, slot_count - row * per_row)
            width = self._cells(area.width, in_row, gap)
            for column in range(in_row):
                rects.append(
                    Rect(
                        x=area.x + column * (width + gap),
                        y=area.y + row * (height + gap),
                        width=width,
                        height=height,
                        z_index=len(rects),
                    )
                )
        return rects

    def _fit_aspect(self, area: _Area, aspect: float, z_index: int) -> Rect:
        """Largest centred rect of the given aspect ratio inside ``area``."""
        width = min(area.width, area.height * aspect)
        height = width / aspect
        return Rect(
            x=area.x + (area.width - width) / 2,
            y=area.y + (area.height - height) / 2,
            width=width,
            height=height,
            z_index=z_index,
        )

    def _dashboard(self, area: _Area, slot_count: int, gap: float) -> list[Rect]:
        if slot_count == 1:
            return [Rect(area.x, area.y, area.width, area.height, z_index=0)]

        usable = area.height - gap
        if usable <= 0:
            raise InvalidContainerError(f"spacing {gap} leaves no room for the dashboard strip")
        primary_height = usable * 0.6
        strip = _Area(
            x=area.x,
            y=area.y + primary_height + gap,
            width=area.width,
            height=usable - primary_height,
        )
        rects = [Rect(area.x, area.y, area.width, primary_height, z_index=0)]
        for i, rect in enumerate(self._grid(strip, slot_count - 1, slot_count - 1, 1, gap)):
            rects.append(Rect(rect.x, rect.y, rect.width, rect.height, z_index=i + 1))
        return rects

    def _custom(
        self,
        area: _Area,
        slot_count: int,
        gap: float,
        frames: Sequence[Rect | None],
    ) -> list[Rect]:
        columns = math.ceil(math.sqrt(slot_count))
        rows = math.ceil(slot_count / columns)
        fallback = self._grid(area, slot_count, columns, rows, gap)

        rects = []
        for i in range(slot_count):
            frame = frames[i] if i < len(frames) else None
            clamped = self._clamp(frame, area) if frame is not None else None
            if frame is not None and clamped is None:
                logger.warning("custom frame outside container, using grid cell", slot=i)
            rects.append(clamped or fallback[i])
        return rects

    def _clamp(self, frame: Rect, area: _Area) -> Rect | None:
        """Intersect a caller frame with the usable area, None if nothing remains."""
        left = max(frame.x, area.x)
        top = max(frame.y, area.y)
        right = min(frame.right, area.x + area.width)
        bottom = min(frame.bottom, area.y + area.height)
        if right <= left or bottom <= top:
            return None
        return Rect(left, top, right - left, bottom - top, z_index=frame.z_index)
