"""Layout topologies and their capacities."""

import re
from dataclasses import dataclass
from enum import StrEnum


class TopologyKind(StrEnum):
    """Layout families."""

    STACK = "stack"
    GRID = "grid"
    CAROUSEL = "carousel"
    FOCUS = "focus"
    SPLIT_VIEW = "split_view"
    MOSAIC = "mosaic"
    THEATER = "theater"
    DASHBOARD = "dashboard"
    CUSTOM = "custom"


MAX_SLOTS: dict[TopologyKind, int] = {
    TopologyKind.STACK: 10,
    TopologyKind.CAROUSEL: 20,
    TopologyKind.FOCUS: 5,
    TopologyKind.SPLIT_VIEW: 2,
    TopologyKind.MOSAIC: 12,
    TopologyKind.THEATER: 1,
    TopologyKind.DASHBOARD: 8,
    TopologyKind.CUSTOM: 50,
}

DEFAULT_SPACING: dict[TopologyKind, float] = {
    TopologyKind.STACK: 12.0,
    TopologyKind.GRID: 8.0,
    TopologyKind.CAROUSEL: 16.0,
    TopologyKind.FOCUS: 12.0,
    TopologyKind.SPLIT_VIEW: 4.0,
    TopologyKind.MOSAIC: 6.0,
    TopologyKind.THEATER: 0.0,
    TopologyKind.DASHBOARD: 16.0,
    TopologyKind.CUSTOM: 8.0,
}

_GRID_NAME = re.compile(r"^grid(\d+)x(\d+)$")


@dataclass(frozen=True)
class Topology:
    """A layout family plus its grid dimensions, when it has any.

    Attributes:
        kind: Layout family.
        columns: Grid columns (grid only).
        rows: Grid rows (grid only).
    """

    kind: TopologyKind
    columns: int = 0
    rows: int = 0

    def __post_init__(self) -> None:
        if self.kind is TopologyKind.GRID and (self.columns < 1 or self.rows < 1):
            raise ValueError(f"grid needs at least 1x1, got {self.columns}x{self.rows}")

    @classmethod
    def grid(cls, columns: int, rows: int) -> "Topology":
        return cls(TopologyKind.GRID, columns, rows)

    @classmethod
    def from_name(cls, name: str) -> "Topology":
        """
        Parse a topology name such as ``stack``, ``split_view`` or ``grid3x3``.

        Args:
            name: Topology name (case-insensitive, ``-`` accepted for ``_``)

        Returns:
            Topology instance

        Raises:
            ValueError: If the name is not recognised
        """
        normalized = name.strip().lower().replace("-", "_")
        match = _GRID_NAME.match(normalized)
        if match:
            return cls.grid(int(match.group(1)), int(match.group(2)))
        if normalized == "splitview":
            normalized = TopologyKind.SPLIT_VIEW
        try:
            kind = TopologyKind(normalized)
        except ValueError:
            raise ValueError(f"Unknown topology: {name}") from None
        if kind is TopologyKind.GRID:
            return cls.grid(2, 2)
        return cls(kind)

    @property
    def name(self) -> str:
        if self.kind is TopologyKind.GRID:
            return f"grid{self.columns}x{self.rows}"
        return str(self.kind)

    @property
    def max_slots(self) -> int:
        if self.kind is TopologyKind.GRID:
            return self.columns * self.rows
        return MAX_SLOTS[self.kind]

    @property
    def default_spacing(self) -> float:
        return DEFAULT_SPACING[self.kind]

    @property
    def allows_overlap(self) -> bool:
        """Custom frames are user-placed and may overlap."""
        return self.kind is TopologyKind.CUSTOM

    def __str__(self) -> str:
        return self.name


STACK = Topology(TopologyKind.STACK)
GRID_2X2 = Topology.grid(2, 2)
GRID_3X3 = Topology.grid(3, 3)
GRID_4X4 = Topology.grid(4, 4)
CAROUSEL = Topology(TopologyKind.CAROUSEL)
FOCUS = Topology(TopologyKind.FOCUS)
SPLIT_VIEW = Topology(TopologyKind.SPLIT_VIEW)
MOSAIC = Topology(TopologyKind.MOSAIC)
THEATER = Topology(TopologyKind.THEATER)
DASHBOARD = Topology(TopologyKind.DASHBOARD)
CUSTOM = Topology(TopologyKind.CUSTOM)
