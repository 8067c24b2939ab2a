"""Quality level table, platform value mapping and rank helpers."""

import math
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from streamgrid.errors import UnknownQualityError
from streamgrid.types import Platform, QualityLevel

AUTO = QualityLevel("auto", "auto", 0, 0)
AUDIO = QualityLevel("audio", "audio", 1, 128, is_audio_only=True)
MOBILE = QualityLevel("mobile", "160p", 2, 250, 284, 160, 30)
LOW = QualityLevel("low", "360p", 3, 500, 640, 360, 30)
MEDIUM = QualityLevel("medium", "480p", 4, 1000, 854, 480, 30)
HD720P = QualityLevel("hd720p", "720p", 5, 2500, 1280, 720, 30)
HD720P60 = QualityLevel("hd720p60", "720p60", 6, 3500, 1280, 720, 60)
HD1080P = QualityLevel("hd1080p", "1080p", 7, 4500, 1920, 1080, 30)
HD1080P60 = QualityLevel("hd1080p60", "1080p60", 8, 6000, 1920, 1080, 60)
HD1440P = QualityLevel("hd1440p", "1440p", 9, 8000, 2560, 1440, 30)
HD2160P = QualityLevel("hd2160p", "2160p", 10, 12000, 3840, 2160, 30)
SOURCE = QualityLevel("source", "source", 11, 8000)

ALL_LEVELS: tuple[QualityLevel, ...] = (
    AUTO,
    AUDIO,
    MOBILE,
    LOW,
    MEDIUM,
    HD720P,
    HD720P60,
    HD1080P,
    HD1080P60,
    HD1440P,
    HD2160P,
    SOURCE,
)

# native wire values only; gaps resolve to the nearest lower rank
PLATFORM_VALUES: dict[Platform, dict[str, str]] = {
    Platform.TWITCH: {
        "auto": "auto",
        "source": "source",
        "hd720p60": "720p60",
        "hd720p": "720p",
        "medium": "480p",
        "low": "360p",
        "mobile": "160p",
        "audio": "audio_only",
    },
    Platform.YOUTUBE: {
        "auto": "auto",
        "source": "source",
        "hd2160p": "2160p",
        "hd1440p": "1440p",
        "hd1080p60": "1080p60",
        "hd1080p": "1080p",
        "hd720p60": "720p60",
        "hd720p": "720p",
        "medium": "480p",
        "low": "360p",
        "mobile": "240p",
        "audio": "audio",
    },
    Platform.KICK: {
        "auto": "auto",
        "source": "source",
        "hd1080p": "1080p",
        "hd720p": "720p",
        "medium": "480p",
        "low": "360p",
        "mobile": "160p",
        "audio": "audio",
    },
}

PLATFORM_QUALITIES: dict[Platform, tuple[str, ...]] = {
    Platform.TWITCH: (
        "auto", "source", "hd1080p60", "hd1080p", "hd720p60", "hd720p", "medium", "low", "mobile",
    ),
    Platform.YOUTUBE: (
        "auto", "source", "hd1440p", "hd1080p60", "hd1080p", "hd720p60", "hd720p", "medium", "low",
    ),
    Platform.RUMBLE: ("auto", "source", "hd1080p", "hd720p", "medium", "low"),
    Platform.KICK: ("auto", "source", "hd1080p", "hd720p", "medium", "low"),
    Platform.DLIVE: ("auto", "source", "hd1080p", "hd720p", "medium", "low"),
    Platform.TROVO: ("auto", "source", "hd1080p", "hd720p", "medium", "low"),
    Platform.TIKTOK: ("auto", "source", "medium", "low"),
    Platform.INSTAGRAM: ("auto", "source", "medium", "low"),
    Platform.FACEBOOK: ("auto", "source", "medium", "low"),
    Platform.NIMO: ("auto", "source", "hd720p", "medium", "low"),
    Platform.BIGO: ("auto", "source", "hd720p", "medium", "low"),
    Platform.DISCORD: ("auto", "source"),
    Platform.MIXER: ("auto", "source"),
    Platform.OTHER: ("auto", "source"),
}

PRESETS: dict[str, tuple[str, ...]] = {
    "data_saver": ("mobile", "low", "medium"),
    "balanced": ("auto", "hd720p", "hd1080p", "medium", "low"),
    "high_quality": ("auto", "source", "hd1080p60", "hd1080p", "hd720p60"),
    "gaming": ("auto", "hd1080p60", "hd720p60", "hd720p"),
    "mobile": ("auto", "hd720p", "medium", "low", "mobile"),
    "audio_only": ("audio",),
}


class QualityCatalog:
    """Immutable lookup table of quality levels.

    All methods are pure reads, so one instance can be shared freely
    between coordinators and threads.
    """

    def __init__(
        self,
        levels: Iterable[QualityLevel] = ALL_LEVELS,
        platform_values: Mapping[Platform, Mapping[str, str]] | None = None,
        platform_qualities: Mapping[Platform, Iterable[str]] | None = None,
        presets: Mapping[str, Iterable[str]] | None = None,
    ):
        """
        Initialize catalog.

        Args:
            levels: Quality levels, each with a unique name and label
            platform_values: Platform -> level name -> wire value
            platform_qualities: Platform -> names of offered levels
            presets: Preset name -> names of allowed levels
        """
        self._levels: Mapping[str, QualityLevel] = MappingProxyType({q.name: q for q in levels})
        self._labels: Mapping[str, QualityLevel] = MappingProxyType(
            {q.label: q for q in self._levels.values()}
        )
        self._max_finite_rank = max(q.ordinal_rank for q in self._levels.values() if not q.is_auto)

        values = PLATFORM_VALUES if platform_values is None else platform_values
        self._platform_values: Mapping[Platform, Mapping[str, str]] = MappingProxyType(
            {p: MappingProxyType(dict(m)) for p, m in values.items()}
        )
        qualities = PLATFORM_QUALITIES if platform_qualities is None else platform_qualities
        self._platform_qualities: Mapping[Platform, tuple[QualityLevel, ...]] = MappingProxyType(
            {p: self.sorted_by_rank(self.lookup(n) for n in names) for p, names in qualities.items()}
        )
        preset_table = PRESETS if presets is None else presets
        self._presets: Mapping[str, tuple[QualityLevel, ...]] = MappingProxyType(
            {
                name: self.sorted_by_rank(self.lookup(n) for n in names)
                for name, names in preset_table.items()
            }
        )

    @property
    def levels(self) -> tuple[QualityLevel, ...]:
        """All levels, lowest rank first (``auto`` last)."""
        return self.sorted_by_rank(self._levels.values())

    def lookup(self, name: str) -> QualityLevel:
        """
        Find a level by catalog name or label.

        Args:
            name: Name such as ``hd720p`` or label such as ``720p``

        Returns:
            The matching QualityLevel

        Raises:
            UnknownQualityError: If no level has that name or label
        """
        level = self._levels.get(name) or self._labels.get(name)
        if level is None:
            raise UnknownQualityError(f"unknown quality: {name}")
        return level

    def rank(self, level: QualityLevel) -> float:
        """Comparable rank: ``auto`` always wins, ``source`` is the best finite rank."""
        if level.is_auto:
            return math.inf
        if level.name == "source":
            return self._max_finite_rank
        return level.ordinal_rank

    def sorted_by_rank(self, levels: Iterable[QualityLevel]) -> tuple[QualityLevel, ...]:
        """Deduplicate and order levels from lowest to highest rank."""
        return tuple(sorted(set(levels), key=self.rank))

    def available_for(self, platform: Platform | str) -> tuple[QualityLevel, ...]:
        """Default qualities a platform offers, lowest rank first."""
        return self._platform_qualities.get(Platform(platform), (self.lookup("auto"),))

    def preset(self, name: str) -> tuple[QualityLevel, ...]:
        """Allowed levels of a named preset, lowest rank first.

        Raises:
            KeyError: If the preset is unknown
        """
        return self._presets[name]

    @property
    def preset_names(self) -> list[str]:
        return list(self._presets)

    def platform_value(self, platform: Platform | str, level: QualityLevel) -> str:
        """
        Encode a level as the platform's wire string.

        Platforms without a table use the generic label. A level missing from a
        platform's table falls back to the nearest lower-ranked entry, or to the
        platform's lowest entry when nothing ranks below it.

        Args:
            platform: Target platform
            level: Quality level to encode

        Returns:
            Platform-specific quality string
        """
        table = self._platform_values.get(Platform(platform))
        if table is None:
            return level.label
        if level.name in table:
            return table[level.name]

        entries = [q for q in map(self.lookup, table) if not q.is_auto]
        if not entries:
            return level.label
        target = self.rank(level)
        lower = [q for q in entries if self.rank(q) < target]
        chosen = max(lower, key=self.rank) if lower else min(entries, key=self.rank)
        return table[chosen.name]

    def from_platform_value(self, platform: Platform | str, value: str) -> QualityLevel | None:
        """Decode a platform wire string, None if the platform never emits it."""
        table = self._platform_values.get(Platform(platform))
        if table is None:
            return self._labels.get(value) or self._levels.get(value)
        for name, wire in table.items():
            if wire == value:
                return self.lookup(name)
        return None

    def step_down(
        self, level: QualityLevel, within: Iterable[QualityLevel]
    ) -> QualityLevel | None:
        """Next lower-ranked member of ``within``, None if ``level`` is the lowest."""
        current = self.rank(level)
        lower = [q for q in within if not q.is_auto and self.rank(q) < current]
        return max(lower, key=self.rank) if lower else None

    def step_up(
        self, level: QualityLevel, within: Iterable[QualityLevel]
    ) -> QualityLevel | None:
        """Next higher-ranked member of ``within``, None if ``level`` is the highest."""
        current = self.rank(level)
        higher = [q for q in within if not q.is_auto and self.rank(q) > current]
        return min(higher, key=self.rank) if higher else None


DEFAULT_CATALOG = QualityCatalog()
