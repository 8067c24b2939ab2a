"""Resource priority tiers derived from playback state."""

from collections.abc import Sequence

from streamgrid.types import PlaybackState, StreamSlot

PRIORITY_BY_STATE: dict[PlaybackState, int] = {
    PlaybackState.PLAYING: 3,
    PlaybackState.READY: 2,
    PlaybackState.PAUSED: 2,
    PlaybackState.LOADING: 1,
    PlaybackState.BUFFERING: 1,
    PlaybackState.ERROR: 0,
    PlaybackState.OFFLINE: 0,
    PlaybackState.ENDED: 0,
}

HIGHEST_PRIORITY = 3
LOWEST_PRIORITY = 0


class ResourcePriorityRanker:
    """Orders slots by their claim on decoder, CPU and network budget."""

    def priority_of(self, state: PlaybackState | str) -> int:
        """Priority tier (0-3) for a playback state."""
        return PRIORITY_BY_STATE[PlaybackState(state)]

    def rank(self, slots: Sequence[StreamSlot]) -> list[StreamSlot]:
        """Slots from most to least important, slot order breaking ties."""
        indexed = list(enumerate(slots))
        indexed.sort(key=lambda pair: (-self.priority_of(pair[1].playback_state), pair[0]))
        return [slot for _, slot in indexed]

    def shed_order(self, slots: Sequence[StreamSlot]) -> list[StreamSlot]:
        """
        Slots in the order load should be shed when resources run short.

        Lowest tier first, so a playing stream is only degraded once every
        lower tier has been throttled. Within a tier the most expensive
        quality goes first, then the slot furthest down the layout.

        Args:
            slots: Slots in layout order

        Returns:
            Slots in shedding order
        """
        indexed = list(enumerate(slots))
        indexed.sort(
            key=lambda pair: (
                self.priority_of(pair[1].playback_state),
                -pair[1].current_quality.bitrate_kbps,
                -pair[0],
            )
        )
        return [slot for _, slot in indexed]
