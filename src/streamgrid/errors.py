"""Error taxonomy for streamgrid.

Structural and validation errors are raised synchronously to the caller.
Only ``InvalidTelemetryError`` is recovered inside a coordinator tick.
"""


class StreamGridError(Exception):
    """Base class for all streamgrid errors."""


class NoQualitiesAvailableError(StreamGridError, ValueError):
    """Raised when a slot's allowed-quality set is empty."""


class UnknownQualityError(StreamGridError, KeyError):
    """Raised when a quality name is not in the catalog."""

    def __str__(self) -> str:
        # KeyError quotes its argument, keep the plain message
        return str(self.args[0]) if self.args else ""


class QualityUnavailableError(StreamGridError, ValueError):
    """Raised when a quality is requested that a slot does not offer."""


class InvalidContainerError(StreamGridError, ValueError):
    """Raised when a container cannot hold any slot rectangle."""


class SlotOverflowError(StreamGridError):
    """Raised when more slots are requested than a topology can place.

    Attributes:
        requested: Number of slots requested.
        max_slots: Capacity of the topology.
    """

    def __init__(self, requested: int, max_slots: int, topology: str = ""):
        self.requested = requested
        self.max_slots = max_slots
        self.topology = topology
        where = f" for {topology}" if topology else ""
        super().__init__(f"{requested} slots exceed capacity of {max_slots}{where}")


class TopologyTooSmallError(StreamGridError):
    """Raised when switching to a topology that cannot hold the current slots."""

    def __init__(self, slot_count: int, max_slots: int, topology: str):
        self.slot_count = slot_count
        self.max_slots = max_slots
        self.topology = topology
        super().__init__(
            f"{topology} holds at most {max_slots} slots, {slot_count} are active"
        )


class UnknownSlotError(StreamGridError, KeyError):
    """Raised when a stream id is not managed by the coordinator."""

    def __str__(self) -> str:
        return f"unknown stream: {self.args[0]}" if self.args else "unknown stream"


class DuplicateSlotError(StreamGridError, ValueError):
    """Raised when adding a stream id that is already present."""


class InvalidTelemetryError(StreamGridError, ValueError):
    """Raised when a telemetry sample is out of range or malformed."""
