"""Resource-driven quality selection."""

from collections.abc import Iterable

import structlog

from streamgrid.config.models import SelectionPolicy
from streamgrid.errors import NoQualitiesAvailableError
from streamgrid.quality.catalog import DEFAULT_CATALOG, QualityCatalog
from streamgrid.types import QualityLevel, ResourceSnapshot

logger = structlog.get_logger()


class QualitySelector:
    """Picks a quality for a stream from a resource snapshot.

    Stateless: the result depends only on the allowed set, the snapshot and
    the policy the selector was built with.
    """

    def __init__(
        self,
        catalog: QualityCatalog = DEFAULT_CATALOG,
        policy: SelectionPolicy | None = None,
    ):
        """
        Initialize quality selector.

        Args:
            catalog: Quality table used for ranks
            policy: Bandwidth tiers and caps (defaults to SelectionPolicy())
        """
        self.catalog = catalog
        self.policy = policy or SelectionPolicy()
        self._tiers = [
            (tier.min_mbps, catalog.rank(catalog.lookup(tier.quality)))
            for tier in self.policy.bandwidth_tiers
        ]
        self._cellular_cap = catalog.rank(catalog.lookup(self.policy.cellular_cap))
        self._battery_critical_cap = catalog.rank(
            catalog.lookup(self.policy.battery_critical_cap)
        )
        self._battery_low_cap = catalog.rank(catalog.lookup(self.policy.battery_low_cap))
        self._device_caps = {
            device: catalog.rank(catalog.lookup(name))
            for device, name in self.policy.device_caps.items()
        }

    def target_rank(self, snapshot: ResourceSnapshot) -> float:
        """
        Compute the highest rank the snapshot can sustain.

        Algorithm:
        1. Bandwidth tier: the best quality whose floor the bandwidth reaches
           (the lowest tier when bandwidth is below every floor)
        2. Cellular cap
        3. Battery caps (critical, then low)
        4. Device class cap

        Args:
            snapshot: Current resource snapshot

        Returns:
            Target rank; adjustments only ever lower it
        """
        target = self._tiers[0][1]
        for min_mbps, rank in self._tiers:
            if snapshot.bandwidth_mbps >= min_mbps:
                target = max(target, rank)

        if snapshot.is_cellular:
            target = min(target, self._cellular_cap)

        battery = snapshot.battery_level
        if battery is not None:
            if battery < self.policy.battery_critical_below:
                target = min(target, self._battery_critical_cap)
            elif battery < self.policy.battery_low_below:
                target = min(target, self._battery_low_cap)

        device_cap = self._device_caps.get(snapshot.device_class)
        if device_cap is not None:
            target = min(target, device_cap)

        return target

    def select(self, allowed: Iterable[QualityLevel], snapshot: ResourceSnapshot) -> QualityLevel:
        """
        Select a quality from the allowed set.

        Args:
            allowed: Qualities the stream offers
            snapshot: Current resource snapshot

        Returns:
            Highest allowed quality at or below the target rank, or the
            lowest allowed quality when none qualifies

        Raises:
            NoQualitiesAvailableError: If ``allowed`` is empty
        """
        ordered = self.catalog.sorted_by_rank(allowed)
        if not ordered:
            raise NoQualitiesAvailableError("no qualities available to select from")

        target = self.target_rank(snapshot)
        eligible = [q for q in ordered if self.catalog.rank(q) <= target]
        selected = eligible[-1] if eligible else ordered[0]

        logger.debug(
            "quality selected",
            quality=selected.name,
            target_rank=target,
            bandwidth_mbps=snapshot.bandwidth_mbps,
            cellular=snapshot.is_cellular,
        )
        return selected
