import dataclasses
import logging
from typing import Callable, Dict, Iterable, List, Mapping, Tuple

from .constants import SimulationConstants, snap_to_step
from .data_models import GalacticPriceEntry, ResourceRecord
from .planet_economy import PlanetEconomy

logger = logging.getLogger(__name__)

# Weight of the newest sample average when blending with the previous price
SMOOTHING_ALPHA = 0.5


class GalacticMarket:
    """
    Galaxy-wide price reference.

    Every `average_price_collect_ticks` ticks the market averages the local
    prices of all planets, blends the result with the previous galactic price
    and then clamps every planet's local price into a band around it.
    """

    def __init__(
        self,
        resource_catalog: Mapping[str, ResourceRecord],
        constants_provider: Callable[[], SimulationConstants],
    ):
        self._constants = constants_provider
        self._resource_catalog: Dict[str, ResourceRecord] = dict(resource_catalog)
        self._entries: Dict[str, GalacticPriceEntry] = {}
        self._ticks_since_collect = 0
        self.collections = 0
        self._sync_entries()

    def _sync_entries(self):
        constants = self._constants()
        for resource_id, definition in self._resource_catalog.items():
            entry = self._entries.get(resource_id)
            if entry is None:
                entry = GalacticPriceEntry(resource_id=resource_id)
                self._entries[resource_id] = entry
            if constants.is_currency(resource_id):
                entry.last_price = definition.base_cost
                entry.current_price = definition.base_cost

    def set_resource_catalog(self, resource_catalog: Mapping[str, ResourceRecord]):
        """Swaps the resource catalog; existing smoothed prices for surviving resources are kept."""
        self._resource_catalog = dict(resource_catalog)
        self._entries = {rid: e for rid, e in self._entries.items() if rid in self._resource_catalog}
        self._sync_entries()

    # --- Queries ---
    def get_price(self, resource_id: str) -> float:
        entry = self._entries.get(resource_id)
        if entry is None:
            return 0.0
        return entry.effective_price

    def snapshot(self) -> List[GalacticPriceEntry]:
        return [dataclasses.replace(e) for e in self._entries.values()]

    @property
    def ticks_until_collect(self) -> int:
        return max(0, self._constants().collect_every_ticks - self._ticks_since_collect)

    # --- Tick ---
    def on_tick(self, tick_count: int, planets: Iterable[PlanetEconomy]) -> bool:
        """
        Counts ticks towards the next aggregation and runs it when due.
        Must be called after every planet has finished the same tick.
        """
        if tick_count <= 0:
            return False
        every = self._constants().collect_every_ticks
        self._ticks_since_collect += tick_count
        if self._ticks_since_collect < every:
            return False
        # A batch spanning several cadences collects once; the overshoot counts towards the next one
        self._ticks_since_collect %= every
        self.force_collect(planets)
        return True

    def force_collect(self, planets: Iterable[PlanetEconomy]):
        planets = list(planets)
        constants = self._constants()
        self.aggregate(planets, constants)
        clamped = self.enforce_band(planets, constants)
        self.collections += 1
        logger.debug(f"Galactic prices collected from {len(planets)} planets; {clamped} local prices clamped.")

    def aggregate(self, planets: Iterable[PlanetEconomy], constants: SimulationConstants):
        samples: Dict[str, Tuple[float, int]] = {}
        for planet in planets:
            for state in planet.resources:
                if state.current_price <= 0:
                    continue
                total, count = samples.get(state.resource_id, (0.0, 0))
                samples[state.resource_id] = (total + state.current_price, count + 1)

        for resource_id, definition in self._resource_catalog.items():
            entry = self._entries.setdefault(resource_id, GalacticPriceEntry(resource_id=resource_id))

            if constants.is_currency(resource_id):
                entry.last_price = definition.base_cost
                entry.current_price = definition.base_cost
                continue

            total, count = samples.get(resource_id, (0.0, 0))
            if count <= 0:
                continue

            sample_average = total / count
            previous = entry.current_price
            if previous > 0:
                new_average = previous + SMOOTHING_ALPHA * (sample_average - previous)
            else:
                new_average = sample_average

            entry.last_price = previous
            entry.current_price = max(0.0, snap_to_step(new_average, constants.granularity))

    def enforce_band(self, planets: Iterable[PlanetEconomy], constants: SimulationConstants) -> int:
        """Clamps every non-currency local price into the band around its galactic price."""
        clamped = 0
        for planet in planets:
            for state in planet.resources:
                if constants.is_currency(state.resource_id):
                    continue
                galactic_price = self.get_price(state.resource_id)
                if galactic_price <= 0:
                    continue
                if planet.clamp_to_band(state.resource_id, galactic_price, constants):
                    clamped += 1
        return clamped
