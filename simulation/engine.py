import dataclasses
import logging
import threading
from typing import Dict, List, Optional

from .clock import SimulationClock
from .constants import SimulationConstants, constants_from_table
from .data_loader import load_constants, load_static_game_data, read_config_dir
from .data_models import GalacticPriceEntry, PlanetHandle, PlanetRecord, ProcessSlot, ResourceState, StaticGameData
from .galactic_market import GalacticMarket
from .planet_economy import PlanetEconomy
from .recipe_catalog import RecipeCatalog

logger = logging.getLogger(__name__)


class EconomyEngine:
    """
    Facade that wires the clock, planets and galactic market together.

    The clock delivers ticks to a single handler that steps every registered
    planet in registration order and only then lets the market aggregate, so
    the market always sees a fully settled tick. Registration, reloads and
    ticks are serialised by one lock; registrations requested from inside a
    tick are applied once the tick completes.
    """

    def __init__(
        self,
        config_dir: Optional[str] = None,
        static_data: Optional[StaticGameData] = None,
        constants: Optional[SimulationConstants] = None,
    ):
        self.config_dir = config_dir
        self._lock = threading.RLock()
        self._ticking = False
        self._deferred: List = []

        if constants is None:
            constants = load_constants(config_dir) if config_dir else constants_from_table(None)
        self._constants = constants

        if static_data is None:
            static_data = load_static_game_data(read_config_dir(config_dir)) if config_dir else StaticGameData()
        self.static_data = static_data
        self.recipe_catalog = RecipeCatalog.from_mapping(static_data.recipes)

        self.clock = SimulationClock(self._constants.seconds_per_tick)
        self.market = GalacticMarket(static_data.resources, self.get_constants)
        self._planets: Dict[int, PlanetEconomy] = {}
        self._handles: Dict[int, PlanetHandle] = {}
        self._next_handle_id = 1
        self.clock.subscribe(self._on_tick)

    # --- Lifecycle ---
    def start(self):
        self.clock.start()

    def stop(self):
        self.clock.stop()

    def get_constants(self) -> SimulationConstants:
        return self._constants

    # --- Planet registration ---
    def register_planet(self, planet_id: str, record: Optional[PlanetRecord] = None) -> PlanetHandle:
        """
        Creates the economy for a planet and returns a handle for later queries.
        Without an explicit record the planet is looked up in the loaded planet table.
        Registering an already registered planet id returns the existing handle.
        """
        with self._lock:
            for handle in self._handles.values():
                if handle.planet_id == planet_id:
                    logger.info(f"Planet '{planet_id}' is already registered as handle {handle.handle_id}.")
                    return handle

            if record is None:
                record = self.static_data.planets.get(planet_id)

            planet = PlanetEconomy(
                planet_id=planet_id,
                record=record,
                resource_catalog=self.static_data.resources,
                recipe_catalog=self.recipe_catalog,
                constants_provider=self.get_constants,
                galactic_price_lookup=self.market.get_price,
            )
            handle = PlanetHandle(handle_id=self._next_handle_id, planet_id=planet_id)
            self._next_handle_id += 1
            self._handles[handle.handle_id] = handle

            if self._ticking:
                self._deferred.append(("register", handle.handle_id, planet))
            else:
                self._planets[handle.handle_id] = planet
            logger.info(f"Registered planet '{planet_id}' as handle {handle.handle_id}.")
            return handle

    def register_all_planets(self) -> List[PlanetHandle]:
        return [self.register_planet(planet_id) for planet_id in self.static_data.planets]

    def unregister_planet(self, handle: PlanetHandle):
        with self._lock:
            if handle.handle_id not in self._handles:
                logger.warning(f"Unregister requested for unknown handle {handle.handle_id}.")
                return
            del self._handles[handle.handle_id]
            if self._ticking:
                self._deferred.append(("unregister", handle.handle_id, None))
            else:
                self._planets.pop(handle.handle_id, None)
            logger.info(f"Unregistered planet '{handle.planet_id}' (handle {handle.handle_id}).")

    def _apply_deferred(self):
        deferred, self._deferred = self._deferred, []
        for action, handle_id, payload in deferred:
            if action == "register":
                if handle_id in self._handles:
                    self._planets[handle_id] = payload
            elif action == "unregister":
                self._planets.pop(handle_id, None)
            elif action == "set_constants":
                self.set_constants(payload)
            elif action == "reload_constants":
                self.reload_constants()
            elif action == "reload_catalogs":
                self.reload_catalogs()

    def planets(self) -> List[PlanetHandle]:
        with self._lock:
            return list(self._handles.values())

    def get_handle(self, handle_id: int) -> PlanetHandle:
        with self._lock:
            return self._handles[handle_id]

    def get_planet(self, handle: PlanetHandle) -> PlanetEconomy:
        with self._lock:
            if handle.handle_id not in self._handles:
                raise KeyError(handle.handle_id)
            planet = self._planets.get(handle.handle_id)
            if planet is None:
                for action, handle_id, pending in self._deferred:
                    if action == "register" and handle_id == handle.handle_id:
                        return pending
                raise KeyError(handle.handle_id)
            return planet

    # --- Snapshots ---
    def get_resource_snapshot(self, handle: PlanetHandle) -> List[ResourceState]:
        with self._lock:
            return self.get_planet(handle).resource_snapshot()

    def get_slot_snapshot(self, handle: PlanetHandle) -> List[ProcessSlot]:
        with self._lock:
            return self.get_planet(handle).slot_snapshot()

    def get_galactic_price(self, resource_id: str) -> float:
        with self._lock:
            return self.market.get_price(resource_id)

    def galactic_snapshot(self) -> List[GalacticPriceEntry]:
        with self._lock:
            return self.market.snapshot()

    # --- Time ---
    def advance_clock(self, delta_seconds: float) -> int:
        """Feeds elapsed time into the clock. Returns the number of ticks simulated."""
        with self._lock:
            return self.clock.advance(delta_seconds)

    def set_time_scale(self, time_scale: float) -> float:
        with self._lock:
            self.clock.time_scale = time_scale
            return self.clock.time_scale

    def pause(self):
        with self._lock:
            self.clock.pause()

    def resume(self):
        with self._lock:
            self.clock.resume()

    def _on_tick(self, tick_count: int):
        self._ticking = True
        try:
            planets = list(self._planets.values())
            for planet in planets:
                try:
                    planet.on_tick(tick_count)
                except Exception as e:
                    logger.error(f"Planet '{planet.planet_id}' failed during tick: {e}", exc_info=True)
            self.market.on_tick(tick_count, planets)
        finally:
            self._ticking = False
            self._apply_deferred()

    # --- Reloads ---
    def set_constants(self, constants: SimulationConstants) -> SimulationConstants:
        """
        Swaps in a new constants snapshot between ticks. Requested from inside
        a tick, the swap waits for the tick to finish and the current snapshot
        is returned.
        """
        with self._lock:
            if self._ticking:
                logger.info("Constants change requested during a tick; applying it after the tick.")
                self._deferred.append(("set_constants", None, constants))
                return self._constants
            self._constants = dataclasses.replace(constants, version=self._constants.version + 1)
            self.clock.configure(self._constants.seconds_per_tick)
            return self._constants

    def reload_constants(self) -> SimulationConstants:
        """Re-reads the constants table and swaps the snapshot atomically between ticks."""
        with self._lock:
            if self._ticking:
                logger.info("Constants reload requested during a tick; applying it after the tick.")
                self._deferred.append(("reload_constants", None, None))
                return self._constants
            self._constants = load_constants(self.config_dir, base=self._constants)
            self.clock.configure(self._constants.seconds_per_tick)
            logger.info(f"Simulation constants reloaded (version {self._constants.version}).")
            return self._constants

    def reload_catalogs(self) -> StaticGameData:
        """
        Re-reads resource, recipe and planet tables. Registered planets switch
        to the new recipe catalog but keep their current ledgers and slots.
        """
        with self._lock:
            if not self.config_dir:
                logger.warning("No config directory configured; catalog reload skipped.")
                return self.static_data
            if self._ticking:
                logger.info("Catalog reload requested during a tick; applying it after the tick.")
                self._deferred.append(("reload_catalogs", None, None))
                return self.static_data
            self.static_data = load_static_game_data(read_config_dir(self.config_dir))
            self.recipe_catalog = RecipeCatalog.from_mapping(self.static_data.recipes)
            for planet in self._planets.values():
                planet.recipe_catalog = self.recipe_catalog
            self.market.set_resource_catalog(self.static_data.resources)
            return self.static_data
