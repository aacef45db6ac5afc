import dataclasses
import logging
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .constants import SimulationConstants
from .data_models import PlanetRecord, ProcessSlot, Recipe, ResourceRecord, ResourceState
from .recipe_catalog import RecipeCatalog

logger = logging.getLogger(__name__)

ConstantsProvider = Callable[[], SimulationConstants]
GalacticPriceLookup = Callable[[str], float]

# Tolerance for affordability checks so 140 units cover a 100 x 1.4 input
AFFORD_EPSILON = 1e-9


class PlanetEconomy:
    """
    Economy of a single planet: a resource ledger plus a set of process slots.

    Each tick runs, in order: process completion, greedy profit-ordered
    scheduling, income/consumption/decay accrual, reserve targets and price
    drift. A planet without a static record or a recipe catalog idles.
    """

    def __init__(
        self,
        planet_id: str,
        record: Optional[PlanetRecord],
        resource_catalog: Mapping[str, ResourceRecord],
        recipe_catalog: Optional[RecipeCatalog],
        constants_provider: ConstantsProvider,
        galactic_price_lookup: Optional[GalacticPriceLookup] = None,
    ):
        self.planet_id = planet_id
        self.record = record
        self.recipe_catalog = recipe_catalog
        self._constants = constants_provider
        self._galactic_price = galactic_price_lookup
        self.resources: List[ResourceState] = []
        self.process_slots: List[ProcessSlot] = []
        self._resources_by_id: Dict[str, ResourceState] = {}

        # Cached once from the static record
        self._income_per_tick: Dict[str, float] = {}
        self._consumption_per_tick: Dict[str, float] = {}
        self._need_baseline: Dict[str, float] = {}

        if record is None:
            logger.warning(f"Planet '{planet_id}' has no static record; its economy will idle.")
            return

        self._income_per_tick = dict(record.income_per_tick)
        self._consumption_per_tick = dict(record.consumption_per_tick)
        self._need_baseline = dict(record.need_baseline)
        self._build_resources(resource_catalog)
        self._build_slots()

    # --- Initialisation ---
    def _build_resources(self, resource_catalog: Mapping[str, ResourceRecord]):
        constants = self._constants()
        for definition in resource_catalog.values():
            start_amount = constants.clamp_amount(self.record.start_resources.get(definition.resource_id, 0.0))
            state = ResourceState(
                resource_id=definition.resource_id,
                resource_name=definition.resource_name,
                start_amount=start_amount,
                current_amount=start_amount,
                base_price=definition.base_cost,
                current_price=definition.base_cost,
            )
            self.resources.append(state)
            self._resources_by_id[state.resource_id] = state

    def _build_slots(self):
        for group in self.record.slot_groups:
            for _ in range(group.count):
                self.process_slots.append(ProcessSlot(
                    slot_name=group.slot_name,
                    penalty_percent=max(100.0, group.penalty_percent),
                ))

    # --- Accessors ---
    def resource(self, resource_id: str) -> Optional[ResourceState]:
        return self._resources_by_id.get(resource_id)

    def resource_snapshot(self) -> List[ResourceState]:
        return [dataclasses.replace(r) for r in self.resources]

    def slot_snapshot(self) -> List[ProcessSlot]:
        return [dataclasses.replace(s) for s in self.process_slots]

    @property
    def is_initialized(self) -> bool:
        return self.record is not None and self.recipe_catalog is not None and bool(self.resources)

    # --- Tick ---
    def on_tick(self, tick_count: int):
        if tick_count <= 0 or not self.is_initialized:
            return

        constants = self._constants()
        self._update_running_processes(tick_count, constants)
        self._start_best_processes(constants)
        self._apply_resource_economy(tick_count, constants)

    # 1. Process completion
    def _update_running_processes(self, ticks: int, constants: SimulationConstants):
        for slot in self.process_slots:
            if not slot.is_busy:
                continue

            slot.ticks_remaining -= ticks
            if slot.ticks_remaining > 0:
                continue

            recipe = self.recipe_catalog.get(slot.current_recipe_id)
            if recipe is not None:
                for resource_id, amount in recipe.outputs.items():
                    state = self._resources_by_id.get(resource_id)
                    if state is None or amount == 0:
                        continue
                    state.current_amount = constants.clamp_amount(state.current_amount + amount)
            else:
                logger.warning(f"Planet '{self.planet_id}': finished slot {slot.slot_name} references unknown recipe '{slot.current_recipe_id}'.")

            slot.clear()

    # 2. Greedy scheduling
    def _start_best_processes(self, constants: SimulationConstants) -> List[Tuple[int, str]]:
        """
        Starts the most profitable affordable recipes in free slots.
        Returns (slot index, recipe id) for every process started this tick.
        """
        started: List[Tuple[int, str]] = []
        max_starts = constants.max_starts_per_tick
        if max_starts <= 0 or not self.process_slots or not len(self.recipe_catalog):
            return started

        candidates: List[Tuple[float, int, Recipe]] = []
        for slot_index, slot in enumerate(self.process_slots):
            if slot.is_busy:
                continue
            multiplier = slot.input_multiplier
            for recipe in self.recipe_catalog.compatible_with(slot.slot_name):
                if not self.can_afford(recipe, multiplier):
                    continue
                profit = self.estimate_profit(recipe, multiplier)
                if profit <= 0:
                    continue
                candidates.append((profit, slot_index, recipe))

        if not candidates:
            return started

        candidates.sort(key=lambda c: c[0], reverse=True)

        for profit, slot_index, recipe in candidates:
            if len(started) >= max_starts:
                break
            slot = self.process_slots[slot_index]
            if slot.is_busy:
                continue
            multiplier = slot.input_multiplier
            # An earlier start may have consumed shared inputs
            if not self.can_afford(recipe, multiplier):
                continue

            self._consume_inputs(recipe, multiplier, constants)
            slot.current_recipe_id = recipe.recipe_id
            slot.ticks_remaining = recipe.duration_ticks
            started.append((slot_index, recipe.recipe_id))
            logger.debug(f"Planet '{self.planet_id}': started '{recipe.recipe_id}' in {slot.slot_name} (profit {profit:.3f}).")

        return started

    def can_afford(self, recipe: Recipe, input_multiplier: float) -> bool:
        if input_multiplier <= 0:
            input_multiplier = 1.0
        for resource_id, need in recipe.inputs.items():
            if need <= 0:
                continue
            state = self._resources_by_id.get(resource_id)
            if state is None:
                continue
            if state.current_amount + AFFORD_EPSILON < need * input_multiplier:
                return False
        return True

    def _consume_inputs(self, recipe: Recipe, input_multiplier: float, constants: SimulationConstants):
        for resource_id, need in recipe.inputs.items():
            if need <= 0:
                continue
            state = self._resources_by_id.get(resource_id)
            if state is None:
                continue
            state.current_amount = constants.clamp_amount(state.current_amount - need * input_multiplier)

    def _price_for(self, resource_id: str) -> float:
        state = self._resources_by_id.get(resource_id)
        if state is None:
            return 0.0
        return state.current_price if state.current_price > 0 else state.base_price

    def estimate_profit(self, recipe: Recipe, input_multiplier: float) -> float:
        """Value of the outputs minus the penalty-scaled cost of the inputs, at local prices."""
        if input_multiplier <= 0:
            input_multiplier = 1.0

        cost = 0.0
        for resource_id, need in recipe.inputs.items():
            price = self._price_for(resource_id)
            if price > 0 and need > 0:
                cost += price * need * input_multiplier

        income = 0.0
        for resource_id, amount in recipe.outputs.items():
            price = self._price_for(resource_id)
            if price > 0 and amount > 0:
                income += price * amount

        return income - cost

    # 3-5. Accrual, decay, reserves and price drift
    def _apply_resource_economy(self, tick_count: int, constants: SimulationConstants):
        reserve_ticks = max(0.0, constants.reserve_ticks_ahead)
        penalty_ticks = max(0.0, constants.reserve_penalty_ticks_ahead)
        decrease = min(max(constants.price_decrease_per_tick, 0.0), 1.0)
        increase = min(max(constants.price_increase_per_tick, 0.0), 1.0)

        for state in self.resources:
            resource_id = state.resource_id
            value = state.current_amount
            target = 0.0
            warning = 0.0
            price = state.current_price if state.current_price > 0 else state.base_price

            income = self._income_per_tick.get(resource_id, 0.0)
            if income:
                value += income * tick_count

            consumption = self._consumption_per_tick.get(resource_id, 0.0)
            if consumption:
                value -= consumption * tick_count
                if consumption > 0 and reserve_ticks > 0:
                    target = consumption * reserve_ticks
                    if penalty_ticks > 0:
                        warning = consumption * penalty_ticks

            if constants.is_currency(resource_id):
                decay = min(max(constants.credit_decay_per_tick, 0.0), 1.0)
                if decay > 0:
                    value *= (1.0 - decay) ** tick_count

            if constants.is_population(resource_id):
                decay = min(max(constants.population_decay_per_tick, 0.0), 1.0)
                if decay > 0:
                    value *= (1.0 - decay) ** tick_count

                # Faster decay yields a larger buffer; this is intended.
                need_base = self._need_baseline.get(resource_id, 0.0)
                if need_base > 0:
                    factor = 1.0 - decay
                    target = need_base * (1.0 + (1.0 - factor ** reserve_ticks))
                    warning = need_base * (1.0 + (1.0 - factor ** penalty_ticks))

            if not constants.is_currency(resource_id) and target > 0:
                if value >= target and decrease > 0:
                    price *= (1.0 - decrease) ** tick_count
                elif value < target and increase > 0:
                    price *= (1.0 + increase) ** tick_count

            state.current_amount = constants.clamp_amount(value)
            state.target_amount = constants.clamp_amount(target)
            state.warning_amount = constants.clamp_amount(warning)
            if constants.is_currency(resource_id):
                state.current_price = state.base_price
            else:
                state.current_price = self._clamp_price(resource_id, price, constants)

    def _clamp_price(self, resource_id: str, price: float, constants: SimulationConstants) -> float:
        price = constants.clamp_price(price)
        if price <= 0 or self._galactic_price is None:
            return price

        galactic_price = self._galactic_price(resource_id)
        if galactic_price <= 0:
            return price
        low, high = constants.price_band(galactic_price)
        return constants.clamp_price(min(max(price, low), high))

    def clamp_to_band(self, resource_id: str, galactic_price: float, constants: SimulationConstants) -> bool:
        """Clamps one resource's price into the band around galactic_price. Returns True if it moved."""
        state = self._resources_by_id.get(resource_id)
        if state is None or constants.is_currency(resource_id) or galactic_price <= 0:
            return False
        low, high = constants.price_band(galactic_price)
        clamped = constants.clamp_price(min(max(state.current_price, low), high))
        if clamped != state.current_price:
            state.current_price = clamped
            return True
        return False
