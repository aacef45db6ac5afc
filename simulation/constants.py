import dataclasses
import logging
import math
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Union

logger = logging.getLogger(__name__)

# --- RESOURCE CLASSES ---
CURRENCY_RESOURCE_ID = "PR_Credits"
POPULATION_RESOURCE_IDS: FrozenSet[str] = frozenset({"PR_Workers", "PR_Engineers"})

# Fallback granularity when the configured one is unusable
DEFAULT_GRANULARITY = 0.001

# Table entry name -> SimulationConstants field
CONSTANT_NAMES: Dict[str, str] = {
    "seconds_per_tick": "seconds_per_tick",
    "tick_period": "seconds_per_tick",
    "min_resource_share": "min_resource_share",
    "credit_decay_per_tick": "credit_decay_per_tick",
    "population_decay_per_tick": "population_decay_per_tick",
    "reserve_ticks_ahead": "reserve_ticks_ahead",
    "reserve_penalty_ticks_ahead": "reserve_penalty_ticks_ahead",
    "price_decrease_per_tick": "price_decrease_per_tick",
    "price_increase_per_tick": "price_increase_per_tick",
    "average_price_collect_ticks": "average_price_collect_ticks",
    "min_price_multiplier": "min_price_multiplier",
    "max_price_multiplier": "max_price_multiplier",
    "max_processes_per_tick": "max_processes_per_tick",
}


def snap_to_step(value: float, step: float) -> float:
    """Rounds value to the nearest multiple of step, trimming float noise."""
    if step <= 0:
        step = DEFAULT_GRANULARITY
    return round(round(value / step) * step, 9)


@dataclasses.dataclass(frozen=True)
class SimulationConstants:
    """
    Immutable snapshot of the simulation tunables.
    A reload produces a new instance with a higher version; components read
    whichever snapshot is current when a tick starts.
    """
    seconds_per_tick: float = 4.1
    min_resource_share: float = 0.001
    credit_decay_per_tick: float = 0.01
    population_decay_per_tick: float = 0.05
    reserve_ticks_ahead: float = 150.0
    reserve_penalty_ticks_ahead: float = 75.0
    price_decrease_per_tick: float = 0.01
    price_increase_per_tick: float = 0.02
    average_price_collect_ticks: float = 20.0
    min_price_multiplier: float = 0.3
    max_price_multiplier: float = 3.0
    max_processes_per_tick: float = 3.0
    currency_resource_id: str = CURRENCY_RESOURCE_ID
    population_resource_ids: FrozenSet[str] = POPULATION_RESOURCE_IDS
    version: int = 0

    @property
    def granularity(self) -> float:
        return self.min_resource_share if self.min_resource_share > 0 else DEFAULT_GRANULARITY

    @property
    def max_starts_per_tick(self) -> int:
        return max(0, int(math.floor(self.max_processes_per_tick)))

    @property
    def collect_every_ticks(self) -> int:
        return max(1, int(math.floor(self.average_price_collect_ticks)))

    def price_band(self, galactic_price: float):
        """
        Returns the (low, high) band around a galactic price, swapping misordered bounds.
        Both edges are moved inwards onto the granularity grid so a clamped price stays snapped.
        """
        min_mul = self.min_price_multiplier if self.min_price_multiplier > 0 else 0.3
        max_mul = self.max_price_multiplier if self.max_price_multiplier > 0 else 3.0
        low = galactic_price * min_mul
        high = galactic_price * max_mul
        if high < low:
            low, high = high, low

        step = self.granularity
        # round() first so 3.0000000000000004 does not ceil to the next step
        low = round(math.ceil(round(low / step, 6)) * step, 9)
        high = round(math.floor(round(high / step, 6)) * step, 9)
        if high < low:
            high = low
        return low, high

    def is_currency(self, resource_id: str) -> bool:
        return resource_id == self.currency_resource_id

    def is_population(self, resource_id: str) -> bool:
        return resource_id in self.population_resource_ids

    def clamp_amount(self, value: float) -> float:
        """Clamps a resource amount to >= 0, lifting tiny positives to the granularity floor."""
        if value <= 0:
            return 0.0
        step = self.granularity
        if value < step:
            value = step
        return snap_to_step(value, step)

    def clamp_price(self, value: float) -> float:
        if value <= 0:
            return 0.0
        return max(0.0, snap_to_step(value, self.granularity))


def _coerce_constant(raw: Any) -> Optional[float]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        cleaned = raw.replace(",", "").replace('"', "").strip()
        try:
            value = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(value) or math.isinf(value) or value < 0:
        return None
    return value


def _iter_table_entries(table: Union[Mapping[str, Any], Iterable[Any]]):
    if isinstance(table, Mapping):
        yield from table.items()
        return
    for entry in table:
        if not isinstance(entry, Mapping):
            logger.warning(f"Skipping constants entry that is not an object: {entry!r}")
            continue
        name = entry.get("name") or entry.get("key")
        if not name:
            logger.warning(f"Skipping constants entry without a name: {entry!r}")
            continue
        yield name, entry.get("value")


def constants_from_table(
    table: Optional[Union[Mapping[str, Any], Iterable[Any]]],
    base: Optional[SimulationConstants] = None,
) -> SimulationConstants:
    """
    Builds a constants snapshot from a raw table.
    Accepts either a flat {name: value} mapping or a list of {"name", "value"}
    entries. Unknown names are ignored; missing, non-numeric or negative values
    fall back to the built-in defaults.
    """
    defaults = SimulationConstants()
    version = (base.version + 1) if base is not None else 1
    if table is None:
        return dataclasses.replace(defaults, version=version)

    overrides: Dict[str, float] = {}
    for name, raw in _iter_table_entries(table):
        field_name = CONSTANT_NAMES.get(str(name).strip())
        if field_name is None:
            logger.debug(f"Ignoring unknown constant '{name}'.")
            continue
        value = _coerce_constant(raw)
        if value is None:
            logger.warning(f"Invalid value {raw!r} for constant '{name}', using default {getattr(defaults, field_name)}.")
            continue
        overrides[field_name] = value

    return dataclasses.replace(defaults, version=version, **overrides)
