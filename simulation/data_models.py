import dataclasses
from typing import Dict, FrozenSet, List, Optional

# --- Static Catalog Models ---

@dataclasses.dataclass(frozen=True)
class ResourceRecord:
    """Represents a tradable resource definition from the resource catalog."""
    resource_id: str
    resource_name: str
    base_cost: float

@dataclasses.dataclass(frozen=True)
class Recipe:
    """Represents a production recipe that can run inside a process slot."""
    recipe_id: str
    duration_ticks: int
    slot_capacities: Dict[str, int] = dataclasses.field(default_factory=dict)
    inputs: Dict[str, float] = dataclasses.field(default_factory=dict)
    outputs: Dict[str, float] = dataclasses.field(default_factory=dict)

    @property
    def compatible_slot_types(self) -> FrozenSet[str]:
        return frozenset(t for t, capacity in self.slot_capacities.items() if capacity > 0)

    def compatible_with(self, slot_type_name: str) -> bool:
        """
        Checks whether the recipe may occupy a slot of the given type.
        Slot names carry a prefix (e.g. 'PS_Mining'), so membership is a
        case-insensitive containment test against every compatible type.
        """
        if not slot_type_name:
            return False
        name = slot_type_name.lower()
        return any(slot_type.lower() in name for slot_type in self.compatible_slot_types)

@dataclasses.dataclass(frozen=True)
class SlotGroup:
    """Represents a group of identical process slots declared by a planet type."""
    slot_name: str
    count: int
    penalty_percent: float

@dataclasses.dataclass
class PlanetRecord:
    """Represents a planet entry joined with its planet-type economy fields."""
    planet_id: str
    planet_type: str
    start_resources: Dict[str, float] = dataclasses.field(default_factory=dict)
    scale: float = 1.0
    color: Optional[str] = None
    slot_groups: List[SlotGroup] = dataclasses.field(default_factory=list)
    income_per_tick: Dict[str, float] = dataclasses.field(default_factory=dict)
    consumption_per_tick: Dict[str, float] = dataclasses.field(default_factory=dict)
    need_baseline: Dict[str, float] = dataclasses.field(default_factory=dict)

# --- Dynamic Simulation State ---

@dataclasses.dataclass
class ResourceState:
    """Represents the live state of one resource on one planet."""
    resource_id: str
    resource_name: str
    start_amount: float = 0.0
    current_amount: float = 0.0
    target_amount: float = 0.0
    warning_amount: float = 0.0
    base_price: float = 0.0
    current_price: float = 0.0

@dataclasses.dataclass
class ProcessSlot:
    """Represents a single production slot that runs at most one recipe at a time."""
    slot_name: str
    penalty_percent: float = 100.0
    current_recipe_id: Optional[str] = None
    ticks_remaining: int = 0

    @property
    def is_busy(self) -> bool:
        return bool(self.current_recipe_id) and self.ticks_remaining > 0

    @property
    def input_multiplier(self) -> float:
        # 140 percent means inputs cost 1.4x nominal
        return self.penalty_percent / 100.0 if self.penalty_percent > 0 else 1.0

    def clear(self):
        self.current_recipe_id = None
        self.ticks_remaining = 0

@dataclasses.dataclass
class GalacticPriceEntry:
    """Represents the smoothed galaxy-wide price of a resource."""
    resource_id: str
    last_price: float = 0.0
    current_price: float = 0.0

    @property
    def effective_price(self) -> float:
        return self.current_price if self.current_price > 0 else self.last_price

@dataclasses.dataclass(frozen=True)
class PlanetHandle:
    """Opaque reference returned to collaborators when a planet is registered."""
    handle_id: int
    planet_id: str

@dataclasses.dataclass
class StaticGameData:
    """Encapsulates every catalog table the simulation reads at startup."""
    resources: Dict[str, ResourceRecord] = dataclasses.field(default_factory=dict)
    recipes: Dict[str, Recipe] = dataclasses.field(default_factory=dict)
    planets: Dict[str, PlanetRecord] = dataclasses.field(default_factory=dict)
