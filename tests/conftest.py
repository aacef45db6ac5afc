import dataclasses
import os
from typing import Dict, Iterable, Optional

import pytest

from simulation.constants import SimulationConstants
from simulation.data_models import PlanetRecord, Recipe, ResourceRecord, SlotGroup, StaticGameData
from simulation.planet_economy import PlanetEconomy
from simulation.recipe_catalog import RecipeCatalog

SAMPLE_CONFIG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "game_config")


def resource_catalog(base_costs: Dict[str, float]) -> Dict[str, ResourceRecord]:
    return {
        rid: ResourceRecord(resource_id=rid, resource_name=rid.replace("PR_", ""), base_cost=cost)
        for rid, cost in base_costs.items()
    }


def planet_record(
    planet_id: str = "P_Test",
    start: Optional[Dict[str, float]] = None,
    slots: Iterable[SlotGroup] = (),
    income: Optional[Dict[str, float]] = None,
    consumption: Optional[Dict[str, float]] = None,
    need: Optional[Dict[str, float]] = None,
) -> PlanetRecord:
    return PlanetRecord(
        planet_id=planet_id,
        planet_type="Test",
        start_resources=dict(start or {}),
        slot_groups=list(slots),
        income_per_tick=dict(income or {}),
        consumption_per_tick=dict(consumption or {}),
        need_baseline=dict(need or {}),
    )


def make_planet(
    record: Optional[PlanetRecord],
    base_costs: Dict[str, float],
    recipes: Iterable[Recipe] = (),
    constants: Optional[SimulationConstants] = None,
    galactic_price_lookup=None,
) -> PlanetEconomy:
    constants = constants or SimulationConstants(version=1)
    return PlanetEconomy(
        planet_id=record.planet_id if record else "P_Missing",
        record=record,
        resource_catalog=resource_catalog(base_costs),
        recipe_catalog=RecipeCatalog(recipes),
        constants_provider=lambda: constants,
        galactic_price_lookup=galactic_price_lookup,
    )


def static_data(base_costs: Dict[str, float], recipes: Iterable[Recipe] = (), planets: Iterable[PlanetRecord] = ()) -> StaticGameData:
    return StaticGameData(
        resources=resource_catalog(base_costs),
        recipes={r.recipe_id: r for r in recipes},
        planets={p.planet_id: p for p in planets},
    )


@pytest.fixture
def constants() -> SimulationConstants:
    return SimulationConstants(version=1)


@pytest.fixture
def quiet_constants() -> SimulationConstants:
    """Constants with price drift and decay switched off, for ledger-only assertions."""
    return dataclasses.replace(
        SimulationConstants(version=1),
        credit_decay_per_tick=0.0,
        population_decay_per_tick=0.0,
        price_decrease_per_tick=0.0,
        price_increase_per_tick=0.0,
    )


@pytest.fixture
def smelt_recipe() -> Recipe:
    return Recipe(
        recipe_id="PRC_Smelt",
        duration_ticks=3,
        slot_capacities={"Mining": 1},
        inputs={"PR_Ore": 100.0},
        outputs={"PR_Metal": 80.0},
    )
