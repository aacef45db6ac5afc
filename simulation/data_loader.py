import json
import logging
import os
from typing import Any, Dict, List, Optional

from .constants import SimulationConstants, constants_from_table
from .data_models import PlanetRecord, Recipe, ResourceRecord, SlotGroup, StaticGameData

logger = logging.getLogger(__name__)

# --- CONFIG FILE NAMES ---
PLANETS_FILE = "planet.json"
PLANET_TYPES_FILE = "planet_type.json"
RESOURCES_FILE = "planet_resource.json"
RECIPES_FILE = "planet_recipes.json"
CONSTANTS_FILE = "planet_const.json"

SLOT_NAME_PREFIX = "PS_"
RECIPE_SLOT_FIELD_PREFIX = "process_slot_"

# --- HELPER FUNCTIONS ---
def split_csv(raw: Optional[str]) -> List[str]:
    """
    Splits a comma-joined string into trimmed parts, dropping empty entries.
    Example: 'Mining, Social,' -> ['Mining', 'Social']
    """
    if not isinstance(raw, str) or not raw.strip():
        return []
    return [part.strip() for part in raw.split(',') if part.strip()]

def parse_resource_map(raw: Optional[str]) -> Dict[str, float]:
    """
    Parses an 'id:amount' CSV string into a dictionary.
    Example: 'PR_Ore:100,PR_Metal:2.5' -> {'PR_Ore': 100.0, 'PR_Metal': 2.5}
    Entries without an id, without a colon or with an unparseable amount are skipped.
    """
    result: Dict[str, float] = {}
    for part in split_csv(raw):
        idx = part.find(':')
        if idx <= 0 or idx >= len(part) - 1:
            continue
        resource_id = part[:idx].strip()
        value_raw = part[idx + 1:].strip()
        if not resource_id:
            continue
        try:
            result[resource_id] = float(value_raw)
        except ValueError:
            logger.debug(f"Skipping resource entry with unparseable amount: '{part}'")
    return result

def parse_int(raw: Any, fallback: int) -> int:
    if raw is None:
        return fallback
    try:
        return int(str(raw).strip())
    except ValueError:
        return fallback

def parse_penalty_percent(raw: Optional[str]) -> float:
    """
    Converts a configured base penalty into a full percentage.
    The config stores the surcharge only, so '40%' becomes 140.0.
    """
    if not isinstance(raw, str) or not raw.strip():
        return 100.0
    trimmed = raw.strip()
    if trimmed.endswith('%'):
        trimmed = trimmed[:-1]
    try:
        base_percent = float(trimmed)
    except ValueError:
        base_percent = 0.0
    return max(100.0, 100.0 + base_percent)

def _parse_slot_groups(type_data: Dict[str, Any]) -> List[SlotGroup]:
    types = split_csv(type_data.get('process_slot_type'))
    counts = split_csv(type_data.get('process_slot_count'))
    penalties = split_csv(type_data.get('process_slot_base_penalty'))

    groups: List[SlotGroup] = []
    for type_name, count_raw, penalty_raw in zip(types, counts, penalties):
        count = parse_int(count_raw, 0)
        if count <= 0:
            continue
        groups.append(SlotGroup(
            slot_name=SLOT_NAME_PREFIX + type_name,
            count=count,
            penalty_percent=parse_penalty_percent(penalty_raw)
        ))
    return groups

# --- FILE ACCESS ---
def load_json_table(path: str) -> Optional[Any]:
    """Reads a JSON table from disk; returns None (with a warning) when missing or unreadable."""
    if not os.path.exists(path):
        logger.warning(f"Config table not found: {path}")
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to read config table {path}: {e}")
        return None

def _as_rows(table: Any, table_name: str) -> List[Dict[str, Any]]:
    if table is None:
        return []
    if isinstance(table, dict) and isinstance(table.get('items'), list):
        table = table['items']
    if not isinstance(table, list):
        logger.warning(f"Config table '{table_name}' is not a list, ignoring it.")
        return []
    return [row for row in table if isinstance(row, dict)]

def read_config_dir(config_dir: str) -> Dict[str, Any]:
    """Reads every catalog table from a config directory into raw JSON data."""
    return {
        "planets": load_json_table(os.path.join(config_dir, PLANETS_FILE)),
        "planet_types": load_json_table(os.path.join(config_dir, PLANET_TYPES_FILE)),
        "resources": load_json_table(os.path.join(config_dir, RESOURCES_FILE)),
        "recipes": load_json_table(os.path.join(config_dir, RECIPES_FILE)),
    }

# --- CATALOG LOADING ---
def load_resource_catalog(resource_rows: Any) -> Dict[str, ResourceRecord]:
    resources: Dict[str, ResourceRecord] = {}
    for resource_data in _as_rows(resource_rows, "resources"):
        try:
            resource_id = resource_data['resource_id']
            if not resource_id:
                raise KeyError('resource_id')
            resources[resource_id] = ResourceRecord(
                resource_id=resource_id,
                resource_name=resource_data.get('resource_name') or resource_id,
                base_cost=max(0.0, float(resource_data.get('base_cost', 0.0)))
            )
        except KeyError as e:
            logger.warning(f"Skipping resource due to missing key {e} in {resource_data}")
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping resource with malformed value in {resource_data}: {e}")
    return resources

def load_recipes(recipe_rows: Any) -> Dict[str, Recipe]:
    recipes: Dict[str, Recipe] = {}
    for recipe_data in _as_rows(recipe_rows, "recipes"):
        try:
            recipe_id = recipe_data['id_planet_recipe']
            if not recipe_id:
                raise KeyError('id_planet_recipe')

            slot_capacities: Dict[str, int] = {}
            for key, value in recipe_data.items():
                if key.startswith(RECIPE_SLOT_FIELD_PREFIX):
                    slot_capacities[key[len(RECIPE_SLOT_FIELD_PREFIX):]] = int(value or 0)

            recipes[recipe_id] = Recipe(
                recipe_id=recipe_id,
                duration_ticks=max(1, int(recipe_data.get('process_tik_timer', 1) or 1)),
                slot_capacities=slot_capacities,
                inputs=parse_resource_map(recipe_data.get('in_resource')),
                outputs=parse_resource_map(recipe_data.get('out_resource'))
            )
        except KeyError as e:
            logger.warning(f"Skipping recipe due to missing key {e} in {recipe_data}")
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping recipe with malformed value in {recipe_data}: {e}")
    return recipes

def load_planet_records(planet_rows: Any, planet_type_rows: Any) -> Dict[str, PlanetRecord]:
    """
    Joins planet entries with their planet type to build complete static records.
    Planets whose type is unknown still load, just without slots or economy maps.
    """
    types_by_name: Dict[str, Dict[str, Any]] = {}
    for type_data in _as_rows(planet_type_rows, "planet_types"):
        type_name = type_data.get('planet_type')
        if not type_name:
            logger.warning(f"Skipping planet type without a name: {type_data}")
            continue
        types_by_name[type_name] = type_data

    planets: Dict[str, PlanetRecord] = {}
    for planet_data in _as_rows(planet_rows, "planets"):
        try:
            planet_id = planet_data['id_planet']
            if not planet_id:
                raise KeyError('id_planet')
            planet_type = planet_data.get('planet_type') or ""

            record = PlanetRecord(
                planet_id=planet_id,
                planet_type=planet_type,
                start_resources=parse_resource_map(planet_data.get('start_resource')),
                scale=float(planet_data.get('scale', 1.0) or 1.0),
                color=planet_data.get('color')
            )

            type_data = types_by_name.get(planet_type)
            if type_data is None:
                logger.warning(f"Planet '{planet_id}' references unknown planet type '{planet_type}'. It will have no slots or income.")
            else:
                record.slot_groups = _parse_slot_groups(type_data)
                record.income_per_tick = parse_resource_map(type_data.get('base_income_tik'))
                record.consumption_per_tick = parse_resource_map(type_data.get('base_consumption_tik'))
                record.need_baseline = parse_resource_map(type_data.get('need_anytime'))

            planets[planet_id] = record
        except KeyError as e:
            logger.warning(f"Skipping planet due to missing key {e} in {planet_data}")
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping planet with malformed value in {planet_data}: {e}")
    return planets

def load_static_game_data(static_data_raw: Dict[str, Any]) -> StaticGameData:
    """
    Loads and transforms the raw catalog tables (resources, recipes, planets)
    into dataclass instances for easier access.
    """
    static_data = StaticGameData(
        resources=load_resource_catalog(static_data_raw.get("resources")),
        recipes=load_recipes(static_data_raw.get("recipes")),
        planets=load_planet_records(static_data_raw.get("planets"), static_data_raw.get("planet_types"))
    )
    logger.info(
        f"Loaded {len(static_data.resources)} resources, {len(static_data.recipes)} recipes "
        f"and {len(static_data.planets)} planets."
    )
    return static_data

def load_constants(config_dir: Optional[str], base: Optional[SimulationConstants] = None) -> SimulationConstants:
    """Reads the constants table, falling back to built-in defaults for anything missing."""
    table = None
    if config_dir:
        table = load_json_table(os.path.join(config_dir, CONSTANTS_FILE))
    if isinstance(table, dict) and isinstance(table.get('items'), list):
        table = table['items']
    if table is not None and not isinstance(table, (dict, list)):
        logger.warning(f"Constants table has unexpected type {type(table).__name__}, using defaults.")
        table = None
    return constants_from_table(table, base)
