import logging
from typing import Dict, Iterable, List, Optional

from .data_models import Recipe

logger = logging.getLogger(__name__)


class RecipeCatalog:
    """Read-only lookup table of production recipes, keyed by recipe id."""

    def __init__(self, recipes: Optional[Iterable[Recipe]] = None):
        self._by_id: Dict[str, Recipe] = {}
        for recipe in recipes or []:
            if recipe.recipe_id in self._by_id:
                logger.warning(f"Duplicate recipe id '{recipe.recipe_id}', keeping the last definition.")
            self._by_id[recipe.recipe_id] = recipe
        if not self._by_id:
            logger.warning("Recipe catalog is empty; no production processes will start.")

    @classmethod
    def from_mapping(cls, recipes: Dict[str, Recipe]) -> "RecipeCatalog":
        return cls(recipes.values())

    def get(self, recipe_id: Optional[str]) -> Optional[Recipe]:
        if not recipe_id:
            return None
        return self._by_id.get(recipe_id)

    def compatible_with(self, slot_type_name: str) -> List[Recipe]:
        """Returns every recipe that may run in a slot of the given type, in catalog order."""
        return [recipe for recipe in self._by_id.values() if recipe.compatible_with(slot_type_name)]

    @property
    def recipes(self) -> List[Recipe]:
        return list(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, recipe_id: str) -> bool:
        return recipe_id in self._by_id
