import json, logging, os
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from .schema import ALL_CATEGORIES, Catalog, FilterSet, MenuItem

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
MENU_PATH = Path(os.getenv("MENU_PATH") or (DATA_DIR / "menu.json"))

# allergen tags that mean "contains cheese / dairy"
DAIRY_TAGS = {"lait", "fromage", "dairy", "cheese", "milk"}


class CatalogError(RuntimeError):
    """Catalog document missing or malformed."""


def load_catalog(path: Optional[Path] = None) -> Catalog:
    path = Path(path or MENU_PATH)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CatalogError(f"Menu introuvable: {path}") from exc
    except json.JSONDecodeError as exc:
        raise CatalogError(f"Menu JSON invalide ({path}): {exc}") from exc
    try:
        catalog = Catalog.model_validate(data)
    except ValidationError as exc:
        raise CatalogError(f"Structure du menu invalide ({path}): {exc}") from exc
    logger.info("Menu chargé: %s catégories, %s plats", len(catalog.menu), sum(len(v) for v in catalog.menu.values()))
    return catalog


def all_items(catalog: Catalog) -> List[MenuItem]:
    items: List[MenuItem] = []
    for category_items in catalog.menu.values():
        items.extend(category_items)
    return items


def find_items(catalog: Catalog, ids: Iterable[int]) -> List[MenuItem]:
    """Resolve item ids in the given order, skipping ids not in the catalog."""
    index: Dict[int, MenuItem] = {item.id: item for item in all_items(catalog)}
    return [index[i] for i in ids if i in index]


def has_dairy(item: MenuItem) -> bool:
    return any(a.lower() in DAIRY_TAGS for a in item.allergens)


def passes_filters(item: MenuItem, f: FilterSet) -> bool:
    if f.vegetarian and not item.vegetarian:
        return False
    if f.vegan and not item.vegan:
        return False
    if f.halal and not item.halal:
        return False
    if f.popular and not item.popular:
        return False
    if f.no_allergens and item.allergens:
        return False
    # a cheese dish that can be served without cheese still passes
    if f.no_cheese and has_dairy(item) and item.cheese_removable is not True:
        return False
    return True


def visible_items(catalog: Catalog, category: str, filters: FilterSet) -> List[MenuItem]:
    if category == ALL_CATEGORIES:
        items = all_items(catalog)
    else:
        items = list(catalog.menu.get(category, []))
    return [item for item in items if passes_filters(item, filters)]


def category_title(catalog: Optional[Catalog], category: str) -> str:
    if catalog is None:
        return "Chargement..."
    if category == ALL_CATEGORIES:
        return "Notre Menu"
    info = catalog.categories.get(category)
    return info.name if info else "Menu"
