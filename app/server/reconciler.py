import logging
from typing import Dict

from .schema import ALL_CATEGORIES, FilterSet, ParsedAction, SessionState

logger = logging.getLogger(__name__)

# accepts both the wire names (noCheese) and the attribute names (no_cheese)
FILTER_FIELDS: Dict[str, str] = {}
for _name, _field in FilterSet.model_fields.items():
    FILTER_FIELDS[_name] = _name
    FILTER_FIELDS[_field.alias or _name] = _name


def reconcile(state: SessionState, action: ParsedAction) -> SessionState:
    """
    Apply one assistant action and return the next state.

    Steps run in a fixed order, each skipped when its field is absent:
    category, filters (reset to all-false then overlay), custom filters,
    recommended / shown items. The input state is not modified.
    """
    nxt = state.model_copy(deep=True)

    if action.category is not None:
        # unknown keys are accepted and simply show nothing
        logger.debug("Catégorie: %s -> %s", nxt.category, action.category)
        nxt.category = action.category

    if action.filters is not None:
        filters = FilterSet()
        for key, value in action.filters.present().items():
            setattr(filters, key, value)
        logger.debug("Filtres: %s -> %s", nxt.filters.model_dump(), filters.model_dump())
        nxt.filters = filters

    if action.custom_filters is not None:
        asserted = action.custom_filters.asserted()
        nxt.custom_filters = asserted
        if action.custom_filters.with_cheese:
            nxt.category = ALL_CATEGORIES
        unsupported = {k: v for k, v in asserted.items() if k != "withCheese"}
        if unsupported:
            logger.info("Filtres personnalisés sans effet sur l'affichage: %s", unsupported)

    if action.recommended_items is not None:
        logger.info("Plats recommandés: %s", action.recommended_items)
        nxt.recommended_items = list(action.recommended_items)

    if action.show_items is not None:
        logger.info("Plats à afficher: %s", action.show_items)
        nxt.shown_items = list(action.show_items)

    return nxt


def select_category(state: SessionState, category: str) -> SessionState:
    nxt = state.model_copy(deep=True)
    nxt.category = category
    return nxt


def toggle_filter(state: SessionState, key: str) -> SessionState:
    field = FILTER_FIELDS.get(key)
    if field is None:
        raise KeyError(key)
    nxt = state.model_copy(deep=True)
    setattr(nxt.filters, field, not getattr(nxt.filters, field))
    return nxt


def clear_filters(state: SessionState) -> SessionState:
    nxt = state.model_copy(deep=True)
    nxt.filters = FilterSet()
    return nxt


def active_filter_count(filters: FilterSet) -> int:
    return sum(1 for value in filters.model_dump().values() if value)
