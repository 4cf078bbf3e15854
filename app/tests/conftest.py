import pytest

from app.server.schema import Catalog


def small_catalog() -> Catalog:
    """Two pizzas (one popular) and two pastas (none popular)."""
    return Catalog.model_validate({
        "restaurant": {"name": "Test", "description": "", "currency": "EUR"},
        "categories": {
            "pizzas": {"name": "Pizzas", "icon": "🍕", "description": ""},
            "pates": {"name": "Pâtes", "icon": "🍝", "description": ""},
        },
        "menu": {
            "pizzas": [
                {"id": 1, "name": "Margherita", "price": 10, "allergens": ["gluten", "lait"],
                 "vegetarian": True, "halal": True, "popular": True, "cheeseRemovable": True},
                {"id": 2, "name": "Diavola", "price": 12, "allergens": ["gluten", "lait"],
                 "spicy": True},
            ],
            "pates": [
                {"id": 3, "name": "Arrabbiata", "price": 11, "allergens": ["gluten"],
                 "vegetarian": True, "vegan": True, "halal": True},
                {"id": 4, "name": "Carbonara", "price": 13, "allergens": []},
            ],
        },
    })


@pytest.fixture
def catalog():
    return small_catalog()
