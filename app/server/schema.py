from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator

ALL_CATEGORIES = "all"

class Restaurant(BaseModel):
    name: str
    description: str = ""
    currency: str = "EUR"

class CategoryInfo(BaseModel):
    name: str
    icon: str = ""
    description: str = ""

class MenuItem(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str
    price: float
    description: str = ""
    image: Optional[str] = None
    ingredients: List[str] = Field(default_factory=list)
    allergens: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    vegetarian: bool = False
    vegan: bool = False
    halal: bool = False
    popular: bool = False
    spicy: bool = False
    preparation_time: str = Field(default="", alias="preparationTime")
    cheese_removable: Optional[bool] = Field(default=None, alias="cheeseRemovable")

class Catalog(BaseModel):
    model_config = ConfigDict(frozen=True)

    restaurant: Restaurant
    categories: Dict[str, CategoryInfo] = Field(default_factory=dict)
    menu: Dict[str, List[MenuItem]] = Field(default_factory=dict)

class FilterSet(BaseModel):
    """Total set of display filters; every flag is always present."""
    model_config = ConfigDict(populate_by_name=True)

    vegetarian: bool = False
    vegan: bool = False
    halal: bool = False
    no_allergens: bool = Field(default=False, alias="noAllergens")
    popular: bool = False
    no_cheese: bool = Field(default=False, alias="noCheese")

class FilterPatch(BaseModel):
    """Partial filter update from the assistant. None means "not mentioned"."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    vegetarian: Optional[bool] = None
    vegan: Optional[bool] = None
    halal: Optional[bool] = None
    no_allergens: Optional[bool] = Field(default=None, alias="noAllergens")
    popular: Optional[bool] = None
    no_cheese: Optional[bool] = Field(default=None, alias="noCheese")

    def present(self) -> Dict[str, bool]:
        return self.model_dump(exclude_none=True)

class CustomFilters(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    with_cheese: Optional[bool] = Field(default=None, alias="withCheese")
    with_meat: Optional[bool] = Field(default=None, alias="withMeat")
    spicy: Optional[bool] = None

    def asserted(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

class ParsedAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    category: Optional[str] = None
    filters: Optional[FilterPatch] = None
    custom_filters: Optional[CustomFilters] = Field(default=None, alias="customFilters")
    recommended_items: Optional[List[int]] = Field(default=None, alias="recommendedItems")
    show_items: Optional[List[int]] = Field(default=None, alias="showItems")
    reasoning: Optional[str] = None

    @field_validator("category")
    @classmethod
    def _blank_category_is_absent(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True, exclude={"reasoning"})

class ModelPayload(BaseModel):
    """Shape of the JSON document the assistant is asked to produce."""
    response: str
    actions: Any = None

class ParsedResponse(BaseModel):
    reply_text: str
    action: Optional[ParsedAction] = None

class Turn(BaseModel):
    role: Literal["user", "assistant"]
    text: str

class SessionState(BaseModel):
    category: str = ALL_CATEGORIES
    filters: FilterSet = Field(default_factory=FilterSet)
    history: List[Turn] = Field(default_factory=list)
    last_assistant_message: Optional[str] = None
    recommended_items: List[int] = Field(default_factory=list)
    shown_items: Optional[List[int]] = None
    custom_filters: Dict[str, Any] = Field(default_factory=dict)
    last_error: Optional[str] = None

class TurnResult(BaseModel):
    reply: Optional[str] = None
    error: Optional[str] = None
    action: Optional[ParsedAction] = None
    transcript: Optional[str] = None
    state: SessionState

class ChatRequest(BaseModel):
    message: str = ""

class CategoryRequest(BaseModel):
    category: str

class ParseRequest(BaseModel):
    text: str = ""

class SessionSnapshot(BaseModel):
    session_id: str
    state: SessionState
    title: str
    active_filters: int
    items: Optional[List[MenuItem]] = None
    recommended: List[MenuItem] = Field(default_factory=list)
    shown: Optional[List[MenuItem]] = None

class ChatResponse(BaseModel):
    session_id: str
    reply: Optional[str] = None
    error: Optional[str] = None
    transcript: Optional[str] = None
    snapshot: SessionSnapshot
