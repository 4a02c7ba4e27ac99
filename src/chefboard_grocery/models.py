from __future__ import annotations
from datetime import datetime
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TextIngredientLine(_Model):
    kind: Literal["text"] = "text"
    value: str


class StructuredIngredientLine(_Model):
    kind: Literal["structured"] = "structured"
    name: str
    amount: Optional[Union[float, str]] = None
    unit: Optional[str] = None
    prep: Optional[str] = None
    category: Optional[str] = None


RawIngredientLine = Annotated[
    Union[TextIngredientLine, StructuredIngredientLine], Field(discriminator="kind")
]


class CanonicalIngredient(_Model):
    name: str
    amount: float = Field(default=1.0, ge=0, allow_inf_nan=False)
    unit: str = ""
    category: str = "other"
    original: str = ""
    source_recipe_id: str = ""
    source_recipe_title: str = ""


class RecipeSource(_Model):
    recipe_id: str
    recipe_title: str
    original_amount: str = ""

    @field_validator("recipe_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, int) else v


class AggregatedIngredient(_Model):
    name: str
    unit: str = ""
    purchase_amount: float = Field(ge=0, allow_inf_nan=False)
    purchase_unit: str = ""
    category: str = "other"
    sources: list[RecipeSource] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def default_unit_to_purchase_unit(cls, data):
        # External responses only carry purchaseUnit
        if isinstance(data, dict) and "unit" not in data:
            purchase_unit = data.get("purchaseUnit", data.get("purchase_unit"))
            if purchase_unit is not None:
                data = {**data, "unit": purchase_unit}
        return data


class Recipe(_Model):
    id: str
    title: str
    ingredients: list[RawIngredientLine] = Field(default_factory=list)
    structured_ingredients: Optional[list[CanonicalIngredient]] = None
    this_week: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, int) else v

    @field_validator("ingredients", mode="before")
    @classmethod
    def tag_untagged_lines(cls, v):
        """Recipe stores hand us bare strings and `{name, amount}` records; tag them once here."""
        if not isinstance(v, list):
            return v
        tagged = []
        for line in v:
            if isinstance(line, str):
                tagged.append({"kind": "text", "value": line})
            elif isinstance(line, dict) and "kind" not in line:
                tagged.append({**line, "kind": "structured"})
            else:
                tagged.append(line)
        return tagged

    @property
    def has_structured_data(self) -> bool:
        return bool(self.structured_ingredients)


class SelectionCacheEntry(_Model):
    selection_key: str
    fingerprint: str = ""
    items: list[AggregatedIngredient] = Field(default_factory=list)
    generated_at: datetime


class GroceryList(_Model):
    selection_key: str = ""
    status: Literal["empty", "complete", "degraded"]
    items: list[AggregatedIngredient] = Field(default_factory=list)
    markdown: str = ""
    message: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.status == "degraded"
