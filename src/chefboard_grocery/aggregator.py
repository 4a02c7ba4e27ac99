"""
Merge canonical ingredients from several recipes into one shoppable list.

Items merge only when name and unit are equal after normalization; there is no
cross-unit conversion. Every contributor keeps its own source entry.
"""
from __future__ import annotations
import logging
import math
import re
from typing import Iterable
from chefboard_grocery.models import AggregatedIngredient, CanonicalIngredient, Recipe, RecipeSource
from chefboard_grocery.normalizer import normalize_recipe

logger = logging.getLogger(__name__)

_STOP_WORDS = {
    "fresh", "dried", "minced", "chopped", "diced", "sliced", "whole", "ground", "crushed",
    "large", "small", "medium", "cloves", "clove", "cups", "cup", "tbsp", "tsp", "oz", "lb",
    "pound", "tablespoon", "teaspoon", "of", "the", "a", "an", "for", "to",
}


def _key(name: str, unit: str) -> tuple[str, str]:
    return name.strip().lower(), unit.strip().lower()


def _pick_category(categories: Iterable[str]) -> str:
    specific = sorted({c for c in categories if c and c != "other"})
    return specific[0] if specific else "other"


def aggregate(items: Iterable[CanonicalIngredient]) -> list[AggregatedIngredient]:
    groups: dict[tuple[str, str], list[CanonicalIngredient]] = {}
    for item in items:
        groups.setdefault(_key(item.name, item.unit), []).append(item)

    result = []
    for (name, unit), members in groups.items():
        result.append(AggregatedIngredient(
            name=name,
            unit=unit,
            purchase_amount=math.fsum(m.amount for m in members),
            purchase_unit=unit,
            category=_pick_category(m.category for m in members),
            sources=[
                RecipeSource(
                    recipe_id=m.source_recipe_id,
                    recipe_title=m.source_recipe_title,
                    original_amount=m.original,
                )
                for m in members
            ],
        ))
    return result


def aggregate_recipes(recipes: Iterable[Recipe]) -> list[AggregatedIngredient]:
    return aggregate(ing for recipe in recipes for ing in normalize_recipe(recipe))


def merge_aggregates(groups: Iterable[Iterable[AggregatedIngredient]]) -> list[AggregatedIngredient]:
    """Merge already-aggregated lists (e.g. one per batch): sum amounts, concatenate sources."""
    merged: dict[tuple[str, str], list[AggregatedIngredient]] = {}
    for group in groups:
        for item in group:
            merged.setdefault(_key(item.name, item.purchase_unit), []).append(item)

    result = []
    for members in merged.values():
        first = members[0]
        result.append(first.model_copy(update={
            "purchase_amount": math.fsum(m.purchase_amount for m in members),
            "category": _pick_category(m.category for m in members),
            "sources": [s.model_copy() for m in members for s in m.sources],
        }))
    return result


def _base_words(name: str) -> set[str]:
    words = re.split(r"[\s,]+", name.lower().strip())
    return {w for w in words if w and w not in _STOP_WORDS and len(w) > 2}


def names_match(first: str, second: str) -> bool:
    """True when two ingredient names share a base word (or one contains the other)."""
    other_words = _base_words(second)
    for word in _base_words(first):
        if word in other_words:
            return True
        if any(word in other or other in word for other in other_words):
            return True
    return False


def _build_source_map(recipes: Iterable[Recipe]) -> dict[str, list[RecipeSource]]:
    source_map: dict[str, list[RecipeSource]] = {}
    for recipe in recipes:
        for ing in normalize_recipe(recipe):
            source_map.setdefault(ing.name, []).append(RecipeSource(
                recipe_id=recipe.id,
                recipe_title=recipe.title,
                original_amount=ing.original,
            ))
    return source_map


def _matching_sources(name: str, source_map: dict[str, list[RecipeSource]]) -> list[RecipeSource]:
    key = name.strip().lower()
    if key in source_map:
        return [s.model_copy() for s in source_map[key]]
    return [
        s.model_copy()
        for candidate, sources in source_map.items()
        if names_match(key, candidate)
        for s in sources
    ]


def reattribute(items: Iterable[AggregatedIngredient], recipes: Iterable[Recipe]) -> list[AggregatedIngredient]:
    """
    Pin every externally consolidated item to the recipes that were actually submitted.

    Sources naming an unknown recipe are dropped. Items left without sources are
    matched back to the recipes' own ingredients by name.
    """
    recipes = list(recipes)
    known_ids = {r.id for r in recipes}
    source_map = _build_source_map(recipes)

    result = []
    for item in items:
        sources = [s for s in item.sources if s.recipe_id in known_ids]
        if not sources:
            sources = _matching_sources(item.name, source_map)
        if not sources:
            logger.warning("No matching recipes found for %r", item.name)
        result.append(item.model_copy(update={"sources": sources}))
    return result
