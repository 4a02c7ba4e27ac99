"""
Grocery list generation for a recipe selection.

Recipes that already carry structured ingredients are merged locally; the rest are
sent to the consolidation client. Results for an unchanged selection come from the
selection cache. A degraded (offline) list is handed back but never cached.
"""
from __future__ import annotations
import logging
from typing import Optional, Sequence
from chefboard_grocery.aggregator import aggregate_recipes, merge_aggregates
from chefboard_grocery.cache import SelectionCache, selection_key
from chefboard_grocery.client import ConsolidationClient, ConsolidationOutcome, Mode
from chefboard_grocery.config import Config
from chefboard_grocery.formatter import EMPTY_GROCERY_LIST, NO_RECIPES_MESSAGE, render_grocery_markdown
from chefboard_grocery.models import AggregatedIngredient, GroceryList, Recipe

logger = logging.getLogger(__name__)

MIN_WEEK_RECIPES = 3


class SelectionError(Exception):
    pass


class _DegradedGeneration(Exception):
    def __init__(self, outcome: ConsolidationOutcome):
        super().__init__(outcome.message)
        self.outcome = outcome


def choose_recipes(recipes: Sequence[Recipe], min_week: int = MIN_WEEK_RECIPES) -> list[Recipe]:
    """Recipes planned for this week if any are flagged, otherwise every recipe."""
    this_week = [r for r in recipes if r.this_week]
    if this_week and len(this_week) < min_week:
        raise SelectionError(
            f"Please select at least {min_week} recipes to ensure efficient meal planning!"
        )
    chosen = this_week or list(recipes)
    if not chosen:
        raise SelectionError("No recipes found to generate a list.")
    return chosen


class GroceryListGenerator:
    def __init__(
        self,
        config: Config,
        client: Optional[ConsolidationClient] = None,
        cache: Optional[SelectionCache] = None,
    ):
        self.config = config
        self.client = client if client is not None else ConsolidationClient(config)
        self.cache = cache if cache is not None else SelectionCache()

    async def generate(self, recipes: Sequence[Recipe], mode: Mode = "smart") -> GroceryList:
        recipes = list(recipes)
        if not recipes:
            return GroceryList(status="empty", markdown=EMPTY_GROCERY_LIST, message=NO_RECIPES_MESSAGE)
        if mode == "markdown":
            return await self._generate_markdown(recipes)

        key = selection_key(recipes)
        try:
            items = await self.cache.get_or_compute(recipes, lambda: self._compute_items(recipes))
        except _DegradedGeneration as e:
            return GroceryList(
                selection_key=key,
                status="degraded",
                items=e.outcome.items,
                markdown=render_grocery_markdown(e.outcome.items, self.config.categories),
                message=e.outcome.message,
            )
        return GroceryList(
            selection_key=key,
            status="complete",
            items=items,
            markdown=render_grocery_markdown(items, self.config.categories),
        )

    async def _compute_items(self, recipes: list[Recipe]) -> list[AggregatedIngredient]:
        structured = [r for r in recipes if r.has_structured_data]
        remainder = [r for r in recipes if not r.has_structured_data]
        local = aggregate_recipes(structured)
        if not remainder:
            logger.debug("All %d recipes have structured data; skipping consolidation", len(recipes))
            return local

        outcome = await self.client.consolidate_recipes(remainder)
        merged = merge_aggregates([local, outcome.items])
        if outcome.degraded:
            raise _DegradedGeneration(outcome.model_copy(update={"items": merged}))
        return merged

    async def _generate_markdown(self, recipes: list[Recipe]) -> GroceryList:
        outcome = await self.client.generate_markdown(recipes)
        return GroceryList(
            selection_key=selection_key(recipes),
            status="degraded" if outcome.degraded else "complete",
            markdown=outcome.markdown or "",
            message=outcome.message,
        )
