from __future__ import annotations
from typing import Iterable, Literal, Optional, Sequence
from pydantic import BaseModel, Field
from chefboard_grocery.aggregator import merge_aggregates
from chefboard_grocery.models import (
    AggregatedIngredient,
    Recipe,
    StructuredIngredientLine,
    TextIngredientLine,
)
from chefboard_grocery.normalizer import format_number

LIST_HEADING = "# Consolidated Grocery List"
NO_RECIPES_MESSAGE = "No recipes selected."
EMPTY_GROCERY_LIST = f"# Grocery List\n\n{NO_RECIPES_MESSAGE}"
OFFLINE_MESSAGE = "Unable to connect to AI service. Please try again later."


class TierGroup(BaseModel):
    tier: Literal[1, 2, 3]
    name: str
    category: str
    header: Optional[str] = None
    lines: list[str] = Field(default_factory=list)


def format_amount(amount: float, unit: str = "") -> str:
    return f"{format_number(amount)} {unit}".strip()


def _line_text(line) -> str:
    if isinstance(line, TextIngredientLine):
        return line.value.strip()
    if isinstance(line, StructuredIngredientLine):
        amount = format_number(line.amount) if isinstance(line.amount, float) else line.amount
        return " ".join(str(p).strip() for p in (amount, line.unit, line.name) if p not in (None, ""))
    return str(line).strip()


def _recipe_lines(recipe: Recipe) -> list[str]:
    if recipe.structured_ingredients:
        return [
            " ".join(p for p in (format_number(i.amount), i.unit, i.name) if p)
            for i in recipe.structured_ingredients
        ]
    return [_line_text(line) for line in recipe.ingredients]


def format_recipes_for_prompt(recipes: Optional[Sequence[Recipe]], tag_sources: bool = True) -> str:
    if not recipes or not isinstance(recipes, (list, tuple)):
        return ""
    blocks = []
    for recipe in recipes:
        tag = f" [RECIPE_ID:{recipe.id}] [RECIPE_TITLE:{recipe.title}]" if tag_sources else ""
        lines = "\n".join(f"• {text}{tag}" for text in _recipe_lines(recipe))
        blocks.append(f"{recipe.title}\nIngredients:\n{lines}")
    return "\n\n".join(blocks)


def format_offline_list(recipes: Sequence[Recipe]) -> str:
    sections = []
    for recipe in recipes:
        checklist = "\n".join(f"- [ ] {text}" for text in _recipe_lines(recipe))
        sections.append(f"## {recipe.title}\n{checklist}")
    return f"# Offline Mode\n\n{OFFLINE_MESSAGE}\n\n" + "\n\n".join(sections)


def _tier_for(variants: list[AggregatedIngredient], name: str) -> TierGroup:
    source_count = sum(len(v.sources) for v in variants)
    category = variants[0].category
    if len(variants) >= 2:
        lines = []
        for variant in variants:
            titles = ", ".join(s.recipe_title for s in variant.sources)
            suffix = f" ({titles})" if titles else ""
            lines.append(f"**{format_amount(variant.purchase_amount, variant.purchase_unit)}**{suffix}")
        return TierGroup(tier=1, name=name, category=category, header=f"**{name}**", lines=lines)

    only = variants[0]
    if source_count >= 2:
        lines = [f"{s.original_amount} (Recipe: {s.recipe_title})" for s in only.sources]
        return TierGroup(tier=2, name=name, category=category, header=f"**{name}**", lines=lines)

    line = f"{format_amount(only.purchase_amount, only.purchase_unit)} {name}"
    if only.sources:
        line += f" (Recipe: {only.sources[0].recipe_title})"
    return TierGroup(tier=3, name=name, category=category, lines=[line])


def apply_tiering_policy(aggregates: Iterable[AggregatedIngredient]) -> list[TierGroup]:
    """
    Group aggregates per ingredient name and pick an output tier from the number of
    (name, unit) variants V and contributing sources N only:

    - V >= 2: header, then one sub-line per variant
    - V == 1, N >= 2: header, then one sub-line per source
    - V == 1, N == 1: a single flat line naming the recipe

    Rows sharing a unit are merged first, so V counts distinct units.
    """
    by_name: dict[str, list[AggregatedIngredient]] = {}
    for item in aggregates:
        by_name.setdefault(item.name.strip().lower(), []).append(item)
    return [_tier_for(merge_aggregates([rows]), name) for name, rows in by_name.items()]


def _render_group(group: TierGroup) -> list[str]:
    if group.header is None:
        return [f"* {line}" for line in group.lines]
    return [f"* {group.header}"] + [f"    * {line}" for line in group.lines]


def render_grocery_markdown(aggregates: Iterable[AggregatedIngredient], categories: Sequence[str]) -> str:
    by_category: dict[str, list[TierGroup]] = {}
    for group in apply_tiering_policy(aggregates):
        by_category.setdefault(group.category.strip().lower() or "other", []).append(group)

    ordered = [c for c in categories if c in by_category]
    ordered += [c for c in by_category if c not in ordered]

    lines = [LIST_HEADING]
    for category in ordered:
        lines.append("")
        lines.append(f"## {category.title()}")
        for group in by_category[category]:
            lines.extend(_render_group(group))
    return "\n".join(lines)
