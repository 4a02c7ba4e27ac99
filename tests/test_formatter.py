from chefboard_grocery.formatter import (
    EMPTY_GROCERY_LIST, apply_tiering_policy, format_amount, format_offline_list,
    format_recipes_for_prompt, render_grocery_markdown,
)
from chefboard_grocery.models import AggregatedIngredient, CanonicalIngredient, Recipe, RecipeSource


def _source(recipe_id: str, title: str, original: str = "1") -> RecipeSource:
    return RecipeSource(recipe_id=recipe_id, recipe_title=title, original_amount=original)


def _agg(name: str, amount: float, unit: str, sources: list[RecipeSource], category: str = "produce") -> AggregatedIngredient:
    return AggregatedIngredient(
        name=name, unit=unit, purchase_amount=amount, purchase_unit=unit, category=category, sources=sources,
    )


def test_format_recipes_for_prompt_empty():
    assert format_recipes_for_prompt([]) == ""
    assert format_recipes_for_prompt(None) == ""


def test_format_recipes_for_prompt_block_format():
    recipes = [
        Recipe.model_validate({"id": "1", "title": "Garlic Chicken", "ingredients": [{"name": "Garlic", "amount": "3 cloves"}]}),
        Recipe.model_validate({"id": "2", "title": "Salad", "ingredients": ["1 head lettuce"]}),
    ]
    assert format_recipes_for_prompt(recipes) == (
        "Garlic Chicken\nIngredients:\n"
        "• 3 cloves Garlic [RECIPE_ID:1] [RECIPE_TITLE:Garlic Chicken]\n\n"
        "Salad\nIngredients:\n"
        "• 1 head lettuce [RECIPE_ID:2] [RECIPE_TITLE:Salad]"
    )


def test_format_recipes_for_prompt_without_tags():
    recipe = Recipe.model_validate({"id": "2", "title": "Salad", "ingredients": ["1 head lettuce"]})
    assert format_recipes_for_prompt([recipe], tag_sources=False) == "Salad\nIngredients:\n• 1 head lettuce"


def test_format_recipes_for_prompt_prefers_structured_data():
    recipe = Recipe(
        id="3", title="Bread",
        ingredients=[],
        structured_ingredients=[CanonicalIngredient(name="flour", amount=2.5, unit="cup")],
    )
    output = format_recipes_for_prompt([recipe])
    assert "• 2.5 cup flour [RECIPE_ID:3] [RECIPE_TITLE:Bread]" in output


def test_format_amount_rounds_for_display_only():
    assert format_amount(8, "clove") == "8 clove"
    assert format_amount(1 / 3, "cup") == "0.33 cup"
    assert format_amount(2, "") == "2"


def test_tier_three_single_item_single_source():
    groups = apply_tiering_policy([_agg("lettuce", 1, "head", [_source("2", "Salad")])])
    assert len(groups) == 1
    assert groups[0].tier == 3
    assert groups[0].header is None
    assert groups[0].lines == ["1 head lettuce (Recipe: Salad)"]


def test_tier_two_single_variant_many_sources():
    sources = [_source("1", "Garlic Chicken", "3 cloves garlic"), _source("2", "Garlic Pasta", "5 cloves garlic")]
    groups = apply_tiering_policy([_agg("garlic", 8, "clove", sources)])
    assert groups[0].tier == 2
    assert groups[0].header == "**garlic**"
    assert groups[0].lines == [
        "3 cloves garlic (Recipe: Garlic Chicken)",
        "5 cloves garlic (Recipe: Garlic Pasta)",
    ]


def test_tier_one_many_variants():
    groups = apply_tiering_policy([
        _agg("sugar", 1, "cup", [_source("1", "Cake")], category="pantry"),
        _agg("sugar", 2, "tablespoon", [_source("2", "Tea")], category="pantry"),
    ])
    assert len(groups) == 1
    assert groups[0].tier == 1
    assert groups[0].header == "**sugar**"
    assert groups[0].lines == ["**1 cup** (Cake)", "**2 tablespoon** (Tea)"]


def test_tier_depends_only_on_variant_and_source_counts():
    single = [_source("1", "A")]
    a = apply_tiering_policy([_agg("x", 1, "cup", single, category="produce")])
    b = apply_tiering_policy([_agg("x", 1, "cup", single, category="spices")])
    assert a[0].tier == b[0].tier == 3


def test_render_grocery_markdown_orders_categories():
    items = [
        _agg("salt", 1, "teaspoon", [_source("1", "Soup")], category="spices"),
        _agg("lettuce", 1, "head", [_source("2", "Salad")], category="produce"),
        _agg("tofu", 1, "block", [_source("3", "Stir Fry")], category="asian aisle"),
    ]
    output = render_grocery_markdown(items, ["produce", "meat", "spices", "other"])
    assert output.startswith("# Consolidated Grocery List")
    assert output.index("## Produce") < output.index("## Spices") < output.index("## Asian Aisle")
    assert "* 1 head lettuce (Recipe: Salad)" in output
    assert "## Meat" not in output


def test_render_grocery_markdown_nests_sub_lines():
    sources = [_source("1", "A", "3 cloves garlic"), _source("2", "B", "5 cloves garlic")]
    output = render_grocery_markdown([_agg("garlic", 8, "clove", sources)], ["produce"])
    assert "* **garlic**\n    * 3 cloves garlic (Recipe: A)\n    * 5 cloves garlic (Recipe: B)" in output


def test_empty_grocery_list_text():
    assert EMPTY_GROCERY_LIST == "# Grocery List\n\nNo recipes selected."


def test_format_offline_list():
    recipes = [Recipe.model_validate({"title": "Pasta", "id": "1", "ingredients": [{"name": "Noodles", "amount": "1 box"}]})]
    output = format_offline_list(recipes)
    assert output.startswith("# Offline Mode")
    assert "## Pasta" in output
    assert "- [ ] 1 box Noodles" in output


def test_same_unit_rows_count_as_one_variant():
    groups = apply_tiering_policy([
        _agg("garlic", 3, "clove", [_source("1", "A", "3 cloves garlic")]),
        _agg("garlic", 5, "clove", [_source("2", "B", "5 cloves garlic")]),
    ])
    assert len(groups) == 1
    assert groups[0].tier == 2
    assert groups[0].lines == ["3 cloves garlic (Recipe: A)", "5 cloves garlic (Recipe: B)"]


def test_tier_one_merges_same_unit_rows_before_listing_variants():
    groups = apply_tiering_policy([
        _agg("sugar", 1, "cup", [_source("1", "Cake")], category="pantry"),
        _agg("sugar", 2, "tablespoon", [_source("2", "Tea")], category="pantry"),
        _agg("sugar", 1, "cup", [_source("3", "Pie")], category="pantry"),
    ])
    assert groups[0].tier == 1
    assert groups[0].lines == ["**2 cup** (Cake, Pie)", "**2 tablespoon** (Tea)"]
