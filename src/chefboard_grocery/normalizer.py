"""
Turn raw recipe ingredient lines into canonical `{name, amount, unit, category}` records.

Free-text lines are tokenized as `<quantity> [unit] <name>[, prep]`. Anything that
does not parse degrades to amount=1, unit="" with the whole line kept as the name.
Structured lines are first written out as such a line, so both kinds read the same way.
"""
from __future__ import annotations
import logging
import math
import re
from fractions import Fraction
from typing import Optional, Union
from chefboard_grocery.models import (
    CanonicalIngredient,
    Recipe,
    StructuredIngredientLine,
    TextIngredientLine,
)

logger = logging.getLogger(__name__)

CATEGORIES = ("produce", "meat", "dairy", "bakery", "frozen", "pantry", "spices", "other")

UNICODE_FRACTIONS: dict[str, Fraction] = {
    "½": Fraction(1, 2),
    "⅓": Fraction(1, 3),
    "⅔": Fraction(2, 3),
    "¼": Fraction(1, 4),
    "¾": Fraction(3, 4),
    "⅕": Fraction(1, 5),
    "⅖": Fraction(2, 5),
    "⅗": Fraction(3, 5),
    "⅘": Fraction(4, 5),
    "⅙": Fraction(1, 6),
    "⅚": Fraction(5, 6),
    "⅛": Fraction(1, 8),
    "⅜": Fraction(3, 8),
    "⅝": Fraction(5, 8),
    "⅞": Fraction(7, 8),
}

_UNITS: dict[str, tuple[str, ...]] = {
    "teaspoon": ("tsp", "tsps", "teaspoon", "teaspoons"),
    "tablespoon": ("tbsp", "tbsps", "tbs", "tbl", "tablespoon", "tablespoons"),
    "cup": ("c", "cup", "cups"),
    "ounce": ("oz", "ozs", "ounce", "ounces"),
    "pound": ("lb", "lbs", "pound", "pounds"),
    "gram": ("g", "gr", "gram", "grams"),
    "kilogram": ("kg", "kgs", "kilogram", "kilograms"),
    "milliliter": ("ml", "milliliter", "milliliters", "millilitre", "millilitres"),
    "liter": ("l", "liter", "liters", "litre", "litres"),
    "pint": ("pt", "pint", "pints"),
    "quart": ("qt", "quart", "quarts"),
    "gallon": ("gal", "gallon", "gallons"),
    "clove": ("clove", "cloves"),
    "can": ("can", "cans"),
    "head": ("head", "heads"),
    "bunch": ("bunch", "bunches"),
    "pinch": ("pinch", "pinches"),
    "dash": ("dash", "dashes"),
    "slice": ("slice", "slices"),
    "stick": ("stick", "sticks"),
    "sprig": ("sprig", "sprigs"),
    "stalk": ("stalk", "stalks"),
    "package": ("pkg", "pkgs", "package", "packages"),
    "jar": ("jar", "jars"),
    "bottle": ("bottle", "bottles"),
    "box": ("box", "boxes"),
    "bag": ("bag", "bags"),
    "piece": ("pc", "pcs", "piece", "pieces"),
}

UNIT_SYNONYMS: dict[str, str] = {
    alias: canonical for canonical, aliases in _UNITS.items() for alias in aliases
}

_CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "produce": (
        "garlic", "onion", "shallot", "scallion", "green onion", "leek", "lemon", "lime",
        "orange", "apple", "banana", "avocado", "tomato", "potato", "sweet potato",
        "carrot", "celery", "lettuce", "spinach", "kale", "cabbage", "broccoli",
        "cauliflower", "zucchini", "cucumber", "eggplant", "mushroom", "bell pepper",
        "jalapeno", "ginger", "basil", "cilantro", "parsley", "mint", "dill",
        "fresh thyme", "fresh rosemary", "corn", "pea", "green bean",
    ),
    "meat": (
        "chicken", "beef", "ground beef", "steak", "pork", "bacon", "sausage", "ham",
        "turkey", "lamb", "salmon", "tuna", "cod", "shrimp", "fish", "prosciutto",
    ),
    "dairy": (
        "milk", "buttermilk", "butter", "cheese", "parmesan", "mozzarella", "cheddar",
        "feta", "cream", "heavy cream", "sour cream", "cream cheese", "yogurt", "egg",
    ),
    "bakery": ("bread", "baguette", "bun", "roll", "tortilla", "pita", "bagel", "naan"),
    "frozen": ("frozen", "ice cream"),
    "pantry": (
        "flour", "sugar", "brown sugar", "rice", "pasta", "noodle", "spaghetti", "oat",
        "oil", "olive oil", "vinegar", "soy sauce", "broth", "stock", "chicken broth",
        "chicken stock", "beef broth", "bean", "lentil", "chickpea", "honey",
        "maple syrup", "tomato paste", "tomato sauce", "coconut milk", "peanut butter",
        "baking soda", "baking powder", "vanilla", "breadcrumb", "mustard", "ketchup",
        "mayonnaise", "cornstarch", "yeast", "chocolate", "nut", "almond", "walnut",
    ),
    "spices": (
        "salt", "pepper", "black pepper", "cumin", "paprika", "smoked paprika",
        "cinnamon", "nutmeg", "oregano", "chili powder", "chili flake", "red pepper flake",
        "cayenne", "turmeric", "curry powder", "garlic powder", "onion powder",
        "dried thyme", "dried oregano", "bay leaf", "bay leaves", "coriander", "clove",
    ),
}

# Longest keyword first so "chicken broth" beats "chicken" and "bell pepper" beats "pepper".
_KEYWORD_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(rf"\b{re.escape(keyword)}(?:s|es)?\b"), category)
    for keyword, category in sorted(
        ((k, c) for c, keywords in _CATEGORY_KEYWORDS.items() for k in keywords),
        key=lambda kc: len(kc[0]),
        reverse=True,
    )
]

_WHITESPACE_RE = re.compile(r"\s+")


def parse_number(token: str) -> Optional[float]:
    """Parse `2`, `1.5`, `1/2`, `½` or `1½`; None for anything else (including negatives)."""
    token = token.strip()
    if not token:
        return None
    try:
        if token[-1] in UNICODE_FRACTIONS:
            whole = token[:-1]
            if whole and not whole.isdecimal():
                return None
            number = float(UNICODE_FRACTIONS[token[-1]] + (int(whole) if whole else 0))
        elif "/" in token:
            numerator, _, denominator = token.partition("/")
            if not (numerator.isdecimal() and denominator.isdecimal()) or int(denominator) == 0:
                return None
            number = float(Fraction(int(numerator), int(denominator)))
        else:
            if not token[0].isdecimal():
                return None
            number = float(token)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def _is_fraction_token(token: str) -> bool:
    return "/" in token or (len(token) == 1 and token in UNICODE_FRACTIONS)


def normalize_unit(token: Optional[str]) -> str:
    """Map a unit token onto the synonym table; unknown tokens are kept lower-cased."""
    if not token:
        return ""
    cleaned = token.strip().lower()
    return UNIT_SYNONYMS.get(cleaned.rstrip("."), cleaned)


def normalize_name(text: str) -> str:
    name = _WHITESPACE_RE.sub(" ", text).strip().lower()
    if name.startswith("of "):
        name = name[3:]
    return name.split(",", 1)[0].strip()


def infer_category(name: str, explicit: Optional[str] = None) -> str:
    if explicit and explicit.strip().lower() in CATEGORIES:
        return explicit.strip().lower()
    lowered = name.lower()
    for pattern, category in _KEYWORD_PATTERNS:
        if pattern.search(lowered):
            return category
    return "other"


def _split_quantity(tokens: list[str]) -> tuple[Optional[float], int]:
    """Return the leading quantity and how many tokens it used."""
    if not tokens:
        return None, 0
    amount = parse_number(tokens[0])
    if amount is None:
        return None, 0
    if len(tokens) > 1 and _is_fraction_token(tokens[1]):
        extra = parse_number(tokens[1])
        if extra is not None and float(amount).is_integer() and math.isfinite(amount + extra):
            return amount + extra, 2
    return amount, 1


def _parse_line(text: str) -> tuple[float, str, str]:
    tokens = text.split()
    amount, used = _split_quantity(tokens)
    if amount is None:
        logger.info("Could not parse a quantity from %r; defaulting to 1", text)
        return 1.0, "", _WHITESPACE_RE.sub(" ", text).strip().lower()

    unit = ""
    if used < len(tokens):
        candidate = tokens[used].lower().rstrip(".,")
        if candidate in UNIT_SYNONYMS:
            unit = UNIT_SYNONYMS[candidate]
            used += 1
    name = normalize_name(" ".join(tokens[used:]))
    if not name:
        logger.info("Ingredient line %r has no name after its quantity", text)
        name = _WHITESPACE_RE.sub(" ", text).strip().lower()
    return amount, unit, name


def _quantity_text(value: float) -> str:
    text = format_number(value)
    return text if float(text) == value else repr(value)


def structured_line_text(line: StructuredIngredientLine) -> str:
    """
    Write a structured line as `<quantity> [unit] <name>[, prep]`.

    Only the first word after the quantity can be the unit; whatever follows it
    in `amount` moves to the prep part. An amount with no leading quantity stays
    in front of the name, so the text reads back exactly like a free-text line.
    """
    amount = line.amount
    if isinstance(amount, float):
        if math.isfinite(amount) and amount >= 0:
            amount = _quantity_text(amount)
        else:
            logger.info("Ignoring invalid amount %r for %r", amount, line.name)
            amount = None

    tokens = (amount or "").split()
    _, used = _split_quantity(tokens)
    unit = (line.unit or "").strip()
    if used:
        lead, rest = tokens[:used], tokens[used:]
        if not unit and rest:
            unit = rest.pop(0).rstrip(",")
    else:
        lead, rest = tokens, []
        if not lead and unit:
            lead = ["1"]

    text = " ".join(p for p in (" ".join(lead), unit, line.name.strip()) if p)
    prep = ", ".join(p for p in (" ".join(rest).strip(" ,"), (line.prep or "").strip()) if p)
    return f"{text}, {prep}" if prep else text


def format_number(value: float) -> str:
    """Integers print exactly; anything else is rounded once to at most two decimals."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def normalize(
    raw: Union[TextIngredientLine, StructuredIngredientLine, str],
    recipe_id: str = "",
    recipe_title: str = "",
) -> CanonicalIngredient:
    if isinstance(raw, str):
        raw = TextIngredientLine(value=raw)
    if isinstance(raw, StructuredIngredientLine):
        original, explicit_category = structured_line_text(raw), raw.category
    else:
        original, explicit_category = raw.value, None
    amount, unit, name = _parse_line(original)
    return CanonicalIngredient(
        name=name,
        amount=amount,
        unit=unit,
        category=infer_category(name, explicit_category),
        original=original,
        source_recipe_id=recipe_id,
        source_recipe_title=recipe_title,
    )


def normalize_recipe(recipe: Recipe) -> list[CanonicalIngredient]:
    """Canonical ingredients for one recipe, preferring its structured data over raw lines."""
    if recipe.structured_ingredients:
        result = []
        for ing in recipe.structured_ingredients:
            name = normalize_name(ing.name) or ing.name.strip().lower()
            result.append(ing.model_copy(update={
                "name": name,
                "unit": normalize_unit(ing.unit),
                "category": infer_category(name, ing.category),
                "original": ing.original or " ".join(
                    p for p in (format_number(ing.amount), ing.unit, ing.name) if p
                ),
                "source_recipe_id": recipe.id,
                "source_recipe_title": recipe.title,
            }))
        return result
    return [normalize(line, recipe.id, recipe.title) for line in recipe.ingredients]
