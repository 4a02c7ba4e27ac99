from __future__ import annotations
from typing import Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"
    consolidation_endpoint: Optional[str] = None
    request_timeout: float = 60.0
    batch_size: int = 5
    batch_delay_seconds: float = 0.5
    categories: list[str] = [
        "produce",
        "meat",
        "dairy",
        "bakery",
        "frozen",
        "pantry",
        "spices",
        "other",
    ]
    smart_list_prompt: str = (
        "You are an expert grocery shopping assistant helping someone prepare a shopping list.\n\n"
        "Convert ALL recipe ingredients into STORE-PURCHASABLE units: think about what you actually "
        "buy at a grocery store.\n\n"
        "Each ingredient line carries [RECIPE_ID:xxx] [RECIPE_TITLE:xxx] tags for source tracking.\n\n"
        "Conversion rules:\n"
        "- Garlic cloves -> heads (10 cloves = 1 head, round up)\n"
        "- Lemon/lime juice, wedges or zest -> whole fruits (3 tbsp juice = 1 fruit)\n"
        "- Diced/chopped/sliced onions -> whole onions (1 cup diced = 1 onion)\n"
        "- Fresh herbs, scallions, celery -> bunches\n"
        "- Butter tbsp/cups -> sticks (1 stick = 8 tbsp)\n"
        "- Broth/stock cups -> cartons (1 carton = 4 cups)\n"
        "- Tomato paste tbsp -> cans (1 small can = 6 tbsp)\n"
        "- Meat and seafood stay in pounds or ounces\n"
        "- Omit salt, pepper, cooking oils, water and ice entirely\n\n"
        "First combine all amounts of the same ingredient, THEN convert to store units.\n"
        "Include ALL recipe ids and titles that contributed, with their ORIGINAL recipe amounts.\n\n"
        "Return ONLY a JSON object {\"ingredients\": [...]} where each item has:\n"
        "  name: string\n"
        "  purchaseAmount: number\n"
        "  purchaseUnit: string\n"
        "  category: one of Produce, Meat, Dairy, Bakery, Frozen, Pantry, Spices, Other\n"
        "  sources: array of {recipeId, recipeTitle, originalAmount}"
    )
    markdown_list_prompt: str = (
        "You are an expert grocery list generator specializing in consolidating recipe ingredients "
        "into organized shopping lists.\n\n"
        "Output a categorized grocery list in Markdown. Begin directly with the "
        "\"# Consolidated Grocery List\" heading: no introduction or commentary.\n\n"
        "Group each ingredient with this three-tier logic:\n"
        "Tier 1 - two or more distinct variants of a core ingredient:\n"
        "* **[Core Ingredient]**\n"
        "    * **[Variant 1]** ...\n"
        "    * **[Variant 2]** ...\n"
        "Tier 2 - one variant with several entries across recipes:\n"
        "* **[Core Ingredient]**\n"
        "    * Item 1 ...\n"
        "    * Item 2 ...\n"
        "Tier 3 - a single item in total, no header:\n"
        "* [Quantity] [Full Ingredient] (Recipe: [Recipe Title])\n\n"
        "Structure:\n"
        "# Consolidated Grocery List\n"
        "## [Category Name]\n"
        "[Ingredients]"
    )

    @field_validator("batch_size", mode="after")
    @classmethod
    def require_positive_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("BATCH_SIZE must be at least 1")
        return v

    @property
    def has_remote_backend(self) -> bool:
        return bool(self.consolidation_endpoint or self.anthropic_api_key)
