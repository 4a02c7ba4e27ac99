from __future__ import annotations
import asyncio
import json
import logging
import re
from typing import Any, Callable, Iterable, Literal, Optional, Protocol, Union
import anthropic
import httpx
from pydantic import BaseModel, Field, ValidationError
from chefboard_grocery.aggregator import aggregate_recipes, merge_aggregates, reattribute
from chefboard_grocery.config import Config
from chefboard_grocery.formatter import (
    EMPTY_GROCERY_LIST,
    LIST_HEADING,
    format_offline_list,
    format_recipes_for_prompt,
)
from chefboard_grocery.models import AggregatedIngredient, CanonicalIngredient, Recipe
from chefboard_grocery.normalizer import infer_category, normalize_recipe

logger = logging.getLogger(__name__)

Mode = Literal["markdown", "smart"]

FALLBACK_MESSAGE = "Could not reach AI. Showing ingredients without store-unit conversions."
NOT_CONFIGURED_MESSAGE = "AI service is not configured. Showing ingredients without store-unit conversions."

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?|\n?```")


class ConsolidationError(Exception):
    pass


class ConsolidationRequest(BaseModel):
    mode: Mode
    system_prompt: str
    payload: str
    ingredients: list[CanonicalIngredient] = Field(default_factory=list)


class ConsolidationOutcome(BaseModel):
    items: list[AggregatedIngredient] = Field(default_factory=list)
    markdown: Optional[str] = None
    degraded: bool = False
    message: Optional[str] = None


class Transport(Protocol):
    async def send(self, request: ConsolidationRequest) -> Any: ...


class HttpTransport:
    def __init__(self, endpoint: str, timeout: float = 60.0):
        self.endpoint = endpoint
        self.timeout = timeout

    def _body(self, request: ConsolidationRequest) -> dict:
        if request.mode == "markdown":
            return {"systemPrompt": request.system_prompt, "recipes": request.payload}
        return {
            "systemPrompt": request.system_prompt,
            "recipes": [i.model_dump(by_alias=True) for i in request.ingredients],
        }

    async def send(self, request: ConsolidationRequest) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.post(self.endpoint, json=self._body(request))
        except httpx.TimeoutException:
            raise ConsolidationError(f"Request to {self.endpoint} timed out.")
        except httpx.RequestError as e:
            raise ConsolidationError(f"Could not connect to {self.endpoint}: {e}") from e

        if not response.is_success:
            raise ConsolidationError(f"HTTP {response.status_code} from {self.endpoint}")
        try:
            return response.json()
        except ValueError as e:
            raise ConsolidationError(f"Consolidation service returned malformed JSON: {e}") from e


class AnthropicTransport:
    def __init__(self, api_key: str, model: str, max_tokens: int = 8192):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens

    async def send(self, request: ConsolidationRequest) -> Any:
        client = anthropic.AsyncAnthropic(api_key=self.api_key)
        try:
            return await client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=request.system_prompt,
                messages=[{"role": "user", "content": f"Recipes to Process:\n{request.payload}"}],
            )
        except anthropic.APIError as e:
            raise ConsolidationError(f"Model request failed: {e}") from e


def build_transport(config: Config) -> Optional[Transport]:
    if not config.has_remote_backend:
        return None
    if config.consolidation_endpoint:
        return HttpTransport(config.consolidation_endpoint, timeout=config.request_timeout)
    return AnthropicTransport(config.anthropic_api_key, config.anthropic_model)


# Response-shape adapters, tried in order. Each returns the response text or None.

def _from_text_attribute(response: Any) -> Optional[str]:
    if isinstance(response, (str, dict, list)):
        return None
    text = getattr(response, "text", None)
    if callable(text):
        text = text()
    return text if isinstance(text, str) else None


def _from_text_key(response: Any) -> Optional[str]:
    if isinstance(response, dict) and isinstance(response.get("text"), str):
        return response["text"]
    return None


def _from_candidates(response: Any) -> Optional[str]:
    if not isinstance(response, dict):
        return None
    try:
        text = response["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None


def _from_content_blocks(response: Any) -> Optional[str]:
    content = response.get("content") if isinstance(response, dict) else getattr(response, "content", None)
    if not isinstance(content, (list, tuple)) or not content:
        return None
    block = content[0]
    text = block.get("text") if isinstance(block, dict) else getattr(block, "text", None)
    return text if isinstance(text, str) else None


def _from_raw_string(response: Any) -> Optional[str]:
    return response if isinstance(response, str) else None


RESPONSE_ADAPTERS: tuple[Callable[[Any], Optional[str]], ...] = (
    _from_text_attribute,
    _from_text_key,
    _from_candidates,
    _from_content_blocks,
    _from_raw_string,
)


def extract_text(response: Any) -> Optional[str]:
    for adapter in RESPONSE_ADAPTERS:
        text = adapter(response)
        if text:
            return text
    return None


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_ingredients(response: Any) -> list[AggregatedIngredient]:
    if isinstance(response, dict) and isinstance(response.get("ingredients"), list):
        data = response["ingredients"]
    elif isinstance(response, list):
        data = response
    else:
        text = extract_text(response)
        if text is None:
            raise ConsolidationError("No content generated")
        try:
            decoded = json.loads(strip_code_fences(text))
        except json.JSONDecodeError as e:
            raise ConsolidationError(f"Failed to parse consolidation response as JSON: {e}") from e
        data = decoded.get("ingredients") if isinstance(decoded, dict) else decoded
        if not isinstance(data, list):
            raise ConsolidationError("Consolidation response has no ingredient list")

    items = []
    for raw in data:
        try:
            item = AggregatedIngredient.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping malformed ingredient %r: %s", raw, e)
            continue
        name = item.name.strip().lower()
        items.append(item.model_copy(update={
            "name": name,
            "category": infer_category(name, item.category),
        }))
    return items


def parse_markdown(response: Any) -> str:
    text = extract_text(response)
    if text is None:
        raise ConsolidationError("No content generated")
    text = strip_code_fences(text)
    start = text.find(LIST_HEADING)
    if start == -1:
        logger.warning("Markdown list is missing its heading; adding it")
        return f"{LIST_HEADING}\n\n{text}"
    return text[start:]


class ConsolidationClient:
    def __init__(self, config: Config, transport: Optional[Transport] = None):
        self.config = config
        self.transport = transport if transport is not None else build_transport(config)

    async def consolidate(
        self,
        prompt_payload: str,
        mode: Mode = "smart",
        ingredients: Optional[list[CanonicalIngredient]] = None,
    ) -> Union[list[AggregatedIngredient], str]:
        if self.transport is None:
            raise ConsolidationError("No consolidation backend configured")
        system_prompt = self.config.markdown_list_prompt if mode == "markdown" else self.config.smart_list_prompt
        response = await self.transport.send(ConsolidationRequest(
            mode=mode,
            system_prompt=system_prompt,
            payload=prompt_payload,
            ingredients=ingredients or [],
        ))
        if mode == "markdown":
            return parse_markdown(response)
        return parse_ingredients(response)

    async def consolidate_recipes(self, recipes: Iterable[Recipe]) -> ConsolidationOutcome:
        """Purchase-unit list for `recipes`, one external call per batch; local list on any failure."""
        recipes = list(recipes)
        if not recipes:
            return ConsolidationOutcome()
        if self.transport is None:
            return ConsolidationOutcome(items=aggregate_recipes(recipes), degraded=True, message=NOT_CONFIGURED_MESSAGE)

        size = self.config.batch_size
        batches = [recipes[i:i + size] for i in range(0, len(recipes), size)]
        logger.info("Consolidating %d recipes in %d batch(es)", len(recipes), len(batches))

        results = []
        try:
            for index, batch in enumerate(batches):
                if index:
                    await asyncio.sleep(self.config.batch_delay_seconds)
                items = await self.consolidate(
                    format_recipes_for_prompt(batch),
                    "smart",
                    ingredients=[ing for recipe in batch for ing in normalize_recipe(recipe)],
                )
                results.append(reattribute(items, batch))
        except ConsolidationError as e:
            logger.warning("Consolidation failed, using the local list instead: %s", e)
            return ConsolidationOutcome(items=aggregate_recipes(recipes), degraded=True, message=FALLBACK_MESSAGE)

        return ConsolidationOutcome(items=merge_aggregates(results))

    async def generate_markdown(self, recipes: Iterable[Recipe]) -> ConsolidationOutcome:
        recipes = list(recipes)
        if not recipes:
            return ConsolidationOutcome(markdown=EMPTY_GROCERY_LIST)
        if self.transport is None:
            return ConsolidationOutcome(
                markdown=format_offline_list(recipes), degraded=True, message=NOT_CONFIGURED_MESSAGE
            )
        try:
            text = await self.consolidate(format_recipes_for_prompt(recipes, tag_sources=False), "markdown")
        except ConsolidationError as e:
            logger.warning("Markdown list generation failed: %s", e)
            return ConsolidationOutcome(
                markdown=format_offline_list(recipes), degraded=True, message=FALLBACK_MESSAGE
            )
        return ConsolidationOutcome(markdown=text)
