from __future__ import annotations
import asyncio
import logging
from pathlib import Path
import click
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from chefboard_grocery.config import Config
from chefboard_grocery.formatter import format_amount, format_recipes_for_prompt
from chefboard_grocery.generator import GroceryListGenerator, SelectionError, choose_recipes
from chefboard_grocery.models import Recipe

console = Console()
err_console = Console(stderr=True)

_recipes_adapter = TypeAdapter(list[Recipe])


def load_recipes(path: Path) -> list[Recipe]:
    return _recipes_adapter.validate_json(path.read_text())


def _select(recipes: list[Recipe], ids: tuple[str, ...]) -> list[Recipe]:
    if not ids:
        return recipes
    by_id = {r.id: r for r in recipes}
    missing = [i for i in ids if i not in by_id]
    if missing:
        raise SelectionError(f"Unknown recipe id(s): {', '.join(missing)}")
    return [by_id[i] for i in ids]


def _load_selection(recipes_file: Path, ids: tuple[str, ...], this_week: bool = False) -> list[Recipe]:
    try:
        recipes = _select(load_recipes(recipes_file), ids)
        return choose_recipes(recipes) if this_week else recipes
    except ValidationError as e:
        err_console.print(f"[red]Error:[/red] {recipes_file} is not a valid recipe file.\n{escape(str(e))}")
        raise SystemExit(1)
    except SelectionError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """Chefboard grocery list: recipes in, consolidated shopping list out."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@cli.command()
@click.argument("recipes_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--select", "-s", "ids", multiple=True, help="Recipe id to include (repeatable)")
@click.option("--this-week", is_flag=True, help="Only use recipes flagged thisWeek (at least 3)")
@click.option("--markdown", "markdown_mode", is_flag=True, help="Ask the model for a formatted Markdown list")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def generate(recipes_file: Path, ids: tuple[str, ...], this_week: bool, markdown_mode: bool, as_json: bool):
    """Build the grocery list for the recipes in RECIPES_FILE."""
    recipes = _load_selection(recipes_file, ids, this_week)
    try:
        config = Config()
    except ValidationError as e:
        err_console.print(f"[red]Error:[/red] invalid configuration.\n{escape(str(e))}")
        raise SystemExit(1)

    generator = GroceryListGenerator(config)
    result = asyncio.run(generator.generate(recipes, mode="markdown" if markdown_mode else "smart"))

    if as_json:
        click.echo(result.model_dump_json(by_alias=True, indent=2))
        return

    if result.degraded:
        err_console.print(f"[yellow]Offline:[/yellow] {result.message}")
    console.print(result.markdown, markup=False, highlight=False)

    if result.items:
        table = Table(title="Purchase units")
        table.add_column("Item", style="cyan")
        table.add_column("Amount", justify="right")
        table.add_column("Category")
        table.add_column("Recipes", justify="right")
        for item in result.items:
            table.add_row(
                item.name,
                format_amount(item.purchase_amount, item.purchase_unit),
                item.category,
                str(len(item.sources)),
            )
        console.print(table)


@cli.command()
@click.argument("recipes_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--select", "-s", "ids", multiple=True, help="Recipe id to include (repeatable)")
@click.option("--no-tags", is_flag=True, help="Leave out the [RECIPE_ID] / [RECIPE_TITLE] tags")
def prompt(recipes_file: Path, ids: tuple[str, ...], no_tags: bool):
    """Print the text block sent to the consolidation model."""
    recipes = _load_selection(recipes_file, ids)
    click.echo(format_recipes_for_prompt(recipes, tag_sources=not no_tags))
