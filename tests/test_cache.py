import asyncio
import pytest
from chefboard_grocery.cache import SelectionCache, SingleSlotStore, content_fingerprint, selection_key
from chefboard_grocery.models import AggregatedIngredient, Recipe


def _recipe(recipe_id: str, *lines: str) -> Recipe:
    return Recipe.model_validate({"id": recipe_id, "title": f"Recipe {recipe_id}", "ingredients": list(lines) or ["1 onion"]})


def _items(name: str) -> list[AggregatedIngredient]:
    return [AggregatedIngredient(name=name, unit="", purchase_amount=1, purchase_unit="")]


class CountingCompute:
    def __init__(self, name: str = "onion"):
        self.calls = 0
        self.name = name

    async def __call__(self):
        self.calls += 1
        return _items(self.name)


def test_selection_key_is_sorted_and_comma_joined():
    assert selection_key([_recipe("b"), _recipe("a"), _recipe("c")]) == "a,b,c"


def test_selection_key_changes_with_membership():
    assert selection_key([_recipe("1"), _recipe("2")]) != selection_key([_recipe("1")])


def test_content_fingerprint_ignores_order_but_not_content():
    one, two = _recipe("1", "2 cups flour"), _recipe("2", "1 onion")
    assert content_fingerprint([one, two]) == content_fingerprint([two, one])
    assert content_fingerprint([one, two]) != content_fingerprint([_recipe("1", "3 cups flour"), two])


def test_single_slot_store_evicts_previous_entry():
    from datetime import datetime, timezone
    from chefboard_grocery.models import SelectionCacheEntry

    store = SingleSlotStore()
    now = datetime.now(tz=timezone.utc)
    store.set(SelectionCacheEntry(selection_key="1", items=[], generated_at=now))
    store.set(SelectionCacheEntry(selection_key="2", items=[], generated_at=now))
    assert store.get("1") is None
    assert store.get("2") is not None
    store.clear()
    assert store.get("2") is None


async def test_same_selection_in_any_order_computes_once():
    cache = SelectionCache()
    compute = CountingCompute()
    first = await cache.get_or_compute([_recipe("1"), _recipe("2")], compute)
    second = await cache.get_or_compute([_recipe("2"), _recipe("1")], compute)
    assert compute.calls == 1
    assert first == second


async def test_different_selections_each_compute():
    cache = SelectionCache()
    compute_a, compute_b = CountingCompute("a"), CountingCompute("b")
    result_a = await cache.get_or_compute([_recipe("1")], compute_a)
    result_b = await cache.get_or_compute([_recipe("1"), _recipe("2")], compute_b)
    assert compute_a.calls == 1
    assert compute_b.calls == 1
    assert result_a[0].name == "a"
    assert result_b[0].name == "b"


async def test_only_most_recent_selection_is_remembered():
    cache = SelectionCache()
    compute = CountingCompute()
    await cache.get_or_compute([_recipe("1")], compute)
    await cache.get_or_compute([_recipe("2")], compute)
    await cache.get_or_compute([_recipe("1")], compute)
    assert compute.calls == 3


async def test_changed_ingredients_with_same_ids_recompute():
    cache = SelectionCache()
    compute = CountingCompute()
    await cache.get_or_compute([_recipe("1", "2 cups flour")], compute)
    await cache.get_or_compute([_recipe("1", "3 cups flour")], compute)
    assert compute.calls == 2


async def test_failed_compute_leaves_previous_entry_and_propagates():
    cache = SelectionCache()
    good = CountingCompute()
    await cache.get_or_compute([_recipe("1")], good)

    async def boom():
        raise RuntimeError("model down")

    with pytest.raises(RuntimeError, match="model down"):
        await cache.get_or_compute([_recipe("2")], boom)

    assert cache.store.get("1") is not None
    assert cache.store.get("2") is None


async def test_concurrent_requests_for_same_selection_share_one_compute():
    cache = SelectionCache()
    release = asyncio.Event()
    calls = 0

    async def slow():
        nonlocal calls
        calls += 1
        await release.wait()
        return _items("garlic")

    first = asyncio.create_task(cache.get_or_compute([_recipe("1"), _recipe("2")], slow))
    second = asyncio.create_task(cache.get_or_compute([_recipe("2"), _recipe("1")], slow))
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(first, second)
    assert calls == 1
    assert results[0] == results[1]


async def test_stale_completion_does_not_overwrite_newer_selection():
    cache = SelectionCache()
    release_old = asyncio.Event()

    async def slow_old():
        await release_old.wait()
        return _items("old")

    old_request = asyncio.create_task(cache.get_or_compute([_recipe("1")], slow_old))
    await asyncio.sleep(0)

    newer = await cache.get_or_compute([_recipe("2")], CountingCompute("new"))
    release_old.set()
    stale = await old_request

    assert stale[0].name == "old"
    assert cache.store.get("2").items == newer
    assert cache.store.get("1") is None


async def test_clear_forces_recompute():
    cache = SelectionCache()
    compute = CountingCompute()
    await cache.get_or_compute([_recipe("1")], compute)
    cache.clear()
    await cache.get_or_compute([_recipe("1")], compute)
    assert compute.calls == 2


async def test_cache_hit_returns_copies_of_cached_items():
    cache = SelectionCache()
    compute = CountingCompute("garlic")
    await cache.get_or_compute([_recipe("1")], compute)

    first_hit = await cache.get_or_compute([_recipe("1")], compute)
    first_hit[0].purchase_amount = 99
    second_hit = await cache.get_or_compute([_recipe("1")], compute)

    assert compute.calls == 1
    assert second_hit[0].purchase_amount == 1
    assert cache.store.get("1").items[0].purchase_amount == 1


async def test_editing_a_computed_result_does_not_change_the_cache():
    cache = SelectionCache()
    computed = await cache.get_or_compute([_recipe("1")], CountingCompute("garlic"))
    computed[0].purchase_amount = 99
    assert cache.store.get("1").items[0].purchase_amount == 1
