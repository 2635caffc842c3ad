import pytest

from storefront.core.errors import NotFoundError, ValidationFailed
from storefront.services import catalog


def test_price_formatting():
    assert catalog.format_idr(150000) == "Rp 150.000"
    assert catalog.format_idr(1500000.4) == "Rp 1.500.000"
    assert catalog.format_usd(9.5) == "$9.50"


def test_slug_normalization():
    assert catalog.normalize_slug("  Game  Cheats ") == "game-cheats"


async def test_categories_are_ordered(store):
    await catalog.create_category(store, "Streaming", "streaming")
    await catalog.create_category(store, "Games", "Game Tools", icon="🎮")

    categories = await catalog.list_categories(store)

    assert [c["slug"] for c in categories] == ["streaming", "game-tools"]
    assert [c["order"] for c in categories] == [0, 1]
    assert "icon" not in categories[0]


async def test_categories_with_null_order_sort_first(store):
    await store.add("categories", {"name": "B", "slug": "b", "order": 2})
    await store.add("categories", {"name": "A", "slug": "a", "order": None})

    categories = await catalog.list_categories(store)

    assert [c["slug"] for c in categories] == ["a", "b"]


async def test_duplicate_slug_rejected(store):
    await catalog.create_category(store, "Streaming", "streaming")
    with pytest.raises(ValidationFailed):
        await catalog.create_category(store, "Streaming 2", "Streaming")


async def test_update_keeps_own_slug(store):
    created = await catalog.create_category(store, "Streaming", "streaming")
    updated = await catalog.update_category(store, created["id"], "Video", "streaming", "desc")
    assert updated["name"] == "Video"
    assert updated["icon"] == ""


async def test_update_missing_category(store):
    with pytest.raises(NotFoundError):
        await catalog.update_category(store, "missing", "A", "a")


async def test_create_requires_name_and_slug(store):
    with pytest.raises(ValidationFailed):
        await catalog.create_category(store, "", "slug")
    with pytest.raises(ValidationFailed):
        await catalog.create_category(store, "Name", None)


async def test_delete_blocked_when_referenced(store):
    created = await catalog.create_category(store, "Streaming", "streaming")
    await store.add("products", {"slug": "netflix", "category": created["id"]})

    with pytest.raises(ValidationFailed):
        await catalog.delete_category(store, created["id"])
    assert await store.get("categories", created["id"]) is not None


async def test_delete_unreferenced(store):
    created = await catalog.create_category(store, "Streaming", "streaming")
    await catalog.delete_category(store, created["id"])
    assert await catalog.list_categories(store) == []


async def test_public_product_lookup(store):
    await store.add("products", {"slug": "live", "status": "ACTIVE"})
    await store.add("products", {"slug": "draft", "status": "DRAFT"})
    await store.add("products", {"slug": "hidden", "status": "ACTIVE", "flags": {"isPublic": False}})

    assert (await catalog.get_public_product(store, "live"))["slug"] == "live"
    for slug in ("draft", "hidden", "missing"):
        with pytest.raises(NotFoundError):
            await catalog.get_public_product(store, slug)


async def test_fix_products_adds_standard_plans(store):
    legacy = await store.add("products", {"title": "Legacy", "slug": "legacy", "price": {"IDR": 150000, "USD": 9.5}})
    await store.add("products", {"title": "Fine", "slug": "fine", "plans": [{"name": "Basic"}]})
    await store.add("products", {"title": "No price", "slug": "no-price"})

    needing = await catalog.products_needing_fix(store)
    assert {p["slug"]: p["hasPrice"] for p in needing} == {"legacy": True, "no-price": False}

    fixed = await catalog.fix_products(store)

    assert fixed == [{"id": legacy.id, "title": "Legacy", "plansAdded": 2}]
    plans = (await store.get("products", legacy.id)).data["plans"]
    assert plans[0]["priceString"] == "Rp 150.000"
    assert plans[0]["currency"] == "IDR"
    assert plans[1]["priceString"] == "$9.50"
