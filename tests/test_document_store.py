import pytest

from storefront.core.database import subcollection
from storefront.core.errors import ConflictError, NotFoundError


async def test_set_get_and_version(store):
    doc = await store.set("orders", "A1", {"status": "PENDING"})
    assert doc.version == 1

    loaded = await store.get("orders", "A1")
    assert loaded.to_dict() == {"id": "A1", "status": "PENDING"}
    assert await store.get("orders", "missing") is None


async def test_update_dotted_fields(store):
    await store.set("orders", "A1", {"payment": {"provider": "pakasir"}, "status": "PENDING"})
    updated = await store.update("orders", "A1", {"payment.status": "PAID", "delivery.status": "PENDING"})

    assert updated.version == 2
    assert updated.data["payment"] == {"provider": "pakasir", "status": "PAID"}
    assert updated.get("delivery.status") == "PENDING"


async def test_stale_version_conflicts(store):
    first = await store.set("orders", "A1", {"status": "PENDING"})
    await store.update("orders", "A1", {"status": "REJECTED"}, expected_version=first.version)

    with pytest.raises(ConflictError):
        await store.update("orders", "A1", {"status": "COMPLETED"}, expected_version=first.version)

    assert (await store.get("orders", "A1")).data["status"] == "REJECTED"


async def test_update_missing_document(store):
    with pytest.raises(NotFoundError):
        await store.update("orders", "nope", {"status": "PAID"})


async def test_merge_set(store):
    await store.set("settings", "global", {"siteName": "A", "footer": {"a": 1}})
    merged = await store.set("settings", "global", {"footer": {"b": 2}}, merge=True)
    assert merged.data == {"siteName": "A", "footer": {"a": 1, "b": 2}}


async def test_where_and_subcollections(store):
    await store.add("products", {"slug": "a", "status": "ACTIVE"})
    await store.add("products", {"slug": "b", "status": "DRAFT"})
    await store.add(subcollection("orders", "A1", "chat"), {"content": "hi"})

    active = await store.where("products", "status", "ACTIVE")
    assert [d.data["slug"] for d in active] == ["a"]

    # Subcollection documents stay out of the parent collection
    assert await store.all("orders") == []
    assert len(await store.all("orders/A1/chat")) == 1


async def test_delete_many(store):
    chat = subcollection("orders", "A1", "review")
    await store.add(chat, {"rating": 5})
    await store.add(chat, {"rating": 4})

    assert await store.delete_many(chat) == 2
    assert await store.all(chat) == []
    assert await store.delete("orders", "missing") is False


async def test_ping_writes_health_marker(store):
    latency = await store.ping()
    assert latency >= 0
    marker = await store.get("bot_settings", "health_check")
    assert marker.data["checkedBy"] == "monitor"
