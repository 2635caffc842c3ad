import pytest

from storefront.core.errors import NotFoundError
from storefront.services import site_settings
from storefront.services.payments import PaymentGateways


def test_mask_secret():
    assert site_settings.mask_secret("sk_live_1234567890") == "sk_l****"
    assert site_settings.mask_secret("short") == "****"
    assert site_settings.mask_secret(None) == ""


async def test_read_merges_defaults(store):
    await store.set("settings", "global", {"siteName": "Toko Budi"})

    data = await site_settings.read_settings(store, "global")

    assert data["siteName"] == "Toko Budi"
    assert data["primaryColor"] == "#ec4899"


async def test_unknown_document(store):
    with pytest.raises(NotFoundError):
        await site_settings.read_settings(store, "unknown")


async def test_saving_masked_read_keeps_secret(store, settings, http_client):
    await site_settings.write_settings(store, "pakasir", {"apiKey": "sk_live_1234567890", "project": "p1"}, "alice")

    # Admin form: read, edit one field, save everything back
    form = await site_settings.read_settings(store, "pakasir")
    form["project"] = "p2"
    await site_settings.write_settings(store, "pakasir", form, "alice")

    stored = (await store.get("settings", "pakasir")).data
    assert stored["apiKey"] == "sk_live_1234567890"
    assert stored["project"] == "p2"
    config = await PaymentGateways(store, settings, http_client).get("pakasir").get_config()
    assert config["api_key"] == "sk_live_1234567890"


async def test_new_secret_replaces_old(store):
    await site_settings.write_settings(store, "tokopay", {"merchantId": "M1", "secret": "old-secret-value"})
    await site_settings.write_settings(store, "tokopay", {"secret": "new-secret-value"})

    assert (await store.get("settings", "tokopay")).data["secret"] == "new-secret-value"
