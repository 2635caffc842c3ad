"""
Storefront - Settings Documents
Per-concern singleton documents under ``settings/<name>``.
"""
import logging
from typing import Any, Dict, Optional

from storefront.core.database import DocumentStore, now_iso
from storefront.core.errors import NotFoundError

logger = logging.getLogger(__name__)

COLLECTION = "settings"
MASK = "****"

# Gateway documents hold credentials; admins only, secrets masked on read
GATEWAY_SETTINGS = {
    "pakasir": ("apiKey",),
    "ipaymu": ("apiKey",),
    "tokopay": ("secret",),
    "paypal": ("secret",),
}

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "global": {
        "siteName": "JAMBI STORE",
        "primaryColor": "#ec4899",
        "secondaryColor": "#8b5cf6",
        "accentColor": "#06b6d4",
        "logoUrl": "",
        "bannerUrls": [],
        "paymentMethods": ["pakasir"],
    },
    "payment": {"primary": "pakasir", "backup": None},
    "email_template": {},
    "manual_qris": {"enabled": False, "imageUrl": ""},
    "pakasir": {},
    "ipaymu": {},
    "tokopay": {},
    "paypal": {"mode": "sandbox"},
}


def is_known(name: str) -> bool:
    return name in DEFAULTS


def is_gateway(name: str) -> bool:
    return name in GATEWAY_SETTINGS


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return ""
    return f"{value[:4]}{MASK}" if len(value) > 8 else MASK


def is_masked(value: Any) -> bool:
    return isinstance(value, str) and value.endswith(MASK)


def drop_masked_secrets(name: str, values: Dict[str, Any]) -> Dict[str, Any]:
    """A masked secret sent back from a read keeps the stored value"""
    secret_keys = GATEWAY_SETTINGS.get(name, ())
    return {k: v for k, v in values.items() if not (k in secret_keys and is_masked(v))}


def _require_known(name: str):
    if not is_known(name):
        raise NotFoundError(f"Unknown settings document: {name}")


async def read_settings(store: DocumentStore, name: str) -> Dict[str, Any]:
    """Stored values over defaults, secrets masked"""
    _require_known(name)
    doc = await store.get(COLLECTION, name)
    data = {**DEFAULTS[name], **(doc.data if doc else {})}

    for key in GATEWAY_SETTINGS.get(name, ()):
        if key in data:
            data[key] = mask_secret(data[key])
    return data


async def write_settings(
    store: DocumentStore,
    name: str,
    values: Dict[str, Any],
    updated_by: Optional[str] = None
) -> Dict[str, Any]:
    """Merge into the settings document"""
    _require_known(name)
    doc = await store.set(COLLECTION, name, {
        **drop_masked_secrets(name, values),
        "updatedAt": now_iso(),
        "updatedBy": updated_by,
    }, merge=True)
    logger.info(f"✅ Settings '{name}' updated by: {updated_by}")
    return await read_settings(store, doc.id)
