"""
Storefront - Catalog
Categories, public product lookup and the legacy plan repair.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from storefront.core.database import DocumentStore, now_iso
from storefront.core.errors import NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)

CATEGORIES = "categories"
PRODUCTS = "products"


def normalize_slug(slug: str) -> str:
    return re.sub(r"\s+", "-", slug.strip().lower())


def format_idr(amount: float) -> str:
    """Rp 150.000"""
    return "Rp " + f"{int(round(amount)):,}".replace(",", ".")


def format_usd(amount: float) -> str:
    return f"${amount:.2f}"


# ============================================================
# CATEGORIES
# ============================================================

async def list_categories(store: DocumentStore) -> List[Dict[str, Any]]:
    docs = await store.all(CATEGORIES)
    docs.sort(key=lambda d: d.data.get("order") or 0)
    return [doc.to_dict() for doc in docs]


async def _check_slug_free(store: DocumentStore, slug: str, category_id: Optional[str] = None):
    for doc in await store.where(CATEGORIES, "slug", slug):
        if doc.id != category_id:
            raise ValidationFailed("Category with this slug already exists")


def _require_name_and_slug(name: Optional[str], slug: Optional[str]) -> str:
    if not name or not slug or not slug.strip():
        raise ValidationFailed("Name and slug are required")
    return normalize_slug(slug)


async def create_category(
    store: DocumentStore,
    name: str,
    slug: str,
    description: Optional[str] = None,
    icon: Optional[str] = None
) -> Dict[str, Any]:
    slug = _require_name_and_slug(name, slug)
    await _check_slug_free(store, slug)

    data: Dict[str, Any] = {
        "name": name,
        "slug": slug,
        "description": description or "",
        "order": len(await store.all(CATEGORIES)),
        "createdAt": now_iso(),
        "updatedAt": now_iso(),
    }
    if icon:
        data["icon"] = icon

    doc = await store.add(CATEGORIES, data)
    logger.info(f"📁 Category created: {slug}")
    return doc.to_dict()


async def update_category(
    store: DocumentStore,
    category_id: str,
    name: str,
    slug: str,
    description: Optional[str] = None,
    icon: Optional[str] = None
) -> Dict[str, Any]:
    slug = _require_name_and_slug(name, slug)
    if await store.get(CATEGORIES, category_id) is None:
        raise NotFoundError("Category not found")
    await _check_slug_free(store, slug, category_id)

    doc = await store.update(CATEGORIES, category_id, {
        "name": name,
        "slug": slug,
        "description": description or "",
        "icon": icon or "",
        "updatedAt": now_iso(),
    })
    return doc.to_dict()


async def delete_category(store: DocumentStore, category_id: str):
    if await store.where(PRODUCTS, "category", category_id, limit=1):
        raise ValidationFailed("Cannot delete category that is being used by products")
    await store.delete(CATEGORIES, category_id)
    logger.info(f"🗑️ Category deleted: {category_id}")


# ============================================================
# PRODUCTS
# ============================================================

async def get_public_product(store: DocumentStore, slug: str) -> Dict[str, Any]:
    """Only ACTIVE products not explicitly hidden"""
    for doc in await store.where(PRODUCTS, "slug", slug):
        if doc.data.get("status") != "ACTIVE":
            continue
        if (doc.data.get("flags") or {}).get("isPublic") is False:
            break
        return doc.to_dict()
    raise NotFoundError("Product not found")


def default_plans(price: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Standard plans synthesized from a legacy flat price"""
    plans = []
    idr = price.get("IDR")
    if idr and idr > 0:
        plans.append({
            "name": "Standard",
            "priceNumber": idr,
            "priceString": format_idr(idr),
            "period": "",
            "currency": "IDR",
        })
    usd = price.get("USD")
    if usd and usd > 0:
        plans.append({
            "name": "Standard",
            "priceNumber": usd,
            "priceString": format_usd(usd),
            "period": "",
            "currency": "USD",
        })
    return plans


async def products_needing_fix(store: DocumentStore) -> List[Dict[str, Any]]:
    found = []
    for doc in await store.all(PRODUCTS):
        if doc.data.get("plans"):
            continue
        price = doc.data.get("price") or {}
        found.append({
            "id": doc.id,
            "title": doc.data.get("title"),
            "slug": doc.data.get("slug"),
            "hasPrice": bool(price.get("IDR") or price.get("USD")),
        })
    return found


async def fix_products(store: DocumentStore) -> List[Dict[str, Any]]:
    logger.info("🔧 Starting product fix...")
    fixed = []
    for doc in await store.all(PRODUCTS):
        if doc.data.get("plans"):
            continue
        plans = default_plans(doc.data.get("price") or {})
        if not plans:
            continue
        await store.update(PRODUCTS, doc.id, {
            "plans": plans,
            "meta.updatedAt": now_iso(),
        }, expected_version=doc.version)
        logger.info(f"✅ Fixed: {doc.data.get('title')} - Added {len(plans)} plan(s)")
        fixed.append({"id": doc.id, "title": doc.data.get("title"), "plansAdded": len(plans)})
    return fixed
