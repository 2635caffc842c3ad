"""
Storefront - Catalog Routes
Categories, public product lookup and the admin plan repair.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from storefront.api.deps import get_store
from storefront.core.database import DocumentStore
from storefront.core.security import CATALOG_WRITE, Principal, require_capability
from storefront.services import catalog


router = APIRouter(prefix="/api", tags=["Catalog"])


class CategoryRequest(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None


# ============================================================
# CATEGORIES
# ============================================================

@router.get("/categories")
async def list_categories(store: DocumentStore = Depends(get_store)):
    return {"ok": True, "categories": await catalog.list_categories(store)}


@router.post("/categories")
async def create_category(
    data: CategoryRequest,
    principal: Principal = Depends(require_capability(CATALOG_WRITE)),
    store: DocumentStore = Depends(get_store)
):
    category = await catalog.create_category(store, data.name, data.slug, data.description, data.icon)
    return {"ok": True, "message": "Category created successfully", "category": category}


@router.patch("/categories/{category_id}")
async def update_category(
    category_id: str,
    data: CategoryRequest,
    principal: Principal = Depends(require_capability(CATALOG_WRITE)),
    store: DocumentStore = Depends(get_store)
):
    category = await catalog.update_category(
        store, category_id, data.name, data.slug, data.description, data.icon
    )
    return {"ok": True, "message": "Category updated successfully", "category": category}


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    principal: Principal = Depends(require_capability(CATALOG_WRITE)),
    store: DocumentStore = Depends(get_store)
):
    await catalog.delete_category(store, category_id)
    return {"ok": True, "message": "Category deleted successfully"}


# ============================================================
# PRODUCTS
# ============================================================

@router.get("/products/slug/{slug}")
async def get_product_by_slug(slug: str, store: DocumentStore = Depends(get_store)):
    return {"ok": True, "data": await catalog.get_public_product(store, slug)}


@router.get("/admin/fix-products")
async def check_products(
    principal: Principal = Depends(require_capability(CATALOG_WRITE)),
    store: DocumentStore = Depends(get_store)
):
    """Products with no plans (read-only)"""
    products = await catalog.products_needing_fix(store)
    return {"ok": True, "needsFix": len(products), "products": products}


@router.post("/admin/fix-products")
async def fix_products(
    principal: Principal = Depends(require_capability(CATALOG_WRITE)),
    store: DocumentStore = Depends(get_store)
):
    fixed = await catalog.fix_products(store)
    return {"ok": True, "message": f"Fixed {len(fixed)} products", "fixed": fixed}
