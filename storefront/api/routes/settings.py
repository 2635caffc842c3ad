"""
Storefront - Settings Routes
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from storefront.api.deps import get_store
from storefront.core.database import DocumentStore
from storefront.core.errors import Forbidden, Unauthorized
from storefront.core.security import SETTINGS_WRITE, Principal, optional_principal, require_capability
from storefront.services import site_settings


router = APIRouter(prefix="/api/settings", tags=["Settings"])


@router.get("/{name}")
async def read_settings(
    name: str,
    principal: Optional[Principal] = Depends(optional_principal),
    store: DocumentStore = Depends(get_store)
):
    """Public documents for everyone; gateway documents for admins only"""
    if site_settings.is_gateway(name):
        if principal is None:
            raise Unauthorized("Authentication required")
        if not principal.can(SETTINGS_WRITE):
            raise Forbidden("Insufficient permissions")
    return {"ok": True, "settings": await site_settings.read_settings(store, name)}


@router.put("/{name}")
async def write_settings(
    name: str,
    values: Dict[str, Any] = Body(...),
    principal: Principal = Depends(require_capability(SETTINGS_WRITE)),
    store: DocumentStore = Depends(get_store)
):
    updated = await site_settings.write_settings(store, name, values, principal.email or principal.subject)
    return {"ok": True, "settings": updated}
