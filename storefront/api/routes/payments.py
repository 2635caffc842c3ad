"""
Storefront - Payment Routes
Per-gateway QRIS endpoints plus order checkout with backup gateway.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from storefront.api.deps import get_gateways, get_store
from storefront.core.config import Settings
from storefront.core.database import DocumentStore
from storefront.core.errors import ValidationFailed
from storefront.core.security import get_settings
from storefront.services.checkout import create_order_payment
from storefront.services.payments import PaymentGateways, PaymentRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Payments"])


# ============================================================
# SCHEMAS
# ============================================================

class GatewayCreateRequest(BaseModel):
    merchant_ref: str
    amount: int
    customer_name: str = "Customer"
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    notify_url: Optional[str] = None


class CheckoutRequest(BaseModel):
    orderId: str
    preferredCurrency: Optional[str] = None  # IDR, USD


# ============================================================
# ROUTES
# ============================================================

@router.post("/payment/create")
async def create_payment(
    data: CheckoutRequest,
    store: DocumentStore = Depends(get_store),
    gateways: PaymentGateways = Depends(get_gateways),
    settings: Settings = Depends(get_settings)
):
    """Open a payment session for an order, falling back to its backup gateway"""
    if not data.orderId:
        raise ValidationFailed("Order ID is required")
    if data.preferredCurrency and data.preferredCurrency not in ("IDR", "USD"):
        raise ValidationFailed("Unsupported currency")
    return await create_order_payment(store, gateways, settings, data.orderId, data.preferredCurrency)


@router.post("/{gateway}/create")
async def create_gateway_payment(
    gateway: str,
    data: GatewayCreateRequest,
    gateways: PaymentGateways = Depends(get_gateways)
):
    provider = gateways.get(gateway)
    logger.info(f"🚀 Creating {provider.name} QRIS payment for order: {data.merchant_ref}")

    result = await provider.create_payment(PaymentRequest(
        order_id=data.merchant_ref,
        amount=data.amount,
        customer_name=data.customer_name,
        customer_email=data.customer_email,
        customer_phone=data.customer_phone,
        return_url=data.return_url,
        cancel_url=data.cancel_url,
        notify_url=data.notify_url,
    ))
    if not result.success:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": result.message or "Failed to create payment"},
        )
    return {"success": True, "data": result.to_dict()}


@router.get("/{gateway}/status")
async def gateway_payment_status(
    gateway: str,
    reference: str = Query(...),
    amount: Optional[float] = Query(None),
    gateways: PaymentGateways = Depends(get_gateways)
):
    provider = gateways.get(gateway)
    logger.info(f"🔍 Checking {provider.name} payment status for: {reference}")
    result = await provider.check_status(reference, amount=amount)
    return {"success": True, "data": result.to_dict()}
