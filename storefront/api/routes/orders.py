"""
Storefront - Order Routes
"""
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from storefront.api.deps import get_order_service
from storefront.core.security import (
    ORDERS_DELIVER, ORDERS_READ, ORDERS_REJECT, Principal, optional_principal, require_capability,
)
from storefront.services.orders import OrderService


router = APIRouter(prefix="/api/orders", tags=["Orders"])


# ============================================================
# SCHEMAS
# ============================================================

class CustomerInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class CreateOrderRequest(BaseModel):
    productSlug: str = Field(..., min_length=1)
    currency: Literal["IDR", "USD"] = "IDR"
    qty: int = Field(1, ge=1)
    userId: Optional[str] = None
    customerEmail: Optional[str] = None
    customer: Optional[CustomerInfo] = None
    planId: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    idempotencyKey: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None
    adminName: Optional[str] = None


class SendMessageRequest(BaseModel):
    message: Optional[str] = None
    userId: Optional[str] = None


class CompletePaymentRequest(BaseModel):
    userId: Optional[str] = None
    userEmail: Optional[str] = None
    discordUserId: Optional[str] = None


class DeliverRequest(BaseModel):
    deliveryType: Optional[str] = None  # account, code
    username: Optional[str] = None
    password: Optional[str] = None
    code: Optional[str] = None
    productKey: Optional[str] = None
    notes: Optional[str] = None
    instructions: Optional[str] = None
    adminName: Optional[str] = None


def _admin_name(principal: Principal, given: Optional[str]) -> str:
    return given or principal.email or principal.subject or "Admin"


# ============================================================
# ROUTES
# ============================================================

@router.post("/create")
async def create_order(
    data: CreateOrderRequest,
    principal: Optional[Principal] = Depends(optional_principal),
    orders: OrderService = Depends(get_order_service)
):
    """Open an order; signed-in customers are taken from the token, others are guests"""
    user = principal if principal and principal.role == "user" else None
    return await orders.create_order(
        data.productSlug,
        currency=data.currency,
        qty=data.qty,
        user_id=data.userId or (user.subject if user else None),
        customer_email=data.customerEmail or (user.email if user else None),
        customer=data.customer.model_dump() if data.customer else None,
        plan_id=data.planId,
        metadata=data.metadata,
        idempotency_key=data.idempotencyKey,
    )


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    principal: Principal = Depends(require_capability(ORDERS_READ)),
    orders: OrderService = Depends(get_order_service)
):
    """Full order document (admin)"""
    return {"ok": True, "order": await orders.fetch(order_id)}


@router.get("/{order_id}/public")
async def get_public_order(order_id: str, orders: OrderService = Depends(get_order_service)):
    """Guest-safe order view"""
    return {"ok": True, "order": await orders.fetch_public(order_id)}


@router.post("/{order_id}/reject")
async def reject_order(
    order_id: str,
    data: RejectRequest,
    principal: Principal = Depends(require_capability(ORDERS_REJECT)),
    orders: OrderService = Depends(get_order_service)
):
    return await orders.reject(order_id, data.reason, _admin_name(principal, data.adminName))


@router.post("/{order_id}/send-message")
async def send_message(
    order_id: str,
    data: SendMessageRequest,
    orders: OrderService = Depends(get_order_service)
):
    return await orders.send_message(order_id, data.userId, data.message)


@router.post("/{order_id}/complete-payment")
async def complete_payment(
    order_id: str,
    data: CompletePaymentRequest,
    orders: OrderService = Depends(get_order_service)
):
    return await orders.complete_payment(
        order_id,
        user_id=data.userId,
        user_email=data.userEmail,
        discord_user_id=data.discordUserId,
    )


@router.post("/{order_id}/reconcile")
async def reconcile_payment(order_id: str, orders: OrderService = Depends(get_order_service)):
    """Poll the gateway and record the payment status"""
    return await orders.reconcile_payment(order_id)


@router.patch("/{order_id}/deliver")
async def deliver_order(
    order_id: str,
    data: DeliverRequest,
    principal: Principal = Depends(require_capability(ORDERS_DELIVER)),
    orders: OrderService = Depends(get_order_service)
):
    return await orders.deliver_manual(
        order_id,
        data.model_dump(exclude_none=True),
        _admin_name(principal, data.adminName),
    )
