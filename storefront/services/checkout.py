"""
Storefront - Checkout
Open a payment session for an existing order: price it from the product,
pick the product's gateway (or the global one) and fall back to the backup.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from storefront.core.config import Settings
from storefront.core.database import DocumentStore, now_iso
from storefront.core.errors import NotFoundError, PaymentFailed, ValidationFailed
from storefront.services.notifications import record_audit
from storefront.services.payments import PaymentGateways, PaymentRequest

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY = {"IDR": "pakasir", "USD": "paypal"}


def product_gateway(product: Dict[str, Any], currency: str, global_gateway: Optional[str] = None) -> str:
    gateway = product.get("gateway")
    if isinstance(gateway, dict) and gateway.get(currency):
        return gateway[currency]
    # Legacy string form only applies to IDR
    if isinstance(gateway, str) and gateway and currency == "IDR":
        return gateway
    return global_gateway or DEFAULT_GATEWAY.get(currency, "pakasir")


def product_backup_gateway(product: Dict[str, Any], currency: str) -> Optional[str]:
    return product.get("backupGateway") if currency == "IDR" else None


def selling_price(product: Dict[str, Any], currency: str) -> float:
    price = product.get("price") or {}
    if price.get(currency):
        return price[currency]

    plans = product.get("plans") or []
    if not plans:
        raise ValidationFailed("Product has no pricing information")
    plan = plans[0]
    plan_price = plan.get("price") or {}
    if plan_price.get(currency):
        return plan_price[currency]
    if currency == "IDR" and plan.get("priceNumber"):
        return plan["priceNumber"]
    raise ValidationFailed(f"Price not available for {currency}")


def _existing_session(order_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
    payment = order.get("payment") or {}
    return {
        "ok": True,
        "orderId": order_id,
        "provider": payment.get("provider"),
        "currency": payment.get("currency") or order.get("currency"),
        "checkoutUrl": payment.get("checkoutUrl"),
        "qrString": payment.get("qrString"),
        "qrUrl": payment.get("qrUrl"),
        "reference": payment.get("providerRef"),
        "amount": payment.get("amount") or order.get("amount"),
        "expiryTime": payment.get("expiryTime"),
        "message": "Payment already created",
    }


async def _gateway_choice(
    store: DocumentStore,
    product: Dict[str, Any],
    currency: str
) -> Tuple[str, Optional[str]]:
    doc = await store.get("settings", "global")
    global_settings = doc.data if doc else {}
    primary = product_gateway(product, currency, global_settings.get("paymentGateway"))
    backup = product_backup_gateway(product, currency) or global_settings.get("backupGateway")
    if backup == primary:
        backup = None
    return primary, backup


async def create_order_payment(
    store: DocumentStore,
    gateways: PaymentGateways,
    settings: Settings,
    order_id: str,
    preferred_currency: Optional[str] = None
) -> Dict[str, Any]:
    order_doc = await store.get("orders", order_id)
    if order_doc is None:
        raise NotFoundError("Order not found")
    order = order_doc.data

    if order.get("locked") is True or (order.get("status") and order.get("status") != "PENDING"):
        raise ValidationFailed(
            "Order is not eligible for payment",
            orderId=order_id,
            status=order.get("status"),
            locked=bool(order.get("locked")),
        )

    # Idempotent: an order keeps its first payment session
    if (order.get("payment") or {}).get("providerRef"):
        logger.info(f"⚠️ [Checkout] Payment already exists for {order_id}")
        return _existing_session(order_id, order)

    products = await store.where("products", "slug", order.get("productSlug"), limit=1)
    if not products:
        raise NotFoundError("Product not found")
    product = products[0].data

    currency = preferred_currency or order.get("currency") or "IDR"
    total = selling_price(product, currency) * int(order.get("quantity") or 1)

    primary, backup = await _gateway_choice(store, product, currency)
    logger.info(f"🎯 [Checkout] {order_id}: gateway {primary}, backup {backup or 'none'}")

    customer = order.get("customer") or {}
    email = order.get("customerEmail") or customer.get("email")
    base_url = settings.BASE_URL.rstrip("/")
    request = PaymentRequest(
        order_id=order_id,
        amount=total,
        customer_name=customer.get("name") or (email.split("@")[0] if email else "Customer"),
        customer_email=email,
        customer_phone=customer.get("phone"),
        return_url=f"{base_url}/dashboard",
        cancel_url=f"{base_url}/payment?orderId={order_id}",
        notify_url=f"{base_url}/api/webhook/{primary}",
    )

    result = await gateways.create_with_fallback(primary, backup, request)
    if not result.success:
        raise PaymentFailed(result.message or f"Failed to create payment with {primary}")

    await store.update("orders", order_id, {
        "payment.provider": result.provider,
        "payment.providerRef": result.reference,
        "payment.reference": result.reference,
        "payment.status": "PENDING",
        "payment.currency": currency,
        "payment.amount": total,
        "payment.checkoutUrl": result.checkout_url or result.qr_url,
        "payment.qrString": result.qr_string,
        "payment.qrUrl": result.qr_url,
        "payment.fee": result.fee,
        "payment.totalPayment": result.total_payment,
        "payment.expiryTime": result.expiry_time,
        "payment.sessionId": result.session_id,
        "payment.transactionId": result.transaction_id,
        "payment.createdAt": now_iso(),
        "updatedAt": now_iso(),
    }, expected_version=order_doc.version)

    await record_audit(store, order_id, "payment_created", order.get("userId") or "guest", {
        "provider": result.provider,
        "reference": result.reference,
        "amount": total,
        "currency": currency,
    })

    logger.info(f"🎉 [Checkout] Payment created for {order_id} via {result.provider}")
    return {
        "ok": True,
        "orderId": order_id,
        "provider": result.provider,
        "currency": currency,
        "checkoutUrl": result.checkout_url or result.qr_url,
        "qrString": result.qr_string,
        "qrUrl": result.qr_url,
        "reference": result.reference,
        "amount": total,
        "expiryTime": result.expiry_time,
    }
