"""
Storefront - Order Service
Order lifecycle: creation, fetch, public view, reject, chat, payment completion,
payment reconciliation and manual delivery.

Order status only moves forward: PENDING -> COMPLETED | REJECTED. Every
mutation is written with the version that was read, so two racing requests
on the same order cannot both apply.
"""
import logging
from typing import Any, Dict, Optional

from storefront.core.database import Document, DocumentStore, now_iso, subcollection
from storefront.core.errors import ConflictError, Forbidden, NotFoundError, ValidationFailed
from storefront.services.checkout import selling_price
from storefront.services.mail_queue import queue_email
from storefront.services.notifications import BotBridge, StaffLogger, StaffLogTemplates, record_audit
from storefront.services.order_ids import generate_order_id
from storefront.services.payments import PaymentGateways, PaymentStatus

logger = logging.getLogger(__name__)

COLLECTION = "orders"

PENDING = "PENDING"
COMPLETED = "COMPLETED"
REJECTED = "REJECTED"
TERMINAL_STATUSES = (COMPLETED, REJECTED)
# Payment states a gateway poll must not overwrite
SETTLED_PAYMENT_STATUSES = (PaymentStatus.PAID.value, COMPLETED)

DELIVERED = "DELIVERED"

SUPPORTED_CURRENCIES = ("IDR", "USD")


def public_view(doc: Document) -> Dict[str, Any]:
    """Allow-listed projection of an order that is safe to show to guests"""
    data = doc.data
    customer = data.get("customer") or {}
    payment = data.get("payment") or {}
    delivery = data.get("delivery") or {}
    return {
        "id": doc.id,
        "productName": data.get("productName") or "Unknown Product",
        "planName": data.get("planName") or "Unknown Plan",
        "status": data.get("status") or PENDING,
        "amount": data.get("totalAmount") or data.get("amount") or 0,
        "createdAt": data.get("createdAt"),
        "customer": {
            "name": customer.get("name") or "Customer",
            "email": customer.get("email") or "N/A",
        },
        "payment": {
            "status": payment.get("status") or PENDING,
            "provider": payment.get("provider") or "N/A",
        },
        "delivery": {
            "status": delivery.get("status") or PENDING,
            "method": delivery.get("method"),
            "deliveredAt": delivery.get("deliveredAt"),
            "productDetails": delivery.get("productDetails"),
            "instructions": delivery.get("instructions"),
        },
    }


def _order_summary(order_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": order_id,
        "productSlug": data.get("productSlug"),
        "currency": data.get("currency"),
        "sellingPrice": data.get("sellingPrice"),
        "totalAmount": data.get("totalAmount") or data.get("amount"),
        "status": data.get("status"),
        "createdAt": data.get("createdAt"),
        "locked": data.get("locked") is True,
    }


class OrderService:
    def __init__(
        self,
        store: DocumentStore,
        gateways: PaymentGateways,
        bot: BotBridge,
        staff_log: StaffLogger
    ):
        self.store = store
        self.gateways = gateways
        self.bot = bot
        self.staff_log = staff_log

    async def _load(self, order_id: str) -> Document:
        if not order_id:
            raise ValidationFailed("Order ID is required")
        doc = await self.store.get(COLLECTION, order_id)
        if doc is None:
            logger.warning(f"❌ Order not found: {order_id}")
            raise NotFoundError("Order not found")
        return doc

    # ============================================================
    # CREATE
    # ============================================================

    async def create_order(
        self,
        product_slug: str,
        currency: str = "IDR",
        qty: int = 1,
        user_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        customer: Optional[Dict[str, Any]] = None,
        plan_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Open a PENDING order priced from the product.

        A repeated idempotency key returns the order it first created. Guests
        may order without an email; signed-in users may not.
        """
        if not product_slug:
            raise ValidationFailed("Product slug is required")
        if currency not in SUPPORTED_CURRENCIES:
            raise ValidationFailed(f"Unsupported currency: {currency}")
        if qty < 1:
            raise ValidationFailed("Quantity must be at least 1")

        user_id = user_id or "guest"
        customer = customer or {}
        email = customer_email or customer.get("email") or ""
        if not email and user_id != "guest":
            raise ValidationFailed("Email is required for authenticated orders.")

        if idempotency_key:
            existing = await self.store.where(COLLECTION, "idempotencyKey", idempotency_key, limit=1)
            if existing:
                logger.warning(f"⚠️ Existing order found for idempotency key: {existing[0].id}")
                return {
                    "ok": True,
                    "message": "Existing order returned for idempotent request",
                    "orderId": existing[0].id,
                    "order": _order_summary(existing[0].id, existing[0].data),
                }

        products = [
            doc for doc in await self.store.where("products", "slug", product_slug)
            if doc.data.get("status") == "ACTIVE"
        ]
        if not products:
            raise NotFoundError("Product not found or inactive")
        product_doc = products[0]
        product = product_doc.data
        flags = product.get("flags") or {}
        if flags.get("isUpdating") is True:
            raise ValidationFailed("Product is currently being updated. Please try again later.")
        if flags.get("isPublic") is False:
            raise ValidationFailed("Product is not available for purchase")

        price = selling_price(product, currency)
        capital_cost = (product.get("capitalCost") or {}).get(currency)
        total = price * qty

        plan_name = "Standard"
        for plan in product.get("plans") or []:
            if plan_id and plan.get("id") == plan_id:
                plan_name = plan.get("name") or plan_name

        order_id = generate_order_id()
        now = now_iso()
        data = {
            "id": order_id,
            "productId": product_doc.id,
            "productSlug": product_slug,
            "productName": product.get("title"),
            "productImage": product.get("heroImageUrl") or f"/img/{product_slug}-banner.png",
            "planId": plan_id,
            "planName": plan_name,
            "userId": user_id,
            "customerEmail": email,
            "email": email,
            "customer": {
                "name": customer.get("name") or (email.split("@")[0] if email else "Guest"),
                "email": email,
                "phone": customer.get("phone"),
            },
            "currency": currency,
            "sellingPrice": price,
            "capitalCost": capital_cost,
            "amount": total,
            "totalAmount": total,
            "quantity": qty,
            "status": PENDING,
            "locked": False,
            "payment": {
                "status": PENDING,
                "provider": None,
                "providerRef": None,
                "amount": total,
                "currency": currency,
            },
            "delivery": {
                "type": (product.get("delivery") or {}).get("type") or "manual",
                "status": PENDING,
            },
            "createdAt": now,
            "updatedAt": now,
            "metadata": metadata or {},
            "idempotencyKey": idempotency_key,
        }
        await self.store.set(COLLECTION, order_id, data)
        logger.info(f"✅ Order created: {order_id} ({product_slug}, {total} {currency})")

        await record_audit(self.store, order_id, "ORDER_CREATED", user_id, {
            "productSlug": product_slug,
            "currency": currency,
            "sellingPrice": price,
            "quantity": qty,
            "totalAmount": total,
        })

        try:
            await queue_email(self.store, email, "order_created", {
                "orderId": order_id,
                "productName": product.get("title"),
                "customerName": customer.get("name") or "Customer",
                "amount": total,
                "paymentMethod": "QRIS",
            })
        except Exception as e:
            logger.error(f"Error queuing order email: {e}")

        return {
            "ok": True,
            "message": "Order created successfully",
            "orderId": order_id,
            "order": _order_summary(order_id, data),
        }

    # ============================================================
    # READS
    # ============================================================

    async def fetch(self, order_id: str) -> Dict[str, Any]:
        """Full order document, for admin contexts"""
        logger.info(f"📦 Fetching order: {order_id}")
        doc = await self._load(order_id)
        return doc.to_dict()

    async def fetch_public(self, order_id: str) -> Dict[str, Any]:
        return public_view(await self._load(order_id))

    # ============================================================
    # REJECT
    # ============================================================

    async def reject(self, order_id: str, reason: Optional[str], admin_name: str = "Admin") -> Dict[str, Any]:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailed("Rejection reason is required")

        doc = await self._load(order_id)
        status = doc.data.get("status")
        if status in TERMINAL_STATUSES:
            raise ConflictError(f"Order is already {status}")

        now = now_iso()
        await self.store.update(COLLECTION, order_id, {
            "status": REJECTED,
            "rejectionReason": reason,
            "rejectedAt": now,
            "updatedAt": now,
        }, expected_version=doc.version)

        await record_audit(self.store, order_id, "order_rejected", admin_name, {"reason": reason})
        await self.staff_log.send(
            StaffLogTemplates.order_rejected(order_id, admin_name, reason),
            order_id=order_id,
            admin_name=admin_name,
            details=f"Reason: {reason}",
            color="error",
        )

        logger.info(f"❌ Order {order_id} rejected: {reason}")
        return {"ok": True, "message": "Order rejected successfully", "orderId": order_id}

    # ============================================================
    # CHAT
    # ============================================================

    async def send_message(self, order_id: str, user_id: Optional[str], message: Optional[str]) -> Dict[str, Any]:
        if not message or not user_id:
            raise ValidationFailed("Message and userId are required")

        doc = await self._load(order_id)
        if doc.data.get("userId") != user_id:
            raise Forbidden("Unauthorized")

        username = doc.data.get("username") or "Customer"
        await self.store.add(subcollection(COLLECTION, order_id, "chat"), {
            "content": message,
            "sender": "buyer",
            "senderId": user_id,
            "senderName": username,
            "timestamp": now_iso(),
            "attachments": [],
            "fromDashboard": True,
        })

        # Relay is best-effort: the message is already saved
        channel_id = doc.data.get("ticket_id") or order_id
        if not await self.bot.send_ticket_message(channel_id, message, username):
            logger.warning(f"[Send Message] Bot relay failed for order {order_id}, message saved")

        return {"ok": True, "message": "Message sent successfully"}

    # ============================================================
    # PAYMENT
    # ============================================================

    async def complete_payment(
        self,
        order_id: str,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        discord_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Mark payment completed (order stays PENDING until delivery) and open a ticket"""
        doc = await self._load(order_id)
        status = doc.data.get("status")
        if status in TERMINAL_STATUSES:
            raise ConflictError(f"Order is already {status}")

        now = now_iso()
        fields = {
            "status": PENDING,
            "updatedAt": now,
            "payment.status": "COMPLETED",
            "payment.completedAt": now,
            "delivery.status": PENDING,
            "delivery.type": "manual",
            "locked": True,
        }
        if user_id:
            fields["userId"] = user_id
        updated = await self.store.update(COLLECTION, order_id, fields, expected_version=doc.version)
        logger.info(f"✅ Order payment marked completed; status set to PENDING: {order_id}")

        ticket_id = None
        if discord_user_id:
            data = updated.data
            customer = data.get("customer") or {}
            ticket_id = await self.bot.create_order_ticket({
                "orderId": order_id,
                "userId": discord_user_id,
                "username": customer.get("name") or "Customer",
                "email": customer.get("email") or user_email,
                "productName": data.get("productName") or "Unknown Product",
                "plan": data.get("planName") or "Unknown Plan",
                "amount": data.get("amount") or 0,
                "paymentProofUrl": (data.get("payment") or {}).get("proofUrl"),
            })
            if ticket_id:
                # Separate write; the ticket exists even if this races
                await self.store.update(COLLECTION, order_id, {
                    "ticket_id": ticket_id,
                    "ticketCreated": True,
                    "ticketCreatedAt": now_iso(),
                })
                logger.info(f"✅ Discord ticket created: {ticket_id}")
        else:
            logger.info("ℹ️ User has no Discord, skipping ticket creation")

        return {
            "ok": True,
            "message": "Payment marked as completed",
            "orderId": order_id,
            "ticketCreated": ticket_id is not None,
            "ticketId": ticket_id,
        }

    async def reconcile_payment(self, order_id: str) -> Dict[str, Any]:
        """Poll the order's gateway and record the normalized payment status"""
        doc = await self._load(order_id)
        payment = doc.data.get("payment") or {}

        if payment.get("status") in SETTLED_PAYMENT_STATUSES or doc.data.get("status") in TERMINAL_STATUSES:
            logger.info(f"ℹ️ Order {order_id} payment already settled, skipping gateway poll")
            return {"ok": True, "orderId": order_id, "payment": {"status": payment.get("status")}}

        provider_name = payment.get("provider")
        if not provider_name:
            raise ValidationFailed("Order has no payment provider")

        provider = self.gateways.get(provider_name)
        reference = payment.get("reference") or order_id
        amount = doc.data.get("totalAmount") or doc.data.get("amount")
        result = await provider.check_status(reference, amount=amount)

        fields: Dict[str, Any] = {
            "payment.status": result.status.value,
            "payment.amount_received": result.amount_received,
            "payment.checkedAt": now_iso(),
            "payment.provider_response": result.raw,
            "updatedAt": now_iso(),
        }
        if result.status == PaymentStatus.PAID:
            fields["payment.paidAt"] = now_iso()
            if not (doc.data.get("delivery") or {}).get("status"):
                fields["delivery.status"] = PENDING

        await self.store.update(COLLECTION, order_id, fields, expected_version=doc.version)
        logger.info(f"🔍 Order {order_id} payment via {provider_name}: {result.status.value}")
        return {"ok": True, "orderId": order_id, "payment": result.to_dict()}

    # ============================================================
    # DELIVERY
    # ============================================================

    async def deliver_manual(self, order_id: str, body: Dict[str, Any], admin_name: str = "admin") -> Dict[str, Any]:
        """Admin hands over account credentials or a license code"""
        doc = await self._load(order_id)
        current = doc.data
        delivery = current.get("delivery") or {}

        if current.get("status") == COMPLETED or delivery.get("status") == DELIVERED:
            delivered_by = delivery.get("deliveredBy") or current.get("deliveredBy") or "Unknown"
            raise ValidationFailed(
                "Order already delivered",
                alreadyDelivered=True,
                deliveredBy=delivered_by,
                deliveredAt=delivery.get("deliveredAt") or current.get("deliveredAt"),
            )
        if current.get("status") == REJECTED:
            raise ConflictError("Order is already REJECTED")

        delivery_type = body.get("deliveryType")
        notes = body.get("notes")
        instructions = body.get("instructions")
        now = now_iso()

        fields: Dict[str, Any] = {
            "delivery.status": DELIVERED,
            "delivery.method": "admin",
            "delivery.deliveredAt": now,
            "delivery.deliveredBy": admin_name,
            "delivery.notes": notes,
            "status": COMPLETED,
            "updatedAt": now,
        }

        if delivery_type == "account":
            username, password = body.get("username"), body.get("password")
            if not username or not password:
                raise ValidationFailed("Username and password are required for account delivery")
            details = f"Username: {username}\nPassword: {password}"
            fields.update({
                "delivery.type": "account",
                "delivery.username": username,
                "delivery.password": password,
                "delivery.productDetails": details,
                "delivery.instructions": instructions or notes or "Use the credentials above to access your product.",
            })
            audit = {"deliveryType": delivery_type, "username": username}
        elif delivery_type == "code":
            code = body.get("code")
            if not code:
                raise ValidationFailed("Code is required for code delivery")
            details = f"License Key: {code}"
            fields.update({
                "delivery.type": "code",
                "delivery.code": code,
                "delivery.productDetails": details,
                "delivery.instructions": instructions or notes or "Use the license key above to activate your product.",
            })
            audit = {"deliveryType": delivery_type, "code": code}
        elif body.get("productKey"):
            # Legacy payload
            details = body["productKey"]
            fields.update({
                "delivery.productDetails": details,
                "delivery.instructions": instructions,
            })
            audit = {"deliveryType": "legacy"}
        else:
            raise ValidationFailed('Invalid delivery type. Use "account" or "code"')

        updated = await self.store.update(COLLECTION, order_id, fields, expected_version=doc.version)
        logger.info(f"✅ Manual delivery completed for order: {order_id}")

        await record_audit(self.store, order_id, "manual_delivery", admin_name, audit)

        product_name = updated.data.get("productName") or "Unknown Product"
        await self.staff_log.send(
            StaffLogTemplates.order_delivered(order_id, product_name, admin_name),
            order_id=order_id,
            admin_name=admin_name,
            details=f"Type: {delivery_type}\nProduct: {product_name}",
            color="success",
        )

        customer = updated.data.get("customer") or {}
        email = customer.get("email") or updated.data.get("email")
        try:
            await queue_email(self.store, email, "order_delivered", {
                "customerName": customer.get("name") or "Customer",
                "orderId": order_id,
                "productName": updated.data.get("productName") or "Product",
                "productSlug": updated.data.get("productSlug") or "product",
                "content": details,
                "instructions": notes or instructions or "Please check the details below.",
            })
        except Exception as e:
            logger.error(f"Error queuing delivery email: {e}")

        await self.bot.notify_order_delivered(order_id, email)

        return {"ok": True, "message": "Manual delivery completed"}
