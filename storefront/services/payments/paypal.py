"""
Storefront - PayPal Provider
Checkout orders for USD purchases; buyers approve on PayPal's hosted page.
"""
import logging
from typing import Any, Dict, Optional

from storefront.services.payments.base import (
    PaymentProvider, PaymentRequest, PaymentResult, PaymentStatus, StatusResult,
)

logger = logging.getLogger(__name__)

LIVE_API_URL = "https://api-m.paypal.com"
SANDBOX_API_URL = "https://api-m.sandbox.paypal.com"

STATUS_MAP = {
    "COMPLETED": PaymentStatus.PAID,
    "VOIDED": PaymentStatus.EXPIRED,
}


def api_url_for(mode: str) -> str:
    return LIVE_API_URL if mode == "live" else SANDBOX_API_URL


def _captured_amount(order: Dict[str, Any]) -> float:
    units = order.get("purchase_units") or []
    if not units:
        return 0.0
    try:
        return float((units[0].get("amount") or {}).get("value") or 0)
    except (TypeError, ValueError):
        return 0.0


class PayPalProvider(PaymentProvider):
    name = "paypal"
    settings_keys = ("clientId", "secret")

    def config_from_document(self, data: Dict[str, Any]) -> Dict[str, Any]:
        mode = data.get("mode") or self.settings.PAYPAL_MODE
        return {
            "client_id": data["clientId"],
            "secret": data["secret"],
            "mode": mode,
            "api_url": api_url_for(mode),
        }

    def config_from_environment(self) -> Dict[str, Any]:
        mode = self.settings.PAYPAL_MODE
        return {
            "client_id": self.settings.PAYPAL_CLIENT_ID,
            "secret": self.settings.PAYPAL_SECRET,
            "mode": mode,
            "api_url": api_url_for(mode),
        }

    async def access_token(self, client, config: Dict[str, Any]) -> str:
        """OAuth2 client-credentials token"""
        logger.info("🔐 [PayPal] Requesting access token...")
        resp = await client.post(
            f"{config['api_url']}/v1/oauth2/token",
            auth=(config["client_id"], config["secret"]),
            data={"grant_type": "client_credentials"},
        )
        if resp.status_code != 200:
            raise RuntimeError(f"PayPal authentication failed: {resp.status_code}")
        return resp.json()["access_token"]

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        try:
            config = await self.get_config()
            if not config["client_id"] or not config["secret"]:
                return self.failure(request, "PayPal credentials not configured")

            payload = {
                "intent": "CAPTURE",
                "purchase_units": [{
                    "reference_id": request.order_id,
                    "amount": {"currency_code": "USD", "value": f"{float(request.amount):.2f}"},
                    "description": f"Order {request.order_id}",
                }],
                "application_context": {
                    "brand_name": self.settings.APP_NAME,
                    "landing_page": "NO_PREFERENCE",
                    "user_action": "PAY_NOW",
                    "return_url": request.return_url
                    or self.default_url(f"/payment/success?orderId={request.order_id}"),
                    "cancel_url": request.cancel_url
                    or self.default_url(f"/payment/cancel?orderId={request.order_id}"),
                },
            }

            async with self.http() as client:
                token = await self.access_token(client, config)
                resp = await client.post(
                    f"{config['api_url']}/v2/checkout/orders",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
            data = resp.json()

            if resp.status_code >= 400 or not data.get("id"):
                return self.failure(request, data.get("message") or "PayPal order creation failed")

            approve = next((link["href"] for link in data.get("links", []) if link.get("rel") == "approve"), None)
            logger.info(f"✅ [PayPal] Order created: {data['id']}")
            return PaymentResult(
                success=True,
                provider=self.name,
                reference=data["id"],
                amount=request.amount,
                checkout_url=approve,
                transaction_id=data["id"],
                message="PayPal checkout session created successfully",
            )
        except Exception as e:
            return self.failure(request, str(e))

    async def check_status(self, reference: str, amount: Optional[float] = None) -> StatusResult:
        config = await self.get_config()
        async with self.http() as client:
            token = await self.access_token(client, config)
            resp = await client.get(
                f"{config['api_url']}/v2/checkout/orders/{reference}",
                headers={"Authorization": f"Bearer {token}"},
            )
        data = resp.json()
        if resp.status_code != 200:
            return StatusResult.unpaid(reference, raw=data)

        status = STATUS_MAP.get(data.get("status"), PaymentStatus.UNPAID)
        total = _captured_amount(data)
        return StatusResult(
            status=status,
            reference=reference,
            amount=total,
            amount_received=total if status == PaymentStatus.PAID else 0,
            transaction_id=data.get("id"),
            raw=data,
        )
