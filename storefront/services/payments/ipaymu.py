"""
Storefront - iPaymu Provider
Direct QRIS payments, HMAC-SHA256 signed over VA + JSON body.
"""
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

from storefront.services.payments.base import (
    DEFAULT_EMAIL, DEFAULT_PHONE, PAYMENT_TTL_SECONDS,
    PaymentProvider, PaymentRequest, PaymentResult, PaymentStatus, StatusResult,
)

logger = logging.getLogger(__name__)

# iPaymu transaction status codes
IPAYMU_PAID = 1
IPAYMU_EXPIRED = -1


def sign_body(api_key: str, va: str, body_json: str) -> str:
    return hmac.new(api_key.encode(), (va + body_json).encode(), hashlib.sha256).hexdigest()


def encode_body(body: Dict[str, Any]) -> str:
    """Compact JSON, key order preserved; the signature covers these exact bytes"""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


class IpaymuProvider(PaymentProvider):
    name = "ipaymu"
    settings_keys = ("apiKey", "va")

    def config_from_document(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "api_key": data["apiKey"],
            "va": data["va"],
            "api_url": data.get("apiUrl") or self.settings.IPAYMU_API_URL,
        }

    def config_from_environment(self) -> Dict[str, Any]:
        return {
            "api_key": self.settings.IPAYMU_API_KEY,
            "va": self.settings.IPAYMU_VA,
            "api_url": self.settings.IPAYMU_API_URL,
        }

    def signed(self, config: Dict[str, Any], body: Dict[str, Any]) -> Tuple[str, Dict[str, str]]:
        body_json = encode_body(body)
        headers = {
            "Content-Type": "application/json",
            "va": config["va"],
            "signature": sign_body(config["api_key"], config["va"], body_json),
        }
        return body_json, headers

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        try:
            config = await self.get_config()
            if not config["api_key"] or not config["va"]:
                return self.failure(request, "iPaymu not configured. Missing API key or VA.")

            body = {
                "product": ["Digital Product"],
                "qty": [1],
                "price": [request.amount],
                "returnUrl": request.return_url or self.default_url("/dashboard"),
                "cancelUrl": request.cancel_url or self.default_url("/payment"),
                "notifyUrl": request.notify_url or self.default_url("/api/webhook/ipaymu"),
                "referenceId": request.order_id,
                "buyerName": request.customer_name,
                "buyerEmail": request.customer_email or DEFAULT_EMAIL,
                "buyerPhone": request.customer_phone or DEFAULT_PHONE,
                "paymentMethod": "qris",
                "paymentChannel": "qris",
            }
            body_json, headers = self.signed(config, body)

            async with self.http() as client:
                resp = await client.post(f"{config['api_url']}/payment/direct", content=body_json, headers=headers)
            data = resp.json()

            payload = data.get("Data")
            if data.get("Status") == 200 and payload:
                return PaymentResult(
                    success=True,
                    provider=self.name,
                    reference=request.order_id,
                    amount=request.amount,
                    qr_url=payload.get("QrImage") or payload.get("QRImage"),
                    qr_string=payload.get("QrString") or payload.get("QRString"),
                    checkout_url=payload.get("Url"),
                    session_id=payload.get("SessionID"),
                    transaction_id=_as_str(payload.get("TransactionId")),
                    expiry_time=int(time.time()) + PAYMENT_TTL_SECONDS,
                )
            return self.failure(request, data.get("Message") or "Failed to create iPaymu payment")
        except Exception as e:
            return self.failure(request, str(e))

    async def check_status(self, reference: str, amount: Optional[float] = None) -> StatusResult:
        config = await self.get_config()
        body_json, headers = self.signed(config, {"transactionId": reference})

        async with self.http() as client:
            resp = await client.post(f"{config['api_url']}/transaction", content=body_json, headers=headers)
        data = resp.json()

        payload = data.get("Data")
        if data.get("Status") != 200 or not payload:
            return StatusResult.unpaid(reference, raw=data)

        total = payload.get("Total") or 0
        code = payload.get("Status")
        if code == IPAYMU_PAID:
            status = PaymentStatus.PAID
        elif code == IPAYMU_EXPIRED:
            status = PaymentStatus.EXPIRED
        else:
            status = PaymentStatus.UNPAID

        return StatusResult(
            status=status,
            reference=reference,
            amount=total,
            amount_received=total if status == PaymentStatus.PAID else 0,
            transaction_id=_as_str(payload.get("TransactionId")),
            raw=data,
        )


def _as_str(value) -> Optional[str]:
    return None if value is None else str(value)
