"""
Storefront - Tokopay Provider
QRIS orders signed with MD5 over merchant id, reference and secret.
"""
import hashlib
import logging
import time
from typing import Any, Dict, Optional

from storefront.services.payments.base import (
    DEFAULT_EMAIL, DEFAULT_PHONE, PAYMENT_TTL_SECONDS,
    PaymentProvider, PaymentRequest, PaymentResult, PaymentStatus, StatusResult,
)

logger = logging.getLogger(__name__)

QRIS_CHANNEL = "QRGOPAY"


def create_signature(merchant_id: str, reference: str, amount, secret: str) -> str:
    return hashlib.md5(f"{merchant_id}:{reference}:{amount}:{secret}".encode()).hexdigest()


def status_signature(merchant_id: str, secret: str, reference: str) -> str:
    return hashlib.md5(f"{merchant_id}{secret}{reference}".encode()).hexdigest()


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class TokopayProvider(PaymentProvider):
    name = "tokopay"
    settings_keys = ("merchantId", "secret")

    def config_from_document(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "secret": data["secret"],
            "merchant_id": data["merchantId"],
            "api_url": data.get("apiUrl") or self.settings.TOKOPAY_API_URL,
        }

    def config_from_environment(self) -> Dict[str, Any]:
        return {
            "secret": self.settings.TOKOPAY_SECRET,
            "merchant_id": self.settings.TOKOPAY_MERCHANT_ID,
            "api_url": self.settings.TOKOPAY_API_URL,
        }

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        try:
            config = await self.get_config()
            if not config["secret"] or not config["merchant_id"]:
                return self.failure(request, "Tokopay not configured. Missing merchant ID or secret.")

            expired_ts = int(time.time()) + PAYMENT_TTL_SECONDS
            payload = {
                "merchant_id": config["merchant_id"],
                "kode_channel": QRIS_CHANNEL,
                "reff_id": request.order_id,
                "amount": request.amount,
                "customer_name": request.customer_name,
                "customer_email": request.customer_email or DEFAULT_EMAIL,
                "customer_phone": request.customer_phone or DEFAULT_PHONE,
                "expired_ts": expired_ts,
                "signature": create_signature(
                    config["merchant_id"], request.order_id, request.amount, config["secret"]
                ),
            }
            async with self.http() as client:
                resp = await client.post(f"{config['api_url']}/order", json=payload)
            data = resp.json()

            body = data.get("data")
            if data.get("status") == "Success" and body:
                return PaymentResult(
                    success=True,
                    provider=self.name,
                    reference=body.get("no_pembayaran") or request.order_id,
                    amount=body.get("total_bayar", request.amount),
                    qr_url=body.get("qr_link"),
                    qr_string=body.get("qr_string"),
                    checkout_url=body.get("pay_url"),
                    expiry_time=expired_ts,
                )
            return self.failure(request, data.get("message") or "Failed to create Tokopay payment")
        except Exception as e:
            return self.failure(request, str(e))

    async def check_status(self, reference: str, amount: Optional[float] = None) -> StatusResult:
        config = await self.get_config()
        params = {
            "merchant_id": config["merchant_id"],
            "reff_id": reference,
            "signature": status_signature(config["merchant_id"], config["secret"], reference),
        }
        async with self.http() as client:
            resp = await client.get(f"{config['api_url']}/order", params=params)
        data = resp.json()

        body = data.get("data")
        if data.get("status") != "Success" or not body:
            return StatusResult.unpaid(reference, raw=data)

        vendor_status = body.get("status")
        if vendor_status == "Paid":
            status = PaymentStatus.PAID
        elif vendor_status == "Expired":
            status = PaymentStatus.EXPIRED
        else:
            status = PaymentStatus.UNPAID

        total = _to_float(body.get("total_bayar"))
        return StatusResult(
            status=status,
            reference=reference,
            amount=total,
            amount_received=total if status == PaymentStatus.PAID else 0,
            transaction_id=body.get("trx_id"),
            raw=data,
        )
