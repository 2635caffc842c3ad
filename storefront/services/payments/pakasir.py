"""
Storefront - Pakasir Provider
QRIS via plain API key; the QR payload is rendered locally as a PNG data URL.
"""
import base64
import logging
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Optional

import qrcode

from storefront.core.errors import ValidationFailed
from storefront.services.payments.base import (
    PaymentProvider, PaymentRequest, PaymentResult, PaymentStatus, StatusResult,
)

logger = logging.getLogger(__name__)


def qr_data_url(payload: str) -> str:
    """Render a QR payload as a base64 PNG data URL"""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="#000000", back_color="#FFFFFF")
    bio = BytesIO()
    img.save(bio, "PNG")
    return "data:image/png;base64," + base64.b64encode(bio.getvalue()).decode()


def _parse_expiry(value) -> Optional[float]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


class PakasirProvider(PaymentProvider):
    name = "pakasir"
    settings_keys = ("apiKey", "project")

    def config_from_document(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "api_key": data["apiKey"],
            "project": data["project"],
            "api_url": data.get("apiUrl") or self.settings.PAKASIR_API_URL,
        }

    def config_from_environment(self) -> Dict[str, Any]:
        return {
            "api_key": self.settings.PAKASIR_API_KEY,
            "project": self.settings.PAKASIR_PROJECT,
            "api_url": self.settings.PAKASIR_API_URL,
        }

    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        try:
            config = await self.get_config()
            if not config["api_key"]:
                return self.failure(request, "Pakasir API key not configured")

            payload = {
                "project": config["project"],
                "order_id": request.order_id,
                "amount": request.amount,
                "api_key": config["api_key"],
            }
            async with self.http() as client:
                resp = await client.post(f"{config['api_url']}/transactioncreate/qris", json=payload)
            data = resp.json()

            payment = data.get("payment")
            if not payment:
                return self.failure(request, data.get("message") or "Failed to create Pakasir payment")

            qr_string = payment.get("payment_number")
            return PaymentResult(
                success=True,
                provider=self.name,
                reference=payment.get("order_id") or request.order_id,
                amount=payment.get("amount", request.amount),
                qr_url=qr_data_url(qr_string) if qr_string else None,
                qr_string=qr_string,
                fee=payment.get("fee"),
                total_payment=payment.get("total_payment"),
                expiry_time=_parse_expiry(payment.get("expired_at")),
            )
        except Exception as e:
            return self.failure(request, str(e))

    async def check_status(self, reference: str, amount: Optional[float] = None) -> StatusResult:
        """Pakasir looks transactions up by order id and amount together"""
        if amount is None:
            raise ValidationFailed("Reference and amount parameters are required")

        config = await self.get_config()
        params = {
            "project": config["project"],
            "amount": _format_amount(amount),
            "order_id": reference,
            "api_key": config["api_key"],
        }
        async with self.http() as client:
            resp = await client.get(f"{config['api_url']}/transactiondetail", params=params)
        data = resp.json()

        transaction = data.get("transaction")
        if not transaction:
            return StatusResult.unpaid(reference, amount=amount, raw=data)

        paid = transaction.get("status") == "completed"
        total = transaction.get("amount", 0)
        return StatusResult(
            status=PaymentStatus.PAID if paid else PaymentStatus.UNPAID,
            reference=transaction.get("order_id") or reference,
            amount=total,
            amount_received=total if paid else 0,
            raw=data,
        )


def _format_amount(amount: float):
    return int(amount) if float(amount).is_integer() else amount
