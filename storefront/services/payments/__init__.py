"""
Storefront - Payment Gateways
Registry of gateway adapters and create-with-fallback.
"""
import logging
from typing import Dict, List, Optional, Type

import httpx

from storefront.core.config import Settings
from storefront.core.database import DocumentStore
from storefront.core.errors import ValidationFailed
from storefront.services.payments.base import (
    PaymentProvider, PaymentRequest, PaymentResult, PaymentStatus, StatusResult,
)
from storefront.services.payments.ipaymu import IpaymuProvider
from storefront.services.payments.pakasir import PakasirProvider
from storefront.services.payments.paypal import PayPalProvider
from storefront.services.payments.tokopay import TokopayProvider

logger = logging.getLogger(__name__)

PROVIDERS: Dict[str, Type[PaymentProvider]] = {
    "pakasir": PakasirProvider,
    "ipaymu": IpaymuProvider,
    "tokopay": TokopayProvider,
    "paypal": PayPalProvider,
}


class PaymentGateways:
    """Builds adapters bound to one store, settings object and HTTP client"""

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.store = store
        self.settings = settings
        self.client = client

    @staticmethod
    def supported() -> List[str]:
        return list(PROVIDERS.keys())

    @staticmethod
    def is_supported(gateway: str) -> bool:
        return (gateway or "").lower() in PROVIDERS

    def get(self, gateway: str) -> PaymentProvider:
        provider_cls = PROVIDERS.get((gateway or "").lower())
        if provider_cls is None:
            raise ValidationFailed(
                f"Unsupported payment gateway: {gateway}. "
                f"Supported gateways: {', '.join(self.supported())}"
            )
        return provider_cls(self.store, self.settings, self.client)

    async def create_with_fallback(
        self,
        primary: str,
        backup: Optional[str],
        request: PaymentRequest
    ) -> PaymentResult:
        """Try the primary gateway, then the backup once; no further retries"""
        try:
            result = await self.get(primary).create_payment(request)
        except ValidationFailed as e:
            # Misconfigured primary; the backup can still serve the order
            if not backup:
                raise
            result = PaymentResult(
                success=False,
                provider=primary,
                reference=request.order_id,
                amount=request.amount,
                message=e.message,
            )
        if result.success:
            return result

        logger.warning(f"⚠️ Primary gateway ({primary}) failed: {result.message}")
        if not backup:
            return result

        logger.info(f"🔄 Retrying with backup gateway: {backup}")
        fallback = await self.get(backup).create_payment(request)
        if not fallback.success:
            fallback.message = f"Both {primary} and {backup} failed: {fallback.message}"
        return fallback


__all__ = [
    "PaymentGateways",
    "PaymentProvider",
    "PaymentRequest",
    "PaymentResult",
    "PaymentStatus",
    "StatusResult",
    "PROVIDERS",
]
