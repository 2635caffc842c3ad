"""
Storefront - Payment Provider Base
Shared request/result types and the two-tier gateway config lookup.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import httpx

from storefront.core.config import Settings
from storefront.core.database import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_EMAIL = "customer@example.com"
DEFAULT_PHONE = "081234567890"
PAYMENT_TTL_SECONDS = 24 * 60 * 60


class PaymentStatus(str, Enum):
    PAID = "PAID"
    UNPAID = "UNPAID"
    EXPIRED = "EXPIRED"


@dataclass
class PaymentRequest:
    order_id: str
    amount: int
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    notify_url: Optional[str] = None


@dataclass
class PaymentResult:
    success: bool
    provider: str
    reference: str
    amount: float
    qr_url: Optional[str] = None
    qr_string: Optional[str] = None
    checkout_url: Optional[str] = None
    fee: Optional[float] = None
    total_payment: Optional[float] = None
    expiry_time: Optional[float] = None
    session_id: Optional[str] = None
    transaction_id: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": self.success,
            "provider": self.provider,
            "reference": self.reference,
            "amount": self.amount,
            "qrUrl": self.qr_url,
            "qrString": self.qr_string,
            "checkoutUrl": self.checkout_url,
            "fee": self.fee,
            "totalPayment": self.total_payment,
            "expiryTime": self.expiry_time,
            "sessionId": self.session_id,
            "transactionId": self.transaction_id,
            "message": self.message,
        }
        return {k: v for k, v in body.items() if v is not None}


@dataclass
class StatusResult:
    status: PaymentStatus
    reference: str
    amount: float = 0
    amount_received: float = 0
    transaction_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def unpaid(cls, reference: str, amount: float = 0, raw: Optional[dict] = None) -> "StatusResult":
        return cls(PaymentStatus.UNPAID, reference, amount=amount, amount_received=0, raw=raw or {})

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "status": self.status.value,
            "reference": self.reference,
            "amount": self.amount,
            "amount_received": self.amount_received,
        }
        if self.transaction_id is not None:
            body["transaction_id"] = self.transaction_id
        return body


# ============================================================
# PROVIDER BASE
# ============================================================

class PaymentProvider(ABC):
    """One vendor's QRIS API behind the local payment abstraction"""

    name: str = ""
    # Keys the settings document must carry to override the environment
    settings_keys: Tuple[str, ...] = ()

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.store = store
        self.settings = settings
        self._client = client

    @asynccontextmanager
    async def http(self):
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT) as client:
                yield client

    async def get_config(self) -> Dict[str, Any]:
        """Settings document override first, environment second; read on every call"""
        try:
            doc = await self.store.get("settings", self.name)
            if doc and all(doc.data.get(key) for key in self.settings_keys):
                return self.config_from_document(doc.data)
        except Exception as e:
            logger.error(f"⚠️ Error reading {self.name} config from store: {e}")
        return self.config_from_environment()

    @abstractmethod
    def config_from_document(self, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def config_from_environment(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def create_payment(self, request: PaymentRequest) -> PaymentResult:
        ...

    @abstractmethod
    async def check_status(self, reference: str, amount: Optional[float] = None) -> StatusResult:
        ...

    def failure(self, request: PaymentRequest, message: str) -> PaymentResult:
        logger.error(f"❌ [{self.name}] {message}")
        return PaymentResult(
            success=False,
            provider=self.name,
            reference=request.order_id,
            amount=request.amount,
            message=message,
        )

    def default_url(self, path: str) -> str:
        return f"{self.settings.BASE_URL.rstrip('/')}{path}"
