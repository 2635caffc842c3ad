"""
Storefront - Internal Routes
Cron-driven mail sending and the monitor's health check.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from storefront.api.deps import get_mailer, get_store
from storefront.core.database import DocumentStore
from storefront.core.errors import ValidationFailed
from storefront.core.security import INTERNAL_CRON, INTERNAL_MONITOR, Principal, require_capability
from storefront.services.health import health_snapshot
from storefront.services.mail_queue import Mailer, process_queue_item


router = APIRouter(prefix="/api", tags=["Internal"])


class MailQueueRequest(BaseModel):
    queueId: Optional[str] = None


@router.post("/internal/process-mail-queue")
async def process_mail_queue(
    data: MailQueueRequest,
    principal: Principal = Depends(require_capability(INTERNAL_CRON)),
    store: DocumentStore = Depends(get_store),
    mailer: Mailer = Depends(get_mailer)
):
    if not data.queueId:
        raise ValidationFailed("Missing queueId")
    return await process_queue_item(store, mailer, data.queueId)


@router.get("/_internal/health")
async def internal_health(
    principal: Principal = Depends(require_capability(INTERNAL_MONITOR)),
    store: DocumentStore = Depends(get_store)
):
    return await health_snapshot(store)
