"""
Storefront - Mail Queue
Emails are queued as documents and sent one item at a time by the cron endpoint.
"""
import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional, Tuple

from storefront.core.config import Settings
from storefront.core.database import DocumentStore, now_iso
from storefront.core.errors import NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)

COLLECTION = "mail_queue"


# ============================================================
# TEMPLATES
# ============================================================

def render_order_delivered(data: Dict[str, Any]) -> Tuple[str, str]:
    subject = f"Pesanan {data.get('orderId', '')} telah dikirim"
    content = str(data.get("content", "")).replace("\n", "<br>")
    html = f"""
    <html>
    <body style="font-family: Arial, sans-serif; padding: 32px;">
        <h2>Halo {data.get('customerName', 'Customer')},</h2>
        <p>Pesanan <strong>{data.get('productName', 'Product')}</strong>
           (<code>{data.get('orderId', '')}</code>) sudah dikirim.</p>
        <div style="border: 1px solid #ddd; border-radius: 8px; padding: 16px; margin: 16px 0;">
            {content}
        </div>
        <p>{data.get('instructions', '')}</p>
    </body>
    </html>
    """
    return subject, html


def render_order_created(data: Dict[str, Any]) -> Tuple[str, str]:
    subject = f"Pesanan {data.get('orderId', '')} berhasil dibuat"
    html = f"""
    <html>
    <body style="font-family: Arial, sans-serif; padding: 32px;">
        <h2>Halo {data.get('customerName', 'Customer')},</h2>
        <p>Pesanan <strong>{data.get('productName', 'Product')}</strong>
           (<code>{data.get('orderId', '')}</code>) menunggu pembayaran.</p>
        <p>Total: {data.get('amount', 0)} via {data.get('paymentMethod', 'QRIS')}</p>
    </body>
    </html>
    """
    return subject, html


def render_order_rejected(data: Dict[str, Any]) -> Tuple[str, str]:
    subject = f"Pesanan {data.get('orderId', '')} ditolak"
    html = f"""
    <html>
    <body style="font-family: Arial, sans-serif; padding: 32px;">
        <h2>Halo {data.get('customerName', 'Customer')},</h2>
        <p>Pesanan <code>{data.get('orderId', '')}</code> ditolak.</p>
        <p>Alasan: {data.get('reason', '-')}</p>
    </body>
    </html>
    """
    return subject, html


TEMPLATES = {
    "order_created": render_order_created,
    "order_delivered": render_order_delivered,
    "order_rejected": render_order_rejected,
}


# ============================================================
# QUEUE
# ============================================================

async def queue_email(
    store: DocumentStore,
    to: Optional[str],
    template: str,
    data: Dict[str, Any]
) -> Optional[str]:
    """Queue a templated email; returns the queue id"""
    if not to:
        logger.warning(f"⚠️ No recipient for {template} email, not queued")
        return None
    if template not in TEMPLATES:
        raise ValidationFailed(f"Unknown email template: {template}")

    doc = await store.add(COLLECTION, {
        "to": to,
        "template": template,
        "data": data,
        "status": "PENDING",
        "attempts": 0,
        "createdAt": now_iso(),
    })
    logger.info(f"📧 Queued {template} email for {to} ({doc.id})")
    return doc.id


class Mailer:
    """SMTP sender"""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _send_sync(self, to: str, subject: str, html: str):
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.settings.SMTP_FROM_NAME} <{self.settings.SMTP_FROM}>"
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self.settings.SMTP_HOST, self.settings.SMTP_PORT, timeout=30) as server:
            server.starttls()
            if self.settings.SMTP_USER and self.settings.SMTP_PASSWORD:
                server.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD)
            server.sendmail(self.settings.SMTP_FROM, to, msg.as_string())

    async def send(self, to: str, subject: str, html: str) -> Tuple[bool, Optional[str]]:
        try:
            await asyncio.to_thread(self._send_sync, to, subject, html)
            logger.info(f"Email sent to {to}")
            return True, None
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False, str(e)


async def process_queue_item(store: DocumentStore, mailer: Mailer, queue_id: str) -> Dict[str, Any]:
    """Send one queued email and record the outcome on the queue item"""
    doc = await store.get(COLLECTION, queue_id)
    if doc is None:
        raise NotFoundError("Queue item not found")

    if doc.data.get("status") == "SENT":
        return {"success": True, "alreadySent": True}

    render = TEMPLATES.get(doc.data.get("template"))
    if render is None:
        raise ValidationFailed(f"Unknown email template: {doc.data.get('template')}")

    subject, html = render(doc.data.get("data") or {})
    ok, error = await mailer.send(doc.data["to"], subject, html)

    await store.update(COLLECTION, queue_id, {
        "status": "SENT" if ok else "FAILED",
        "attempts": int(doc.data.get("attempts", 0)) + 1,
        "error": error,
        "processedAt": now_iso(),
    })
    return {"success": ok, "error": error} if error else {"success": ok}
