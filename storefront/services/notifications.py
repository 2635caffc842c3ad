"""
Storefront - Notification Bridge
Fire-and-forget calls to the Discord bot process, the staff log channel
and the per-order audit log. None of these ever fail the caller.
"""
import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from storefront.core.database import DocumentStore, now_iso, subcollection

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"
SNOWFLAKE = re.compile(r"^\d{17,20}$")

EMBED_COLORS = {
    "success": 0x10B981,
    "error": 0xEF4444,
    "warning": 0xF59E0B,
    "info": 0x3B82F6,
}


class _HttpMixin:
    timeout: float = 10.0
    _client: Optional[httpx.AsyncClient] = None

    @asynccontextmanager
    async def http(self):
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client


# ============================================================
# BOT WEBHOOKS
# ============================================================

class BotBridge(_HttpMixin):
    """Web tier -> bot process webhooks"""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.base_url = (base_url or "").strip().rstrip("/")
        self._client = client
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Optional[httpx.Response]:
        if not self.enabled:
            return None
        try:
            async with self.http() as client:
                return await client.post(f"{self.base_url}{path}", json=payload)
        except Exception as e:
            logger.error(f"[Bot Bridge] {path} failed: {e}")
            return None

    async def create_order_ticket(self, payload: Dict[str, Any]) -> Optional[str]:
        """Ask the bot to open a ticket channel; returns its id"""
        resp = await self._post("/create-order-ticket", payload)
        if resp is None:
            return None
        if resp.status_code >= 400:
            logger.error(f"❌ Failed to create Discord ticket: {resp.text}")
            return None
        try:
            data = resp.json()
        except ValueError:
            return None
        ticket_id = data.get("ticketId") or data.get("channelId")
        return str(ticket_id) if ticket_id else None

    async def send_ticket_message(self, channel_id: str, message: str, username: str) -> bool:
        resp = await self._post("/send-ticket-message", {
            "channelId": channel_id,
            "message": message,
            "username": username,
        })
        return resp is not None and resp.status_code < 400

    async def notify_order_delivered(self, order_id: str, customer_email: Optional[str]) -> bool:
        resp = await self._post("/webhook/order-delivered", {
            "orderId": order_id,
            "customerEmail": customer_email,
        })
        ok = resp is not None and resp.status_code < 400
        if not ok:
            logger.error("⚠️ Failed to notify Discord bot")
        return ok


# ============================================================
# STAFF LOG CHANNEL
# ============================================================

class StaffLogTemplates:
    @staticmethod
    def order_delivered(order_id: str, product_name: str, admin_name: str) -> str:
        return f"✅ Admin **{admin_name}** mengirim produk **{product_name}** untuk order `{order_id}`"

    @staticmethod
    def order_rejected(order_id: str, admin_name: str, reason: Optional[str] = None) -> str:
        suffix = f" - Alasan: {reason}" if reason else ""
        return f"❌ Admin **{admin_name}** menolak order `{order_id}`{suffix}"


class StaffLogger(_HttpMixin):
    """Posts admin action embeds to the staff log channel"""

    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0
    ):
        self.bot_token = bot_token
        self.channel_id = channel_id
        self._client = client
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.channel_id)

    def build_embed(
        self,
        message: str,
        order_id: Optional[str] = None,
        admin_name: Optional[str] = None,
        details: Optional[str] = None,
        color: str = "info"
    ) -> Dict[str, Any]:
        embed: Dict[str, Any] = {
            "description": message,
            "color": EMBED_COLORS.get(color, EMBED_COLORS["info"]),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "footer": {"text": "Admin Action Log"},
        }
        fields = []
        if order_id:
            fields.append({"name": "📋 Order ID", "value": f"`{order_id}`", "inline": True})
        if admin_name:
            fields.append({"name": "👤 Admin", "value": admin_name, "inline": True})
        if details:
            fields.append({"name": "📝 Details", "value": details, "inline": False})
        if fields:
            embed["fields"] = fields
        return embed

    async def send(self, message: str, **options) -> bool:
        if not self.enabled:
            logger.warning("⚠️ Staff log channel not configured, skipping staff log")
            return False
        if not SNOWFLAKE.match(self.channel_id):
            logger.warning("⚠️ STAFF_LOG_CHANNEL_ID appears invalid (should be 17-20 digits)")
            return False

        try:
            async with self.http() as client:
                resp = await client.post(
                    f"{DISCORD_API}/channels/{self.channel_id}/messages",
                    headers={"Authorization": f"Bot {self.bot_token}"},
                    json={"embeds": [self.build_embed(message, **options)]},
                )
            if resp.status_code >= 400:
                logger.error(f"❌ Failed to send staff log: {resp.status_code} {resp.text}")
                return False
            return True
        except Exception as e:
            logger.error(f"❌ Error sending staff log: {e}")
            return False


# ============================================================
# AUDIT LOG
# ============================================================

async def record_audit(
    store: DocumentStore,
    order_id: str,
    action: str,
    admin_id: str,
    payload: Optional[Dict[str, Any]] = None
) -> bool:
    """Append an entry to orders/<id>/auditLog"""
    try:
        await store.add(subcollection("orders", order_id, "auditLog"), {
            "action": action,
            "adminId": admin_id,
            "payload": payload,
            "timestamp": now_iso(),
        })
        return True
    except Exception as e:
        logger.error(f"❌ Error creating audit log: {e}")
        return False
