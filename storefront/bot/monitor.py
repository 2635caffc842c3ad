"""
Storefront - Monitor Bot
Polls the internal health endpoint and posts alert embeds to a Discord channel.

Run with: python -m storefront.bot.monitor
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from storefront.core.config import MonitorSettings

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"
HEALTH_PATH = "/api/_internal/health"

HTTP_ERROR = "HTTP_ERROR"
SYSTEM_ISSUE = "SYSTEM_ISSUE"
RECOVERY = "RECOVERY"
DOWN = "DOWN"

COLORS = {
    "red": 0xFF0000,
    "orange": 0xFFA500,
    "green": 0x00FF00,
}


class HealthMonitor:
    """Single-instance monitor; alert cooldowns live in memory"""

    def __init__(
        self,
        settings: MonitorSettings,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.settings = settings
        self._client = client
        self.clock = clock
        self.last_alerts: Dict[str, float] = {}
        self.is_healthy = True

    @property
    def health_url(self) -> str:
        return f"{self.settings.TARGET_URL.rstrip('/')}{HEALTH_PATH}"

    @asynccontextmanager
    async def http(self):
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT) as client:
                yield client

    # ============================================================
    # CHECK
    # ============================================================

    def find_issues(self, data: Dict[str, Any]) -> List[str]:
        system = data.get("system") or {}
        store = data.get("store") or {}
        issues = []

        cpu = system.get("cpuUsage", 0)
        if cpu > self.settings.CPU_THRESHOLD:
            issues.append(f"🔥 High CPU: {cpu}%")
        memory = system.get("memoryUsage", 0)
        if memory > self.settings.MEMORY_THRESHOLD:
            issues.append(f"💾 High Memory: {memory}%")
        latency = store.get("latency", 0)
        if latency > self.settings.LATENCY_THRESHOLD:
            issues.append(f"🐢 High Store Latency: {latency}ms")
        if store.get("status") != "ok":
            issues.append(f"❌ Store Error: {store.get('status')}")
        return issues

    async def check_health(self):
        try:
            async with self.http() as client:
                resp = await client.get(
                    self.health_url,
                    headers={"x-monitoring-secret": self.settings.MONITOR_SECRET},
                )

            if resp.status_code >= 400:
                await self.send_alert(HTTP_ERROR, f"Target returned {resp.status_code} {resp.reason_phrase}", "red")
                self.is_healthy = False
                return

            data = resp.json()
            issues = self.find_issues(data)
            if issues:
                await self.send_alert(SYSTEM_ISSUE, "\n".join(issues), "orange", data)
                self.is_healthy = False
            elif not self.is_healthy:
                await self.send_alert(RECOVERY, "✅ System returned to normal parameters.", "green", data)
                self.is_healthy = True

        except Exception as e:
            logger.error(f"Check failed: {e}")
            await self.send_alert(DOWN, f"❌ Monitor failed to reach target: {e}", "red")
            self.is_healthy = False

    # ============================================================
    # ALERTS
    # ============================================================

    def in_cooldown(self, alert_type: str) -> bool:
        if alert_type == RECOVERY:
            return False
        last_sent = self.last_alerts.get(alert_type)
        return last_sent is not None and self.clock() - last_sent < self.settings.ALERT_COOLDOWN

    def build_embed(self, alert_type: str, message: str, color: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        embed: Dict[str, Any] = {
            "title": f"🚨 Monitor Alert: {alert_type}",
            "description": message,
            "color": COLORS.get(color, COLORS["green"]),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if data:
            system = data.get("system") or {}
            store = data.get("store") or {}
            embed["fields"] = [
                {"name": "CPU", "value": f"{system.get('cpuUsage')}%", "inline": True},
                {"name": "RAM", "value": f"{system.get('memoryUsage')}%", "inline": True},
                {"name": "Latency", "value": f"{store.get('latency')}ms", "inline": True},
            ]
        return embed

    async def send_alert(
        self,
        alert_type: str,
        message: str,
        color: str,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        if self.in_cooldown(alert_type):
            return False

        if not self.settings.DISCORD_TOKEN or not self.settings.ALERT_CHANNEL_ID:
            logger.error("Alert channel not configured!")
            return False

        try:
            async with self.http() as client:
                resp = await client.post(
                    f"{DISCORD_API}/channels/{self.settings.ALERT_CHANNEL_ID}/messages",
                    headers={"Authorization": f"Bot {self.settings.DISCORD_TOKEN}"},
                    json={"embeds": [self.build_embed(alert_type, message, color, data)]},
                )
            if resp.status_code >= 400:
                logger.error(f"Failed to send alert: {resp.status_code} {resp.text}")
                return False
        except Exception as e:
            logger.error(f"Failed to send alert: {e}")
            return False

        self.last_alerts[alert_type] = self.clock()
        logger.info(f"Sent alert: {alert_type}")
        return True

    # ============================================================
    # LOOP
    # ============================================================

    async def run(self):
        logger.info(f"🎯 Monitoring target: {self.health_url}")
        while True:
            await self.check_health()
            await asyncio.sleep(self.settings.CHECK_INTERVAL)


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    monitor = HealthMonitor(MonitorSettings())
    try:
        asyncio.run(monitor.run())
    except KeyboardInterrupt:
        logger.info("Monitor stopped")


if __name__ == "__main__":
    main()
