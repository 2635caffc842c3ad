"""
Storefront - Order IDs
Format: JMB + YYYYMMDD + 10 random uppercase alphanumerics.
"""
import re
import secrets
import string
from datetime import date, datetime
from typing import Optional

ORDER_ID_PREFIX = "JMB"
ORDER_ID_PATTERN = re.compile(r"^JMB\d{8}[A-Z0-9]{10}$")
_CHARS = string.ascii_uppercase + string.digits


def generate_order_id(now: Optional[datetime] = None) -> str:
    """Generate an order id embedding the (local) creation date"""
    now = now or datetime.now()
    random_part = "".join(secrets.choice(_CHARS) for _ in range(10))
    return f"{ORDER_ID_PREFIX}{now.strftime('%Y%m%d')}{random_part}"


def is_valid_order_id(order_id: str) -> bool:
    return bool(order_id) and ORDER_ID_PATTERN.match(order_id) is not None


def extract_date_from_order_id(order_id: str) -> Optional[date]:
    """Recover the embedded date, or None for malformed ids"""
    if not is_valid_order_id(order_id):
        return None
    try:
        return datetime.strptime(order_id[3:11], "%Y%m%d").date()
    except ValueError:
        return None
