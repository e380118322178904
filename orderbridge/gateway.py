# orderbridge/gateway.py
import hashlib
import hmac
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

import httpx
from pydantic import BaseModel

from .config import Settings
from .errors import GatewayError, ValidationError
from .http_utils import CONNECT_ERRORS, request_with_retry

logger = logging.getLogger(__name__)

RECEIPT_MAX_LENGTH = 40


# 🏷️ Metadata attached to the gateway order; the only link from a webhook back to the ledger
class OrderNotes(BaseModel):
    tracking_id: str
    product_name: str = ""
    customer_name: str = ""


class GatewayOrder(BaseModel):
    id: str
    amount: int
    currency: str
    receipt: Optional[str] = None


def to_minor_units(amount) -> int:
    """Major units (rupees) -> minor units (paise), rounding half away from zero."""
    if isinstance(amount, bool):
        raise ValidationError(f"Invalid amount: {amount!r}")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise ValidationError(f"Invalid amount: {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    """Check an HMAC-SHA256 hex signature computed over the exact request bytes."""
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip())


class RazorpayClient:
    def __init__(self, client: httpx.AsyncClient, key_id: str, key_secret: str,
                 base_url: str = "https://api.razorpay.com/v1",
                 max_retries: int = 3, base_delay: float = 0.3):
        self._client = client
        self.key_id = key_id
        self._key_secret = key_secret
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._base_delay = base_delay

    async def create_order(self, amount_minor_units: int, currency: str, receipt: str,
                           notes: OrderNotes) -> GatewayOrder:
        if not (self.key_id and self._key_secret):
            raise GatewayError("Razorpay API keys are not configured")
        if not isinstance(amount_minor_units, int) or amount_minor_units < 0:
            raise ValidationError(f"Amount must be a non-negative integer in minor units, got {amount_minor_units!r}")

        payload = {
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": receipt[:RECEIPT_MAX_LENGTH],
            "payment_capture": 1,
            "notes": notes.model_dump(),
        }
        try:
            # a repeated create would leave a second order at the gateway
            resp = await request_with_retry(
                self._client, "POST", f"{self._base_url}/orders",
                json=payload, auth=(self.key_id, self._key_secret),
                max_retries=self._max_retries, base_delay=self._base_delay,
                retry_on_status=frozenset(), retry_on=CONNECT_ERRORS,
            )
        except httpx.HTTPError as e:
            raise GatewayError(f"Gateway unreachable: {e}") from e

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error", {}).get("description") or resp.text
            except (ValueError, AttributeError):
                detail = resp.text
            raise GatewayError(f"Gateway rejected order ({resp.status_code}): {detail}")

        try:
            order = GatewayOrder(**resp.json())
        except (ValueError, TypeError) as e:
            raise GatewayError(f"Unexpected gateway response: {resp.text}") from e
        logger.info("Gateway order %s created for %s", order.id, notes.tracking_id)
        return order


def build_gateway(settings: Settings, client: httpx.AsyncClient) -> RazorpayClient:
    return RazorpayClient(
        client, settings.razorpay_key_id, settings.razorpay_key_secret,
        base_url=settings.razorpay_base_url, max_retries=settings.http_max_retries,
    )
