# orderbridge/webhooks.py
import json
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from .config import Settings
from .dependencies import get_ledger, get_settings
from .errors import LedgerError, SignatureMismatch, TrackingNotFound
from .gateway import verify_signature
from .ledger import LedgerClient
from .models import STATUS_PAID, column_letter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADER = "x-razorpay-signature"
CAPTURED_EVENT = "payment.captured"


async def locate_row(ledger: LedgerClient, tracking_id: str) -> int:
    row = await ledger.find_row_index(tracking_id)
    if row is None:
        raise TrackingNotFound(tracking_id)
    return row


def payment_entity(event: dict):
    """payload.payment.entity, or None when any level is not an object."""
    node = event
    for key in ("payload", "payment", "entity"):
        node = node.get(key)
        if not isinstance(node, dict):
            return None
    return node


def _skipped(reason: str) -> dict:
    return {"status": "ok", "updated": False, "reason": reason}


# 🔔 Gateway callback. Anything after a valid signature is acknowledged with 200
# unless the ledger itself fails, so the gateway only retries what can succeed later.
@router.post("/razorpay-webhook")
async def razorpay_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    ledger: LedgerClient = Depends(get_ledger),
):
    raw = await request.body()
    if not verify_signature(raw, request.headers.get(SIGNATURE_HEADER), settings.webhook_secret):
        raise SignatureMismatch("webhook signature does not match")

    try:
        event = json.loads(raw)
    except ValueError:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"status": "invalid_payload"})
    if not isinstance(event, dict):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"status": "invalid_payload"})

    event_type = event.get("event")
    if event_type != CAPTURED_EVENT:
        logger.info("Webhook event %s ignored", event_type)
        return {"status": "ignored"}

    entity = payment_entity(event)
    if entity is None:
        logger.warning("Captured payment event has a malformed payload, nothing updated")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"status": "invalid_payload"})
    payment_id = entity.get("id") or ""
    notes = entity.get("notes") or {}
    # razorpay sends an empty list when an order has no notes
    tracking_id = notes.get("tracking_id") if isinstance(notes, dict) else None
    if not tracking_id:
        logger.warning("Captured payment %s has no tracking id in notes, nothing updated", payment_id)
        return _skipped("missing_tracking_id")

    try:
        row = await locate_row(ledger, tracking_id)
        updates = []
        if entity.get("order_id"):
            updates.append((column_letter("gateway_order_id"), entity["order_id"]))
        updates.append((column_letter("gateway_payment_id"), payment_id))
        updates.append((column_letter("status"), STATUS_PAID))
        await ledger.update_cells(row, updates)
    except TrackingNotFound as e:
        logger.warning("Captured payment %s: %s", payment_id, e)
        return _skipped("tracking_not_found")
    except LedgerError as e:
        logger.error("Ledger update failed for %s (payment %s): %s", tracking_id, payment_id, e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": str(e)},
        )

    logger.info("Payment %s recorded for %s on row %d", payment_id, tracking_id, row)
    return {"status": "ok", "updated": True, "tracking_id": tracking_id}
