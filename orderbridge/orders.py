# orderbridge/orders.py
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from .config import Settings
from .dependencies import get_gateway, get_ledger, get_settings, get_tracking_ids
from .errors import GatewayError, LedgerError
from .gateway import OrderNotes, RazorpayClient, to_minor_units
from .ledger import LedgerClient
from .models import SIZE_UNKNOWN, OrderRecord, column_letter
from .schemas import CreateOrderRequest, CreateOrderResponse, FailureResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])

SIZE_MARKER = "(Size:"


def parse_size(label) -> str:
    """'Running Shoes (Size: 9)' -> '9'; no marker -> 'N/A'."""
    if not label or SIZE_MARKER not in label:
        return SIZE_UNKNOWN
    rest = label.split(SIZE_MARKER, 1)[1]
    return rest.split(")", 1)[0].strip() or SIZE_UNKNOWN


# ✅ Intake: pending ledger row first, then the gateway order that points back to it
@router.post(
    "/create-order",
    response_model=CreateOrderResponse,
    responses={422: {"model": FailureResponse}, 500: {"model": FailureResponse}},
)
async def create_order(
    payload: CreateOrderRequest,
    settings: Settings = Depends(get_settings),
    ledger: LedgerClient = Depends(get_ledger),
    gateway: RazorpayClient = Depends(get_gateway),
    tracking_ids=Depends(get_tracking_ids),
):
    data = payload.data
    customer = data.customer_details

    # 1) Display name is fixed; size comes from the free-text label
    product_name = settings.product_name
    size = parse_size(data.product_name)
    amount = to_minor_units(data.amount_paid)

    try:
        # 2) Pending row, under the id reservation so sequential ids stay unique
        async with tracking_ids.reservation():
            tracking_id = await tracking_ids.next_id(ledger)
            record = OrderRecord(
                tracking_id=tracking_id,
                customer_name=customer.customer_name,
                phone=customer.customer_phone,
                address_line1=customer.address_line1,
                landmark=customer.landmark or "",
                pincode=customer.pincode,
                city=customer.city,
                state=customer.state,
                product_name=product_name,
                size=size,
                payment_method=data.payment_method or "",
                amount_paid=data.amount_paid,
                amount_remaining=data.amount_remaining,
                total_amount=data.total_amount,
            )
            row = await ledger.append_row(record)

        # 3) Gateway order carrying the tracking id for the webhook
        notes = OrderNotes(tracking_id=tracking_id, product_name=product_name,
                           customer_name=customer.customer_name)
        order = await gateway.create_order(amount, settings.currency, f"receipt_{tracking_id}", notes)
    except (GatewayError, LedgerError) as e:
        # no rollback: a pending row may be left behind
        logger.error("Order creation failed: %s", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=FailureResponse(message=str(e)).model_dump(),
        )

    # 4) Best effort: the webhook fills this column too
    try:
        await ledger.update_cell(row, column_letter("gateway_order_id"), order.id)
    except LedgerError as e:
        logger.warning("Could not record gateway order %s on row %d: %s", order.id, row, e)

    logger.info("Order %s created: gateway order %s, %d %s", tracking_id, order.id, amount, settings.currency)
    return CreateOrderResponse(
        order_id=order.id,
        amount=amount,
        key_id=settings.razorpay_key_id,
        product_name=product_name,
        custom_id=tracking_id,
    )
