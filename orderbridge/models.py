# orderbridge/models.py
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt

STATUS_PENDING = "Pending Payment"
STATUS_PAID = "Payment Received"
GATEWAY_ORDER_PLACEHOLDER = "pending"
SIZE_UNKNOWN = "N/A"

# JSON numbers only; booleans and numeric strings are rejected
Amount = Union[StrictInt, StrictFloat]


def utc_timestamp() -> str:
    # 2024-05-01T10:15:30.123Z
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# 📒 One row of the order ledger; field order == sheet column order
class OrderRecord(BaseModel):
    created_at: str = Field(default_factory=utc_timestamp)    # A
    tracking_id: str                                          # B
    gateway_order_id: str = GATEWAY_ORDER_PLACEHOLDER         # C
    customer_name: str                                        # D
    phone: str                                                # E
    address_line1: str                                        # F
    landmark: str = ""                                        # G
    pincode: str                                              # H
    city: str                                                 # I
    state: str                                                # J
    product_name: str                                         # K
    size: str = SIZE_UNKNOWN                                  # L
    payment_method: str = ""                                  # M
    amount_paid: Optional[Amount] = None                      # N
    amount_remaining: Optional[Amount] = None                 # O
    total_amount: Optional[Amount] = None                     # P
    status: str = STATUS_PENDING                              # Q
    gateway_payment_id: str = ""                              # R

    def to_row(self) -> list:
        return ["" if v is None else v for v in self.model_dump().values()]


COLUMNS = list(OrderRecord.model_fields)
FIRST_COLUMN = "A"
LAST_COLUMN = chr(ord("A") + len(COLUMNS) - 1)


def column_letter(field: str) -> str:
    """Sheet column letter for an OrderRecord field name."""
    return chr(ord("A") + COLUMNS.index(field))
