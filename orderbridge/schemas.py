# orderbridge/schemas.py
from typing import Optional

from pydantic import BaseModel, field_validator

from .models import Amount


# 👤 Customer block of /create-order
class CustomerDetails(BaseModel):
    customer_name: str
    customer_phone: str
    address_line1: str
    landmark: Optional[str] = ""
    pincode: str
    city: str
    state: str

    # phone and pincode often arrive as JSON numbers
    @field_validator("customer_phone", "pincode", mode="before")
    @classmethod
    def numbers_as_text(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("customer_name", "customer_phone", "address_line1", "pincode", "city", "state")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class OrderData(BaseModel):
    amount_paid: Amount
    product_name: Optional[str] = None
    payment_method: Optional[str] = ""
    amount_remaining: Optional[Amount] = None
    total_amount: Optional[Amount] = None
    customer_details: CustomerDetails


class CreateOrderRequest(BaseModel):
    data: OrderData


class CreateOrderResponse(BaseModel):
    status: str = "OK"
    order_id: str
    amount: int
    key_id: str
    product_name: str
    custom_id: str


class FailureResponse(BaseModel):
    status: str = "FAILED"
    message: str
