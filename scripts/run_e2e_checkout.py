#!/usr/bin/env python3
"""Simple e2e script: create an order, then replay a signed payment.captured webhook for it.

Needs a running server (ORDERBRIDGE_URL) and the same WEBHOOK_SECRET it uses.
"""
import hashlib
import hmac
import json
import os

import httpx

BASE_URL = os.getenv("ORDERBRIDGE_URL", "http://localhost:3000")
SECRET = os.getenv("WEBHOOK_SECRET", "")

payload = {
    "data": {
        "amount_paid": 1.0,
        "product_name": "Comfortable Shoes for winter (Size: 8)",
        "payment_method": "Prepaid",
        "amount_remaining": 0,
        "total_amount": 1.0,
        "customer_details": {
            "customer_name": "E2E Test",
            "customer_phone": "9999999999",
            "address_line1": "1 Test Street",
            "landmark": "",
            "pincode": "110001",
            "city": "New Delhi",
            "state": "Delhi",
        },
    }
}

try:
    r = httpx.post(f"{BASE_URL}/create-order", json=payload, timeout=30.0)
    print("create-order ->", r.status_code, r.text)
    order = r.json()
    if order.get("status") != "OK":
        raise SystemExit(1)

    event = json.dumps({
        "event": "payment.captured",
        "payload": {"payment": {"entity": {
            "id": "pay_e2e_" + order["custom_id"],
            "order_id": order["order_id"],
            "notes": {"tracking_id": order["custom_id"]},
        }}},
    }).encode()
    signature = hmac.new(SECRET.encode(), event, hashlib.sha256).hexdigest()
    r = httpx.post(f"{BASE_URL}/razorpay-webhook", content=event,
                   headers={"content-type": "application/json", "x-razorpay-signature": signature}, timeout=30.0)
    print("razorpay-webhook ->", r.status_code, r.text)
except httpx.HTTPError as e:
    print("Request failed:", e)
