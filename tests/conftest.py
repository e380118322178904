import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from orderbridge.config import Settings
from orderbridge.dependencies import get_gateway, get_ledger, get_settings, get_tracking_ids
from orderbridge.errors import GatewayError, LedgerError, RemoteWriteError
from orderbridge.gateway import GatewayOrder
from orderbridge.main import create_app
from orderbridge.models import COLUMNS
from orderbridge.tracking import RandomTrackingIds

WEBHOOK_SECRET = "whsec_test"
HEADER = ["Date", "Custom ID", "Rzp Order ID", "Name", "Phone", "Address", "Landmark", "Pincode",
          "City", "State", "Product", "Size", "Method", "Paid", "Remaining", "Total", "Status", "Payment ID"]


class FakeLedger:
    """In-memory sheet: rows[0] is the header, row numbers are 1-based like the real thing."""

    def __init__(self):
        self.rows = [list(HEADER)]
        self.fail = set()
        self.calls = []

    def _check(self, op):
        self.calls.append(op)
        if op in self.fail:
            if op == "read":
                raise LedgerError("ledger unavailable")
            raise RemoteWriteError("ledger write failed")

    async def append_row(self, record):
        self._check("append")
        self.rows.append(record.to_row())
        return len(self.rows)

    async def read_tracking_ids(self):
        self._check("read")
        return [row[1] for row in self.rows]

    async def find_row_index(self, tracking_id):
        for i, value in enumerate(await self.read_tracking_ids(), start=1):
            if value == tracking_id:
                return i
        return None

    def _set(self, row, column, value):
        cells = self.rows[row - 1]
        cells[ord(column) - ord("A")] = value

    async def update_cell(self, row, column, value):
        self._check("update_cell")
        self._set(row, column, value)

    async def update_cells(self, row, updates):
        self._check("update_cells")
        for column, value in updates:
            self._set(row, column, value)

    def record(self, tracking_id):
        for row in self.rows[1:]:
            if row[1] == tracking_id:
                return dict(zip(COLUMNS, row))
        return None


class FakeGateway:
    key_id = "rzp_test_key"

    def __init__(self):
        self.orders = []
        self.fail = False

    async def create_order(self, amount_minor_units, currency, receipt, notes):
        if self.fail:
            raise GatewayError("Gateway rejected order (401): Authentication failed")
        order = GatewayOrder(id=f"order_{len(self.orders) + 1:04d}", amount=amount_minor_units,
                             currency=currency, receipt=receipt)
        self.orders.append({"order": order, "notes": notes})
        return order


@pytest.fixture
def settings():
    return Settings(
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret="secret",
        webhook_secret=WEBHOOK_SECRET,
        spreadsheet_id="sheet-123",
    )


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def tracking_ids():
    return RandomTrackingIds()


@pytest.fixture
def client(settings, ledger, gateway, tracking_ids):
    app = create_app(settings)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_tracking_ids] = lambda: tracking_ids
    return TestClient(app)


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def captured_event(tracking_id, payment_id="pay_001", order_id="order_0001", event="payment.captured"):
    return json.dumps({
        "event": event,
        "payload": {"payment": {"entity": {
            "id": payment_id,
            "order_id": order_id,
            "notes": {"tracking_id": tracking_id, "product_name": "Comfortable Shoes for winter"},
        }}},
    }).encode()
