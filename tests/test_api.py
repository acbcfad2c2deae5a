"""
HTTP surface tests against a freshly seeded devnet.
"""

import threading

import pytest
from fastapi.testclient import TestClient

from technostore.main import app


@pytest.fixture
def client():
    with TestClient(app) as c:
        c.post("/api/v1/admin/seed")
        yield c


def accounts(client):
    return [a["address"] for a in client.get("/api/v1/dev/accounts").json()["accounts"]]


def signed_buy(client, buyer, index=0):
    product = client.get(f"/api/v1/products/{index}").json()
    deadline = client.get("/api/v1/store").json()["timestamp"] + 3_600
    signature = client.post(
        "/api/v1/dev/permits",
        json={"owner": buyer, "value": product["price"], "deadline": deadline},
    ).json()
    return client.post(
        f"/api/v1/products/{index}/buy",
        json={"amount": product["price"], "deadline": deadline, "signature": signature},
        headers={"X-Caller": buyer},
    )


class TestReads:
    def test_store_info(self, client):
        info = client.get("/api/v1/store").json()
        owner = accounts(client)[0]
        assert info["owner"] == owner
        assert info["chain_id"] == 31337
        assert info["refund_policy"]["window_blocks"] == 100

    def test_products_listed_in_order(self, client):
        products = client.get("/api/v1/products").json()["products"]
        assert products[0]["name"] == "Keyboard"
        assert [p["index"] for p in products] == list(range(len(products)))

    def test_missing_product_is_404(self, client):
        resp = client.get("/api/v1/products/999")
        assert resp.status_code == 404
        assert resp.json()["error"] == "IndexOutOfRange"


class TestOwnerSurface:
    def test_owner_adds_product(self, client):
        owner = accounts(client)[0]
        resp = client.post(
            "/api/v1/products",
            json={"name": "Trackpad", "quantity": 3, "price": 70},
            headers={"X-Caller": owner},
        )
        assert resp.status_code == 200
        assert resp.json()["events"][0]["event"] == "ProductAdded"

    def test_customer_cannot_add(self, client):
        customer = accounts(client)[1]
        resp = client.post(
            "/api/v1/products",
            json={"name": "Trackpad", "quantity": 3, "price": 70},
            headers={"X-Caller": customer},
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "NotOwner"

    def test_invalid_inputs(self, client):
        owner = accounts(client)[0]
        resp = client.post(
            "/api/v1/products",
            json={"name": "Trackpad", "quantity": 0, "price": 70},
            headers={"X-Caller": owner},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "InvalidInputs"


class TestCustomerSurface:
    def test_buy_then_refund(self, client):
        buyer = accounts(client)[1]
        before = client.get(f"/api/v1/balances/{buyer}").json()["balance"]
        price = client.get("/api/v1/products/0").json()["price"]

        resp = signed_buy(client, buyer)
        assert resp.status_code == 200
        purchase = client.get(f"/api/v1/products/0/purchases/{buyer}").json()
        assert purchase["purchased_at"] == resp.json()["block_number"]
        assert buyer in client.get("/api/v1/products/0").json()["buyers"]

        assert signed_buy(client, buyer).status_code == 409

        resp = client.post("/api/v1/products/0/refund", headers={"X-Caller": buyer})
        assert resp.status_code == 200
        after = client.get(f"/api/v1/balances/{buyer}").json()["balance"]
        assert after == before - price + price * 80 // 100

    def test_refund_after_window(self, client):
        buyer = accounts(client)[2]
        assert signed_buy(client, buyer).status_code == 200
        client.post("/api/v1/admin/mine", params={"blocks": 100})

        resp = client.post("/api/v1/products/0/refund", headers={"X-Caller": buyer})
        assert resp.status_code == 409
        assert resp.json()["error"] == "RefundExpired"

    def test_refund_without_purchase(self, client):
        buyer = accounts(client)[1]
        resp = client.post("/api/v1/products/0/refund", headers={"X-Caller": buyer})
        assert resp.status_code == 409
        assert resp.json()["error"] == "ProductNotBought"

    def test_events_filter(self, client):
        buyer = accounts(client)[1]
        signed_buy(client, buyer)
        events = client.get("/api/v1/events", params={"event": "ProductBought"}).json()["events"]
        assert [e["args"]["buyer"] for e in events] == [buyer]

    def test_read_waits_for_call_in_flight(self, client, monkeypatch):
        buyer = accounts(client)[1]
        before = client.get("/api/v1/products/0").json()["quantity"]
        token = client.app.state.devnet.token
        transfer_from = token.transfer_from
        seen = {}

        def paid_then_read(*args):
            result = transfer_from(*args)
            # payment is taken but the purchase is not recorded yet
            reader = threading.Thread(
                target=lambda: seen.update(product=client.get("/api/v1/products/0").json())
            )
            reader.start()
            reader.join(timeout=0.2)
            seen["blocked"] = reader.is_alive()
            seen["reader"] = reader
            return result

        monkeypatch.setattr(token, "transfer_from", paid_then_read)
        assert signed_buy(client, buyer).status_code == 200
        seen["reader"].join(timeout=5)

        assert seen["blocked"]
        assert seen["product"]["quantity"] == before - 1
        assert buyer in seen["product"]["buyers"]

    def test_price_beyond_uint256(self, client):
        owner = accounts(client)[0]
        resp = client.post(
            "/api/v1/products",
            json={"name": "Trackpad", "quantity": 1, "price": 2**256},
            headers={"X-Caller": owner},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "InvalidInputs"
