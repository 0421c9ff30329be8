"""Cart (batch) checkout and public order count API tests."""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient

from tests.helpers import (
    create_collection,
    create_product,
    provision_user,
    random_wallet,
    service_headers,
    wallet_headers,
)

pytestmark = pytest.mark.integration


async def _catalog(client: AsyncClient, *prices: str, quantity: int | None = None):
    merchant, _ = await provision_user(client, "merchant", prefix="cart")
    collection = await create_collection(client, merchant)
    fields = {} if quantity is None else {"quantity": quantity}
    products = [
        await create_product(client, merchant, collection["id"], price=price, **fields)
        for price in prices
    ]
    return merchant, collection, products


async def _checkout(client: AsyncClient, headers: dict, items: list[dict], **fields):
    return await client.post(
        "/api/v1/orders/batch", json={"items": items, **fields}, headers=headers
    )


async def _pay_batch(client: AsyncClient, batch_order_id: str) -> list[dict]:
    signature = uuid.uuid4().hex * 2
    resp = await client.post(
        f"/api/v1/system/batches/{batch_order_id}/transaction",
        json={"transaction_signature": signature},
        headers=service_headers(),
    )
    assert resp.status_code == 200, resp.text
    assert {o["status"] for o in resp.json()["items"]} == {"pending_payment"}

    resp = await client.post(
        "/api/v1/system/payments/status",
        json={"transaction_signature": signature, "status": "confirmed"},
        headers=service_headers(),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


# ── Checkout ─────────────────────────────────────────────────────────


async def test_batch_lines_share_order_number(client: AsyncClient):
    _merchant, collection, (tee, cap) = await _catalog(client, "2", "3")
    wallet = random_wallet()

    resp = await _checkout(
        client,
        wallet_headers(wallet),
        [{"product_id": tee["id"], "quantity": 2}, {"product_id": cap["id"]}],
    )
    assert resp.status_code == 201, resp.text
    batch = resp.json()
    assert batch["is_duplicate"] is False
    assert Decimal(batch["total_amount"]) == Decimal("7")

    lines = batch["items"]
    assert [line["item_index"] for line in lines] == [1, 2]
    assert {line["total_items_in_batch"] for line in lines} == {2}
    assert {line["order_number"] for line in lines} == {batch["order_number"]}
    assert {line["batch_order_id"] for line in lines} == {batch["batch_order_id"]}
    assert {line["collection_id"] for line in lines} == {collection["id"]}
    assert [line["status"] for line in lines] == ["draft", "draft"]
    assert lines[0]["payment_metadata"]["batchOrderId"] == batch["batch_order_id"]
    assert lines[0]["payment_metadata"]["isBatchOrder"] is True

    resp = await client.get(
        f"/api/v1/orders/batches/{batch['batch_order_id']}", headers=wallet_headers(wallet)
    )
    assert resp.status_code == 200
    assert [line["id"] for line in resp.json()["items"]] == [line["id"] for line in lines]

    resp = await client.get(
        f"/api/v1/orders/batches/{batch['batch_order_id']}",
        headers=wallet_headers(random_wallet()),
    )
    assert resp.status_code == 404


async def test_one_payment_confirms_every_line(client: AsyncClient):
    merchant, collection, (tee, cap) = await _catalog(client, "2", "3", quantity=5)
    buyer, _ = await provision_user(client)
    batch = (
        await _checkout(
            client,
            buyer,
            [{"product_id": tee["id"], "quantity": 2}, {"product_id": cap["id"]}],
        )
    ).json()

    confirmed = await _pay_batch(client, batch["batch_order_id"])
    assert [o["status"] for o in confirmed] == ["confirmed", "confirmed"]
    assert len({o["transaction_signature"] for o in confirmed}) == 1

    stock = {}
    for product in (tee, cap):
        resp = await client.get(
            f"/api/v1/collections/{collection['id']}/products/{product['id']}",
            headers=merchant,
        )
        stock[product["id"]] = resp.json()["quantity"]
    assert stock == {tee["id"]: 3, cap["id"]: 4}


async def test_repeated_transaction_id_returns_existing_batch(client: AsyncClient):
    _merchant, _collection, (tee,) = await _catalog(client, "2")
    buyer, _ = await provision_user(client)
    metadata = {"transactionId": uuid.uuid4().hex}
    items = [{"product_id": tee["id"]}]

    first = await _checkout(client, buyer, items, payment_metadata=metadata)
    second = await _checkout(client, buyer, items, payment_metadata=metadata)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["batch_order_id"] == first.json()["batch_order_id"]
    assert second.json()["is_duplicate"] is True


async def test_stock_is_checked_across_lines(client: AsyncClient):
    _merchant, _collection, (tee,) = await _catalog(client, "2", quantity=3)
    buyer, _ = await provision_user(client)

    resp = await _checkout(
        client,
        buyer,
        [{"product_id": tee["id"], "quantity": 2}, {"product_id": tee["id"], "quantity": 2}],
    )
    assert resp.status_code == 422

    mine = await client.get("/api/v1/orders/me", headers=buyer)
    assert mine.json()["items"] == []


async def test_empty_cart_is_rejected(client: AsyncClient):
    buyer, _ = await provision_user(client)
    resp = await _checkout(client, buyer, [])
    assert resp.status_code == 422


async def test_batch_cannot_reuse_another_orders_signature(client: AsyncClient):
    _merchant, _collection, (tee,) = await _catalog(client, "2")
    buyer, _ = await provision_user(client)
    single = (
        await client.post("/api/v1/orders", json={"product_id": tee["id"]}, headers=buyer)
    ).json()
    batch = (await _checkout(client, buyer, [{"product_id": tee["id"]}])).json()
    signature = uuid.uuid4().hex

    resp = await client.post(
        f"/api/v1/system/orders/{single['id']}/transaction",
        json={"transaction_signature": signature},
        headers=service_headers(),
    )
    assert resp.status_code == 200
    resp = await client.post(
        f"/api/v1/system/batches/{batch['batch_order_id']}/transaction",
        json={"transaction_signature": signature},
        headers=service_headers(),
    )
    assert resp.status_code == 409


async def test_failed_batch_payment_cancels_every_line(client: AsyncClient):
    _merchant, _collection, (tee, cap) = await _catalog(client, "2", "3")
    buyer, _ = await provision_user(client)
    batch = (
        await _checkout(client, buyer, [{"product_id": tee["id"]}, {"product_id": cap["id"]}])
    ).json()
    signature = uuid.uuid4().hex
    await client.post(
        f"/api/v1/system/batches/{batch['batch_order_id']}/transaction",
        json={"transaction_signature": signature},
        headers=service_headers(),
    )

    resp = await client.post(
        "/api/v1/system/payments/status",
        json={"transaction_signature": signature, "status": "failed"},
        headers=service_headers(),
    )
    assert [o["status"] for o in resp.json()] == ["cancelled", "cancelled"]


async def test_unknown_batch_is_404_for_the_payment_system(client: AsyncClient):
    resp = await client.post(
        f"/api/v1/system/batches/{uuid.uuid4()}/confirm", headers=service_headers()
    )
    assert resp.status_code == 404


async def test_free_batch_auto_confirms_under_rls(rls_client: AsyncClient):
    _merchant, _collection, (sticker, pin) = await _catalog(rls_client, "0", "0", quantity=2)
    wallet = random_wallet()

    resp = await _checkout(
        rls_client,
        wallet_headers(wallet),
        [{"product_id": sticker["id"]}, {"product_id": pin["id"]}],
    )
    assert resp.status_code == 201, resp.text
    assert [o["status"] for o in resp.json()["items"]] == ["confirmed", "confirmed"]


async def test_batch_payment_under_rls(rls_client: AsyncClient):
    _merchant, _collection, (tee, cap) = await _catalog(rls_client, "2", "3", quantity=4)
    wallet = random_wallet()
    batch = (
        await _checkout(
            rls_client,
            wallet_headers(wallet),
            [{"product_id": tee["id"]}, {"product_id": cap["id"]}],
        )
    ).json()

    confirmed = await _pay_batch(rls_client, batch["batch_order_id"])
    assert [o["status"] for o in confirmed] == ["confirmed", "confirmed"]


# ── Order counts ─────────────────────────────────────────────────────


async def test_public_order_counts_include_paid_orders_only(rls_client: AsyncClient):
    merchant, collection, (tee, cap) = await _catalog(rls_client, "2", "3")
    buyer, _ = await provision_user(rls_client)
    paid = (
        await _checkout(
            rls_client,
            buyer,
            [{"product_id": tee["id"]}, {"product_id": tee["id"]}, {"product_id": cap["id"]}],
        )
    ).json()
    await _pay_batch(rls_client, paid["batch_order_id"])
    # Drafts are not counted
    await _checkout(rls_client, buyer, [{"product_id": cap["id"]}])

    resp = await rls_client.get(f"/api/v1/storefront/collections/{collection['slug']}/products")
    counts = {p["id"]: p["order_count"] for p in resp.json()["items"]}
    assert counts == {tee["id"]: 2, cap["id"]: 1}

    resp = await rls_client.get(
        "/api/v1/storefront/best-sellers", params={"collection_slug": collection["slug"]}
    )
    assert resp.status_code == 200
    ranked = resp.json()
    assert [(p["id"], p["order_count"]) for p in ranked] == [(tee["id"], 2), (cap["id"], 1)]
    assert {p["collection_id"] for p in ranked} == {collection["id"]}

    resp = await rls_client.get(
        f"/api/v1/collections/{collection['id']}/products/{tee['id']}/order-counts",
        headers=merchant,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["counts"] == {
        "confirmed": 2,
        "preparing": 0,
        "shipped": 0,
        "delivered": 0,
    }
    assert resp.json()["total"] == 2

    resp = await rls_client.get(
        f"/api/v1/collections/{collection['id']}/products/{tee['id']}/order-counts",
        headers=buyer,
    )
    assert resp.status_code == 403


async def test_best_sellers_skip_ended_sales(client: AsyncClient):
    merchant, collection, (tee,) = await _catalog(client, "2")
    buyer, _ = await provision_user(client)
    batch = (await _checkout(client, buyer, [{"product_id": tee["id"]}])).json()
    await _pay_batch(client, batch["batch_order_id"])

    params = {"collection_slug": collection["slug"]}
    resp = await client.get("/api/v1/storefront/best-sellers", params=params)
    assert [p["id"] for p in resp.json()] == [tee["id"]]

    await client.patch(
        f"/api/v1/collections/{collection['id']}", json={"sale_ended": True}, headers=merchant
    )
    resp = await client.get("/api/v1/storefront/best-sellers", params=params)
    assert resp.json() == []


async def test_best_sellers_unknown_collection_is_404(client: AsyncClient):
    resp = await client.get(
        "/api/v1/storefront/best-sellers", params={"collection_slug": f"nope-{uuid.uuid4().hex}"}
    )
    assert resp.status_code == 404
