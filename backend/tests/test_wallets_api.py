"""Merchant payout wallet API tests."""

import pytest
from httpx import AsyncClient

from tests.helpers import create_collection, create_product, provision_user, random_wallet

pytestmark = pytest.mark.integration


async def _wallet(client: AsyncClient, admin: dict, label: str = "payout") -> dict:
    resp = await client.post(
        "/api/v1/wallets", json={"address": random_wallet(), "label": label}, headers=admin
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_wallets_are_admin_only(client: AsyncClient):
    merchant, _ = await provision_user(client, "merchant")
    resp = await client.post(
        "/api/v1/wallets", json={"address": random_wallet(), "label": "mine"}, headers=merchant
    )
    assert resp.status_code == 403


async def test_invalid_and_duplicate_addresses(client: AsyncClient):
    admin, _ = await provision_user(client, "admin")
    resp = await client.post(
        "/api/v1/wallets", json={"address": "0xNotBase58Address0000000000000000", "label": "x"},
        headers=admin,
    )
    assert resp.status_code == 422

    wallet = await _wallet(client, admin)
    resp = await client.post(
        "/api/v1/wallets", json={"address": wallet["address"], "label": "again"}, headers=admin
    )
    assert resp.status_code == 409


async def test_single_main_wallet_and_deactivation(client: AsyncClient):
    admin, _ = await provision_user(client, "admin")
    first = await _wallet(client, admin, "first")
    second = await _wallet(client, admin, "second")

    resp = await client.post(f"/api/v1/wallets/{first['id']}/main", headers=admin)
    assert resp.json()["is_main"] is True
    resp = await client.post(f"/api/v1/wallets/{second['id']}/main", headers=admin)
    assert resp.json()["is_main"] is True

    mains = [w for w in (await client.get("/api/v1/wallets", headers=admin)).json() if w["is_main"]]
    assert [w["id"] for w in mains] == [second["id"]]

    resp = await client.post(f"/api/v1/wallets/{second['id']}/deactivate", headers=admin)
    assert resp.status_code == 422

    resp = await client.post(f"/api/v1/wallets/{first['id']}/deactivate", headers=admin)
    assert resp.json()["is_active"] is False
    resp = await client.post(f"/api/v1/wallets/{first['id']}/main", headers=admin)
    assert resp.status_code == 422


async def test_collection_wallet_is_payout_target(client: AsyncClient):
    admin, _ = await provision_user(client, "admin")
    merchant, _ = await provision_user(client, "merchant")
    buyer, _ = await provision_user(client)
    collection = await create_collection(client, merchant)
    other = await create_collection(client, merchant)
    product = await create_product(client, merchant, collection["id"])
    wallet = await _wallet(client, admin)

    resp = await client.put(
        f"/api/v1/wallets/collections/{collection['id']}",
        json={"wallet_id": wallet["id"]},
        headers=admin,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["wallet_id"] == wallet["id"]

    resp = await client.put(
        f"/api/v1/wallets/collections/{other['id']}",
        json={"wallet_id": wallet["id"]},
        headers=admin,
    )
    assert resp.status_code == 409

    resp = await client.post(
        "/api/v1/orders", json={"product_id": product["id"]}, headers=buyer
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["payment_metadata"]["payoutWallet"] == wallet["address"]


async def test_set_main_wallet_under_rls(rls_client: AsyncClient):
    admin, _ = await provision_user(rls_client, "admin")
    first = await _wallet(rls_client, admin, "first")
    second = await _wallet(rls_client, admin, "second")

    resp = await rls_client.post(f"/api/v1/wallets/{first['id']}/main", headers=admin)
    assert resp.status_code == 200, resp.text
    resp = await rls_client.post(f"/api/v1/wallets/{second['id']}/main", headers=admin)
    assert resp.status_code == 200, resp.text

    wallets = (await rls_client.get("/api/v1/wallets", headers=admin)).json()
    assert [w["id"] for w in wallets if w["is_main"]] == [second["id"]]
