"""Collections, access grants, catalog and storefront API tests."""

import uuid

import pytest
from httpx import AsyncClient

from tests.helpers import create_collection, create_product, provision_user

pytestmark = pytest.mark.integration


# ── Collections ──────────────────────────────────────────────────────


async def test_plain_user_cannot_create_collection(client: AsyncClient):
    headers, _ = await provision_user(client)
    resp = await client.post("/api/v1/collections", json={"name": "Nope"}, headers=headers)
    assert resp.status_code == 403


async def test_slug_generated_from_name_with_suffix_on_collision(client: AsyncClient):
    headers, user_id = await provision_user(client, "merchant")
    name = f"Summer Drop {uuid.uuid4().hex[:6]}"

    first = await create_collection(client, headers, name=name)
    second = await create_collection(client, headers, name=name)

    base = name.lower().replace(" ", "-")
    assert first["slug"] == base
    assert second["slug"] == f"{base}-2"
    assert first["user_id"] == user_id


async def test_explicit_slug_conflict_is_409(client: AsyncClient):
    headers, _ = await provision_user(client, "merchant")
    slug = f"taken-{uuid.uuid4().hex[:8]}"
    await create_collection(client, headers, slug=slug)

    resp = await client.post(
        "/api/v1/collections", json={"name": "Again", "slug": slug}, headers=headers
    )
    assert resp.status_code == 409


async def test_malformed_slug_is_422(client: AsyncClient):
    headers, _ = await provision_user(client, "merchant")
    resp = await client.post(
        "/api/v1/collections", json={"name": "Bad", "slug": "Not A Slug"}, headers=headers
    )
    assert resp.status_code == 422


async def test_strangers_get_404_for_hidden_and_403_for_visible(client: AsyncClient):
    owner, _ = await provision_user(client, "merchant")
    stranger, _ = await provision_user(client)
    hidden = await create_collection(client, owner, visible=False)
    public = await create_collection(client, owner)

    resp = await client.get(f"/api/v1/collections/{hidden['id']}", headers=stranger)
    assert resp.status_code == 404
    resp = await client.get(f"/api/v1/collections/{public['id']}", headers=stranger)
    assert resp.status_code == 403


async def test_list_only_returns_accessible_collections(client: AsyncClient):
    owner, _ = await provision_user(client, "merchant")
    other, _ = await provision_user(client, "merchant")
    mine = await create_collection(client, owner)
    theirs = await create_collection(client, other)

    resp = await client.get("/api/v1/collections", headers=owner)
    assert resp.status_code == 200
    ids = {c["id"] for c in resp.json()["items"]}
    assert mine["id"] in ids
    assert theirs["id"] not in ids


# ── Access grants ────────────────────────────────────────────────────


async def test_view_and_edit_grants(client: AsyncClient):
    owner, _ = await provision_user(client, "merchant")
    collaborator, collaborator_id = await provision_user(client)
    collection = await create_collection(client, owner, visible=False)
    base = f"/api/v1/collections/{collection['id']}"

    resp = await client.put(
        f"{base}/access/{collaborator_id}", json={"access_type": "view"}, headers=owner
    )
    assert resp.status_code == 200
    assert resp.json()["access_type"] == "view"

    assert (await client.get(base, headers=collaborator)).status_code == 200
    resp = await client.patch(base, json={"name": "Edited"}, headers=collaborator)
    assert resp.status_code == 403

    # Upgrading keeps a single grant row
    await client.put(
        f"{base}/access/{collaborator_id}", json={"access_type": "edit"}, headers=owner
    )
    resp = await client.patch(base, json={"name": "Edited"}, headers=collaborator)
    assert resp.status_code == 200
    assert resp.json()["name"] == "Edited"

    resp = await client.get(f"{base}/access", headers=owner)
    assert [g["user_id"] for g in resp.json()] == [collaborator_id]

    # Collaborators can edit but not list or manage grants
    assert (await client.get(f"{base}/access", headers=collaborator)).status_code == 403

    resp = await client.delete(f"{base}/access/{collaborator_id}", headers=owner)
    assert resp.status_code == 204
    assert (await client.get(base, headers=collaborator)).status_code == 404


async def test_grant_rules(client: AsyncClient):
    owner, owner_id = await provision_user(client, "merchant")
    collection = await create_collection(client, owner)
    base = f"/api/v1/collections/{collection['id']}/access"

    resp = await client.put(f"{base}/{owner_id}", json={"access_type": "edit"}, headers=owner)
    assert resp.status_code == 409

    resp = await client.put(f"{base}/{uuid.uuid4()}", json={"access_type": "view"}, headers=owner)
    assert resp.status_code == 404

    resp = await client.put(f"{base}/{owner_id}", json={"access_type": "admin"}, headers=owner)
    assert resp.status_code == 422


async def test_admin_transfer_keeps_previous_owner_as_editor(client: AsyncClient):
    admin, _ = await provision_user(client, "admin")
    old_owner, old_owner_id = await provision_user(client, "merchant")
    new_owner, new_owner_id = await provision_user(client, "merchant")
    collection = await create_collection(client, old_owner)
    base = f"/api/v1/collections/{collection['id']}"

    resp = await client.post(
        f"{base}/transfer", json={"new_owner_id": new_owner_id}, headers=old_owner
    )
    assert resp.status_code == 403

    resp = await client.post(f"{base}/transfer", json={"new_owner_id": new_owner_id}, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["user_id"] == new_owner_id

    grants = (await client.get(f"{base}/access", headers=new_owner)).json()
    assert [(g["user_id"], g["access_type"]) for g in grants] == [(old_owner_id, "edit")]


# ── Catalog ──────────────────────────────────────────────────────────


async def test_product_slugs_are_unique_per_collection(client: AsyncClient):
    owner, _ = await provision_user(client, "merchant")
    first = await create_collection(client, owner)
    second = await create_collection(client, owner)

    a = await create_product(client, owner, first["id"], name="Hoodie")
    b = await create_product(client, owner, first["id"], name="Hoodie")
    c = await create_product(client, owner, second["id"], name="Hoodie")
    assert (a["slug"], b["slug"], c["slug"]) == ("hoodie", "hoodie-2", "hoodie")

    resp = await client.post(
        f"/api/v1/collections/{first['id']}/products",
        json={"name": "Other", "slug": "hoodie", "price": "1"},
        headers=owner,
    )
    assert resp.status_code == 409


async def test_product_category_must_belong_to_collection(client: AsyncClient):
    owner, _ = await provision_user(client, "merchant")
    first = await create_collection(client, owner)
    second = await create_collection(client, owner)
    resp = await client.post(
        f"/api/v1/collections/{second['id']}/categories", json={"name": "Tees"}, headers=owner
    )
    assert resp.status_code == 201
    foreign_category = resp.json()["id"]

    resp = await client.post(
        f"/api/v1/collections/{first['id']}/products",
        json={"name": "Tee", "price": "2", "category_id": foreign_category},
        headers=owner,
    )
    assert resp.status_code == 422


async def test_negative_price_rejected(client: AsyncClient):
    owner, _ = await provision_user(client, "merchant")
    collection = await create_collection(client, owner)
    resp = await client.post(
        f"/api/v1/collections/{collection['id']}/products",
        json={"name": "Free money", "price": "-1"},
        headers=owner,
    )
    assert resp.status_code == 422


async def test_media_upload_url(client: AsyncClient, monkeypatch):
    import app.api.v1.media as media_mod

    monkeypatch.setattr(
        media_mod, "presign_put", lambda key, content_type: f"https://s3.test/{key}"
    )
    owner, _ = await provision_user(client, "merchant")
    collection = await create_collection(client, owner)
    product = await create_product(client, owner, collection["id"])
    base = f"/api/v1/collections/{collection['id']}/media"

    resp = await client.post(
        f"{base}/upload-url",
        json={
            "file_name": "Front View!.PNG",
            "content_type": "application/pdf",
            "size_bytes": 100,
            "product_id": product["id"],
        },
        headers=owner,
    )
    assert resp.status_code == 400

    resp = await client.post(
        f"{base}/upload-url",
        json={
            "file_name": "Front View!.PNG",
            "content_type": "image/png",
            "size_bytes": 100,
            "product_id": product["id"],
        },
        headers=owner,
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["file_name"] == "FrontView.png"
    assert data["s3_key"].startswith(f"{collection['id']}/product/")
    assert data["upload_url"] == f"https://s3.test/{data['s3_key']}"

    listed = await client.get(base, params={"product_id": product["id"]}, headers=owner)
    assert [m["id"] for m in listed.json()] == [data["media_id"]]


# ── Storefront ───────────────────────────────────────────────────────


async def test_storefront_hides_hidden_rows(client: AsyncClient):
    owner, _ = await provision_user(client, "merchant")
    collection = await create_collection(client, owner)
    hidden_collection = await create_collection(client, owner, visible=False)
    resp = await client.post(
        f"/api/v1/collections/{collection['id']}/categories",
        json={"name": "Members only", "visible": False},
        headers=owner,
    )
    hidden_category = resp.json()["id"]

    shown = await create_product(client, owner, collection["id"], name="Shown")
    await create_product(client, owner, collection["id"], name="Unlisted", visible=False)
    await create_product(
        client, owner, collection["id"], name="Gated", category_id=hidden_category
    )

    resp = await client.get(f"/api/v1/storefront/collections/{collection['slug']}")
    assert resp.status_code == 200
    assert "user_id" not in resp.json()

    resp = await client.get(f"/api/v1/storefront/collections/{hidden_collection['slug']}")
    assert resp.status_code == 404

    resp = await client.get(f"/api/v1/storefront/collections/{collection['slug']}/products")
    assert [p["id"] for p in resp.json()["items"]] == [shown["id"]]

    resp = await client.get(f"/api/v1/storefront/collections/{collection['slug']}/categories")
    assert resp.json()["items"] == []


async def test_storefront_lists_featured_first(client: AsyncClient):
    owner, _ = await provision_user(client, "merchant")
    featured = await create_collection(client, owner, featured=True)
    await create_collection(client, owner)

    resp = await client.get("/api/v1/storefront/collections", params={"limit": 100})
    items = resp.json()["items"]
    flags = [c["featured"] for c in items]
    assert flags == sorted(flags, reverse=True)
    assert featured["id"] in {c["id"] for c in items if c["featured"]}


async def test_storefront_cursor_pages_do_not_overlap(client: AsyncClient):
    owner, _ = await provision_user(client, "merchant")
    await create_collection(client, owner)
    await create_collection(client, owner)

    first = (await client.get("/api/v1/storefront/collections", params={"limit": 1})).json()
    assert first["has_more"] is True
    second = (
        await client.get(
            "/api/v1/storefront/collections",
            params={"limit": 1, "cursor": first["next_cursor"]},
        )
    ).json()
    assert first["items"][0]["id"] != second["items"][0]["id"]


async def test_merchant_flow_under_rls(rls_client: AsyncClient):
    """Create a collection and catalog through app_user connections."""
    owner, _ = await provision_user(rls_client, "merchant")
    stranger, _ = await provision_user(rls_client)
    collection = await create_collection(rls_client, owner, visible=False)
    product = await create_product(rls_client, owner, collection["id"])

    resp = await rls_client.get(
        f"/api/v1/collections/{collection['id']}/products", headers=owner
    )
    assert [p["id"] for p in resp.json()["items"]] == [product["id"]]

    resp = await rls_client.get(f"/api/v1/collections/{collection['id']}", headers=stranger)
    assert resp.status_code == 404


async def test_slug_collision_with_hidden_collection_under_rls(rls_client: AsyncClient):
    """Slugs taken by collections the caller cannot see still count."""
    first, _ = await provision_user(rls_client, "merchant")
    second, _ = await provision_user(rls_client, "merchant")
    name = f"Hidden Drop {uuid.uuid4().hex[:6]}"
    hidden = await create_collection(rls_client, first, name=name, visible=False)

    resp = await rls_client.post("/api/v1/collections", json={"name": name}, headers=second)
    assert resp.status_code == 201, resp.text
    assert resp.json()["slug"] == f"{hidden['slug']}-2"

    resp = await rls_client.post(
        "/api/v1/collections", json={"name": "Again", "slug": hidden["slug"]}, headers=second
    )
    assert resp.status_code == 409

    mine = await create_collection(rls_client, second)
    resp = await rls_client.patch(
        f"/api/v1/collections/{mine['id']}", json={"slug": hidden["slug"]}, headers=second
    )
    assert resp.status_code == 409


async def test_grants_under_rls(rls_client: AsyncClient):
    owner, _ = await provision_user(rls_client, "merchant")
    collaborator, collaborator_id = await provision_user(rls_client)
    collection = await create_collection(rls_client, owner, visible=False)
    base = f"/api/v1/collections/{collection['id']}"

    resp = await rls_client.put(
        f"{base}/access/{collaborator_id}", json={"access_type": "edit"}, headers=owner
    )
    assert resp.status_code == 200, resp.text

    resp = await rls_client.patch(base, json={"name": "Edited"}, headers=collaborator)
    assert resp.status_code == 200, resp.text

    resp = await rls_client.delete(f"{base}/access/{collaborator_id}", headers=owner)
    assert resp.status_code == 204
    assert (await rls_client.get(base, headers=collaborator)).status_code == 404


async def test_admin_transfer_under_rls(rls_client: AsyncClient):
    admin, _ = await provision_user(rls_client, "admin")
    old_owner, old_owner_id = await provision_user(rls_client, "merchant")
    new_owner, new_owner_id = await provision_user(rls_client, "merchant")
    collection = await create_collection(rls_client, old_owner, visible=False)
    base = f"/api/v1/collections/{collection['id']}"

    resp = await rls_client.post(
        f"{base}/transfer", json={"new_owner_id": new_owner_id}, headers=admin
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["user_id"] == new_owner_id

    assert (await rls_client.get(base, headers=new_owner)).status_code == 200
    resp = await rls_client.patch(base, json={"name": "Still mine"}, headers=old_owner)
    assert resp.status_code == 200, resp.text
