import pytest

from tests.conftest import auth_headers, make_user


pytestmark = pytest.mark.anyio


def _members_url(company, suffix=""):
    return f"/api/v1/companies/{company.id}/members{suffix}"


def _invite_url(company):
    return f"/api/v1/companies/{company.id}/invite"


async def test_create_company_makes_caller_owner(client, db):
    founder = await make_user(db, "founder@example.com", "Founder")
    headers = auth_headers(founder)

    r = await client.post("/api/v1/companies", json={"name": "Tech Store", "tax_id": "RUC-NEW"}, headers=headers)
    assert r.status_code == 201, r.text
    company_id = r.json()["data"]["id"]

    r = await client.get(f"/api/v1/companies/{company_id}/members", headers=headers)
    assert r.status_code == 200
    members = r.json()["data"]
    assert [(m["email"], m["role"]) for m in members] == [("founder@example.com", "owner")]

    r = await client.post("/api/v1/companies", json={"name": "Copy", "tax_id": "RUC-NEW"}, headers=headers)
    assert r.status_code == 409


async def test_get_company_requires_membership(client, world):
    r = await client.get(f"/api/v1/companies/{world.company_a.id}", headers=auth_headers(world.inventory))
    assert r.status_code == 200
    assert r.json()["data"]["tax_id"] == "RUC-A"

    r = await client.get(f"/api/v1/companies/{world.company_a.id}", headers=auth_headers(world.owner_b))
    assert r.status_code == 403

    r = await client.get(
        "/api/v1/companies/00000000-0000-0000-0000-000000000000", headers=auth_headers(world.owner)
    )
    assert r.status_code == 404


async def test_path_company_wins_over_header(client, world):
    # header names company B, path names company A
    headers = auth_headers(world.owner_b, world.company_b)
    r = await client.get(_members_url(world.company_a), headers=headers)
    assert r.status_code == 403


async def test_members_list_contains_all_roles(client, world):
    r = await client.get(_members_url(world.company_a), headers=auth_headers(world.seller))
    roles = sorted(m["role"] for m in r.json()["data"])
    assert roles == ["admin", "inventory", "owner", "seller"]


async def test_invite_new_user(client, world):
    headers = auth_headers(world.admin)

    r = await client.post(_invite_url(world.company_a), json={"email": "new@example.com", "role": "seller"}, headers=headers)
    assert r.status_code == 400
    assert "Name is required" in r.json()["error"]

    r = await client.post(
        _invite_url(world.company_a),
        json={"email": "New@Example.com", "role": "seller", "name": "New Seller"},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    assert data["is_new_user"] is True
    assert data["member"]["email"] == "new@example.com"
    assert data["member"]["role"] == "seller"
    assert data["member"]["invited_by_name"] == "Admin A"

    r = await client.post(_invite_url(world.company_a), json={"email": "new@example.com", "role": "admin"}, headers=headers)
    assert r.status_code == 409


async def test_invite_existing_user_from_other_company(client, db, world):
    r = await client.post(
        _invite_url(world.company_b),
        json={"email": "seller@a.example.com", "role": "inventory"},
        headers=auth_headers(world.owner_b),
    )
    assert r.status_code == 201, r.text
    assert r.json()["data"]["is_new_user"] is False

    # the same user now reaches both companies with different roles
    r = await client.get(_members_url(world.company_b), headers=auth_headers(world.seller))
    assert r.status_code == 200


async def test_invite_cannot_grant_owner_and_needs_admin(client, world):
    body = {"email": "boss@example.com", "role": "owner", "name": "Boss"}
    r = await client.post(_invite_url(world.company_a), json=body, headers=auth_headers(world.owner))
    assert r.status_code == 422

    body["role"] = "seller"
    r = await client.post(_invite_url(world.company_a), json=body, headers=auth_headers(world.seller))
    assert r.status_code == 403


async def test_role_update_rules(client, world):
    url = _members_url(world.company_a, f"/{world.seller.id}/role")

    r = await client.patch(url, json={"role": "admin"}, headers=auth_headers(world.admin))
    assert r.status_code == 403

    r = await client.patch(url, json={"role": "admin"}, headers=auth_headers(world.owner))
    assert r.status_code == 200
    assert r.json()["data"]["role"] == "admin"

    r = await client.patch(
        _members_url(world.company_a, f"/{world.owner.id}/role"), json={"role": "admin"}, headers=auth_headers(world.owner)
    )
    assert r.status_code == 400

    r = await client.patch(
        _members_url(world.company_a, f"/{world.inventory.id}/role"), json={"role": "owner"}, headers=auth_headers(world.owner)
    )
    assert r.status_code == 422

    r = await client.patch(
        _members_url(world.company_a, f"/{world.owner_b.id}/role"), json={"role": "seller"}, headers=auth_headers(world.owner)
    )
    assert r.status_code == 404


async def test_remove_member_rules(client, world):
    headers = auth_headers(world.admin)

    r = await client.delete(_members_url(world.company_a, f"/{world.admin.id}"), headers=headers)
    assert r.status_code == 400

    r = await client.delete(_members_url(world.company_a, f"/{world.owner.id}"), headers=headers)
    assert r.status_code == 403

    r = await client.delete(_members_url(world.company_a, f"/{world.owner_b.id}"), headers=headers)
    assert r.status_code == 404

    r = await client.delete(_members_url(world.company_a, f"/{world.seller.id}"), headers=headers)
    assert r.status_code == 200
    assert r.json()["success"] is True

    # removed members lose access at once
    r = await client.get("/api/v1/warranties", headers=auth_headers(world.seller, world.company_a))
    assert r.status_code == 403
    assert r.json()["type"] == "NotMember"

    r = await client.get(_members_url(world.company_a), headers=headers)
    assert "seller@a.example.com" not in {m["email"] for m in r.json()["data"]}


async def test_reinvite_reactivates_membership(client, world):
    headers = auth_headers(world.admin)
    await client.delete(_members_url(world.company_a, f"/{world.seller.id}"), headers=headers)

    r = await client.post(_invite_url(world.company_a), json={"email": "seller@a.example.com", "role": "inventory"}, headers=headers)
    assert r.status_code == 201, r.text
    member = r.json()["data"]["member"]
    assert member["role"] == "inventory"
    assert member["is_active"] is True

    r = await client.get("/api/v1/warranties", headers=auth_headers(world.seller, world.company_a))
    assert r.status_code == 200
