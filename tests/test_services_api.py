from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from backoffice.config import settings
from backoffice.core.dates import business_today
from backoffice.core.errors import Conflict
from backoffice.models.service_history import ServiceHistory
from backoffice.services.service_history_service import ServiceHistoryService
from backoffice.services.warranty_service import WarrantyService
from tests.conftest import auth_headers, make_sale


pytestmark = pytest.mark.anyio


async def _open(client, warranty_id, headers, reason="Does not turn on"):
    return await client.post(
        f"/api/v1/warranties/{warranty_id}/services",
        json={"reason": reason, "observations": "Scratched case", "photos": ["photos/1.jpg"]},
        headers=headers,
    )


async def _advance(client, service_id, status, headers):
    return await client.patch(f"/api/v1/services/{service_id}/status", json={"status": status}, headers=headers)


async def test_full_workflow_then_reopen(client, db, world):
    sale = await make_sale(db, world.company_a, world.seller, serials=["SN-WF"])
    warranty_id = sale.warranties[0].id
    headers = auth_headers(world.seller, world.company_a)

    r = await _open(client, warranty_id, headers)
    assert r.status_code == 201, r.text
    service = r.json()["data"]
    assert service["status"] == "received"
    assert service["serial_number"] == "SN-WF"
    assert service["photos"] == ["photos/1.jpg"]
    assert service["next_statuses"] == ["in_repair"]

    r = await _advance(client, service["id"], "in_repair", headers)
    assert r.status_code == 200
    assert r.json()["data"]["next_statuses"] == ["delivered"]

    r = await _advance(client, service["id"], "delivered", headers)
    assert r.status_code == 200
    delivered = r.json()["data"]
    assert delivered["status"] == "delivered"
    assert delivered["delivered_at"] is not None
    assert delivered["next_statuses"] == []

    r = await _advance(client, service["id"], "in_repair", headers)
    assert r.status_code == 422
    assert r.json()["type"] == "InvalidTransition"

    r = await _open(client, warranty_id, headers, reason="Second visit")
    assert r.status_code == 201
    assert r.json()["data"]["id"] != service["id"]

    r = await client.get(f"/api/v1/warranties/{warranty_id}/services", headers=headers)
    assert [s["reason"] for s in r.json()["data"]] == ["Second visit", "Does not turn on"]


async def test_second_open_service_conflicts(client, db, world):
    sale = await make_sale(db, world.company_a, world.seller)
    warranty_id = sale.warranties[0].id
    headers = auth_headers(world.seller, world.company_a)

    first = await _open(client, warranty_id, headers)
    assert first.status_code == 201

    r = await _open(client, warranty_id, headers)
    assert r.status_code == 409
    assert r.json()["type"] == "Conflict"
    assert r.json()["details"]["open_service_id"] == first.json()["data"]["id"]

    # still conflicting while in repair
    await _advance(client, first.json()["data"]["id"], "in_repair", headers)
    assert (await _open(client, warranty_id, headers)).status_code == 409


@pytest.mark.parametrize("target", ["delivered", "received"])
async def test_skip_and_same_status_rejected(client, db, world, target):
    sale = await make_sale(db, world.company_a, world.seller)
    headers = auth_headers(world.seller, world.company_a)
    service_id = (await _open(client, sale.warranties[0].id, headers)).json()["data"]["id"]

    r = await _advance(client, service_id, target, headers)
    assert r.status_code == 422
    assert r.json()["details"]["allowed"] == ["in_repair"]

    r = await client.get(f"/api/v1/services/{service_id}", headers=headers)
    assert r.json()["data"]["status"] == "received"


async def test_unknown_status_is_a_schema_error(client, db, world):
    sale = await make_sale(db, world.company_a, world.seller)
    headers = auth_headers(world.seller, world.company_a)
    service_id = (await _open(client, sale.warranties[0].id, headers)).json()["data"]["id"]

    assert (await _advance(client, service_id, "cancelled", headers)).status_code == 422


async def test_reason_is_required(client, db, world):
    sale = await make_sale(db, world.company_a, world.seller)
    r = await client.post(
        f"/api/v1/warranties/{sale.warranties[0].id}/services",
        json={"observations": "no reason"},
        headers=auth_headers(world.seller, world.company_a),
    )
    assert r.status_code == 422


async def test_blank_reason_is_rejected(client, db, world):
    sale = await make_sale(db, world.company_a, world.seller)
    headers = auth_headers(world.seller, world.company_a)

    r = await _open(client, sale.warranties[0].id, headers, reason="   ")
    assert r.status_code == 422

    r = await _open(client, sale.warranties[0].id, headers, reason="  Cracked screen  ")
    assert r.status_code == 201
    assert r.json()["data"]["reason"] == "Cracked screen"


async def test_inventory_can_read_but_not_open(client, db, world):
    sale = await make_sale(db, world.company_a, world.seller)
    warranty_id = sale.warranties[0].id

    r = await _open(client, warranty_id, auth_headers(world.inventory, world.company_a))
    assert r.status_code == 403

    service_id = (await _open(client, warranty_id, auth_headers(world.admin, world.company_a))).json()["data"]["id"]
    inventory = auth_headers(world.inventory, world.company_a)
    assert (await client.get(f"/api/v1/services/{service_id}", headers=inventory)).status_code == 200
    assert (await _advance(client, service_id, "in_repair", inventory)).status_code == 403


async def test_service_is_tenant_scoped(client, db, world):
    sale = await make_sale(db, world.company_a, world.seller, serials=["SN-SCOPED"])
    headers = auth_headers(world.seller, world.company_a)
    service_id = (await _open(client, sale.warranties[0].id, headers)).json()["data"]["id"]

    headers_b = auth_headers(world.owner_b, world.company_b)
    assert (await client.get(f"/api/v1/services/{service_id}", headers=headers_b)).status_code == 404
    assert (await _advance(client, service_id, "in_repair", headers_b)).status_code == 404
    r = await client.get("/api/v1/services/serial/SN-SCOPED", headers=headers_b)
    assert r.json()["data"] == []


async def test_deactivated_warranty_accepts_service_when_allowed(client, db, world, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_SERVICE_ON_DEACTIVATED_WARRANTY", True)
    sale = await make_sale(db, world.company_a, world.seller)
    warranty_id = sale.warranties[0].id

    await client.post(f"/api/v1/warranties/{warranty_id}/deactivate", headers=auth_headers(world.owner, world.company_a))
    r = await _open(client, warranty_id, auth_headers(world.seller, world.company_a))
    assert r.status_code == 201


async def test_deactivated_warranty_rejects_service_when_disallowed(client, db, world, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_SERVICE_ON_DEACTIVATED_WARRANTY", False)
    sale = await make_sale(db, world.company_a, world.seller)
    warranty_id = sale.warranties[0].id

    await client.post(f"/api/v1/warranties/{warranty_id}/deactivate", headers=auth_headers(world.owner, world.company_a))
    r = await _open(client, warranty_id, auth_headers(world.seller, world.company_a))
    assert r.status_code == 409
    assert "deactivated" in r.json()["error"]


async def test_policy_flag_can_be_set_per_service(db, world):
    sale = await make_sale(db, world.company_a, world.seller)
    warranty_id = sale.warranties[0].id
    await WarrantyService(db).deactivate(warranty_id, world.company_a.id)
    await db.commit()

    with pytest.raises(Conflict):
        await ServiceHistoryService(db, allow_deactivated=False).open(warranty_id, world.company_a.id, reason="x")

    opened = await ServiceHistoryService(db, allow_deactivated=True).open(warranty_id, world.company_a.id, reason="x")
    assert opened.status == "received"


async def test_store_rejects_two_open_services(db, world):
    sale = await make_sale(db, world.company_a, world.seller, serials=["SN-IDX"])
    warranty_id = sale.warranties[0].id

    for reason in ("first", "second"):
        db.add(
            ServiceHistory(
                company_id=world.company_a.id,
                warranty_id=warranty_id,
                serial_number="SN-IDX",
                status="received",
                reason=reason,
            )
        )
    with pytest.raises(IntegrityError):
        await db.flush()
    await db.rollback()


async def test_store_allows_open_after_delivered(db, world):
    sale = await make_sale(db, world.company_a, world.seller, serials=["SN-IDX2"])
    warranty_id = sale.warranties[0].id

    db.add(ServiceHistory(company_id=world.company_a.id, warranty_id=warranty_id,
                          serial_number="SN-IDX2", status="delivered", reason="old"))
    db.add(ServiceHistory(company_id=world.company_a.id, warranty_id=warranty_id,
                          serial_number="SN-IDX2", status="received", reason="new"))
    await db.flush()
    await db.commit()


async def test_statistics_and_serial_lookup(client, db, world):
    first = await make_sale(db, world.company_a, world.seller, serials=["SN-S1"])
    second = await make_sale(db, world.company_a, world.seller, serials=["SN-S2"])
    headers = auth_headers(world.seller, world.company_a)

    s1 = (await _open(client, first.warranties[0].id, headers)).json()["data"]["id"]
    await _open(client, second.warranties[0].id, headers)
    await _advance(client, s1, "in_repair", headers)

    r = await client.get("/api/v1/services/statistics", headers=headers)
    assert r.json()["data"] == {"total": 2, "received": 1, "in_repair": 1, "delivered": 0, "open": 2}

    r = await client.get("/api/v1/services/serial/SN-S1", headers=headers)
    assert [s["id"] for s in r.json()["data"]] == [s1]


async def _seed_services(client, db, world):
    headers = auth_headers(world.seller, world.company_a)
    ids = {}
    for serial, customer in (("SN-L1", "Maria Perez"), ("SN-L2", "Jose Ramirez"), ("SN-L3", "Maria Lopez")):
        sale = await make_sale(db, world.company_a, world.seller, customer_name=customer, serials=[serial])
        ids[serial] = (await _open(client, sale.warranties[0].id, headers)).json()["data"]["id"]
    await _advance(client, ids["SN-L2"], "in_repair", headers)
    return headers


async def test_service_list_filters(client, db, world):
    headers = await _seed_services(client, db, world)

    async def serials(query=""):
        r = await client.get(f"/api/v1/services?sort_by=serial_number&sort_order=asc{query}", headers=headers)
        assert r.status_code == 200, r.text
        return [s["serial_number"] for s in r.json()["data"]]

    assert await serials() == ["SN-L1", "SN-L2", "SN-L3"]
    assert await serials("&status=in_repair") == ["SN-L2"]
    assert await serials("&customer_name=maria") == ["SN-L1", "SN-L3"]
    assert await serials("&serial_number=l2") == ["SN-L2"]
    assert await serials("&customer_name=maria&status=received") == ["SN-L1", "SN-L3"]
    assert await serials("&status=delivered") == []


async def test_service_list_entry_date_range(client, db, world):
    headers = await _seed_services(client, db, world)
    today = business_today()

    async def total(query):
        r = await client.get(f"/api/v1/services?{query}", headers=headers)
        assert r.status_code == 200, r.text
        return r.json()["pagination"]["total"]

    assert await total(f"start_date={today}&end_date={today}") == 3
    assert await total(f"end_date={today - timedelta(days=1)}") == 0
    assert await total(f"start_date={today + timedelta(days=1)}") == 0

    r = await client.get(f"/api/v1/services?start_date={today}&end_date={today - timedelta(days=1)}", headers=headers)
    assert r.status_code == 400
    assert r.json()["type"] == "ValidationError"


async def test_service_list_pagination_and_scope(client, db, world):
    headers = await _seed_services(client, db, world)

    seen = []
    for page, expected in ((1, 2), (2, 1), (3, 0)):
        r = await client.get(f"/api/v1/services?page={page}&limit=2", headers=headers)
        body = r.json()
        assert len(body["data"]) == expected
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["totalPages"] == 2
        seen.extend(s["id"] for s in body["data"])
    assert len(set(seen)) == 3

    r = await client.get("/api/v1/services", headers=auth_headers(world.owner_b, world.company_b))
    assert r.json()["data"] == [] and r.json()["pagination"]["total"] == 0

    r = await client.get("/api/v1/services", headers=auth_headers(world.inventory, world.company_a))
    assert r.status_code == 200


async def test_service_list_serial_filter_is_literal(client, db, world):
    headers = await _seed_services(client, db, world)

    r = await client.get("/api/v1/services?serial_number=%25", headers=headers)
    assert r.json()["pagination"]["total"] == 0
    r = await client.get("/api/v1/services?serial_number=SN_L", headers=headers)
    assert r.json()["pagination"]["total"] == 0
