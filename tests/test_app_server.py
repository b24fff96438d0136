"""Operator API, driven in-process through httpx's ASGI transport."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from upload_ledger import app_server
from upload_ledger.app_server import app, get_coordinator, get_ledger

API_HEADERS = {"X-Api-Key": app_server.API_KEY}


@pytest_asyncio.fixture
async def client(ledger, coordinator):
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def test_healthz(client):
    res = await client.get("/healthz")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


async def test_requires_api_key(client):
    res = await client.get("/v1/uploads/anything", headers={"X-Api-Key": "wrong"})
    assert res.status_code == 401


async def test_get_upload(client, ledger, upload_params):
    upload = await ledger.add_entry(upload_params)

    res = await client.get(f"/v1/uploads/{upload.id}", headers=API_HEADERS)

    assert res.status_code == 200
    body = res.json()
    assert body["id"] == upload.id
    assert body["provider_namespace"] == "global"
    assert body["part_list"] == []


async def test_get_missing_upload(client):
    res = await client.get("/v1/uploads/upld-u1-none", headers=API_HEADERS)
    assert res.status_code == 404


async def test_check_exists(client, ledger, upload_params):
    upload = await ledger.add_entry(upload_params)
    query = {"user_id": "u1", "file_id": "abc", "file_name": "x.png", "file_size": 100}

    hit = await client.get("/v1/uploads", params=query, headers=API_HEADERS)
    miss = await client.get(
        "/v1/uploads", params={**query, "file_size": 101}, headers=API_HEADERS
    )

    assert hit.status_code == 200
    assert hit.json()["id"] == upload.id
    assert miss.status_code == 404


async def test_delete_without_cleanup(client, ledger, residence, upload_params):
    upload = await ledger.add_entry(upload_params)

    res = await client.delete(
        f"/v1/uploads/{upload.id}", params={"cleanup": "false"}, headers=API_HEADERS
    )
    again = await client.delete(
        f"/v1/uploads/{upload.id}", params={"cleanup": "false"}, headers=API_HEADERS
    )

    assert res.status_code == 200
    assert again.status_code == 200
    residence.destroy.assert_not_awaited()
    assert await ledger.find(upload.id) is None


async def test_delete_with_cleanup(client, ledger, residence, upload_params):
    upload = await ledger.add_entry(upload_params)

    res = await client.delete(f"/v1/uploads/{upload.id}", headers=API_HEADERS)

    assert res.status_code == 200
    residence.destroy.assert_awaited_once()
    assert await ledger.find(upload.id) is None


async def test_delete_unresolved_residence_conflicts(client, ledger, upload_params):
    upload = await ledger.add_entry({**upload_params, "provider_name": "rackspace"})

    res = await client.delete(f"/v1/uploads/{upload.id}", headers=API_HEADERS)

    assert res.status_code == 409
    assert await ledger.find(upload.id) is not None


async def test_sweep_requires_admin_key(client, monkeypatch):
    monkeypatch.setattr(app_server, "ADMIN_KEY", "admin-secret")

    res = await client.post("/admin/sweep", headers={"Admin-Key": "nope"})

    assert res.status_code == 401


async def test_sweep_removes_old_uploads(client, ledger, backdate, monkeypatch, upload_params):
    monkeypatch.setattr(app_server, "ADMIN_KEY", "admin-secret")
    old = await ledger.add_entry(upload_params)
    fresh = await ledger.add_entry({**upload_params, "file_size": 5})
    await backdate(old.id, datetime.now(timezone.utc) - timedelta(days=3))

    res = await client.post(
        "/admin/sweep",
        params={"older_than_hours": 24, "policy": "remove"},
        headers={"X-Admin-Key": "admin-secret"},
    )

    assert res.status_code == 200
    assert res.json()["removed"] == [old.id]
    assert await ledger.find(fresh.id) is not None
