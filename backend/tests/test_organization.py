"""Organization variables, user management and the change trail."""
import pytest
from httpx import AsyncClient


# ═══════════════════ VARIABLES ═══════════════════

@pytest.mark.asyncio
async def test_replace_variables(client: AsyncClient, seed):
    h = seed.headers["admin"]
    r = await client.put("/api/v1/organization-variables", headers=h, json={"variables": [
        {"variable_name": "legalName", "variable_value": "Acme Corporation Ltd."},
        {"variable_name": "address", "variable_value": "1 Main St"},
    ]})
    assert r.status_code == 200
    assert [v["variable_name"] for v in r.json()] == ["address", "legalName"]

    r = await client.put("/api/v1/organization-variables", headers=h, json={"variables": [
        {"variable_name": "phone", "variable_value": "555-0100"},
    ]})
    assert r.json() == [{"variable_name": "phone", "variable_value": "555-0100"}]

    # Readable by any member, scoped to the organization
    r = await client.get("/api/v1/organization-variables", headers=seed.headers["user"])
    assert [v["variable_name"] for v in r.json()] == ["phone"]
    r = await client.get("/api/v1/organization-variables", headers=seed.headers["outsider"])
    assert r.json() == []


@pytest.mark.asyncio
async def test_variables_validation(client: AsyncClient, seed):
    h = seed.headers["admin"]
    r = await client.put("/api/v1/organization-variables", headers=h, json={"variables": [
        {"variable_name": "dup", "variable_value": "a"},
        {"variable_name": "dup", "variable_value": "b"},
    ]})
    assert r.status_code == 400
    assert r.json()["errors"][0]["message"] == "Variable names must be unique"

    r = await client.put("/api/v1/organization-variables", headers=h, json={"variables": [
        {"variable_name": "has space", "variable_value": "x"},
    ]})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_variables_update_requires_admin(client: AsyncClient, seed):
    r = await client.put("/api/v1/organization-variables", headers=seed.headers["editor"], json={"variables": []})
    assert r.status_code == 403


# ═══════════════════ USERS ═══════════════════

@pytest.mark.asyncio
async def test_user_management(client: AsyncClient, seed):
    h = seed.headers["admin"]
    r = await client.get("/api/v1/users", headers=h)
    assert {u["email"] for u in r.json()} == {"admin@acme.com", "editor@acme.com", "user@acme.com"}

    r = await client.post("/api/v1/users", headers=h, json={
        "email": "New.Hire@Acme.com", "display_name": "New Hire", "role": "user", "password": "welcome-aboard",
    })
    assert r.status_code == 201
    new_id = r.json()["id"]
    assert r.json()["email"] == "new.hire@acme.com"

    r = await client.post("/api/v1/auth/login", json={"email": "new.hire@acme.com", "password": "welcome-aboard"})
    assert r.status_code == 200

    r = await client.post("/api/v1/users", headers=h, json={
        "email": "new.hire@acme.com", "display_name": "Again", "password": "welcome-aboard",
    })
    assert r.status_code == 409

    r = await client.put(f"/api/v1/users/{new_id}/role", headers=h, json={"role": "editor"})
    assert r.json()["role"] == "editor"

    r = await client.delete(f"/api/v1/users/{new_id}", headers=h)
    assert r.json() == {"status": "deleted", "id": new_id}


@pytest.mark.asyncio
async def test_admin_cannot_demote_or_delete_self(client: AsyncClient, seed):
    h = seed.headers["admin"]
    me = seed.user_ids["admin"]
    assert (await client.put(f"/api/v1/users/{me}/role", headers=h, json={"role": "user"})).status_code == 400
    assert (await client.delete(f"/api/v1/users/{me}", headers=h)).status_code == 400


@pytest.mark.asyncio
async def test_users_are_organization_scoped(client: AsyncClient, seed):
    r = await client.delete(f"/api/v1/users/{seed.user_ids['outsider']}", headers=seed.headers["admin"])
    assert r.status_code == 404
    r = await client.get("/api/v1/users", headers=seed.headers["editor"])
    assert r.status_code == 403


# ═══════════════════ AUDIT LOG ═══════════════════

@pytest.mark.asyncio
async def test_audit_log(client: AsyncClient, seed):
    h = seed.headers["admin"]
    r = await client.post("/api/v1/portals", headers=h, json={"name": "Employee Portal", "slug": "employees"})
    portal_id = r.json()["id"]
    await client.post("/api/v1/policies", headers=h, json={
        "title": "Code of Conduct", "content": "<p>Be kind to each other.</p>",
    })

    r = await client.get("/api/v1/audit-log", headers=h)
    assert r.status_code == 200
    assert r.json()["total"] == 2
    assert {e["module"] for e in r.json()["entries"]} == {"portals", "policies"}

    r = await client.get("/api/v1/audit-log", headers=h, params={"entity_type": "portal", "entity_id": portal_id})
    entries = r.json()["entries"]
    assert len(entries) == 1
    assert entries[0]["action"] == "create"
    assert entries[0]["user_id"] == seed.user_ids["admin"]
    assert entries[0]["user_email"] == "admin@acme.com"

    # Other organizations see nothing
    r = await client.get("/api/v1/audit-log", headers=seed.headers["outsider"])
    assert r.json()["total"] == 0
    assert (await client.get("/api/v1/audit-log", headers=seed.headers["editor"])).status_code == 403
