"""Portal administration: CRUD, assignments and the legacy migration."""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models import AuditLog, Portal


def _portal_body(**overrides) -> dict:
    base = {"name": "Employee Portal", "slug": "employees", "access_type": "public"}
    base.update(overrides)
    return base


@pytest.mark.asyncio
async def test_create_portal(client: AsyncClient, seed, db):
    r = await client.post("/api/v1/portals", headers=seed.headers["admin"], json=_portal_body(
        email_recipients=["Jane@Acme.com", "jane@acme.com", "joe@acme.com"],
        acknowledgment_mode="email", requires_acknowledgment=True,
    ))
    assert r.status_code == 201
    data = r.json()
    assert data["slug"] == "employees"
    assert data["organization_id"] == seed.org_id
    assert data["has_password"] is False
    assert data["email_recipients"] == ["jane@acme.com", "joe@acme.com"]

    actions = (await db.execute(select(AuditLog.action).where(AuditLog.entity_type == "portal"))).scalars().all()
    assert actions == ["create"]


@pytest.mark.asyncio
async def test_create_password_portal_hashes_password(client: AsyncClient, seed, db):
    r = await client.post("/api/v1/portals", headers=seed.headers["admin"],
                          json=_portal_body(slug="board", access_type="password", password="board-secret"))
    assert r.status_code == 201
    assert r.json()["has_password"] is True
    assert "password" not in r.json()

    stored = (await db.execute(select(Portal.password_hash))).scalar_one()
    assert stored and stored != "board-secret"


@pytest.mark.asyncio
async def test_password_portal_requires_long_password(client: AsyncClient, seed):
    r = await client.post("/api/v1/portals", headers=seed.headers["admin"],
                          json=_portal_body(access_type="password", password="short"))
    assert r.status_code == 400
    assert "at least 8 characters" in r.json()["errors"][0]["message"]

    r = await client.post("/api/v1/portals", headers=seed.headers["admin"], json=_portal_body(access_type="password"))
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_role_based_portal_requires_roles(client: AsyncClient, seed):
    r = await client.post("/api/v1/portals", headers=seed.headers["admin"], json=_portal_body(access_type="role_based"))
    assert r.status_code == 400
    r = await client.post("/api/v1/portals", headers=seed.headers["admin"],
                          json=_portal_body(access_type="role_based", allowed_roles=["editor"]))
    assert r.status_code == 201
    assert r.json()["allowed_roles"] == ["editor"]


@pytest.mark.asyncio
@pytest.mark.parametrize("slug", ["admin", "api", "_internal", "_system", "Employees", "with space", "-leading", "ab"])
async def test_invalid_or_reserved_slug(client: AsyncClient, seed, slug):
    r = await client.post("/api/v1/portals", headers=seed.headers["admin"], json=_portal_body(slug=slug))
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_duplicate_slug(client: AsyncClient, seed):
    h = seed.headers["admin"]
    assert (await client.post("/api/v1/portals", headers=h, json=_portal_body())).status_code == 201
    r = await client.post("/api/v1/portals", headers=h, json=_portal_body(name="Another"))
    assert r.status_code == 409

    # Same slug in another organization is fine
    r = await client.post("/api/v1/portals", headers=seed.headers["outsider"], json=_portal_body())
    assert r.status_code == 201


@pytest.mark.asyncio
async def test_portal_management_requires_admin(client: AsyncClient, seed):
    r = await client.post("/api/v1/portals", headers=seed.headers["editor"], json=_portal_body())
    assert r.status_code == 403
    r = await client.get("/api/v1/portals", headers=seed.headers["user"])
    assert r.status_code == 403
    r = await client.get("/api/v1/portals")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_list_portals(client: AsyncClient, seed, make):
    await make.portal(seed.org_id, "employees", name="Employee Portal")
    await make.portal(seed.org_id, "board", name="Board Portal", access_type="password", password="board-secret")
    await make.portal(seed.other_org_id, "foreign", name="Foreign Portal")

    r = await client.get("/api/v1/portals", headers=seed.headers["admin"])
    data = r.json()
    assert data["total"] == 2
    assert [p["name"] for p in data["portals"]] == ["Board Portal", "Employee Portal"]

    r = await client.get("/api/v1/portals", headers=seed.headers["admin"], params={"access_type": "password"})
    assert [p["slug"] for p in r.json()["portals"]] == ["board"]

    r = await client.get("/api/v1/portals", headers=seed.headers["admin"], params={"search": "EMPLOY"})
    assert [p["slug"] for p in r.json()["portals"]] == ["employees"]


@pytest.mark.asyncio
async def test_get_portal_from_other_organization(client: AsyncClient, seed, make):
    foreign = await make.portal(seed.other_org_id, "foreign")
    r = await client.get(f"/api/v1/portals/{foreign.id}", headers=seed.headers["admin"])
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_update_portal(client: AsyncClient, seed, make):
    portal = await make.portal(seed.org_id, "employees", recipients=("old@acme.com",))
    h = seed.headers["admin"]

    r = await client.put(f"/api/v1/portals/{portal.id}", headers=h,
                         json={"name": "Staff Portal", "email_recipients": ["new@acme.com"]})
    assert r.status_code == 200
    assert r.json()["name"] == "Staff Portal"
    assert r.json()["email_recipients"] == ["new@acme.com"]

    # Switching to password access needs a password
    r = await client.put(f"/api/v1/portals/{portal.id}", headers=h, json={"access_type": "password"})
    assert r.status_code == 400
    r = await client.put(f"/api/v1/portals/{portal.id}", headers=h,
                         json={"access_type": "password", "password": "new-secret-1"})
    assert r.status_code == 200
    assert r.json()["has_password"] is True

    # Leaving password access clears the stored hash
    r = await client.put(f"/api/v1/portals/{portal.id}", headers=h, json={"access_type": "public"})
    assert r.json()["has_password"] is False


@pytest.mark.asyncio
async def test_update_portal_slug_conflict(client: AsyncClient, seed, make):
    await make.portal(seed.org_id, "employees")
    board = await make.portal(seed.org_id, "board")
    r = await client.put(f"/api/v1/portals/{board.id}", headers=seed.headers["admin"], json={"slug": "employees"})
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_delete_portal(client: AsyncClient, seed, make):
    portal = await make.portal(seed.org_id, "employees", recipients=("jane@acme.com",))
    policy = await make.policy(seed.org_id)
    await make.assign(policy, portal)
    h = seed.headers["admin"]

    r = await client.delete(f"/api/v1/portals/{portal.id}", headers=h)
    assert r.status_code == 200
    assert r.json() == {"status": "deleted", "id": portal.id}
    assert (await client.get(f"/api/v1/portals/{portal.id}", headers=h)).status_code == 404

    # The policy itself survives
    assert (await client.get(f"/api/v1/policies/{policy.id}", headers=h)).status_code == 200


# ═══════════════════ ASSIGNMENTS ═══════════════════

@pytest.mark.asyncio
async def test_assignments(client: AsyncClient, seed, make):
    portal = await make.portal(seed.org_id, "employees")
    a = await make.policy(seed.org_id, "Alpha Policy")
    b = await make.policy(seed.org_id, "Beta Policy", status="draft")
    h = seed.headers["admin"]

    r = await client.get(f"/api/v1/portals/{portal.id}/available-policies", headers=h)
    assert [p["title"] for p in r.json()] == ["Alpha Policy", "Beta Policy"]

    r = await client.post(f"/api/v1/portals/{portal.id}/assignments", headers=h, json={"assignments": [
        {"policy_id": a.id, "action": "add"},
        {"policy_id": b.id, "action": "add"},
        {"policy_id": a.id, "action": "add"},
    ]})
    assert r.status_code == 200
    assert r.json() == {"added": 2, "removed": 0}

    r = await client.get(f"/api/v1/portals/{portal.id}/assignments", headers=h)
    assert [p["title"] for p in r.json()] == ["Alpha Policy", "Beta Policy"]
    r = await client.get(f"/api/v1/portals/{portal.id}", headers=h)
    assert r.json()["policy_count"] == 2
    assert r.json()["published_policy_count"] == 1

    r = await client.post(f"/api/v1/portals/{portal.id}/assignments", headers=h,
                          json={"assignments": [{"policy_id": b.id, "action": "remove"}]})
    assert r.json() == {"added": 0, "removed": 1}
    r = await client.get(f"/api/v1/portals/{portal.id}/available-policies", headers=h)
    assert [p["title"] for p in r.json()] == ["Beta Policy"]


@pytest.mark.asyncio
async def test_assignments_reject_foreign_policies(client: AsyncClient, seed, make):
    portal = await make.portal(seed.org_id, "employees")
    foreign = await make.policy(seed.other_org_id, "Globex Policy")
    r = await client.post(f"/api/v1/portals/{portal.id}/assignments", headers=seed.headers["admin"],
                          json={"assignments": [{"policy_id": foreign.id, "action": "add"}]})
    assert r.status_code == 400


# ═══════════════════ MIGRATION ═══════════════════

@pytest.mark.asyncio
async def test_migration(client: AsyncClient, seed, make):
    await make.policy(seed.org_id, "Privacy Notice", is_public=True)
    await make.policy(seed.org_id, "Expense Policy")
    await make.policy(seed.org_id, "Leave Policy", status="draft")
    h = seed.headers["admin"]

    r = await client.get("/api/v1/portals/migration/status", headers=h)
    assert r.json()["needs_migration"] is True
    assert r.json()["unassigned_policies"] == 3
    assert r.json()["public_portal_id"] is None

    r = await client.post("/api/v1/portals/migration/start", headers=h)
    assert r.status_code == 200
    data = r.json()
    assert data["public_portal_created"] is True
    assert data["internal_portal_created"] is True
    assert data["assigned_to_public"] == 1
    assert data["assigned_to_internal"] == 2

    internal = (await client.get(f"/api/v1/portals/{data['internal_portal_id']}", headers=h)).json()
    assert internal["access_type"] == "authenticated"

    r = await client.get("/api/v1/portals/migration/status", headers=h)
    assert r.json()["needs_migration"] is False

    # Running again reuses the portals and assigns nothing
    r = await client.post("/api/v1/portals/migration/start", headers=h)
    assert r.json()["public_portal_created"] is False
    assert r.json()["assigned_to_public"] + r.json()["assigned_to_internal"] == 0
    assert r.json()["message"] == "No policies needed migration."
