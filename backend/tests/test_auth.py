"""Login, sessions, lockout and super admin impersonation."""
from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import delete, select

from app.models import LoginAttempt, SecurityAuditLog, SuperAdminImpersonationLog, UserSession
from app.services.auth import ATTEMPT_SUPERADMIN, LoginLocked, check_lockout


# ═══════════════════ LOGIN ═══════════════════

@pytest.mark.asyncio
async def test_login_returns_token_and_session(client: AsyncClient, seed):
    r = await client.post("/api/v1/auth/login", json={"email": "Editor@Acme.com", "password": seed.password})
    assert r.status_code == 200
    data = r.json()
    assert data["token"]
    assert data["role"] == "editor"
    assert data["organization_id"] == seed.org_id
    assert data["impersonation"]["type"] == "normal"

    r = await client.get("/api/v1/auth/session", headers={"Authorization": f"Bearer {data['token']}"})
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "editor@acme.com"
    assert r.json()["user"]["id"] == seed.user_ids["editor"]


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, seed, db):
    r = await client.post("/api/v1/auth/login", json={"email": "editor@acme.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid email or password"

    attempts = (await db.execute(select(LoginAttempt.success))).scalars().all()
    assert attempts == [False]
    events = (await db.execute(select(SecurityAuditLog.event_type))).scalars().all()
    assert "login_failed" in events


@pytest.mark.asyncio
async def test_login_unknown_user(client: AsyncClient, seed):
    r = await client.post("/api/v1/auth/login", json={"email": "ghost@acme.com", "password": seed.password})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_login_locked_after_repeated_failures(client: AsyncClient, seed):
    for _ in range(5):
        r = await client.post("/api/v1/auth/login", json={"email": "user@acme.com", "password": "wrong-password"})
        assert r.status_code == 401

    # Even the right password is refused while locked
    r = await client.post("/api/v1/auth/login", json={"email": "user@acme.com", "password": seed.password})
    assert r.status_code == 429
    assert "Too many failed attempts" in r.json()["detail"]

    # Other accounts are unaffected
    r = await client.post("/api/v1/auth/login", json={"email": "editor@acme.com", "password": seed.password})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_login_validation_error_shape(client: AsyncClient, seed):
    r = await client.post("/api/v1/auth/login", json={"email": "not-an-email", "password": seed.password})
    assert r.status_code == 400
    data = r.json()
    assert data["detail"] == "Validation failed"
    assert data["errors"][0]["field"] == "email"


# ═══════════════════ SESSION ═══════════════════

@pytest.mark.asyncio
async def test_session_requires_token(client: AsyncClient, seed):
    r = await client.get("/api/v1/auth/session")
    assert r.status_code == 401
    assert r.headers["www-authenticate"] == "Bearer"

    r = await client.get("/api/v1/auth/session", headers={"Authorization": "Bearer bogus"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_logout_invalidates_session(client: AsyncClient, seed):
    h = seed.headers["user"]
    r = await client.post("/api/v1/auth/logout", headers=h)
    assert r.status_code == 200
    r = await client.get("/api/v1/auth/session", headers=h)
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_expired_session_is_removed(client: AsyncClient, seed, db):
    row = await db.get(UserSession, "token-user")
    row.last_accessed_at = datetime.utcnow() - timedelta(days=30)
    await db.commit()

    r = await client.get("/api/v1/auth/session", headers=seed.headers["user"])
    assert r.status_code == 401
    remaining = (await db.execute(select(UserSession.id).where(UserSession.id == "token-user"))).first()
    assert remaining is None


# ═══════════════════ SUPER ADMIN ═══════════════════

@pytest.mark.asyncio
async def test_superadmin_login_rejects_regular_admin(client: AsyncClient, seed):
    r = await client.post("/api/v1/superadmin/login", json={"email": "admin@acme.com", "password": seed.password})
    assert r.status_code == 401


ROOT_EMAIL = "root@policyportal.com"


async def _record_failures(db, last_at: datetime, count: int = 5) -> None:
    """``count`` failed super admin logins one minute apart, ending at ``last_at``."""
    for i in range(count):
        db.add(LoginAttempt(email=ROOT_EMAIL, attempt_type=ATTEMPT_SUPERADMIN, success=False,
                            attempted_at=last_at - timedelta(minutes=count - 1 - i)))
    await db.commit()


@pytest.mark.asyncio
async def test_superadmin_locked_after_repeated_failures(client: AsyncClient, seed, db):
    for _ in range(5):
        r = await client.post("/api/v1/superadmin/login", json={"email": ROOT_EMAIL, "password": "wrong-password"})
        assert r.status_code == 401

    r = await client.post("/api/v1/superadmin/login", json={"email": ROOT_EMAIL, "password": seed.password})
    assert r.status_code == 429
    assert "30 minutes" in r.json()["detail"]

    events = (await db.execute(
        select(SecurityAuditLog.event_type).where(SecurityAuditLog.email == ROOT_EMAIL)
    )).scalars().all()
    assert events.count("superadmin_login_failed") == 5
    assert "login_locked" in events


@pytest.mark.asyncio
async def test_superadmin_lock_outlasts_failure_window(db, seed):
    last = datetime(2025, 3, 1, 9, 0)
    await _record_failures(db, last)

    # The failures have left the 15 minute window but the 30 minute lock still runs
    with pytest.raises(LoginLocked) as exc:
        await check_lockout(db, ROOT_EMAIL, ATTEMPT_SUPERADMIN, now=last + timedelta(minutes=20))
    assert exc.value.remaining_minutes == 10

    await check_lockout(db, ROOT_EMAIL, ATTEMPT_SUPERADMIN, now=last + timedelta(minutes=31))


@pytest.mark.asyncio
async def test_superadmin_lock_expires(client: AsyncClient, seed, db):
    await _record_failures(db, datetime.utcnow() - timedelta(minutes=20))
    r = await client.post("/api/v1/superadmin/login", json={"email": ROOT_EMAIL, "password": seed.password})
    assert r.status_code == 429

    await db.execute(delete(LoginAttempt))
    await _record_failures(db, datetime.utcnow() - timedelta(minutes=31))
    r = await client.post("/api/v1/superadmin/login", json={"email": ROOT_EMAIL, "password": seed.password})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_spread_out_failures_do_not_lock(db, seed):
    # Five failures, but never five inside one 15 minute window
    start = datetime(2025, 3, 1, 9, 0)
    for i in range(5):
        db.add(LoginAttempt(email=ROOT_EMAIL, attempt_type=ATTEMPT_SUPERADMIN, success=False,
                            attempted_at=start + timedelta(minutes=5 * i)))
    await db.commit()
    await check_lockout(db, ROOT_EMAIL, ATTEMPT_SUPERADMIN, now=start + timedelta(minutes=21))


@pytest.mark.asyncio
async def test_superadmin_login_replaces_previous_sessions(client: AsyncClient, seed, db):
    r = await client.post("/api/v1/superadmin/login",
                          json={"email": "root@policyportal.com", "password": seed.password})
    assert r.status_code == 200
    token = r.json()["token"]
    assert token != "token-superadmin"

    sessions = (await db.execute(
        select(UserSession.id).where(UserSession.user_id == seed.user_ids["superadmin"])
    )).scalars().all()
    assert sessions == [token]


@pytest.mark.asyncio
async def test_superadmin_needs_organization_context(client: AsyncClient, seed):
    r = await client.get("/api/v1/policies", headers=seed.headers["superadmin"])
    assert r.status_code == 400
    assert r.json()["detail"] == "Please select an organization to impersonate first."


@pytest.mark.asyncio
async def test_list_organizations_super_admin_only(client: AsyncClient, seed):
    r = await client.get("/api/v1/superadmin/organizations", headers=seed.headers["admin"])
    assert r.status_code == 403

    r = await client.get("/api/v1/superadmin/organizations", headers=seed.headers["superadmin"])
    assert r.status_code == 200
    by_slug = {o["slug"]: o for o in r.json()}
    assert by_slug["acme"]["user_count"] == 3
    assert by_slug["globex"]["user_count"] == 1


@pytest.mark.asyncio
async def test_impersonate_and_stop(client: AsyncClient, seed, db):
    h = seed.headers["superadmin"]
    r = await client.post("/api/v1/superadmin/impersonate", headers=h,
                          json={"organization_id": seed.org_id, "user_id": seed.user_ids["editor"]})
    assert r.status_code == 200
    data = r.json()
    assert data["impersonation"]["type"] == "impersonating"
    assert data["impersonation"]["effective_org_id"] == seed.org_id
    assert data["impersonation"]["organization_name"] == "Acme Corp"
    assert data["role"] == "editor"

    # Acts inside the organization with the target user's role
    r = await client.get("/api/v1/policies", headers=h)
    assert r.status_code == 200
    r = await client.get("/api/v1/portals", headers=h)
    assert r.status_code == 403

    # Switching ends the first impersonation
    r = await client.post("/api/v1/superadmin/impersonate", headers=h, json={"organization_id": seed.other_org_id})
    assert r.json()["role"] == "admin"
    assert r.json()["organization_id"] == seed.other_org_id

    r = await client.post("/api/v1/superadmin/stop-impersonate", headers=h)
    assert r.status_code == 200
    assert r.json()["impersonation"]["type"] == "normal"
    assert r.json()["organization_id"] is None

    reasons = (await db.execute(
        select(SuperAdminImpersonationLog.end_reason).order_by(SuperAdminImpersonationLog.id)
    )).scalars().all()
    assert reasons == ["switched", "manual"]


@pytest.mark.asyncio
async def test_impersonate_user_from_other_organization(client: AsyncClient, seed):
    r = await client.post("/api/v1/superadmin/impersonate", headers=seed.headers["superadmin"],
                          json={"organization_id": seed.org_id, "user_id": seed.user_ids["outsider"]})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_impersonation_expires(client: AsyncClient, seed, db):
    db.add(SuperAdminImpersonationLog(
        super_admin_user_id=seed.user_ids["superadmin"],
        target_organization_id=seed.org_id,
        started_at=datetime.utcnow() - timedelta(hours=9),
    ))
    await db.commit()

    r = await client.get("/api/v1/auth/session", headers=seed.headers["superadmin"])
    assert r.status_code == 200
    assert r.json()["impersonation"]["type"] == "normal"
    assert r.json()["organization_id"] is None

    reason = (await db.execute(select(SuperAdminImpersonationLog.end_reason))).scalar_one()
    assert reason == "expired"


@pytest.mark.asyncio
async def test_regular_admin_cannot_impersonate(client: AsyncClient, seed):
    r = await client.post("/api/v1/superadmin/impersonate", headers=seed.headers["admin"],
                          json={"organization_id": seed.other_org_id})
    assert r.status_code == 403
