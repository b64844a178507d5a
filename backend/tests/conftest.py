"""
Shared test fixtures: file-backed SQLite async database + FastAPI AsyncClient.

Strategy:
1. Point DATABASE_URL at a throwaway SQLite file before anything loads
2. Import the app; routers and the security audit writer share that engine
3. Create all tables before each test, drop them after
"""
import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import datetime
from types import SimpleNamespace

# ── 1. Environment ──
_DB_DIR = tempfile.mkdtemp(prefix="policyportal-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["DEBUG"] = "false"
os.environ["EMAIL_DEMO_MODE"] = "true"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["AI_PROVIDER"] = "none"

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

# ── 2. Now import the app ──
from app.database import async_session, engine  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402
from app.models import (  # noqa: E402
    Base, Organization, Policy, PolicyPortalAssignment, Portal, PortalEmailRecipient, User, UserSession,
)
from app.services.security import hash_password  # noqa: E402

PASSWORD = "correct-horse-battery"


# ── Fixtures ──

@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


# ── Seed data helpers ──

@pytest_asyncio.fixture
async def seed(db: AsyncSession):
    """Two organizations, one user per role in the first, a foreign admin and a super admin.

    Every user gets a ready session; ``seed.headers[name]`` is its bearer header.
    """
    org = Organization(name="Acme Corp", slug="acme")
    other = Organization(name="Globex", slug="globex")
    db.add_all([org, other])
    await db.flush()

    pw = hash_password(PASSWORD)
    users = {
        "admin": User(organization_id=org.id, email="admin@acme.com", display_name="Ada Admin",
                      role="admin", password_hash=pw),
        "editor": User(organization_id=org.id, email="editor@acme.com", display_name="Eddie Editor",
                       role="editor", password_hash=pw),
        "user": User(organization_id=org.id, email="user@acme.com", display_name="Uma User",
                     role="user", password_hash=pw),
        "outsider": User(organization_id=other.id, email="admin@globex.com", display_name="Olga Outsider",
                         role="admin", password_hash=pw),
        "superadmin": User(organization_id=None, email="root@policyportal.com", display_name="Root",
                           role="admin", is_super_admin=True, password_hash=pw),
    }
    db.add_all(users.values())
    await db.flush()

    now = datetime.utcnow()
    for name, u in users.items():
        db.add(UserSession(id=f"token-{name}", user_id=u.id, created_at=now, last_accessed_at=now))
    await db.commit()

    return SimpleNamespace(
        password=PASSWORD,
        org_id=org.id,
        other_org_id=other.id,
        user_ids={name: u.id for name, u in users.items()},
        headers={name: {"Authorization": f"Bearer token-{name}"} for name in users},
    )


class Factory:
    """Direct-to-database builders for policies, portals and assignments."""

    def __init__(self, session: AsyncSession):
        self.s = session

    async def policy(self, organization_id: int, title: str = "Acceptable Use Policy",
                     status: str = "published", **kw) -> Policy:
        p = Policy(
            organization_id=organization_id,
            title=title,
            content=kw.pop("content", f"<p>{title} applies to everyone.</p>"),
            status=status,
            published_at=datetime.utcnow() if status == "published" else None,
            **kw,
        )
        self.s.add(p)
        await self.s.commit()
        await self.s.refresh(p)
        return p

    async def portal(self, organization_id: int, slug: str = "employees", access_type: str = "public",
                     password: str | None = None, recipients: tuple[str, ...] = (), **kw) -> Portal:
        p = Portal(
            organization_id=organization_id,
            name=kw.pop("name", slug.replace("-", " ").title() + " Portal"),
            slug=slug,
            access_type=access_type,
            password_hash=hash_password(password) if password else None,
            **kw,
        )
        self.s.add(p)
        await self.s.flush()
        for email in recipients:
            self.s.add(PortalEmailRecipient(portal_id=p.id, organization_id=organization_id, email=email))
        await self.s.commit()
        await self.s.refresh(p)
        return p

    async def assign(self, policy: Policy, *portals: Portal) -> None:
        for portal in portals:
            self.s.add(PolicyPortalAssignment(policy_id=policy.id, portal_id=portal.id))
        await self.s.commit()


@pytest_asyncio.fixture
async def make(db: AsyncSession) -> Factory:
    return Factory(db)
