"""Document layout settings: organization/portal precedence and rendering."""
from datetime import date

import pytest
from httpx import AsyncClient

from app.services.document_layout import DEFAULT_LAYOUT


@pytest.mark.asyncio
async def test_defaults(client: AsyncClient, seed):
    r = await client.get("/api/v1/document-layout", headers=seed.headers["user"])
    assert r.status_code == 200
    assert r.json()["source"] == "default"
    assert r.json()["settings"] == DEFAULT_LAYOUT


@pytest.mark.asyncio
async def test_save_requires_admin(client: AsyncClient, seed):
    r = await client.post("/api/v1/document-layout", headers=seed.headers["editor"],
                          json={"header_template": "/organization.name/"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_portal_overrides_organization(client: AsyncClient, seed, make):
    portal = await make.portal(seed.org_id, "employees")
    h = seed.headers["admin"]

    r = await client.post("/api/v1/document-layout", headers=h,
                          json={"header_template": "Org header", "date_format": "DD/MM/YYYY"})
    assert r.status_code == 200
    assert r.json()["source"] == "organization"

    # A second save merges into the stored organization layer
    r = await client.post("/api/v1/document-layout", headers=h, json={"footer_template": "Org footer"})
    assert r.json()["settings"]["header_template"] == "Org header"
    assert r.json()["settings"]["footer_template"] == "Org footer"

    r = await client.post("/api/v1/document-layout", headers=h,
                          json={"portal_id": portal.id, "header_template": "Portal header"})
    assert r.json()["source"] == "portal"

    r = await client.get("/api/v1/document-layout", headers=h, params={"portal_id": portal.id})
    settings = r.json()["settings"]
    assert settings["header_template"] == "Portal header"
    assert settings["footer_template"] == "Org footer"
    assert settings["date_format"] == "DD/MM/YYYY"

    r = await client.get("/api/v1/document-layout", headers=h)
    assert r.json()["settings"]["header_template"] == "Org header"


@pytest.mark.asyncio
async def test_foreign_portal_rejected(client: AsyncClient, seed, make):
    foreign = await make.portal(seed.other_org_id, "foreign")
    r = await client.get("/api/v1/document-layout", headers=seed.headers["admin"], params={"portal_id": foreign.id})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_invalid_date_format(client: AsyncClient, seed):
    r = await client.post("/api/v1/document-layout", headers=seed.headers["admin"], json={"date_format": "YY.MM.DD"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_render(client: AsyncClient, seed, make):
    policy = await make.policy(seed.org_id, "Remote Work Policy", department="HR", effective_date=date(2025, 1, 15))
    h = seed.headers["admin"]
    await client.put("/api/v1/organization-variables", headers=h, json={"variables": [
        {"variable_name": "legalName", "variable_value": "Acme Corporation Ltd."},
    ]})
    await client.post("/api/v1/document-layout", headers=h, json={
        "header_template": "/company.legalName/ · /policy.title|uppercase/",
        "footer_template": "/policy.department/ · effective /policy.effectiveDate/ · /policy.owner|none/",
        "date_format": "YYYY-MM-DD",
    })

    r = await client.post("/api/v1/document-layout/render", headers=seed.headers["user"],
                          json={"policy_id": policy.id, "page_number": 2, "total_pages": 4})
    assert r.status_code == 200
    data = r.json()
    assert data["header"] == "Acme Corporation Ltd. · REMOTE WORK POLICY"
    assert data["footer"] == "HR · effective 2025-01-15 · none"
    assert data["page_numbering"] == "Page 2 of 4"
    assert data["source"] == "organization"


@pytest.mark.asyncio
async def test_render_follows_registry_visibility(client: AsyncClient, seed, make):
    draft = await make.policy(seed.org_id, "Draft Policy", status="draft")
    r = await client.post("/api/v1/document-layout/render", headers=seed.headers["user"], json={"policy_id": draft.id})
    assert r.status_code == 404
    r = await client.post("/api/v1/document-layout/render", headers=seed.headers["editor"], json={"policy_id": draft.id})
    assert r.status_code == 200

    archived = await make.policy(seed.org_id, "Retired Policy", status="archived")
    r = await client.post("/api/v1/document-layout/render", headers=seed.headers["admin"], json={"policy_id": archived.id})
    assert r.status_code == 200
    r = await client.post("/api/v1/document-layout/render", headers=seed.headers["user"], json={"policy_id": archived.id})
    assert r.status_code == 404
