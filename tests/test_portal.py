import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from portal.controllers import AccountController, OrganizationController, parse_sort
from portal.database.mongo import MongoDB
from portal.dependencies import api_key_protection, get_db
from portal.main import app
from portal.models import AccountCreate, AccountUpdate, OrganizationCreate, OrganizationUpdate

API_KEY = "portal-test-key"


@pytest.fixture
def db():
    return MongoDB()


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setenv("API_KEYS", f"other-key, {API_KEY}")
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app, headers={"X-API-KEY": API_KEY})
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------- #
# Controllers
# ---------------------------------------------------------------------- #
@pytest.mark.asyncio
async def test_organization_name_and_slug_are_unique(db):
    orgs = OrganizationController(db)
    created = await orgs.create(OrganizationCreate(name="  OSOT ", slug="OSOT", website="osot.on.ca"))
    assert created["name"] == "OSOT"
    assert created["slug"] == "osot"
    assert created["website"] == "https://osot.on.ca"

    with pytest.raises(HTTPException) as exc:
        await orgs.create(OrganizationCreate(name="osot", slug="other"))
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        await orgs.create(OrganizationCreate(name="Other", slug="osot"))
    assert exc.value.status_code == 409

    # Renaming to its own name is not a conflict.
    renamed = await orgs.update(created["id"], OrganizationUpdate(name="Osot"))
    assert renamed["name_key"] == "osot"


@pytest.mark.asyncio
async def test_organization_with_members_cannot_be_deleted(db):
    orgs = OrganizationController(db)
    accounts = AccountController(db)
    org = await orgs.create(OrganizationCreate(name="OSOT", slug="osot"))
    account = await accounts.create(AccountCreate(name="Jane Doe", email="jane@example.com", organization_id=org["id"]))

    with pytest.raises(HTTPException) as exc:
        await orgs.delete(org["id"])
    assert exc.value.status_code == 409

    await accounts.delete(account["id"])
    await orgs.delete(org["id"])
    with pytest.raises(HTTPException) as exc:
        await orgs.get(org["id"])
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_account_email_and_organization_checks(db):
    accounts = AccountController(db)
    account = await accounts.create(AccountCreate(name="Jane Doe", email=" Jane@Example.com "))
    assert account["email"] == "jane@example.com"
    assert account["role"] == "member"
    assert account["status"] == "active"

    with pytest.raises(HTTPException) as exc:
        await accounts.create(AccountCreate(name="Other Jane", email="jane@example.com"))
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        await accounts.update(account["id"], AccountUpdate(organization_id="missing"))
    assert exc.value.status_code == 404

    updated = await accounts.update(account["id"], AccountUpdate(email="jane@example.com", status="inactive"))
    assert updated["status"] == "inactive"


@pytest.mark.asyncio
async def test_account_listing_filters_and_sorts(db):
    accounts = AccountController(db)
    await accounts.create(AccountCreate(name="Bea", email="bea@example.com", role="admin"))
    await accounts.create(AccountCreate(name="Al", email="al@example.com"))
    await accounts.create(AccountCreate(name="Cy", email="cy@example.com"))

    names = [a["name"] for a in await accounts.list(sort="name")]
    assert names == ["Al", "Bea", "Cy"]
    assert [a["name"] for a in await accounts.list(sort="-name", limit=2)] == ["Cy", "Bea"]
    assert [a["name"] for a in await accounts.list(role="admin")] == ["Bea"]


def test_parse_sort():
    assert parse_sort(None) is None
    assert parse_sort("name") == ("name", 1)
    assert parse_sort("-created_at") == ("created_at", -1)
    with pytest.raises(HTTPException) as exc:
        parse_sort("password")
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_api_key_check_called_directly(monkeypatch):
    monkeypatch.setenv("API_KEYS", API_KEY)
    await api_key_protection(x_api_key=API_KEY)
    with pytest.raises(HTTPException) as exc:
        await api_key_protection(x_api_key="wrong")
    assert exc.value.status_code == 401


# ---------------------------------------------------------------------- #
# HTTP
# ---------------------------------------------------------------------- #
def test_health_is_public(client):
    response = client.get("/health", headers={"X-API-KEY": ""})
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "portal", "database": True}


def test_routes_require_api_key(client):
    response = client.get("/accounts", headers={"X-API-KEY": "nope"})
    assert response.status_code == 401
    assert client.get("/accounts").status_code == 200


def test_organization_crud(client):
    created = client.post("/organizations", json={"name": "OSOT", "slug": "osot", "website": "osot.on.ca"})
    assert created.status_code == 201
    org_id = created.json()["id"]
    assert created.json()["website"] == "https://osot.on.ca"

    assert client.post("/organizations", json={"name": "OSOT", "slug": "osot-2"}).status_code == 409
    assert client.post("/organizations", json={"name": "Bad", "slug": "not a slug"}).status_code == 422

    patched = client.patch(f"/organizations/{org_id}", json={"description": "Ontario OTs"})
    assert patched.status_code == 200
    assert patched.json()["description"] == "Ontario OTs"

    assert [o["slug"] for o in client.get("/organizations").json()] == ["osot"]
    assert client.delete(f"/organizations/{org_id}").json() == {"success": True, "id": org_id}
    assert client.get(f"/organizations/{org_id}").status_code == 404


def test_account_crud(client):
    org_id = client.post("/organizations", json={"name": "OSOT", "slug": "osot"}).json()["id"]
    created = client.post(
        "/accounts", json={"name": "Jane Doe", "email": "jane@example.com", "organization_id": org_id}
    )
    assert created.status_code == 201
    account_id = created.json()["id"]

    assert client.post("/accounts", json={"name": "Copy", "email": "JANE@example.com"}).status_code == 409
    assert client.post("/accounts", json={"name": "Bad", "email": "nope"}).status_code == 422
    assert client.post("/accounts", json={"name": "Lost", "email": "lost@example.com", "organization_id": "x"}).status_code == 404

    members = client.get(f"/organizations/{org_id}/accounts").json()
    assert [m["id"] for m in members] == [account_id]
    assert client.get(f"/accounts?organization_id={org_id}").json()[0]["email"] == "jane@example.com"
    assert client.get("/accounts?sort=password").status_code == 400

    patched = client.patch(f"/accounts/{account_id}", json={"role": "admin"})
    assert patched.json()["role"] == "admin"

    assert client.delete(f"/organizations/{org_id}").status_code == 409
    assert client.delete(f"/accounts/{account_id}").status_code == 200
    assert client.get(f"/accounts/{account_id}").status_code == 404
