import asyncio

import pytest
from fastapi.testclient import TestClient

from osot.api.dependencies import build_services, get_services
from osot.api.main import app
from osot.auth.tokens import create_access_token
from osot.controllers.accounts import AccountController
from osot.controllers.organizations import OrganizationController
from osot.database.redis import RedisCache
from osot.entities.enums import AccountStatus, Privilege
from osot.integrations.clients.mocks.dataverse import MockDataverseClient
from osot.integrations.clients.mocks.email import MockEmailClient

STRONG_PASSWORD = "Maple$Tree42"


@pytest.fixture
def services(tmp_path, monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "api-test-secret")
    monkeypatch.setenv("ADMIN_EMAILS", "registrar@osot.on.ca")
    svc = build_services(
        store=RedisCache(),
        dataverse=MockDataverseClient(),
        email=MockEmailClient(output_root=tmp_path / "emails"),
    )
    app.dependency_overrides[get_services] = lambda: svc
    yield svc
    app.dependency_overrides.clear()


@pytest.fixture
def client(services):
    return TestClient(app)


@pytest.fixture
def org(services):
    controller = OrganizationController(services.dataverse, services.cache)
    return asyncio.run(controller.create({"organization_name": "OSOT", "slug": "osot", "acronym": "OSOT"}))


@pytest.fixture
def member(services, org, account_data):
    async def seed():
        accounts = AccountController(services.dataverse, services.cache)
        account = await accounts.create(account_data(organization_id=org["id"]))
        return await accounts.set_status(account["id"], AccountStatus.ACTIVE)

    return asyncio.run(seed())


def _headers(org, user_guid, privilege=Privilege.OWNER, sub="osot-0000099"):
    token = create_access_token(
        {
            "sub": sub,
            "user_guid": user_guid,
            "email": f"{user_guid}@example.com",
            "privilege": privilege,
            "organization_id": org["id"],
            "organization_slug": org["slug"],
        },
        30,
    )
    return {"Authorization": f"Bearer {token}"}


def _member_headers(org, member):
    return _headers(org, member["id"], sub=member["business_id"])


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "osot-api", "cache": "healthy"}


def test_missing_or_bad_bearer_token(client):
    response = client.get("/auth/me")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == 3001

    response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == 3004
    assert response.json()["error"]["forceLogout"] is True


def test_login_profile_and_logout(client, org, member):
    response = client.post("/auth/login", json={"email": "Jane.Doe@example.com", "password": STRONG_PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "owner"
    headers = {"Authorization": f"Bearer {body['access_token']}"}

    me = client.get("/auth/me", headers=headers).json()
    assert me["sub"] == member["business_id"]
    assert me["organization_slug"] == "osot"

    profile = client.get("/private/accounts/me", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["email"] == "jane.doe@example.com"
    assert "password" not in profile.json()

    denied = client.patch("/private/accounts/me", headers=headers, json={"account_status": 2})
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == 3003

    renamed = client.patch("/private/accounts/me", headers=headers, json={"last_name": "Smith"})
    assert renamed.status_code == 200
    assert renamed.json()["last_name"] == "Smith"

    assert client.post("/auth/logout", headers=headers).status_code == 200
    response = client.get("/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["error"]["code"] == 3004


def test_login_errors(client, org, member):
    response = client.post("/auth/login", json={"email": "jane.doe@example.com", "password": "Wrong$Pass77"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == 1002

    response = client.post("/auth/login", json={"password": STRONG_PASSWORD})
    assert response.status_code == 422
    assert "email" in response.json()["error"]["field_errors"]


def test_registration_over_http(client, services, org, registration_request):
    response = client.post("/public/registration/register", json=registration_request())
    assert response.status_code == 201
    session_id = response.json()["session_id"]
    token = services.registration.repository.get(session_id)["email"]["token"]

    verified = client.post("/public/registration/verify-email", json={"session_id": session_id, "token": token})
    assert verified.status_code == 200
    assert verified.json()["status"] == "pending_approval"
    assert client.get(f"/public/registration/email-status/{session_id}").json()["email_verified"] is True

    # Members cannot sign in before approval.
    pending = client.post("/auth/login", json={"email": "jane.doe@example.com", "password": STRONG_PASSWORD})
    assert pending.json()["error"]["code"] == 1008

    approve_token = services.registration.repository.get(session_id)["approval"]["approve_token"]
    approved = client.get(f"/public/registration/admin/approve/{approve_token}")
    assert approved.status_code == 200
    assert approved.json()["status"] == "completed"
    assert client.get(f"/public/registration/status/{session_id}").json()["progress"] == 100

    login = client.post("/auth/login", json={"email": "jane.doe@example.com", "password": STRONG_PASSWORD})
    assert login.status_code == 200


def test_registration_errors_over_http(client, org, registration_request):
    request = registration_request()
    request["address"]["postal_code"] = "12345"
    response = client.post("/public/registration/register", json=request)
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == 2004
    assert "address.postal_code" in error["field_errors"]

    response = client.get("/public/registration/status/reg_missing")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == 5005


def test_admin_routes_need_privilege(client, org, member):
    owner = _member_headers(org, member)
    response = client.get("/private/accounts", headers=owner)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == 3003

    admin = _headers(org, "admin-guid", Privilege.ADMIN)
    accounts = client.get("/private/accounts", headers=admin)
    assert accounts.status_code == 200
    assert [a["id"] for a in accounts.json()] == [member["id"]]

    assert client.delete(f"/private/accounts/{member['id']}", headers=admin).status_code == 403


def test_owned_records_are_bound_to_caller(client, org, member):
    owner = _member_headers(org, member)
    address = {
        "address_1": "1 Main St",
        "city": "Ottawa",
        "province": "ON",
        "postal_code": "k1a0b1",
        "country": "Canada",
        "account_id": "someone-else",
    }
    created = client.post("/private/addresses", headers=owner, json=address)
    assert created.status_code == 201
    assert created.json()["account_id"] == member["id"]
    assert created.json()["user_business_id"] == member["business_id"]
    assert created.json()["postal_code"] == "K1A 0B1"

    mine = client.get("/private/addresses/me", headers=owner).json()
    assert [a["id"] for a in mine] == [created.json()["id"]]

    stranger = _headers(org, "stranger-guid")
    assert client.get(f"/private/addresses/{created.json()['id']}", headers=stranger).status_code == 403

    escalate = client.post("/private/contacts", headers=owner, json={"privilege": 3})
    assert escalate.status_code == 403


def test_catalog_and_orders(client, org, member):
    admin = _headers(org, "admin-guid", Privilege.ADMIN)
    product = client.post(
        "/private/products",
        headers=admin,
        json={
            "product_name": "Practice Guide",
            "product_code": "guide-1",
            "product_category": 0,
            "product_status": 1,
            "general_price": 100,
            "taxes": 13,
            "inventory": 10,
            "access_modifiers": 1,
        },
    )
    assert product.status_code == 201
    product_id = product.json()["id"]
    assert [p["id"] for p in client.get("/public/products").json()] == [product_id]

    owner = _member_headers(org, member)
    order = client.post("/private/orders", headers=owner, json={"items": [{"product_id": product_id}]})
    assert order.status_code == 201
    body = order.json()
    assert body["total"] == 113.0
    assert body["high_value"] is False
    assert body["account_id"] == member["id"]
    assert body["organization_id"] == org["id"]
    assert len(body["items"]) == 1

    for_someone_else = client.post(
        "/private/orders", headers=owner, json={"items": [{"product_id": product_id}], "account_id": "other"}
    )
    assert for_someone_else.status_code == 403

    empty = client.post("/private/orders", headers=owner, json={"items": []})
    assert empty.status_code == 422

    assert len(client.get("/private/orders", headers=owner).json()) == 1
    stranger = _headers(org, "stranger-guid")
    assert client.get(f"/private/orders/{body['id']}", headers=stranger).json()["error"]["code"] == 3002

    verified = client.get(f"/private/orders/{body['id']}/verify", headers=admin)
    assert verified.json()["valid"] is True
    submitted = client.patch(f"/private/orders/{body['id']}", headers=admin, json={"order_status": "SUBMITTED"})
    assert submitted.status_code == 200
    assert submitted.json()["order_status"] == "SUBMITTED"

    assert client.delete(f"/private/orders/{body['id']}", headers=admin).status_code == 403


def test_cache_admin_routes(client, org):
    admin = _headers(org, "admin-guid", Privilege.ADMIN)
    response = client.post("/private/cache/clear", headers=admin, json={})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == 2007

    response = client.post("/private/cache/clear", headers=admin, json={"user_guid": "u1"})
    assert response.json() == {"success": True, "removed": 0}


def test_public_organization_lookup(client, org):
    response = client.get("/public/organizations/OSOT")
    assert response.status_code == 200
    assert response.json()["slug"] == "osot"
    assert "privilege" not in response.json()

    response = client.get("/public/organizations/nope")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == 5001


def test_non_numeric_privilege_is_rejected_as_invalid(client, org, member):
    owner = _member_headers(org, member)
    response = client.patch("/private/accounts/me", headers=owner, json={"privilege": "abc"})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == 2001
    assert "privilege" in response.json()["error"]["field_errors"]

    admin = _headers(org, "admin-guid", Privilege.ADMIN)
    response = client.patch(f"/private/accounts/{member['id']}", headers=admin, json={"privilege": "abc"})
    assert response.status_code == 422

    response = client.patch(f"/private/accounts/{member['id']}", headers=admin, json={"privilege": 3})
    assert response.status_code == 403
    assert response.json()["error"]["code"] == 3003
