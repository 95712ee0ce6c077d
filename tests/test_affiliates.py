import asyncio

import pytest
from fastapi.testclient import TestClient

from osot.api.dependencies import build_services, get_services
from osot.api.main import app
from osot.auth.service import AuthService
from osot.auth.tokens import create_access_token
from osot.controllers.affiliates import AffiliateController
from osot.controllers.organizations import OrganizationController
from osot.database.redis import RedisCache
from osot.entities.enums import AccountStatus, Privilege
from osot.error_handler import AppError, ErrorCode
from osot.integrations.clients.mocks.dataverse import MockDataverseClient
from osot.integrations.clients.mocks.email import MockEmailClient
from osot.validation import FormValidationError

STRONG_PASSWORD = "Maple$Tree42"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "affiliate-test-secret")


@pytest.fixture
def affiliate_data():
    def build(**overrides):
        data = {
            "affiliate_name": "Acme Rehab Supplies",
            "affiliate_area": 6,
            "representative_first_name": "Alex",
            "representative_last_name": "Rivera",
            "representative_job_title": "Partnerships Lead",
            "affiliate_email": "Partners@Acme.ca",
            "affiliate_phone": "416 555 0199",
            "affiliate_website": "acme.ca",
            "affiliate_linkedin": "linkedin.com/company/acme",
            "affiliate_address_1": "100 Queen St W",
            "affiliate_city": "Toronto",
            "affiliate_province": "ON",
            "affiliate_postal_code": "m5h2n2",
            "affiliate_country": "Canada",
            "password": STRONG_PASSWORD,
            "account_declaration": True,
        }
        data.update(overrides)
        return data

    return build


# ---------------------------------------------------------------------- #
# Controller
# ---------------------------------------------------------------------- #
@pytest.mark.asyncio
async def test_create_affiliate_normalizes_and_defaults(dataverse, cache, organization, affiliate_data):
    affiliates = AffiliateController(dataverse, cache)
    created = await affiliates.create(affiliate_data(organization_id=organization["id"]))

    assert created["business_id"].startswith("affi-")
    assert created["affiliate_email"] == "partners@acme.ca"
    assert created["affiliate_phone"] == "(416) 555-0199"
    assert created["affiliate_postal_code"] == "M5H 2N2"
    assert created["affiliate_website"] == "https://acme.ca"
    assert created["account_status"] == AccountStatus.PENDING
    assert created["active_member"] is False
    assert created["privilege"] == Privilege.OWNER
    assert "password" not in created

    stored = await affiliates.find_by_email("PARTNERS@acme.ca", organization["id"])
    assert stored["id"] == created["id"]
    assert stored["password"].startswith("pbkdf2")


@pytest.mark.asyncio
async def test_affiliate_field_errors(dataverse, cache, affiliate_data):
    affiliates = AffiliateController(dataverse, cache)
    with pytest.raises(FormValidationError) as exc:
        await affiliates.create(
            affiliate_data(affiliate_area=99, affiliate_facebook="twitter.com/acme", account_declaration=False)
        )
    assert set(exc.value.field_errors) == {"affiliate_area", "affiliate_facebook", "account_declaration"}
    assert exc.value.code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_affiliate_email_is_unique_and_name_is_fixed(dataverse, cache, affiliate_data):
    affiliates = AffiliateController(dataverse, cache)
    created = await affiliates.create(affiliate_data())

    with pytest.raises(AppError) as exc:
        await affiliates.create(affiliate_data(affiliate_name="Acme Two"))
    assert exc.value.code == ErrorCode.EMAIL_ALREADY_EXISTS

    with pytest.raises(FormValidationError):
        await affiliates.update(created["id"], {"affiliate_name": "Renamed"})

    # Re-saving its own email is not a duplicate.
    updated = await affiliates.update(created["id"], {"affiliate_email": "partners@acme.ca", "affiliate_city": "Ottawa"})
    assert updated["affiliate_city"] == "Ottawa"


@pytest.mark.asyncio
async def test_affiliate_login(dataverse, cache, organization, affiliate_data):
    affiliates = AffiliateController(dataverse, cache)
    created = await affiliates.create(affiliate_data(organization_id=organization["id"]))
    auth = AuthService(dataverse, cache)

    with pytest.raises(AppError) as exc:
        await auth.login("partners@acme.ca", STRONG_PASSWORD)
    assert exc.value.code == ErrorCode.ACCOUNT_PENDING_APPROVAL

    await affiliates.set_status(created["id"], AccountStatus.ACTIVE)
    result = await auth.login("partners@acme.ca", STRONG_PASSWORD)
    assert result["user_type"] == "affiliate"
    assert result["role"] == "owner"
    assert "password" not in result["user"]

    claims = auth.authenticate(result["access_token"])
    assert claims.sub == created["business_id"]
    assert claims.user_guid == created["id"]
    assert claims.user_type == "affiliate"
    assert claims.privilege_level == Privilege.OWNER

    with pytest.raises(AppError) as exc:
        await auth.login("partners@acme.ca", "Wrong$Pass77")
    assert exc.value.code == ErrorCode.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_privileged_affiliate_record_still_logs_in_as_owner(dataverse, cache, organization, affiliate_data):
    affiliates = AffiliateController(dataverse, cache)
    created = await affiliates.create(affiliate_data(organization_id=organization["id"], privilege=3))
    await affiliates.set_status(created["id"], AccountStatus.ACTIVE)

    result = await AuthService(dataverse, cache).login("partners@acme.ca", STRONG_PASSWORD)
    assert result["role"] == "owner"


# ---------------------------------------------------------------------- #
# HTTP
# ---------------------------------------------------------------------- #
@pytest.fixture
def services(tmp_path):
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


def _admin_headers(org):
    token = create_access_token(
        {
            "sub": "osot-0000001",
            "user_guid": "admin-guid",
            "email": "admin@osot.on.ca",
            "privilege": Privilege.ADMIN,
            "organization_id": org["id"],
            "organization_slug": org["slug"],
        },
        30,
    )
    return {"Authorization": f"Bearer {token}"}


def _login(client, email):
    response = client.post("/auth/login", json={"email": email, "password": STRONG_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_affiliate_registration_over_http(client, org, affiliate_data):
    escalate = client.post("/public/affiliates/register", json=affiliate_data(privilege=3))
    assert escalate.status_code == 403
    assert escalate.json()["error"]["code"] == 3003

    self_approve = client.post("/public/affiliates/register", json=affiliate_data(account_status=1))
    assert self_approve.status_code == 403

    bad = client.post("/public/affiliates/register", json=affiliate_data(affiliate_email="nope"))
    assert bad.status_code == 422
    assert bad.json()["error"]["code"] == 2002

    created = client.post("/public/affiliates/register", json=affiliate_data())
    assert created.status_code == 201
    body = created.json()
    assert body["organization_id"] == org["id"]
    assert body["account_status"] == AccountStatus.PENDING
    assert "password" not in body

    pending = client.post("/auth/login", json={"email": "partners@acme.ca", "password": STRONG_PASSWORD})
    assert pending.json()["error"]["code"] == 1008


def test_affiliate_profile_and_orders(client, org, affiliate_data):
    affiliate_id = client.post("/public/affiliates/register", json=affiliate_data()).json()["id"]
    admin = _admin_headers(org)

    assert [a["id"] for a in client.get("/private/affiliates", headers=admin).json()] == [affiliate_id]
    approved = client.put(f"/private/affiliates/{affiliate_id}/status", headers=admin, json={"account_status": 1})
    assert approved.status_code == 200
    assert approved.json()["active_member"] is True

    headers = _login(client, "partners@acme.ca")
    me = client.get("/private/affiliates/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["affiliate_name"] == "Acme Rehab Supplies"

    retitled = client.patch("/private/affiliates/me", headers=headers, json={"representative_job_title": "Director"})
    assert retitled.json()["representative_job_title"] == "Director"
    assert client.patch("/private/affiliates/me", headers=headers, json={"account_status": 1}).status_code == 403
    assert client.patch("/private/affiliates/me", headers=headers, json={"privilege": 2}).status_code == 403
    assert client.put(f"/private/affiliates/{affiliate_id}/status", headers=headers, json={"account_status": 2}).status_code == 403

    product = client.post(
        "/private/products",
        headers=admin,
        json={
            "product_name": "Exhibitor Booth",
            "product_code": "booth-1",
            "product_category": 0,
            "product_status": 1,
            "general_price": 100,
            "taxes": 13,
            "inventory": 5,
            "access_modifiers": 1,
        },
    ).json()

    order = client.post("/private/orders", headers=headers, json={"items": [{"product_id": product["id"]}]})
    assert order.status_code == 201
    assert order.json()["affiliate_id"] == affiliate_id
    assert order.json()["account_id"] is None
    assert order.json()["total"] == 113.0

    for_an_account = client.post(
        "/private/orders", headers=headers, json={"items": [{"product_id": product["id"]}], "account_id": "someone"}
    )
    assert for_an_account.status_code == 403

    mine = client.get("/private/orders", headers=headers).json()
    assert [o["id"] for o in mine] == [order.json()["id"]]
    assert client.get(f"/private/orders/{order.json()['id']}", headers=headers).status_code == 200


def test_account_tokens_cannot_use_affiliate_profile(client, org):
    token = create_access_token(
        {
            "sub": "osot-0000002",
            "user_guid": "member-guid",
            "email": "member@example.com",
            "privilege": Privilege.OWNER,
            "organization_id": org["id"],
            "organization_slug": org["slug"],
        },
        30,
    )
    response = client.get("/private/affiliates/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403
    assert response.json()["error"]["code"] == 3002
