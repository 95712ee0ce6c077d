import asyncio

import pytest
from fastapi.testclient import TestClient

from osot.api.dependencies import build_services, get_services
from osot.api.main import app
from osot.auth.password_recovery import REQUEST_ACCEPTED, PasswordRecoveryService
from osot.auth.service import AuthService
from osot.controllers.accounts import AccountController
from osot.controllers.affiliates import AffiliateController
from osot.controllers.organizations import OrganizationController
from osot.database.redis import RedisCache
from osot.entities.enums import AccountStatus
from osot.error_handler import AppError, ErrorCode
from osot.integrations.clients.mocks.dataverse import MockDataverseClient
from osot.integrations.clients.mocks.email import MockEmailClient
from osot.utils.config_loader import AuthConfig
from osot.validation import FormValidationError

STRONG_PASSWORD = "Maple$Tree42"
NEW_PASSWORD = "Cedar$River58"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "recovery-test-secret")


def _token_from(message) -> str:
    return message.text.rsplit("token=", 1)[1].strip()


async def _active_account(dataverse, cache, organization, account_data):
    accounts = AccountController(dataverse, cache)
    account = await accounts.create(account_data(organization_id=organization["id"]))
    return await accounts.set_status(account["id"], AccountStatus.ACTIVE)


@pytest.mark.asyncio
async def test_unknown_email_looks_like_success(dataverse, cache, organization, mailer):
    recovery = PasswordRecoveryService(AuthService(dataverse, cache), mailer)
    result = await recovery.request_reset("nobody@example.com")
    assert result == {"success": True, "message": REQUEST_ACCEPTED}
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_account_password_reset(dataverse, cache, organization, account_data, mailer):
    await _active_account(dataverse, cache, organization, account_data)
    auth = AuthService(dataverse, cache, AuthConfig(max_failed_logins=3))
    recovery = PasswordRecoveryService(auth, mailer)

    with pytest.raises(AppError):
        await auth.login("jane.doe@example.com", "Wrong$Pass77")

    result = await recovery.request_reset(" Jane.Doe@Example.com ")
    assert result["message"] == REQUEST_ACCEPTED
    message = mailer.last("password_reset")
    assert message.to == ["jane.doe@example.com"]
    assert message.subject == "Password Recovery - OSOT"
    token = _token_from(message)
    assert recovery.validate_token(token)
    assert 0 < cache.store.ttl(f"password-recovery:{token}") <= 1800

    # A weak password is refused and the link stays usable.
    with pytest.raises(FormValidationError) as exc:
        await recovery.reset_password(token, "short")
    assert exc.value.code == ErrorCode.WEAK_PASSWORD
    assert recovery.validate_token(token)

    done = await recovery.reset_password(token, NEW_PASSWORD)
    assert done["success"] is True
    assert mailer.last("password_changed").to == ["jane.doe@example.com"]
    assert cache.get("auth:failed:osot:jane.doe@example.com") is None

    # Single use.
    assert not recovery.validate_token(token)
    with pytest.raises(AppError) as exc:
        await recovery.reset_password(token, NEW_PASSWORD)
    assert exc.value.code == ErrorCode.INVALID_INPUT

    with pytest.raises(AppError) as exc:
        await auth.login("jane.doe@example.com", STRONG_PASSWORD)
    assert exc.value.code == ErrorCode.INVALID_CREDENTIALS
    assert (await auth.login("jane.doe@example.com", NEW_PASSWORD))["user_type"] == "account"


@pytest.mark.asyncio
async def test_affiliate_password_reset(dataverse, cache, organization, mailer):
    affiliates = AffiliateController(dataverse, cache)
    affiliate = await affiliates.create(
        {
            "affiliate_name": "Acme Rehab Supplies",
            "affiliate_area": 1,
            "representative_first_name": "Alex",
            "representative_last_name": "Rivera",
            "affiliate_email": "partners@acme.ca",
            "affiliate_phone": "4165550199",
            "affiliate_address_1": "100 Queen St W",
            "affiliate_city": "Toronto",
            "affiliate_province": "ON",
            "affiliate_postal_code": "M5H 2N2",
            "affiliate_country": "Canada",
            "password": STRONG_PASSWORD,
            "account_declaration": True,
            "organization_id": organization["id"],
        }
    )
    await affiliates.set_status(affiliate["id"], AccountStatus.ACTIVE)
    auth = AuthService(dataverse, cache)
    recovery = PasswordRecoveryService(auth, mailer)

    await recovery.request_reset("partners@acme.ca")
    message = mailer.last("password_reset")
    assert "Alex" in message.html
    await recovery.reset_password(_token_from(message), NEW_PASSWORD)

    result = await auth.login("partners@acme.ca", NEW_PASSWORD)
    assert result["user_type"] == "affiliate"


@pytest.mark.asyncio
async def test_unknown_token_is_rejected(dataverse, cache, mailer):
    recovery = PasswordRecoveryService(AuthService(dataverse, cache), mailer)
    assert not recovery.validate_token("")
    assert not recovery.validate_token("made-up")
    with pytest.raises(AppError) as exc:
        await recovery.reset_password("made-up", NEW_PASSWORD)
    assert exc.value.code == ErrorCode.INVALID_INPUT
    assert mailer.sent == []


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


def test_password_reset_over_http(services, account_data):
    client = TestClient(app)

    async def seed():
        org = await OrganizationController(services.dataverse, services.cache).create(
            {"organization_name": "OSOT", "slug": "osot", "acronym": "OSOT"}
        )
        await _active_account(services.dataverse, services.cache, org, account_data)

    asyncio.run(seed())

    unknown = client.post("/auth/forgot-password", json={"email": "nobody@example.com"})
    known = client.post("/auth/forgot-password", json={"email": "jane.doe@example.com"})
    assert unknown.status_code == known.status_code == 200
    assert unknown.json() == known.json()

    token = _token_from(services.email.last("password_reset"))
    assert client.get(f"/auth/reset-password/{token}").json() == {"valid": True}
    assert client.get("/auth/reset-password/made-up").json() == {"valid": False}

    bad = client.post("/auth/reset-password", json={"token": "made-up", "new_password": NEW_PASSWORD})
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == 2007

    weak = client.post("/auth/reset-password", json={"token": token, "new_password": "short"})
    assert weak.status_code == 422
    assert weak.json()["error"]["code"] == 2005

    reset = client.post("/auth/reset-password", json={"token": token, "new_password": NEW_PASSWORD})
    assert reset.status_code == 200
    login = client.post("/auth/login", json={"email": "jane.doe@example.com", "password": NEW_PASSWORD})
    assert login.status_code == 200
