import pytest

from osot.auth.passwords import verify_password
from osot.cache.cache_service import CachePrefix
from osot.controllers.accounts import AccountController, enforce_privileged_fields
from osot.controllers.organizations import OrganizationController
from osot.controllers.profile import AddressController, ContactController, IdentityController, ManagementController
from osot.entities.definitions import ACCOUNTS
from osot.entities.enums import AccessModifier, AccountStatus, Privilege
from osot.error_handler import AppError, ErrorCode
from osot.validation import FormValidationError


@pytest.mark.asyncio
async def test_create_account_normalizes_and_hashes(dataverse, cache, account_data):
    accounts = AccountController(dataverse, cache)
    account = await accounts.create(account_data(email="Jane.Doe@Example.COM"))

    assert account["business_id"] == "osot-0000001"
    assert account["email"] == "jane.doe@example.com"
    assert account["mobile_phone"] == "(416) 555-0123"
    assert account["account_status"] == AccountStatus.PENDING
    assert account["privilege"] == Privilege.OWNER
    assert account["access_modifiers"] == AccessModifier.PRIVATE
    assert "password" not in account

    stored = dataverse.records(ACCOUNTS)[0]
    assert stored["osot_password"] != "Maple$Tree42"
    assert verify_password("Maple$Tree42", stored["osot_password"])


@pytest.mark.asyncio
async def test_create_account_collects_field_errors(dataverse, cache, account_data):
    bad = account_data(first_name="J0hn", email="nope", mobile_phone="12", account_declaration=False)
    with pytest.raises(FormValidationError) as exc:
        await AccountController(dataverse, cache).create(bad)
    assert set(exc.value.field_errors) == {"first_name", "email", "mobile_phone", "account_declaration"}
    assert exc.value.code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_password_with_personal_info_rejected(dataverse, cache, account_data):
    with pytest.raises(FormValidationError) as exc:
        await AccountController(dataverse, cache).create(account_data(password="Janet$Tree42"))
    assert exc.value.code == ErrorCode.WEAK_PASSWORD


@pytest.mark.asyncio
async def test_email_and_phone_must_be_unique(dataverse, cache, account_data):
    accounts = AccountController(dataverse, cache)
    await accounts.create(account_data())

    with pytest.raises(AppError) as exc:
        await accounts.create(account_data(mobile_phone="905-555-0100"))
    assert exc.value.code == ErrorCode.EMAIL_ALREADY_EXISTS

    with pytest.raises(AppError) as exc:
        await accounts.create(account_data(email="other@example.com"))
    assert exc.value.code == ErrorCode.PHONE_ALREADY_EXISTS


@pytest.mark.asyncio
async def test_date_of_birth_is_immutable(dataverse, cache, account_data):
    accounts = AccountController(dataverse, cache)
    account = await accounts.create(account_data())
    with pytest.raises(FormValidationError) as exc:
        await accounts.update(account["id"], {"date_of_birth": "1991-01-01"})
    assert "date_of_birth" in exc.value.field_errors


@pytest.mark.asyncio
async def test_update_refreshes_profile_cache(dataverse, cache, account_data):
    accounts = AccountController(dataverse, cache)
    account = await accounts.create(account_data())
    profile = await accounts.get_profile(account["id"])
    assert cache.get_user_data(CachePrefix.ACCOUNT_PROFILE, account["id"]) == profile

    updated = await accounts.update(account["id"], {"last_name": "Smith"})

    assert updated["last_name"] == "Smith"
    assert cache.get_user_data(CachePrefix.ACCOUNT_PROFILE, account["id"]) is None
    assert (await accounts.get_profile(account["id"]))["last_name"] == "Smith"


@pytest.mark.asyncio
async def test_set_status_activates_membership(dataverse, cache, account_data):
    accounts = AccountController(dataverse, cache)
    account = await accounts.create(account_data())
    active = await accounts.set_status(account["id"], AccountStatus.ACTIVE)
    assert active["account_status"] == AccountStatus.ACTIVE
    assert active["active_member"] is True


@pytest.mark.asyncio
async def test_update_missing_account_returns_none(dataverse, cache):
    assert await AccountController(dataverse, cache).update("missing", {"last_name": "Smith"}) is None


def test_owner_cannot_raise_privilege():
    assert enforce_privileged_fields({"privilege": 1, "access_modifiers": 3}, Privilege.OWNER) == {
        "privilege": Privilege.OWNER,
        "access_modifiers": AccessModifier.PRIVATE,
    }
    assert enforce_privileged_fields({"privilege": "3"}, Privilege.ADMIN) == {"privilege": Privilege.MAIN}
    with pytest.raises(AppError) as exc:
        enforce_privileged_fields({"privilege": 2}, Privilege.OWNER)
    assert exc.value.code == ErrorCode.INSUFFICIENT_PRIVILEGE
    with pytest.raises(AppError):
        enforce_privileged_fields({"access_modifiers": 1}, Privilege.OWNER)


def test_unparseable_privilege_is_a_field_error():
    for caller in (Privilege.OWNER, Privilege.MAIN):
        with pytest.raises(FormValidationError) as exc:
            enforce_privileged_fields({"privilege": "abc", "access_modifiers": 9}, caller)
        assert exc.value.code == ErrorCode.VALIDATION_ERROR
        assert set(exc.value.field_errors) == {"privilege", "access_modifiers"}


@pytest.mark.asyncio
async def test_address_postal_code_and_required_fields(dataverse, cache):
    addresses = AddressController(dataverse, cache)
    created = await addresses.create(
        {
            "account_id": "acc-1",
            "address_1": "55 King St W",
            "city": "Toronto",
            "province": "ON",
            "postal_code": "m5v2t6",
            "country": "Canada",
        }
    )
    assert created["postal_code"] == "M5V 2T6"
    assert created["account_id"] == "acc-1"

    with pytest.raises(FormValidationError) as exc:
        await addresses.create({"address_1": "1 Main", "city": "", "province": "ON", "country": "Canada", "postal_code": "D1A 0B1"})
    assert set(exc.value.field_errors) == {"city", "postal_code"}


@pytest.mark.asyncio
async def test_contact_social_links_are_sanitized(dataverse, cache):
    contacts = ContactController(dataverse, cache)
    created = await contacts.create(
        {"account_id": "acc-1", "business_website": "www.janedoe-ot.ca/", "instagram": "instagram.com/janedoe_ot"}
    )
    assert created["business_website"] == "https://www.janedoe-ot.ca"
    assert created["instagram"] == "https://instagram.com/janedoe_ot"

    with pytest.raises(FormValidationError) as exc:
        await contacts.create({"facebook": "https://evil.example/janedoe"})
    assert "facebook" in exc.value.field_errors


@pytest.mark.asyncio
async def test_identity_language_required_and_stored_as_list(dataverse, cache):
    identities = IdentityController(dataverse, cache)
    with pytest.raises(FormValidationError):
        await identities.create({"account_id": "acc-1"})
    created = await identities.create({"account_id": "acc-1", "language": [1, 2], "gender": 5})
    assert created["language"] == [1, 2]
    assert created["gender"] == 5


@pytest.mark.asyncio
async def test_management_flags_default_to_false(dataverse, cache):
    created = await ManagementController(dataverse, cache).create({"account_id": "acc-1", "vendor": True})
    assert created["vendor"] is True
    assert created["shadowing"] is False
    with pytest.raises(FormValidationError):
        await ManagementController(dataverse, cache).create({"vendor": "yes"})


@pytest.mark.asyncio
async def test_list_for_user_uses_profile_cache(dataverse, cache):
    addresses = AddressController(dataverse, cache)
    data = {"account_id": "acc-1", "address_1": "1 Main", "city": "Ottawa", "province": "ON", "postal_code": "K1A 0B1", "country": "Canada"}
    await addresses.create(data)
    rows = await addresses.list_for_user("acc-1")
    assert len(rows) == 1
    assert cache.get_user_data(CachePrefix.ACCOUNT_ADDRESS, "acc-1") == rows

    await addresses.create(dict(data, address_1="2 Main"))
    assert cache.get_user_data(CachePrefix.ACCOUNT_ADDRESS, "acc-1") is None
    assert len(await addresses.list_for_user("acc-1")) == 2


@pytest.mark.asyncio
async def test_organization_slug_rules(dataverse, cache, organization):
    orgs = OrganizationController(dataverse, cache)
    assert organization["slug"] == "osot"
    assert organization["organization_website"] == "https://osot.on.ca"
    assert organization["access_modifiers"] == AccessModifier.PUBLIC

    with pytest.raises(AppError) as exc:
        await orgs.create({"organization_name": "Copy", "slug": "OSOT"})
    assert exc.value.code == ErrorCode.CONFLICT

    with pytest.raises(FormValidationError):
        await orgs.create({"organization_name": "Bad", "slug": "not a slug"})

    await orgs.update(organization["id"], {"organization_status": 2})
    with pytest.raises(AppError) as exc:
        await orgs.resolve_active("osot")
    assert exc.value.code == ErrorCode.NOT_FOUND
