import httpx
import pytest

from osot.entities.definitions import ACCOUNT, ACCOUNTS, ORGANIZATIONS
from osot.error_handler import AppError, ErrorCode
from osot.integrations.clients.real_http.dataverse import RealDataverseClient
from osot.integrations.contracts.dataverse import AppContext, DataverseCredentials, ODataQuery, render_literal

API = "https://org.crm3.dynamics.com/api/data/v9.2"


def _credentials():
    return {
        AppContext.MAIN: DataverseCredentials(
            client_id="main-id",
            client_secret="main-secret",
            tenant_id="tenant",
            url="https://org.crm3.dynamics.com",
        )
    }


async def _no_sleep(seconds):
    return None


class FakeDataverse:
    """Scripted Dataverse + Azure AD token endpoint for httpx.MockTransport."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []
        self.tokens_issued = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.microsoftonline.com":
            self.tokens_issued += 1
            return httpx.Response(200, json={"access_token": f"token-{self.tokens_issued}", "expires_in": 3600})
        self.requests.append(request)
        if self.responses:
            return self.responses.pop(0)
        return httpx.Response(200, json={"value": []})


def _client(fake, cache):
    return RealDataverseClient(_credentials(), cache, transport=httpx.MockTransport(fake), sleep=_no_sleep)


def test_odata_query_rendering():
    query = ODataQuery(orderby="createdon", descending=True, top=5)
    query.where("osot_email", "o'brien@example.com").where("_osot_table_organization_value", "abc", guid=True)
    params = query.to_params()
    assert params["$filter"] == "osot_email eq 'o''brien@example.com' and _osot_table_organization_value eq abc"
    assert params["$orderby"] == "createdon desc"
    assert params["$top"] == "5"
    assert render_literal(True) == "true"
    assert render_literal(None) == "null"


@pytest.mark.asyncio
async def test_query_sends_odata_params_and_strips_annotations(cache):
    fake = FakeDataverse(
        [
            httpx.Response(
                200,
                json={
                    "@odata.context": "ctx",
                    "value": [{"osot_table_accountid": "g1", "osot_email": "jane@example.com", "@odata.etag": "W/1"}],
                },
            )
        ]
    )
    client = _client(fake, cache)

    rows = await client.query(ACCOUNTS, ODataQuery().where("osot_email", "jane@example.com"))

    assert rows == [{"osot_table_accountid": "g1", "osot_email": "jane@example.com"}]
    request = fake.requests[0]
    assert str(request.url).startswith(f"{API}/{ACCOUNTS}")
    assert request.url.params["$filter"] == "osot_email eq 'jane@example.com'"
    assert request.headers["Authorization"] == "Bearer token-1"
    assert request.headers["OData-Version"] == "4.0"


@pytest.mark.asyncio
async def test_token_is_cached_between_calls(cache):
    fake = FakeDataverse()
    client = _client(fake, cache)
    await client.query(ACCOUNTS)
    await client.query(ACCOUNTS)
    assert fake.tokens_issued == 1


@pytest.mark.asyncio
async def test_retries_transient_errors(cache):
    fake = FakeDataverse(
        [
            httpx.Response(503),
            httpx.Response(201, json={"osot_table_accountid": "g1", "osot_account_id": "osot-0000001"}),
        ]
    )
    client = _client(fake, cache)

    created = await client.create(ACCOUNTS, {"osot_email": "jane@example.com"})

    assert created["osot_account_id"] == "osot-0000001"
    assert len(fake.requests) == 2
    assert fake.requests[1].headers["Prefer"] == "return=representation"


@pytest.mark.asyncio
async def test_client_errors_raise_dataverse_error(cache):
    fake = FakeDataverse([httpx.Response(400, json={"error": {"message": "bad column"}})])
    client = _client(fake, cache)
    with pytest.raises(AppError) as exc:
        await client.create(ACCOUNTS, {"osot_bogus": 1})
    assert exc.value.code == ErrorCode.DATAVERSE_SERVICE_ERROR
    assert exc.value.context["status"] == 400


@pytest.mark.asyncio
async def test_unauthorized_refreshes_token(cache):
    fake = FakeDataverse([httpx.Response(401), httpx.Response(200, json={"value": []})])
    client = _client(fake, cache)
    assert await client.query(ACCOUNTS) == []
    assert fake.tokens_issued == 2
    assert fake.requests[1].headers["Authorization"] == "Bearer token-2"


@pytest.mark.asyncio
async def test_get_missing_returns_none_and_update_refetches(cache):
    fake = FakeDataverse(
        [
            httpx.Response(404),
            httpx.Response(204),
            httpx.Response(200, json={"osot_table_accountid": "g1", "osot_first_name": "Jane"}),
        ]
    )
    client = _client(fake, cache)
    assert await client.get(ACCOUNTS, "missing") is None
    updated = await client.update(ACCOUNTS, "g1", {"osot_first_name": "Jane"})
    assert updated["osot_first_name"] == "Jane"
    assert fake.requests[1].method == "PATCH"
    assert str(fake.requests[1].url).endswith(f"{ACCOUNTS}(g1)")


def test_main_credentials_required(cache):
    with pytest.raises(ValueError):
        RealDataverseClient({}, cache)


# ---------------------------------------------------------------------- #
# In-memory client
# ---------------------------------------------------------------------- #
@pytest.mark.asyncio
async def test_mock_assigns_keys_and_binds_lookups(dataverse):
    payload = ACCOUNT.to_odata({"email": "jane@example.com", "organization_id": "org-1"})
    raw = await dataverse.create(ACCOUNTS, payload)
    assert raw["osot_table_accountid"]
    assert raw["osot_account_id"] == "osot-0000001"
    assert raw["_osot_table_organization_value"] == "org-1"
    assert raw["createdon"] == raw["modifiedon"]

    second = await dataverse.create(ACCOUNTS, ACCOUNT.to_odata({"email": "john@example.com"}))
    assert second["osot_account_id"] == "osot-0000002"


@pytest.mark.asyncio
async def test_mock_query_filters_case_insensitively(dataverse):
    for name in ("beta", "Alpha", "gamma"):
        await dataverse.create(ORGANIZATIONS, {"osot_slug": name})

    hits = await dataverse.query(ORGANIZATIONS, ODataQuery().where("osot_slug", "ALPHA"))
    assert [r["osot_slug"] for r in hits] == ["Alpha"]

    ordered = await dataverse.query(ORGANIZATIONS, ODataQuery(orderby="osot_slug", top=2, skip=1))
    assert [r["osot_slug"] for r in ordered] == ["beta", "gamma"]


@pytest.mark.asyncio
async def test_mock_forced_failures(dataverse):
    dataverse.fail_next(ACCOUNTS, "create")
    with pytest.raises(AppError) as exc:
        await dataverse.create(ACCOUNTS, {})
    assert exc.value.code == ErrorCode.DATAVERSE_SERVICE_ERROR
    assert await dataverse.create(ACCOUNTS, {})
    with pytest.raises(AppError):
        await dataverse.update(ACCOUNTS, "missing", {})
    assert ("create", ACCOUNTS, "main") in dataverse.calls
