"""
Real Dataverse Web API client.

Used when DYNAMICS_URL and app credentials are configured. Each app context
(main / owner / admin) authenticates with its own client-credentials grant;
access tokens are cached until shortly before they expire.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from osot.cache.cache_service import CacheService
from osot.error_handler import AppError, ErrorCode
from osot.integrations.contracts.dataverse import (
    AppContext,
    DataverseClient,
    DataverseCredentials,
    ODataQuery,
)
from osot.integrations.policy.response_wrappers import (
    IntegrationResponseError,
    normalize_collection,
    normalize_entity,
    normalize_token_response,
)
from osot.utils.config_loader import DataverseConfig
from osot.utils.rate_limiter import RateLimiterRegistry

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {500, 502, 503, 504}
TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"


def credentials_from_env() -> Dict[AppContext, DataverseCredentials]:
    url = os.getenv("DYNAMICS_URL", "").rstrip("/")
    creds: Dict[AppContext, DataverseCredentials] = {}
    for app in AppContext:
        prefix = app.value.upper()
        creds[app] = DataverseCredentials(
            client_id=os.getenv(f"{prefix}_CLIENT_ID", ""),
            client_secret=os.getenv(f"{prefix}_CLIENT_SECRET", ""),
            tenant_id=os.getenv(f"{prefix}_TENANT_ID", ""),
            url=url,
        )
    return creds


class RealDataverseClient(DataverseClient):
    def __init__(
        self,
        credentials: Dict[AppContext, DataverseCredentials],
        cache: CacheService,
        config: Optional[DataverseConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        main = credentials.get(AppContext.MAIN)
        if main is None or not main.is_complete:
            raise ValueError("Dataverse MAIN credentials and DYNAMICS_URL are required.")
        self.credentials = credentials
        self.cache = cache
        self.config = config or DataverseConfig()
        self._transport = transport
        self._sleep = sleep
        self._limiters = RateLimiterRegistry(self.config.requests_per_minute)

    def _credentials_for(self, app: AppContext) -> DataverseCredentials:
        creds = self.credentials.get(app)
        if creds is None or not creds.is_complete:
            logger.warning("No Dataverse credentials for '%s' app; using main app", app.value)
            return self.credentials[AppContext.MAIN]
        return creds

    def _api_base(self, creds: DataverseCredentials) -> str:
        return f"{creds.url.rstrip('/')}/api/data/{self.config.api_version}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport)

    # ------------------------------------------------------------------ #
    # Auth
    # ------------------------------------------------------------------ #
    def _token_key(self, app: AppContext) -> str:
        return f"dataverse:token:{app.value}"

    async def _get_token(self, app: AppContext) -> str:
        cached = self.cache.get(self._token_key(app))
        if cached:
            return cached

        creds = self._credentials_for(app)
        data = {
            "client_id": creds.client_id,
            "client_secret": creds.client_secret,
            "scope": f"{creds.url.rstrip('/')}/.default",
            "grant_type": "client_credentials",
        }
        try:
            async with self._client() as client:
                response = await client.post(TOKEN_URL.format(tenant=creds.tenant_id), data=data)
                response.raise_for_status()
                token = normalize_token_response(response.json())
        except (httpx.HTTPError, IntegrationResponseError, ValueError) as e:
            logger.error("Dataverse token request failed for '%s' app: %s", app.value, e)
            raise AppError(
                ErrorCode.DATAVERSE_SERVICE_ERROR,
                "Could not authenticate with Dataverse",
                context={"app": app.value},
            ) from e

        ttl = max(1, token.expires_in - self.config.token_margin_seconds)
        self.cache.set(self._token_key(app), token.access_token, ttl)
        return token.access_token

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    async def _request(
        self,
        method: str,
        endpoint: str,
        app: AppContext,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        suppress_404: bool = False,
    ) -> Optional[httpx.Response]:
        creds = self._credentials_for(app)
        url = f"{self._api_base(creds)}/{endpoint.lstrip('/')}"
        max_attempts = self.config.max_attempts

        for attempt in range(1, max_attempts + 1):
            await self._limiters.get(app.value).wait_if_needed()
            token = await self._get_token(app)
            headers = {
                "Authorization": f"Bearer {token}",
                "OData-Version": "4.0",
                "OData-MaxVersion": "4.0",
                "Accept": "application/json",
                "Content-Type": "application/json; charset=utf-8",
            }
            if method in ("POST", "PATCH"):
                headers["Prefer"] = "return=representation"

            try:
                async with self._client() as client:
                    response = await client.request(method, url, params=params, json=json, headers=headers)
            except httpx.TransportError as e:
                if attempt < max_attempts:
                    logger.warning("Dataverse %s %s network error (attempt %d/%d): %s", method, endpoint, attempt, max_attempts, e)
                    await self._sleep(self.config.retry_delay_seconds * attempt)
                    continue
                logger.error("Dataverse %s %s failed after %d attempts: %s", method, endpoint, attempt, e)
                raise AppError(ErrorCode.DATAVERSE_SERVICE_ERROR, context={"endpoint": endpoint, "method": method}) from e

            if response.status_code in RETRYABLE_STATUSES and attempt < max_attempts:
                logger.warning("Dataverse %s %s returned %d (attempt %d/%d)", method, endpoint, response.status_code, attempt, max_attempts)
                await self._sleep(self.config.retry_delay_seconds * attempt)
                continue

            if response.status_code == 401 and attempt < max_attempts:
                # Token revoked or rotated early; fetch a fresh one.
                self.cache.invalidate(self._token_key(app))
                continue

            if response.status_code == 404 and suppress_404:
                return None

            if response.is_error:
                logger.error(
                    "Dataverse %s %s failed with %d: %s",
                    method,
                    endpoint,
                    response.status_code,
                    response.text[:500],
                )
                raise AppError(
                    ErrorCode.DATAVERSE_SERVICE_ERROR,
                    context={"endpoint": endpoint, "method": method, "status": response.status_code},
                )
            return response

        raise AppError(ErrorCode.DATAVERSE_SERVICE_ERROR, context={"endpoint": endpoint, "method": method})

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        return response.json() if response.content else {}

    # ------------------------------------------------------------------ #
    # DataverseClient
    # ------------------------------------------------------------------ #
    async def create(self, entity_set: str, payload: Dict[str, Any], app: AppContext = AppContext.MAIN) -> Dict[str, Any]:
        response = await self._request("POST", entity_set, app, json=payload)
        return normalize_entity(self._json(response))

    async def get(self, entity_set: str, record_id: str, app: AppContext = AppContext.MAIN) -> Optional[Dict[str, Any]]:
        response = await self._request("GET", f"{entity_set}({record_id})", app, suppress_404=True)
        if response is None:
            return None
        return normalize_entity(self._json(response))

    async def query(self, entity_set: str, query: Optional[ODataQuery] = None, app: AppContext = AppContext.MAIN) -> List[Dict[str, Any]]:
        params = query.to_params() if query else None
        response = await self._request("GET", entity_set, app, params=params)
        return normalize_collection(self._json(response))

    async def update(self, entity_set: str, record_id: str, payload: Dict[str, Any], app: AppContext = AppContext.MAIN) -> Dict[str, Any]:
        response = await self._request("PATCH", f"{entity_set}({record_id})", app, json=payload)
        body = self._json(response)
        if not body:
            return await self.get(entity_set, record_id, app) or {}
        return normalize_entity(body)

    async def delete(self, entity_set: str, record_id: str, app: AppContext = AppContext.MAIN) -> bool:
        response = await self._request("DELETE", f"{entity_set}({record_id})", app, suppress_404=True)
        return response is not None

    async def ping(self) -> bool:
        try:
            await self._request("GET", "WhoAmI", AppContext.MAIN)
            return True
        except AppError:
            return False
