"""
Shared FastAPI dependencies: backend selection, bearer authentication and
privilege checks.

Backends are chosen once per process. Real Dataverse/Redis/email clients
are used when their URLs are configured (or INTEGRATIONS_MODE=real);
otherwise the in-memory stubs are used.
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import Depends, Header

from osot.auth.password_recovery import PasswordRecoveryService
from osot.auth.service import AuthService
from osot.auth.tokens import TokenClaims
from osot.cache.cache_service import CacheService
from osot.entities.enums import Privilege
from osot.error_handler import AppError, ErrorCode
from osot.integrations.contracts.dataverse import AppContext, DataverseClient
from osot.integrations.contracts.email import EmailClient
from osot.registration.orchestrator import RegistrationOrchestrator
from osot.utils.config_loader import OsotConfig, load_osot_config

load_dotenv()

logger = logging.getLogger(__name__)


def _should_use_real_integrations() -> bool:
    mode = os.getenv("INTEGRATIONS_MODE", "").strip().lower()
    if mode in {"real", "live"}:
        return True
    if mode in {"mock", "test"}:
        return False
    return bool(os.getenv("DYNAMICS_URL"))


@dataclass
class Services:
    config: OsotConfig
    cache: CacheService
    dataverse: DataverseClient
    email: EmailClient
    auth: AuthService
    password_recovery: PasswordRecoveryService
    registration: RegistrationOrchestrator


def build_services(
    config: Optional[OsotConfig] = None,
    *,
    store=None,
    dataverse: Optional[DataverseClient] = None,
    email: Optional[EmailClient] = None,
) -> Services:
    config = config or load_osot_config()

    if store is None:
        if os.getenv("REDIS_URL"):
            from osot.database.redis_real import RedisCache

            store = RedisCache(url=os.environ["REDIS_URL"])
        else:
            from osot.database.redis import RedisCache

            store = RedisCache()
    cache = CacheService(store, config.cache)

    if dataverse is None:
        if _should_use_real_integrations():
            from osot.integrations.clients.real_http.dataverse import RealDataverseClient, credentials_from_env

            dataverse = RealDataverseClient(credentials_from_env(), cache, config.dataverse)
        else:
            from osot.integrations.clients.mocks.dataverse import MockDataverseClient

            dataverse = MockDataverseClient()
            logger.info("Using in-memory Dataverse client")

    if email is None:
        if os.getenv("EMAIL_API_URL"):
            from osot.integrations.clients.real_http.email import RealEmailClient

            email = RealEmailClient()
        else:
            from osot.integrations.clients.mocks.email import MockEmailClient

            email = MockEmailClient()

    auth = AuthService(dataverse, cache, config.auth)
    return Services(
        config=config,
        cache=cache,
        dataverse=dataverse,
        email=email,
        auth=auth,
        password_recovery=PasswordRecoveryService(auth, email),
        registration=RegistrationOrchestrator(dataverse, cache, email, config.registration),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    raw = (authorization or "").strip()
    scheme, _, token = raw.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AppError(ErrorCode.UNAUTHORIZED)
    return token.strip()


async def get_current_user(
    token: str = Depends(bearer_token),
    services: Services = Depends(get_services),
) -> TokenClaims:
    return services.auth.authenticate(token)


def require_privilege(required: Privilege) -> Callable:
    """Dependency factory: the caller must hold at least `required`."""

    async def _check(user: TokenClaims = Depends(get_current_user)) -> TokenClaims:
        if not user.has_privilege(required):
            raise AppError(ErrorCode.INSUFFICIENT_PRIVILEGE)
        return user

    return _check


def app_context_for(user: TokenClaims) -> AppContext:
    """Dataverse app registration matching the caller's privilege."""
    level = user.privilege_level
    if level >= Privilege.MAIN:
        return AppContext.MAIN
    if level >= Privilege.ADMIN:
        return AppContext.ADMIN
    return AppContext.OWNER
