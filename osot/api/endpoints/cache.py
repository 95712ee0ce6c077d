from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from osot.api.dependencies import Services, get_services, require_privilege
from osot.auth.tokens import TokenClaims
from osot.entities.enums import Privilege
from osot.error_handler import AppError, ErrorCode

cache_api = APIRouter()


class ClearCacheRequest(BaseModel):
    user_guid: Optional[str] = None
    pattern: Optional[str] = None


@cache_api.post("/clear")
async def clear_cache(
    request: ClearCacheRequest,
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    if request.user_guid:
        removed = services.cache.invalidate_user_cache(request.user_guid)
    elif request.pattern:
        removed = services.cache.invalidate_pattern(request.pattern)
    else:
        raise AppError(ErrorCode.INVALID_INPUT, "Provide user_guid or pattern")
    return {"success": True, "removed": removed}


@cache_api.get("/health")
async def cache_health(
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return services.cache.health_check()
