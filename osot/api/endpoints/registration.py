"""Public registration workflow: stage, verify email, admin decision, retry."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from osot.api.dependencies import Services, get_services, require_privilege
from osot.auth.tokens import TokenClaims
from osot.entities.enums import Privilege

registration_api = APIRouter()


class VerifyEmailRequest(BaseModel):
    session_id: str
    token: str


@registration_api.post("/register", status_code=201)
async def register(payload: dict = Body(...), services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.registration.stage_registration(payload)


@registration_api.get("/status/{session_id}")
async def registration_status(session_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return services.registration.get_status(session_id)


@registration_api.post("/verify-email")
async def verify_email(request: VerifyEmailRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.registration.verify_email(request.session_id, request.token)


@registration_api.post("/resend-verification/{session_id}")
async def resend_verification(session_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.registration.resend_verification(session_id)


@registration_api.get("/email-status/{session_id}")
async def email_status(session_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return services.registration.get_email_status(session_id)


@registration_api.get("/admin/approve/{token}")
async def approve(token: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.registration.approve(token)


@registration_api.get("/admin/reject/{token}")
async def reject(token: str, reason: Optional[str] = None, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.registration.reject(token, reason or "")


@registration_api.post("/execute/{session_id}")
async def execute(
    session_id: str,
    user: TokenClaims = Depends(require_privilege(Privilege.ADMIN)),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.registration.execute(session_id)


@registration_api.post("/retry/{session_id}")
async def retry(session_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.registration.retry_entity_creation(session_id)


@registration_api.get("/health")
async def registration_health(services: Services = Depends(get_services)) -> Dict[str, Any]:
    cache = services.cache.health_check()
    dataverse = await services.dataverse.ping()
    return {"status": "ok" if cache["connected"] and dataverse else "degraded", "cache": cache, "dataverse": dataverse}
