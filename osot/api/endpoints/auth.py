from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from osot.api.dependencies import Services, bearer_token, get_current_user, get_services
from osot.auth.tokens import TokenClaims

auth_api = APIRouter()


class LoginRequest(BaseModel):
    email: str
    password: str
    organization_slug: str = Field(default="osot", description="Organization the account belongs to")


@auth_api.post("/login")
async def login(request: LoginRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.auth.login(request.email, request.password, request.organization_slug)


@auth_api.post("/logout")
async def logout(token: str = Depends(bearer_token), services: Services = Depends(get_services)) -> Dict[str, Any]:
    services.auth.logout(token)
    return {"success": True}


@auth_api.get("/me")
async def whoami(user: TokenClaims = Depends(get_current_user)) -> Dict[str, Any]:
    return user.model_dump(mode="json")


class ForgotPasswordRequest(BaseModel):
    email: str
    organization_slug: str = "osot"


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


@auth_api.post("/forgot-password")
async def forgot_password(request: ForgotPasswordRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.password_recovery.request_reset(request.email, request.organization_slug)


@auth_api.get("/reset-password/{token}")
async def check_reset_token(token: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return {"valid": services.password_recovery.validate_token(token)}


@auth_api.post("/reset-password")
async def reset_password(request: ResetPasswordRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.password_recovery.reset_password(request.token, request.new_password)
