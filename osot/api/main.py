"""
FastAPI application - OSOT API entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from osot.api.dependencies import Services, get_services
from osot.api.endpoints.accounts import accounts_api, addresses_api, contacts_api, identities_api, managements_api
from osot.api.endpoints.affiliates import affiliates_api, my_affiliate_api, public_affiliates_api
from osot.api.endpoints.auth import auth_api
from osot.api.endpoints.cache import cache_api
from osot.api.endpoints.catalog import insurance_providers_api, products_api, public_catalog_api
from osot.api.endpoints.education import ot_education_api, ota_education_api
from osot.api.endpoints.membership import (
    membership_categories_api,
    membership_employments_api,
    membership_practices_api,
    membership_preferences_api,
    membership_settings_api,
)
from osot.api.endpoints.orders import orders_api
from osot.api.endpoints.organizations import organizations_api, public_organizations_api
from osot.api.endpoints.registration import registration_api
from osot.error_handler import AppError, ErrorCode, ErrorHandler, error_payload
from osot.integrations.policy.response_wrappers import IntegrationResponseError
from osot.utils.config_loader import load_osot_config
from osot.validation import FormValidationError

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

config = load_osot_config()
error_handler = ErrorHandler()

app = FastAPI(
    title="OSOT API",
    description="Membership, registration and commerce API for the Ontario Society of Occupational Therapists",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def handle_any_error(request: Request, exc: Exception) -> JSONResponse:
    payload = error_handler.handle_exception(exc, {"path": request.url.path})
    return JSONResponse(status_code=error_handler.status_for(exc), content=payload)


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=error_handler.handle_exception(exc))


@app.exception_handler(FormValidationError)
async def handle_form_error(request: Request, exc: FormValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=error_payload(exc.code, exc.message, {"field_errors": exc.field_errors}),
    )


@app.exception_handler(IntegrationResponseError)
async def handle_integration_error(request: Request, exc: IntegrationResponseError) -> JSONResponse:
    logger.error("Dataverse response error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content=error_payload(ErrorCode.DATAVERSE_SERVICE_ERROR))


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    field_errors: Dict[str, str] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        field_errors.setdefault(".".join(loc) or "body", err.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=422,
        content=error_payload(ErrorCode.VALIDATION_ERROR, "Request body is invalid", {"field_errors": field_errors}),
    )


# ============================================================================
# ROUTES
# ============================================================================

app.include_router(auth_api, prefix="/auth", tags=["Auth"])
app.include_router(registration_api, prefix="/public/registration", tags=["Registration"])
app.include_router(public_catalog_api, prefix="/public", tags=["Catalog"])
app.include_router(public_organizations_api, prefix="/public/organizations", tags=["Organizations"])
app.include_router(public_affiliates_api, prefix="/public/affiliates", tags=["Affiliates"])

app.include_router(accounts_api, prefix="/private/accounts", tags=["Accounts"])
app.include_router(my_affiliate_api, prefix="/private/affiliates", tags=["Affiliates"])
app.include_router(affiliates_api, prefix="/private/affiliates", tags=["Affiliates"])
app.include_router(addresses_api, prefix="/private/addresses", tags=["Addresses"])
app.include_router(contacts_api, prefix="/private/contacts", tags=["Contacts"])
app.include_router(identities_api, prefix="/private/identities", tags=["Identities"])
app.include_router(managements_api, prefix="/private/managements", tags=["Account management"])
app.include_router(ot_education_api, prefix="/private/ot-educations", tags=["Education"])
app.include_router(ota_education_api, prefix="/private/ota-educations", tags=["Education"])
app.include_router(membership_categories_api, prefix="/private/membership-categories", tags=["Membership"])
app.include_router(membership_employments_api, prefix="/private/membership-employments", tags=["Membership"])
app.include_router(membership_practices_api, prefix="/private/membership-practices", tags=["Membership"])
app.include_router(membership_preferences_api, prefix="/private/membership-preferences", tags=["Membership"])
app.include_router(membership_settings_api, prefix="/private/membership-settings", tags=["Membership"])
app.include_router(products_api, prefix="/private/products", tags=["Catalog"])
app.include_router(insurance_providers_api, prefix="/private/insurance-providers", tags=["Catalog"])
app.include_router(organizations_api, prefix="/private/organizations", tags=["Organizations"])
app.include_router(orders_api, prefix="/private/orders", tags=["Orders"])
app.include_router(cache_api, prefix="/private/cache", tags=["Cache"])


@app.get("/health")
async def health(services: Services = Depends(get_services)) -> Dict[str, Any]:
    cache = services.cache.health_check()
    return {"status": "ok", "service": "osot-api", "cache": cache["status"]}


@app.on_event("startup")
async def on_startup() -> None:
    services = get_services()
    logger.info(
        "OSOT API started (dataverse=%s, cache=%s, email=%s)",
        type(services.dataverse).__name__,
        type(services.cache.store).__module__,
        type(services.email).__name__,
    )
