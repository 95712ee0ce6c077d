from typing import Any, Dict

from fastapi import APIRouter, Depends

from osot.api.dependencies import Services, get_services
from osot.api.endpoints.common import admin_crud_router
from osot.controllers.organizations import OrganizationController
from osot.entities.enums import Privilege

public_organizations_api = APIRouter()

# Fields safe to show on the login and registration pages.
_PUBLIC_FIELDS = ("id", "organization_name", "acronym", "slug", "organization_logo", "organization_website")


@public_organizations_api.get("/{slug}")
async def get_public_organization(slug: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    org = await OrganizationController(services.dataverse, services.cache).resolve_active(slug)
    return {k: org.get(k) for k in _PUBLIC_FIELDS}


organizations_api = admin_crud_router(
    OrganizationController,
    "Organization",
    read=Privilege.MAIN,
    write=Privilege.MAIN,
    remove=Privilege.MAIN,
)
