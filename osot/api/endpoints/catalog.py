"""Public catalog (products, insurance providers) and its admin routes."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from osot.api.dependencies import Services, get_services
from osot.api.endpoints.common import admin_crud_router, not_found
from osot.controllers.products import InsuranceProviderController, ProductController
from osot.entities.enums import AccessModifier, ProductStatus

public_catalog_api = APIRouter()


@public_catalog_api.get("/products")
async def list_public_products(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return await ProductController(services.dataverse, services.cache).list_public()


@public_catalog_api.get("/products/{product_id}")
async def get_public_product(product_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    product = await ProductController(services.dataverse, services.cache).get(product_id)
    if (
        product is None
        or product.get("access_modifiers") != AccessModifier.PUBLIC
        or product.get("product_status") == ProductStatus.DRAFT
    ):
        raise not_found("Product")
    return product


@public_catalog_api.get("/insurance-providers")
async def list_public_providers(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return await InsuranceProviderController(services.dataverse, services.cache).list_public()


products_api = admin_crud_router(ProductController, "Product")
insurance_providers_api = admin_crud_router(InsuranceProviderController, "Insurance provider")
