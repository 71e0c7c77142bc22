from fastapi import APIRouter

from backoffice.api.v1.endpoints import (
    companies,
    sales,
    warranties,
    services,
)


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(companies.router, prefix="/companies", tags=["Companies"])
api_router.include_router(sales.router, prefix="/sales", tags=["Sales"])
api_router.include_router(warranties.router, prefix="/warranties", tags=["Warranties"])
api_router.include_router(services.router, prefix="/services", tags=["Services"])
