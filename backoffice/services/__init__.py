# Services module
from backoffice.services.company_service import CompanyService
from backoffice.services.sale_service import SaleService
from backoffice.services.warranty_service import WarrantyService
from backoffice.services.warranty_query_service import WarrantyQueryService
from backoffice.services.service_history_service import ServiceHistoryService

__all__ = [
    "CompanyService",
    "SaleService",
    "WarrantyService",
    "WarrantyQueryService",
    "ServiceHistoryService",
]
