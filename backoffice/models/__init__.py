# Import all models so they register with Base.metadata
from backoffice.models.user import User
from backoffice.models.company import Company, CompanyMember, CompanyRole
from backoffice.models.product import Product
from backoffice.models.sale import Sale, SaleItem, PaymentMethod
from backoffice.models.warranty import Warranty, WarrantyStatus
from backoffice.models.service_history import ServiceHistory, ServiceStatus

__all__ = [
    "User",
    "Company",
    "CompanyMember",
    "CompanyRole",
    "Product",
    "Sale",
    "SaleItem",
    "PaymentMethod",
    "Warranty",
    "WarrantyStatus",
    "ServiceHistory",
    "ServiceStatus",
]
