"""
Warranty Query & Filter Engine.

Paginated, filtered listing of a company's warranties. The status filter
targets the derived status, so it is pushed to the store as the
equivalent date predicate (see warranty_status.status_predicate) and
count/pagination stay exact.

Ordering is the requested sort key plus ``id`` as tie breaker. That keeps
pages stable while the data is unchanged; rows inserted or deactivated
between two page fetches can still shift items across pages.
"""
from typing import List, Optional, Tuple
from datetime import date
import logging
import uuid

from sqlalchemy import select, func, exists
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import settings
from backoffice.core.dates import business_today
from backoffice.database import with_timeout
from backoffice.models.sale import Sale
from backoffice.models.warranty import Warranty, WarrantyStatus
from backoffice.schemas.base import PaginationMeta, clamp_page
from backoffice.schemas.warranty import WarrantyResponse, WarrantySortField
from backoffice.services.warranty_service import (
    WARRANTY_LOAD_OPTIONS,
    service_count_subquery,
    to_warranty_response,
)
from backoffice.services.warranty_status import status_predicate


logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    WarrantySortField.CREATED_AT: Warranty.created_at,
    WarrantySortField.EXPIRES_AT: Warranty.expires_at,
    WarrantySortField.START_DATE: Warranty.start_date,
    WarrantySortField.CUSTOMER_NAME: Warranty.customer_name,
}


class WarrantyQueryService:
    def __init__(
        self,
        db: AsyncSession,
        today: Optional[date] = None,
        threshold_days: Optional[int] = None,
    ):
        self.db = db
        self._today = today
        self.threshold_days = (
            settings.WARRANTY_EXPIRING_SOON_DAYS if threshold_days is None else threshold_days
        )

    async def list(
        self,
        company_id: uuid.UUID,
        status: Optional[WarrantyStatus] = None,
        serial_number: Optional[str] = None,
        customer_name: Optional[str] = None,
        page: Optional[int] = 1,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: str = "desc",
    ) -> Tuple[List[WarrantyResponse], PaginationMeta]:
        """
        List warranties of one company.

        Filters are AND-combined. A page past the end returns no items with
        the same total/totalPages.
        """
        today = self._today or business_today()
        page, limit = clamp_page(page, limit)

        conditions = [Warranty.company_id == company_id]
        if status:
            conditions.append(status_predicate(WarrantyStatus(status), today, self.threshold_days))
        if serial_number:
            conditions.append(Warranty.serial_number.icontains(serial_number, autoescape=True))
        if customer_name:
            conditions.append(
                exists().where(
                    Sale.id == Warranty.sale_id,
                    Sale.company_id == company_id,
                    Sale.customer_name.icontains(customer_name, autoescape=True),
                )
            )

        # Count
        count_query = select(func.count()).select_from(
            select(Warranty.id).where(*conditions).subquery()
        )
        total = await with_timeout(self.db.scalar(count_query)) or 0

        # Unknown sort keys fall back to creation time
        sort_column = SORT_COLUMNS.get(sort_by or "", Warranty.created_at)
        if (sort_order or "desc").lower() == "asc":
            ordering = (sort_column.asc(), Warranty.id.asc())
        else:
            ordering = (sort_column.desc(), Warranty.id.desc())

        query = (
            select(Warranty, service_count_subquery())
            .options(*WARRANTY_LOAD_OPTIONS)
            .where(*conditions)
            .order_by(*ordering)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await with_timeout(self.db.execute(query))

        items = [
            to_warranty_response(
                warranty,
                service_count=count or 0,
                today=today,
                threshold_days=self.threshold_days,
            )
            for warranty, count in result.all()
        ]

        logger.debug(
            f"warranty_list company_id={company_id} page={page} limit={limit} total={total} returned={len(items)}"
        )
        return items, PaginationMeta.build(page=page, limit=limit, total=total)
