"""Warranty Record Store: creation from sales, deactivation and lookups."""
from typing import Dict, Iterable, List, Optional
from datetime import date, datetime, timezone
import logging
import uuid

from sqlalchemy import select, func, update, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.config import settings
from backoffice.core.dates import business_today
from backoffice.core.errors import NotFound, PersistenceError
from backoffice.database import with_timeout
from backoffice.models.sale import Sale, SaleItem
from backoffice.models.service_history import ServiceHistory
from backoffice.models.warranty import Warranty, WarrantyStatus
from backoffice.schemas.warranty import (
    SaleProductSnapshot,
    WarrantyDetailResponse,
    WarrantyResponse,
    WarrantyStatistics,
)
from backoffice.services.service_history_service import to_service_response
from backoffice.services.warranty_status import compute_expires_at, derive_for, status_predicate


logger = logging.getLogger(__name__)

_WARRANTY_COLUMNS = [c.key for c in Warranty.__table__.columns]

# Eager loads needed to build a response without lazy IO
WARRANTY_LOAD_OPTIONS = (selectinload(Warranty.sale).selectinload(Sale.items),)


def to_warranty_response(
    warranty: Warranty,
    service_count: int = 0,
    today: Optional[date] = None,
    threshold_days: Optional[int] = None,
    detail: bool = False,
) -> WarrantyResponse:
    """
    Stored row -> response with derived fields and the sale snapshot.

    ``warranty.sale.items`` must already be loaded; with ``detail`` so must
    ``warranty.service_histories``.
    """
    derived = derive_for(warranty, today, threshold_days)
    sale = warranty.sale

    data = {key: getattr(warranty, key) for key in _WARRANTY_COLUMNS}
    data.update(
        days_remaining=derived.days_remaining,
        warranty_status=derived.warranty_status,
        service_count=service_count,
        sale_date=sale.sale_date if sale else None,
        sale_total=sale.total_amount if sale else None,
        sale_products=[SaleProductSnapshot.model_validate(item) for item in sale.items] if sale else [],
    )

    if detail:
        histories = list(warranty.service_histories)
        data["service_count"] = len(histories)
        data["service_histories"] = [to_service_response(s) for s in histories]
        return WarrantyDetailResponse.model_validate(data)

    return WarrantyResponse.model_validate(data)


def service_count_subquery():
    """Correlated COUNT of service records, computed per read."""
    return (
        select(func.count(ServiceHistory.id))
        .where(ServiceHistory.warranty_id == Warranty.id)
        .correlate(Warranty)
        .scalar_subquery()
        .label("service_count")
    )


async def service_counts(db: AsyncSession, warranty_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, int]:
    ids = list(warranty_ids)
    if not ids:
        return {}
    result = await with_timeout(
        db.execute(
            select(ServiceHistory.warranty_id, func.count(ServiceHistory.id))
            .where(ServiceHistory.warranty_id.in_(ids))
            .group_by(ServiceHistory.warranty_id)
        )
    )
    return {warranty_id: count for warranty_id, count in result.all()}


class WarrantyService:
    """Warranty creation, deactivation and tenant-scoped lookups."""

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

    @property
    def today(self) -> date:
        return self._today or business_today()

    def _response(self, warranty: Warranty, service_count: int = 0, detail: bool = False):
        return to_warranty_response(
            warranty,
            service_count=service_count,
            today=self.today,
            threshold_days=self.threshold_days,
            detail=detail,
        )

    # ==================== CREATION ====================

    async def create_for_sale(self, sale: Sale, items: List[SaleItem]) -> List[Warranty]:
        """
        Create one warranty per line item with warranty_months > 0.

        Runs inside the caller's transaction. Nothing is committed here; a
        failure raises PersistenceError and the caller's transaction is
        rolled back with the sale.
        """
        warranties: List[Warranty] = []

        for item in items:
            if not item.warranty_months or item.warranty_months <= 0:
                continue

            serial = item.serial_number or f"{sale.invoice_number}-{item.position}"
            warranty = Warranty(
                company_id=sale.company_id,
                sale=sale,
                sale_item=item,
                product_id=item.product_id,
                serial_number=serial,
                product_name=item.product_name,
                invoice_number=sale.invoice_number,
                customer_name=sale.customer_name,
                customer_email=sale.customer_email,
                customer_phone=sale.customer_phone,
                start_date=sale.sale_date,
                warranty_months=item.warranty_months,
                expires_at=compute_expires_at(sale.sale_date, item.warranty_months),
                is_active=True,
            )
            self.db.add(warranty)
            warranties.append(warranty)

        if not warranties:
            return warranties

        try:
            await with_timeout(self.db.flush())
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception(f"warranty_create_failed company_id={sale.company_id} sale_id={sale.id}")
            raise PersistenceError("Failed to create warranties for sale") from exc

        logger.info(
            f"warranties_created company_id={sale.company_id} sale_id={sale.id} count={len(warranties)}"
        )
        return warranties

    # ==================== DEACTIVATION ====================

    async def deactivate(self, warranty_id: uuid.UUID, company_id: uuid.UUID) -> WarrantyResponse:
        """
        Deactivate a warranty. Idempotent.

        Single conditional UPDATE on (id, company_id, is_active); a warranty of
        another company matches no row and ends as NotFound on the re-read.
        """
        now = datetime.now(timezone.utc)
        try:
            result = await with_timeout(
                self.db.execute(
                    update(Warranty)
                    .where(
                        Warranty.id == warranty_id,
                        Warranty.company_id == company_id,
                        Warranty.is_active == True,  # noqa: E712
                    )
                    .values(is_active=False, deactivated_at=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
            )
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception(f"warranty_deactivate_failed company_id={company_id} warranty_id={warranty_id}")
            raise PersistenceError("Failed to deactivate warranty") from exc

        warranty = await self.get_by_id(warranty_id, company_id)

        if result.rowcount:
            logger.info(f"warranty_deactivated company_id={company_id} warranty_id={warranty_id}")
        else:
            logger.debug(f"warranty_already_inactive company_id={company_id} warranty_id={warranty_id}")

        return warranty

    # ==================== LOOKUPS ====================

    async def get_by_id(
        self,
        warranty_id: uuid.UUID,
        company_id: uuid.UUID,
        include_services: bool = False,
    ) -> WarrantyResponse:
        """Get warranty by ID within the company. Raises NotFound otherwise."""
        query = (
            select(Warranty, service_count_subquery())
            .options(*WARRANTY_LOAD_OPTIONS)
            .where(
                Warranty.id == warranty_id,
                Warranty.company_id == company_id,
            )
            .execution_options(populate_existing=True)
        )
        if include_services:
            query = query.options(selectinload(Warranty.service_histories))

        row = (await with_timeout(self.db.execute(query))).first()
        if row is None:
            raise NotFound("Warranty")

        warranty, count = row
        return self._response(warranty, count or 0, detail=include_services)

    async def get_by_serial_number(self, company_id: uuid.UUID, serial_number: str) -> WarrantyDetailResponse:
        """Most recent warranty for a serial number, with its service history."""
        query = (
            select(Warranty)
            .options(*WARRANTY_LOAD_OPTIONS, selectinload(Warranty.service_histories))
            .where(
                Warranty.company_id == company_id,
                Warranty.serial_number == serial_number,
            )
            .order_by(Warranty.created_at.desc(), Warranty.id.desc())
            .limit(1)
        )
        warranty = await with_timeout(self.db.scalar(query))
        if warranty is None:
            raise NotFound("Warranty", message=f"No warranty found for serial number {serial_number}")

        return self._response(warranty, detail=True)

    async def get_expiring(self, company_id: uuid.UUID, days: Optional[int] = None) -> List[WarrantyResponse]:
        """Active warranties expiring within ``days``, soonest first."""
        window = self.threshold_days if days is None else days
        query = (
            select(Warranty, service_count_subquery())
            .options(*WARRANTY_LOAD_OPTIONS)
            .where(
                Warranty.company_id == company_id,
                status_predicate(WarrantyStatus.EXPIRING_SOON, self.today, window),
            )
            .order_by(Warranty.expires_at.asc(), Warranty.id.asc())
        )
        result = await with_timeout(self.db.execute(query))
        return [self._response(w, count or 0) for w, count in result.all()]

    async def get_statistics(self, company_id: uuid.UUID) -> WarrantyStatistics:
        """Counts by derived status, evaluated in the store for ``today``."""
        def count_where(predicate):
            return func.coalesce(func.sum(case((predicate, 1), else_=0)), 0)

        today = self.today
        row = (
            await with_timeout(
                self.db.execute(
                    select(
                        func.count(Warranty.id),
                        count_where(status_predicate(WarrantyStatus.ACTIVE, today, self.threshold_days)),
                        count_where(status_predicate(WarrantyStatus.EXPIRING_SOON, today, self.threshold_days)),
                        count_where(status_predicate(WarrantyStatus.EXPIRED, today, self.threshold_days)),
                        count_where(Warranty.is_active == False),  # noqa: E712
                    ).where(Warranty.company_id == company_id)
                )
            )
        ).one()

        return WarrantyStatistics(
            total=row[0] or 0,
            active=row[1],
            expiring_soon=row[2],
            expired=row[3],
            deactivated=row[4],
        )
