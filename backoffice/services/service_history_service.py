"""Service History Tracker: repair records opened against warranties."""
from typing import Optional, List, Tuple
from datetime import date, datetime, timedelta, timezone
import logging
import uuid

from sqlalchemy import select, func, update, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import settings
from backoffice.core.dates import business_day_start
from backoffice.core.errors import Conflict, NotFound, PersistenceError, ValidationError
from backoffice.database import with_timeout
from backoffice.models.service_history import ServiceHistory, ServiceStatus, OPEN_SERVICE_STATUSES
from backoffice.models.warranty import Warranty
from backoffice.schemas.base import PaginationMeta, clamp_page
from backoffice.schemas.service import ServiceHistoryResponse, ServiceSortField, ServiceStatistics
from backoffice.services.service_state_machine import get_allowed_transitions, validate_transition


logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    ServiceSortField.ENTRY_DATE: ServiceHistory.entry_date,
    ServiceSortField.STATUS: ServiceHistory.status,
    ServiceSortField.SERIAL_NUMBER: ServiceHistory.serial_number,
    ServiceSortField.CUSTOMER_NAME: ServiceHistory.customer_name,
}


def to_service_response(service: ServiceHistory) -> ServiceHistoryResponse:
    """ORM row -> response, with the statuses reachable from the current one."""
    response = ServiceHistoryResponse.model_validate(service)
    response.next_statuses = [ServiceStatus(s) for s in get_allowed_transitions(service.status)]
    return response


class ServiceHistoryService:
    """
    Opens and advances service records.

    Every lookup carries company_id in its WHERE clause, so a record owned by
    another company is indistinguishable from one that does not exist.
    """

    def __init__(self, db: AsyncSession, allow_deactivated: Optional[bool] = None):
        self.db = db
        self.allow_deactivated = (
            settings.ALLOW_SERVICE_ON_DEACTIVATED_WARRANTY
            if allow_deactivated is None
            else allow_deactivated
        )

    async def _get_row(self, service_id: uuid.UUID, company_id: uuid.UUID) -> ServiceHistory:
        query = (
            select(ServiceHistory)
            .where(
                ServiceHistory.id == service_id,
                ServiceHistory.company_id == company_id,
            )
            .execution_options(populate_existing=True)
        )
        service = await with_timeout(self.db.scalar(query))
        if service is None:
            raise NotFound("Service")
        return service

    async def _get_warranty(self, warranty_id: uuid.UUID, company_id: uuid.UUID, lock: bool = False) -> Warranty:
        query = select(Warranty).where(
            Warranty.id == warranty_id,
            Warranty.company_id == company_id,
        )
        if lock:
            # Serializes concurrent opens on the same warranty (no-op on SQLite)
            query = query.with_for_update()
        warranty = await with_timeout(self.db.scalar(query))
        if warranty is None:
            raise NotFound("Warranty")
        return warranty

    # ==================== COMMANDS ====================

    async def open(
        self,
        warranty_id: uuid.UUID,
        company_id: uuid.UUID,
        reason: str,
        observations: Optional[str] = None,
        photos: Optional[List[str]] = None,
        created_by: Optional[uuid.UUID] = None,
    ) -> ServiceHistoryResponse:
        """
        Open a service record in status 'received'.

        Raises:
            NotFound: warranty is not in this company
            Conflict: warranty already has an open service, or is deactivated
                and ALLOW_SERVICE_ON_DEACTIVATED_WARRANTY is off
        """
        warranty = await self._get_warranty(warranty_id, company_id, lock=True)

        if not warranty.is_active and not self.allow_deactivated:
            raise Conflict(
                "Warranty is deactivated and cannot receive new services",
                details={"warranty_id": str(warranty_id)},
            )

        open_id = await with_timeout(
            self.db.scalar(
                select(ServiceHistory.id).where(
                    ServiceHistory.warranty_id == warranty_id,
                    ServiceHistory.company_id == company_id,
                    ServiceHistory.status.in_(OPEN_SERVICE_STATUSES),
                )
            )
        )
        if open_id is not None:
            raise Conflict(
                "Warranty already has an open service",
                details={"open_service_id": str(open_id)},
            )

        service = ServiceHistory(
            company_id=company_id,
            warranty_id=warranty.id,
            serial_number=warranty.serial_number,
            product_name=warranty.product_name,
            customer_name=warranty.customer_name,
            status=ServiceStatus.RECEIVED.value,
            reason=reason,
            observations=observations,
            photos=list(photos or []),
            entry_date=datetime.now(timezone.utc),
            created_by=created_by,
        )
        self.db.add(service)

        try:
            await with_timeout(self.db.flush())
        except IntegrityError as exc:
            # Lost the race against another open on the same warranty
            await self.db.rollback()
            logger.warning(f"service_open_conflict company_id={company_id} warranty_id={warranty_id}")
            raise Conflict("Warranty already has an open service") from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception(f"service_open_failed company_id={company_id} warranty_id={warranty_id}")
            raise PersistenceError("Failed to open service") from exc

        logger.info(
            f"service_opened company_id={company_id} warranty_id={warranty_id} service_id={service.id}"
        )
        return to_service_response(service)

    async def advance(
        self,
        service_id: uuid.UUID,
        company_id: uuid.UUID,
        next_status: ServiceStatus,
    ) -> ServiceHistoryResponse:
        """
        Move a service one step forward.

        The update is conditional on the status that was read, so two
        concurrent advances cannot both apply.
        """
        service = await self._get_row(service_id, company_id)
        current = service.status
        validate_transition(current, next_status)

        now = datetime.now(timezone.utc)
        values = {"status": ServiceStatus(next_status).value, "updated_at": now}
        if ServiceStatus(next_status) == ServiceStatus.DELIVERED:
            values["delivered_at"] = now

        try:
            result = await with_timeout(
                self.db.execute(
                    update(ServiceHistory)
                    .where(
                        ServiceHistory.id == service_id,
                        ServiceHistory.company_id == company_id,
                        ServiceHistory.status == current,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
            )
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception(f"service_advance_failed company_id={company_id} service_id={service_id}")
            raise PersistenceError("Failed to update service status") from exc

        if result.rowcount == 0:
            raise Conflict(
                "Service status was changed by another request",
                details={"expected": current},
            )

        logger.info(
            f"service_status_changed company_id={company_id} service_id={service_id} "
            f"from={current} to={values['status']}"
        )
        return to_service_response(await self._get_row(service_id, company_id))

    # ==================== QUERIES ====================

    async def get(self, service_id: uuid.UUID, company_id: uuid.UUID) -> ServiceHistoryResponse:
        return to_service_response(await self._get_row(service_id, company_id))

    async def list(
        self,
        company_id: uuid.UUID,
        status: Optional[ServiceStatus] = None,
        serial_number: Optional[str] = None,
        customer_name: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: Optional[int] = 1,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = "desc",
    ) -> Tuple[List[ServiceHistoryResponse], PaginationMeta]:
        """
        Paginated service records of a company.

        start_date/end_date are business calendar days and both ends are
        inclusive. Unknown sort keys fall back to entry_date.
        """
        if start_date and end_date and start_date > end_date:
            raise ValidationError(
                "start_date must not be after end_date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        page, limit = clamp_page(page, limit)

        conditions = [ServiceHistory.company_id == company_id]
        if status:
            conditions.append(ServiceHistory.status == ServiceStatus(status).value)
        if serial_number:
            conditions.append(ServiceHistory.serial_number.icontains(serial_number, autoescape=True))
        if customer_name:
            conditions.append(ServiceHistory.customer_name.icontains(customer_name, autoescape=True))
        if start_date:
            conditions.append(ServiceHistory.entry_date >= business_day_start(start_date))
        if end_date:
            conditions.append(ServiceHistory.entry_date < business_day_start(end_date + timedelta(days=1)))

        total = await with_timeout(
            self.db.scalar(
                select(func.count()).select_from(
                    select(ServiceHistory.id).where(*conditions).subquery()
                )
            )
        ) or 0

        sort_column = SORT_COLUMNS.get(sort_by or "", ServiceHistory.entry_date)
        if (sort_order or "desc").lower() == "asc":
            ordering = (sort_column.asc(), ServiceHistory.id.asc())
        else:
            ordering = (sort_column.desc(), ServiceHistory.id.desc())

        result = await with_timeout(
            self.db.execute(
                select(ServiceHistory)
                .where(*conditions)
                .order_by(*ordering)
                .offset((page - 1) * limit)
                .limit(limit)
            )
        )
        items = [to_service_response(s) for s in result.scalars().all()]
        return items, PaginationMeta.build(page, limit, total)

    async def list_for_warranty(
        self,
        warranty_id: uuid.UUID,
        company_id: uuid.UUID,
    ) -> List[ServiceHistoryResponse]:
        """Service records of one warranty, newest first."""
        await self._get_warranty(warranty_id, company_id)

        result = await with_timeout(
            self.db.execute(
                select(ServiceHistory)
                .where(
                    ServiceHistory.warranty_id == warranty_id,
                    ServiceHistory.company_id == company_id,
                )
                .order_by(ServiceHistory.entry_date.desc(), ServiceHistory.id.desc())
            )
        )
        return [to_service_response(s) for s in result.scalars().all()]

    async def find_by_serial_number(
        self,
        company_id: uuid.UUID,
        serial_number: str,
    ) -> List[ServiceHistoryResponse]:
        result = await with_timeout(
            self.db.execute(
                select(ServiceHistory)
                .where(
                    ServiceHistory.company_id == company_id,
                    ServiceHistory.serial_number == serial_number,
                )
                .order_by(ServiceHistory.entry_date.desc(), ServiceHistory.id.desc())
            )
        )
        return [to_service_response(s) for s in result.scalars().all()]

    async def get_statistics(self, company_id: uuid.UUID) -> ServiceStatistics:
        def count_status(*statuses: str):
            return func.coalesce(
                func.sum(case((ServiceHistory.status.in_(statuses), 1), else_=0)), 0
            )

        row = (
            await with_timeout(
                self.db.execute(
                    select(
                        func.count(ServiceHistory.id),
                        count_status(ServiceStatus.RECEIVED.value),
                        count_status(ServiceStatus.IN_REPAIR.value),
                        count_status(ServiceStatus.DELIVERED.value),
                        count_status(*OPEN_SERVICE_STATUSES),
                    ).where(ServiceHistory.company_id == company_id)
                )
            )
        ).one()

        return ServiceStatistics(
            total=row[0] or 0,
            received=row[1],
            in_repair=row[2],
            delivered=row[3],
            open=row[4],
        )
