"""Sale Service - records sales and triggers warranty creation."""
from typing import Optional
from datetime import date
from decimal import Decimal
import logging
import uuid

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.config import settings
from backoffice.core.dates import business_today
from backoffice.core.errors import Conflict, NotFound, PersistenceError, ValidationError
from backoffice.database import with_timeout
from backoffice.models.product import Product
from backoffice.models.sale import Sale, SaleItem
from backoffice.models.warranty import Warranty
from backoffice.schemas.sale import SaleCreate, SaleResponse, SaleItemCreate
from backoffice.services.warranty_service import WarrantyService, service_counts, to_warranty_response


logger = logging.getLogger(__name__)


class SaleService:
    """Sale creation. The sale, its items and its warranties share one transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate_invoice_number(self, company_id: uuid.UUID, sale_date: date) -> str:
        """Next invoice number for the day: INV-YYYYMMDD-NNNN (per company)."""
        prefix = f"{settings.INVOICE_PREFIX or 'INV'}-{sale_date.strftime('%Y%m%d')}-"
        count = await with_timeout(
            self.db.scalar(
                select(func.count(Sale.id)).where(
                    Sale.company_id == company_id,
                    Sale.invoice_number.like(f"{prefix}%"),
                )
            )
        )
        return f"{prefix}{(count or 0) + 1:04d}"

    async def _get_product(self, company_id: uuid.UUID, product_id: uuid.UUID) -> Product:
        product = await with_timeout(
            self.db.scalar(
                select(Product).where(
                    Product.id == product_id,
                    Product.company_id == company_id,
                )
            )
        )
        if product is None:
            raise NotFound("Product")
        return product

    def _resolve_warranty_months(
        self,
        item: SaleItemCreate,
        sale_months: Optional[int],
        product: Optional[Product],
    ) -> int:
        # line item -> sale -> product default -> global default
        if item.warranty_months is not None:
            return item.warranty_months
        if sale_months is not None:
            return sale_months
        if product is not None and product.default_warranty_months is not None:
            return product.default_warranty_months
        return settings.DEFAULT_WARRANTY_MONTHS

    async def create_sale(
        self,
        company_id: uuid.UUID,
        user_id: uuid.UUID,
        data: SaleCreate,
    ) -> SaleResponse:
        """
        Record a sale and create its warranties.

        Raises:
            NotFound: a product_id does not belong to the company
            ValidationError: a line has no product name, or totals go negative
            PersistenceError: any store failure; nothing is kept
        """
        sale_date = data.sale_date or business_today()

        items = []
        subtotal = Decimal("0")
        for position, line in enumerate(data.items, start=1):
            product = await self._get_product(company_id, line.product_id) if line.product_id else None
            product_name = line.product_name or (product.name if product else None)
            if not product_name:
                raise ValidationError(
                    "Each item needs a product_name or a product_id",
                    details={"position": position},
                )

            item = SaleItem(
                position=position,
                product_id=line.product_id,
                product_name=product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount=line.discount,
                serial_number=line.serial_number,
                warranty_months=self._resolve_warranty_months(line, data.warranty_months, product),
            )
            if item.line_total < 0:
                raise ValidationError("Item discount exceeds line amount", details={"position": position})
            subtotal += item.line_total
            items.append(item)

        total = subtotal - data.discount_amount
        if total < 0:
            raise ValidationError("Discount exceeds sale subtotal")

        sale = Sale(
            company_id=company_id,
            user_id=user_id,
            invoice_number=await self.generate_invoice_number(company_id, sale_date),
            customer_name=data.customer_name,
            customer_email=data.customer_email,
            customer_phone=data.customer_phone,
            customer_address=data.customer_address,
            sale_date=sale_date,
            payment_method=data.payment_method.value,
            warranty_months=(
                data.warranty_months if data.warranty_months is not None else settings.DEFAULT_WARRANTY_MONTHS
            ),
            subtotal=subtotal,
            discount_amount=data.discount_amount,
            total_amount=total,
            notes=data.notes,
            items=items,
        )
        self.db.add(sale)

        try:
            await with_timeout(self.db.flush())
        except IntegrityError as exc:
            await self.db.rollback()
            logger.warning(f"sale_invoice_collision company_id={company_id} invoice={sale.invoice_number}")
            raise Conflict("Invoice number already in use, retry the sale") from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception(f"sale_create_failed company_id={company_id}")
            raise PersistenceError("Failed to create sale") from exc

        warranties = await WarrantyService(self.db).create_for_sale(sale, items)

        logger.info(
            f"sale_created company_id={company_id} sale_id={sale.id} invoice={sale.invoice_number} "
            f"items={len(items)} warranties={len(warranties)}"
        )
        return await self.get_sale(sale.id, company_id)

    async def get_sale(self, sale_id: uuid.UUID, company_id: uuid.UUID) -> SaleResponse:
        """Get a sale with items and warranties, scoped to the company."""
        sale = await with_timeout(
            self.db.scalar(
                select(Sale)
                .options(
                    selectinload(Sale.items),
                    selectinload(Sale.warranties).selectinload(Warranty.sale).selectinload(Sale.items),
                )
                .where(
                    Sale.id == sale_id,
                    Sale.company_id == company_id,
                )
            )
        )
        if sale is None:
            raise NotFound("Sale")

        counts = await service_counts(self.db, (w.id for w in sale.warranties))
        response = SaleResponse.model_validate(
            {
                **{c.key: getattr(sale, c.key) for c in Sale.__table__.columns},
                "items": list(sale.items),
                "warranties": [],
            }
        )
        response.warranties = [
            to_warranty_response(w, service_count=counts.get(w.id, 0)) for w in sale.warranties
        ]
        return response
