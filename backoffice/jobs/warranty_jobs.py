"""
Warranty Expiry Digest Job.

Once a day, logs for every active company how many warranties are inside
the expiring-soon window. Read only: derived status is never written back.

Triggers:
- Daily scheduled job (via APScheduler)
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.errors import BackofficeError
from backoffice.models.company import Company
from backoffice.services.warranty_service import WarrantyService

logger = logging.getLogger(__name__)


async def run_warranty_expiry_digest(db: AsyncSession, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Count expiring warranties per company.

    A failure for one company is logged and recorded; the others still run.

    Returns:
        Summary with per-company counts and errors
    """
    logger.info("Starting warranty expiry digest...")

    results: Dict[str, Any] = {
        "started_at": datetime.now(timezone.utc).isoformat(),
        "companies": 0,
        "expiring": {},
        "errors": [],
    }

    company_ids = (
        await db.execute(select(Company.id).where(Company.is_active == True))  # noqa: E712
    ).scalars().all()

    service = WarrantyService(db, today=today)
    for company_id in company_ids:
        try:
            stats = await service.get_statistics(company_id)
        except (BackofficeError, SQLAlchemyError) as e:
            logger.error(f"warranty_expiry_digest_failed company_id={company_id}: {e}")
            results["errors"].append({"company_id": str(company_id), "error": str(e)})
            continue

        results["companies"] += 1
        results["expiring"][str(company_id)] = stats.expiring_soon
        if stats.expiring_soon:
            logger.info(
                f"warranty_expiry_digest company_id={company_id} expiring_soon={stats.expiring_soon} "
                f"active={stats.active}"
            )

    logger.info(
        f"Warranty expiry digest complete: {results['companies']} companies, "
        f"{sum(results['expiring'].values())} expiring warranties"
    )
    return results
