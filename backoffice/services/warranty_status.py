"""
Derived warranty fields.

Status and days remaining are pure functions of the stored facts and the
current date. They are applied to every warranty on the way out of the
store and never written back, so a warranty read a minute later always
reflects the calendar of that minute.

Rules (threshold defaults to WARRANTY_EXPIRING_SOON_DAYS):
    deactivated                      -> expired
    today >= expires_at              -> expired
    expires_at - today <= threshold  -> expiring_soon
    otherwise                        -> active
"""
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import and_, or_

from backoffice.config import settings
from backoffice.core.dates import add_months, business_today
from backoffice.models.warranty import Warranty, WarrantyStatus


@dataclass(frozen=True)
class DerivedWarrantyFields:
    expires_at: date
    days_remaining: int
    warranty_status: WarrantyStatus


def compute_expires_at(start_date: date, warranty_months: int) -> date:
    """expires_at = start_date + warranty_months calendar months."""
    if warranty_months < 0:
        raise ValueError("warranty_months must be >= 0")
    return add_months(start_date, warranty_months)


def days_remaining(expires_at: date, today: date) -> int:
    """Whole days until expiry, never negative."""
    return max(0, (expires_at - today).days)


def warranty_status(
    expires_at: date,
    is_active: bool,
    today: date,
    threshold_days: Optional[int] = None,
) -> WarrantyStatus:
    """Status of a warranty on a given day."""
    threshold = settings.WARRANTY_EXPIRING_SOON_DAYS if threshold_days is None else threshold_days

    if not is_active:
        return WarrantyStatus.EXPIRED
    if today >= expires_at:
        return WarrantyStatus.EXPIRED
    if days_remaining(expires_at, today) <= threshold:
        return WarrantyStatus.EXPIRING_SOON
    return WarrantyStatus.ACTIVE


def derive(
    start_date: date,
    warranty_months: int,
    is_active: bool,
    today: Optional[date] = None,
    threshold_days: Optional[int] = None,
) -> DerivedWarrantyFields:
    """Compute every derived field from (today, start_date, warranty_months, is_active)."""
    today = today or business_today()
    expires_at = compute_expires_at(start_date, warranty_months)
    return DerivedWarrantyFields(
        expires_at=expires_at,
        days_remaining=days_remaining(expires_at, today),
        warranty_status=warranty_status(expires_at, is_active, today, threshold_days),
    )


def derive_for(
    warranty: Warranty,
    today: Optional[date] = None,
    threshold_days: Optional[int] = None,
) -> DerivedWarrantyFields:
    """Derived fields for a stored warranty row."""
    today = today or business_today()
    return DerivedWarrantyFields(
        expires_at=warranty.expires_at,
        days_remaining=days_remaining(warranty.expires_at, today),
        warranty_status=warranty_status(warranty.expires_at, warranty.is_active, today, threshold_days),
    )


# ==================== SQL EQUIVALENTS ====================
# Same rules expressed as predicates so filtering and counting can run in
# the store. Both sides take the date as a bound parameter.

def status_predicate(status: WarrantyStatus, today: date, threshold_days: Optional[int] = None):
    """WHERE clause selecting warranties whose derived status equals ``status``."""
    threshold = settings.WARRANTY_EXPIRING_SOON_DAYS if threshold_days is None else threshold_days
    window_end = date.fromordinal(today.toordinal() + threshold)

    if status == WarrantyStatus.EXPIRED:
        return or_(Warranty.is_active == False, Warranty.expires_at <= today)  # noqa: E712
    if status == WarrantyStatus.EXPIRING_SOON:
        return and_(
            Warranty.is_active == True,  # noqa: E712
            Warranty.expires_at > today,
            Warranty.expires_at <= window_end,
        )
    return and_(
        Warranty.is_active == True,  # noqa: E712
        Warranty.expires_at > window_end,
    )
