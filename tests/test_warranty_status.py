from datetime import date

import pytest

from backoffice.core.dates import add_months
from backoffice.models.warranty import WarrantyStatus
from backoffice.services.warranty_status import (
    compute_expires_at,
    days_remaining,
    derive,
    warranty_status,
)


def test_twelve_month_warranty_in_november_is_active():
    fields = derive(date(2024, 1, 1), 12, True, today=date(2024, 11, 15), threshold_days=30)

    assert fields.expires_at == date(2025, 1, 1)
    assert fields.days_remaining == 47
    assert fields.warranty_status == WarrantyStatus.ACTIVE


def test_same_warranty_in_december_is_expiring_soon():
    fields = derive(date(2024, 1, 1), 12, True, today=date(2024, 12, 10), threshold_days=30)

    assert fields.days_remaining == 22
    assert fields.warranty_status == WarrantyStatus.EXPIRING_SOON


def test_expired_on_the_expiry_date():
    fields = derive(date(2024, 1, 1), 12, True, today=date(2025, 1, 1))

    assert fields.days_remaining == 0
    assert fields.warranty_status == WarrantyStatus.EXPIRED


def test_days_remaining_never_negative():
    assert days_remaining(date(2024, 1, 1), date(2024, 6, 1)) == 0


@pytest.mark.parametrize("today", [date(2024, 2, 1), date(2024, 12, 31), date(2030, 1, 1)])
def test_deactivated_warranty_is_always_expired(today):
    fields = derive(date(2024, 1, 1), 12, False, today=today)
    assert fields.warranty_status == WarrantyStatus.EXPIRED


def test_threshold_boundary():
    expires = date(2025, 1, 31)
    # exactly threshold days left -> expiring_soon, one more -> active
    assert warranty_status(expires, True, date(2025, 1, 1), threshold_days=30) == WarrantyStatus.EXPIRING_SOON
    assert warranty_status(expires, True, date(2024, 12, 31), threshold_days=30) == WarrantyStatus.ACTIVE


def test_zero_month_warranty_expires_on_start_date():
    assert compute_expires_at(date(2024, 5, 5), 0) == date(2024, 5, 5)
    assert derive(date(2024, 5, 5), 0, True, today=date(2024, 5, 5)).warranty_status == WarrantyStatus.EXPIRED


def test_negative_months_rejected():
    with pytest.raises(ValueError):
        compute_expires_at(date(2024, 1, 1), -1)


def test_month_end_is_clamped():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 3, 15), 24) == date(2026, 3, 15)
