from __future__ import annotations

from datetime import date
from typing import Optional

from osot.entities.enums import CotoStatus, EducationCategory

# COTO statuses that require a registration number.
REGISTERED_COTO_STATUSES = {CotoStatus.GENERAL, CotoStatus.PROVISIONAL_TEMPORARY}


def determine_education_category(
    graduation_year: int,
    membership_expires: Optional[date],
    today: Optional[date] = None,
) -> EducationCategory:
    """Classify a member by graduation year.

    Graduating in the future means STUDENT. Graduating this year or last
    year counts as NEW_GRADUATED while the current membership year is still
    running (no known expiry is treated as still running). Everyone else
    is GRADUATED.
    """
    today = today or date.today()
    year = int(graduation_year)
    if year > today.year:
        return EducationCategory.STUDENT
    if year in (today.year, today.year - 1):
        if membership_expires is None or today <= membership_expires:
            return EducationCategory.NEW_GRADUATED
    return EducationCategory.GRADUATED


def coto_registration_required(status: CotoStatus) -> bool:
    return status in REGISTERED_COTO_STATUSES
