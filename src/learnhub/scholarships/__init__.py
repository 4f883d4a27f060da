"""Scholarship codes: validation, pricing and one-time redemption."""

from .models import (
    SCHOLARSHIPS_TABLES_CQL,
    DiscountType,
    Scholarship,
    ScholarshipStatus,
)
from .pricing import compute_discount
from .service import ScholarshipResolver


__all__ = [
    "SCHOLARSHIPS_TABLES_CQL",
    "DiscountType",
    "Scholarship",
    "ScholarshipResolver",
    "ScholarshipStatus",
    "compute_discount",
]
