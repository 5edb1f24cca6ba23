"""
Field completeness scoring.

A record's completeness is the share of registration-form fields that hold a
value. Buckets:

    > 80        Lengkap
    50 .. 80    Cukup   (both ends inclusive)
    < 50        Kurang
"""
from typing import Any, List, Sequence

from schemas import FORM_FIELDS, StudentRecord

TRACKED_FIELDS: List[str] = list(FORM_FIELDS)

LENGKAP = "Lengkap"
CUKUP = "Cukup"
KURANG = "Kurang"
BUCKETS = (LENGKAP, CUKUP, KURANG)


def is_filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) > 0
    return True


def completeness(record: StudentRecord, fields: Sequence[str] = TRACKED_FIELDS) -> float:
    """Percentage (0-100) of ``fields`` that are filled on ``record``."""
    if not fields:
        return 0.0
    filled = sum(1 for name in fields if is_filled(getattr(record, name, None)))
    return filled / len(fields) * 100


def completeness_bucket(score: float) -> str:
    if score > 80:
        return LENGKAP
    if score >= 50:
        return CUKUP
    return KURANG


def missing_fields(record: StudentRecord, fields: Sequence[str] = TRACKED_FIELDS) -> List[str]:
    return [name for name in fields if not is_filled(getattr(record, name, None))]
