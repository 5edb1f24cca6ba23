"""
Record filter engine: text search, status bucket, registration date range and
completeness bucket, combined with AND. Pure functions over a record snapshot.
"""
from typing import Iterable, List

from completeness import completeness, completeness_bucket
from schemas import FilterCriteria, StatusValidasi, StudentRecord

STATUS_BUCKETS = {
    "valid": StatusValidasi.VALID,
    "residual": StatusValidasi.RESIDU,
    "unverified": StatusValidasi.BELUM_DIVERIFIKASI,
}


def matches_search(record: StudentRecord, term: str) -> bool:
    term = (term or "").strip()
    if not term:
        return True
    if term.lower() in (record.nama_lengkap or "").lower():
        return True
    return term in (record.nisn or "")


def matches_status(record: StudentRecord, status: str) -> bool:
    if status == "all":
        return True
    # Absent status is normalized to Belum Diverifikasi when the record is loaded.
    return record.status_validasi == STATUS_BUCKETS[status]


def matches_date_range(record: StudentRecord, criteria: FilterCriteria) -> bool:
    if criteria.date_from is None and criteria.date_to is None:
        return True
    registered = record.tanggal_registrasi
    if registered is None:
        return False
    if criteria.date_from is not None and registered < criteria.date_from:
        return False
    if criteria.date_to is not None and registered > criteria.date_to:
        return False
    return True


def matches_completeness(record: StudentRecord, bucket: str) -> bool:
    if bucket == "Semua":
        return True
    return completeness_bucket(completeness(record)) == bucket


def matches(record: StudentRecord, criteria: FilterCriteria) -> bool:
    return (
        matches_search(record, criteria.search)
        and matches_status(record, criteria.status)
        and matches_date_range(record, criteria)
        and matches_completeness(record, criteria.kelengkapan)
    )


def filter_records(records: Iterable[StudentRecord], criteria: FilterCriteria = None) -> List[StudentRecord]:
    """Return the records matching every dimension of ``criteria``, in input order."""
    criteria = criteria or FilterCriteria()
    return [record for record in records if matches(record, criteria)]
