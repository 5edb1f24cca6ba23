"""
Validation status transitions.

Any status can move to any other. The note (catatanValidasi) only survives
while the status is Residu; every transition away from Residu clears it.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from errors import ValidationError
from schemas import BatchOperation, StatusValidasi, StudentRecord, merge_fields

logger = logging.getLogger(__name__)

Notify = Callable[[str, str], None]


def parse_status(status: Any) -> StatusValidasi:
    try:
        return StatusValidasi(status)
    except ValueError:
        raise ValidationError(f"Status validasi tidak dikenal: {status}")


def status_update(status: Any, note: Optional[str] = None) -> Dict[str, Any]:
    """Storage patch for moving a record to ``status``."""
    status = parse_status(status)
    catatan = None
    if status == StatusValidasi.RESIDU:
        catatan = note or None
    return {"statusValidasi": status.value, "catatanValidasi": catatan}


def apply_status(record: StudentRecord, status: Any, note: Optional[str] = None) -> StudentRecord:
    return merge_fields(record, status_update(status, note))


def update_status(store, record_id: str, status: Any, note: Optional[str] = None,
                  notify: Optional[Notify] = None) -> Dict[str, Any]:
    patch = status_update(status, note)
    store.update_record(record_id, patch)
    logger.info(f"Student {record_id} status set to {patch['statusValidasi']}")
    if notify:
        notify(
            "Status Berhasil Diperbarui",
            f"Status siswa telah diubah menjadi {patch['statusValidasi']}.",
        )
    return patch


def bulk_status_operations(ids: Iterable[str], status: Any, note: Optional[str] = None) -> List[BatchOperation]:
    patch = status_update(status, note)
    return [BatchOperation(kind="update", record_id=record_id, fields=dict(patch)) for record_id in ids]
