"""
Bulk operation coordinator.

StudentListView keeps a snapshot of the student collection together with the
active filter and the ids selected in it. Selection never reaches outside the
filtered view: changing the filter clears it and "select all" only takes the
visible ids.

Two completion strategies are used after a successful write:

    LOCAL    patch the snapshot in place (single and bulk operations)
    REFETCH  reload the snapshot from storage (imports)

Nothing in the snapshot or selection changes before the store call returns.
"""
import logging
from typing import Dict, Iterable, List, Optional, Set

from errors import ValidationError
from filters import filter_records
from reconcile import ImportResult
from reconcile import import_rows as reconcile_rows
from schemas import BatchOperation, FilterCriteria, StudentRecord, merge_fields
from validation import Notify, bulk_status_operations, status_update
from validation import update_status as persist_status

logger = logging.getLogger(__name__)

LOCAL = "local"
REFETCH = "refetch"


class StudentListView:
    def __init__(self, store, records: Optional[List[StudentRecord]] = None,
                 criteria: Optional[FilterCriteria] = None, notify: Optional[Notify] = None):
        self.store = store
        self.records: List[StudentRecord] = list(records) if records is not None else []
        self.criteria = criteria or FilterCriteria()
        self.selected: Set[str] = set()
        self.notify = notify

    # Snapshot

    def refresh(self) -> List[StudentRecord]:
        self.records = self.store.fetch_all_records()
        self.selected &= self.visible_ids()
        return self.records

    def visible(self) -> List[StudentRecord]:
        return filter_records(self.records, self.criteria)

    def visible_ids(self) -> Set[str]:
        return {record.id for record in self.visible()}

    def set_criteria(self, criteria: FilterCriteria = None, **changes) -> FilterCriteria:
        """Replace the active filter; any change clears the selection."""
        new = criteria or self.criteria.model_copy(update=changes)
        if new != self.criteria:
            self.clear_selection()
        self.criteria = new
        return new

    # Selection

    def select(self, ids: Iterable[str]) -> Set[str]:
        ids = set(ids)
        visible = self.visible_ids()
        ignored = ids - visible
        if ignored:
            logger.warning(f"Ignoring {len(ignored)} ids outside the current view")
        self.selected |= ids & visible
        return self.selected

    def toggle(self, record_id: str) -> bool:
        if record_id in self.selected:
            self.selected.discard(record_id)
            return False
        self.select([record_id])
        return record_id in self.selected

    def select_all(self) -> Set[str]:
        self.selected = self.visible_ids()
        return self.selected

    def clear_selection(self):
        self.selected.clear()

    def selected_records(self) -> List[StudentRecord]:
        return [record for record in self.visible() if record.id in self.selected]

    def export_records(self, ids: Optional[Iterable[str]] = None) -> List[StudentRecord]:
        """Records handed to the exporter.

        Explicit ids export exactly the visible records among them, possibly none.
        Otherwise the selection is exported if any, else the whole view.
        """
        if ids is not None:
            wanted = set(ids)
            return [record for record in self.visible() if record.id in wanted]
        return self.selected_records() if self.selected else self.visible()

    # Completion

    def _complete(self, strategy: str, patches: Dict[str, dict] = None, deleted: Set[str] = None):
        if strategy == REFETCH:
            self.clear_selection()
            self.refresh()
            return
        deleted = deleted or set()
        patches = patches or {}
        self.records = [
            merge_fields(record, patches[record.id]) if record.id in patches else record
            for record in self.records
            if record.id not in deleted
        ]
        self.selected -= deleted

    def _acknowledge(self, title: str, description: str):
        if self.notify:
            self.notify(title, description)

    # Single operations

    def update_status(self, record_id: str, status, note: Optional[str] = None) -> dict:
        patch = persist_status(self.store, record_id, status, note, notify=self.notify)
        self._complete(LOCAL, patches={record_id: patch})
        return patch

    def delete(self, record_id: str):
        self.store.delete_record(record_id)
        logger.info(f"Student {record_id} deleted")
        self._complete(LOCAL, deleted={record_id})
        self._acknowledge("Data Siswa Dihapus", "Data siswa telah berhasil dihapus dari sistem.")

    # Bulk operations

    def _require_selection(self) -> List[str]:
        if not self.selected:
            raise ValidationError("Tidak ada siswa yang dipilih.")
        return sorted(self.selected)

    def bulk_update_status(self, status, note: Optional[str] = None) -> int:
        ids = self._require_selection()
        operations = bulk_status_operations(ids, status, note)
        self.store.batch_write(operations)
        patch = status_update(status, note)
        logger.info(f"Bulk status {patch['statusValidasi']} applied to {len(ids)} students")
        self._complete(LOCAL, patches={record_id: patch for record_id in ids})
        self.clear_selection()
        self._acknowledge(
            "Status Berhasil Diperbarui",
            f"{len(ids)} siswa telah diubah menjadi {patch['statusValidasi']}.",
        )
        return len(ids)

    def bulk_delete(self) -> int:
        ids = self._require_selection()
        self.store.batch_write([BatchOperation(kind="delete", record_id=record_id) for record_id in ids])
        logger.info(f"Bulk delete removed {len(ids)} students")
        self._complete(LOCAL, deleted=set(ids))
        self.clear_selection()
        self._acknowledge("Data Siswa Dihapus", f"{len(ids)} data siswa telah dihapus dari sistem.")
        return len(ids)

    # Import

    def import_rows(self, raw_rows) -> ImportResult:
        result = reconcile_rows(self.store, raw_rows, records=self.store.fetch_all_records(),
                                notify=self.notify)
        self._complete(REFETCH)
        return result


def view_for(store, criteria: Optional[FilterCriteria] = None, notify: Optional[Notify] = None) -> StudentListView:
    """A view over a fresh snapshot of the store."""
    view = StudentListView(store, criteria=criteria, notify=notify)
    view.refresh()
    return view
