"""Shared fixtures: an in-memory student store that honours the storage contract."""

import copy
import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from completeness import TRACKED_FIELDS  # noqa: E402
from errors import NotFoundError, PersistenceError  # noqa: E402
from schemas import LIST_FIELDS, PrintSettings, StudentRecord  # noqa: E402


class FakeStore:
    """Dict-backed store. batch_write is all-or-nothing like a MongoDB transaction."""

    def __init__(self):
        self.docs = {}
        self.settings = None
        self.fail_batch = False
        self.batches = []
        self._next_id = 1

    def _new_id(self):
        record_id = f"s{self._next_id:04d}"
        self._next_id += 1
        return record_id

    def add(self, **fields):
        """Seed a record from snake_case fields; returns its id."""
        fields.setdefault("tanggal_registrasi", date(2024, 7, 1))
        return self.create_record(StudentRecord(**fields).to_document())

    def fetch_all_records(self):
        ordered = sorted(
            self.docs.items(),
            key=lambda item: item[1].get("tanggalRegistrasi") or "",
            reverse=True,
        )
        return [StudentRecord.model_validate({**doc, "id": record_id}) for record_id, doc in ordered]

    def get_record(self, record_id):
        if record_id not in self.docs:
            raise NotFoundError(record_id)
        return StudentRecord.model_validate({**self.docs[record_id], "id": record_id})

    def create_record(self, fields):
        record_id = self._new_id()
        self.docs[record_id] = dict(fields)
        return record_id

    def update_record(self, record_id, fields):
        if record_id not in self.docs:
            raise NotFoundError(record_id)
        self.docs[record_id].update(fields)

    def delete_record(self, record_id):
        if record_id not in self.docs:
            raise NotFoundError(record_id)
        del self.docs[record_id]

    def batch_write(self, operations):
        if self.fail_batch:
            raise PersistenceError()
        staged = copy.deepcopy(self.docs)
        created = []
        for op in operations:
            if op.kind == "create":
                record_id = self._new_id()
                staged[record_id] = dict(op.fields)
                created.append(record_id)
            elif op.record_id not in staged:
                raise NotFoundError(op.record_id)
            elif op.kind == "update":
                staged[op.record_id].update(op.fields)
            else:
                del staged[op.record_id]
        self.docs = staged
        self.batches.append(list(operations))
        return created

    def get_print_settings(self):
        if self.settings is None:
            return None
        return PrintSettings.model_validate({**self.settings, "id": "default"})

    def update_print_settings(self, fields):
        self.settings = {**(self.settings or {}), **fields}


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def full_fields():
    """Every tracked form field filled."""
    fields = {}
    for name in TRACKED_FIELDS:
        if name in LIST_FIELDS:
            fields[name] = ["Tidak"]
        elif name == "tanggal_lahir":
            fields[name] = date(2010, 5, 17)
        else:
            fields[name] = "isi"
    fields["nama_lengkap"] = "Siti Aminah"
    fields["nisn"] = "0098765432"
    return fields


@pytest.fixture
def client(store):
    from fastapi.testclient import TestClient

    from main import app, get_store

    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
