"""
Tests for NISN-keyed import reconciliation.
"""

import math
from datetime import date, datetime

import pytest

from errors import PersistenceError, ValidationError
from reconcile import build_nisn_lookup, clean_value, import_rows, map_raw_row, plan_import, read_table
from schemas import StudentRecord

TODAY = date(2024, 9, 1)


class TestMapRawRow:
    def test_form_labels_and_keys_are_recognized(self):
        row = map_raw_row({
            "Nama Lengkap": "Budi",
            " NISN ": "1234567890",
            "namaIbu": "Sri",
            "No. Kartu Keluarga": "3201",
        })
        assert row == {"namaLengkap": "Budi", "nisn": "1234567890", "namaIbu": "Sri", "noKk": "3201"}

    def test_unknown_headers_ignored(self):
        assert map_raw_row({"Kolom Aneh": "x", "Nama": "Budi"}) == {"namaLengkap": "Budi"}

    def test_system_fields_not_importable(self):
        row = map_raw_row({"statusValidasi": "Valid", "catatanValidasi": "x", "tanggalRegistrasi": "2020-01-01"})
        assert row == {}

    def test_missing_cells_stripped(self):
        row = map_raw_row({"Nama Lengkap": "Budi", "NISN": float("nan"), "Email": None})
        assert row == {"namaLengkap": "Budi"}

    def test_list_fields_split(self):
        row = map_raw_row({"Berkebutuhan Khusus": "Tuna Netra, Tuna Rungu"})
        assert row == {"berkebutuhanKhusus": ["Tuna Netra", "Tuna Rungu"]}


class TestCleanValue:
    def test_integral_float_becomes_digits(self):
        assert clean_value(1234567890.0) == "1234567890"

    def test_dates_become_iso(self):
        assert clean_value(datetime(2010, 5, 17, 0, 0)) == "2010-05-17"

    def test_nan_is_missing(self):
        assert clean_value(math.nan) is None


class TestLookup:
    def test_skips_empty_nisn(self):
        records = [StudentRecord(id="a", nisn=""), StudentRecord(id="b", nisn="111")]
        assert build_nisn_lookup(records) == {"111": "b"}

    def test_duplicate_nisn_last_in_fetch_order_wins(self):
        records = [StudentRecord(id="newer", nisn="111"), StudentRecord(id="older", nisn="111")]
        assert build_nisn_lookup(records) == {"111": "older"}


class TestPlanImport:
    def test_matched_nisn_updates_only_present_fields(self):
        records = [StudentRecord(id="a", nama_lengkap="Budi", nisn="111", kecamatan="Cibinong")]
        plan = plan_import([{"nisn": "111", "namaIbu": "Sri"}], records, today=TODAY)
        assert (plan.created, plan.updated) == (0, 1)
        op = plan.operations[0]
        assert op.kind == "update"
        assert op.record_id == "a"
        assert op.fields == {"nisn": "111", "namaIbu": "Sri"}

    def test_unmatched_row_creates_with_defaults(self):
        plan = plan_import([{"namaLengkap": "Andi", "nisn": "999"}], [], today=TODAY)
        op = plan.operations[0]
        assert op.kind == "create"
        assert op.fields == {
            "namaLengkap": "Andi",
            "nisn": "999",
            "tanggalRegistrasi": "2024-09-01",
            "statusValidasi": "Belum Diverifikasi",
            "catatanValidasi": None,
        }

    def test_duplicates_reported(self):
        records = [StudentRecord(id="a", nisn="111"), StudentRecord(id="b", nisn="111")]
        plan = plan_import([], records, today=TODAY)
        assert plan.duplicate_nisns == ["111"]

    def test_malformed_row_rejects_batch(self):
        with pytest.raises(ValidationError, match="Baris 2: kolom tanggalLahir"):
            plan_import([{"namaLengkap": "A"}, {"tanggalLahir": "bukan tanggal"}], [], today=TODAY)

    def test_day_first_dates_are_read(self):
        plan = plan_import([{"namaLengkap": "A", "tanggalLahir": "17/05/2010"}], [], today=TODAY)
        assert plan.operations[0].fields["tanggalLahir"] == "2010-05-17"


class TestImportRows:
    def test_one_update_one_create(self, store):
        existing = store.add(nama_lengkap="Budi", nisn="1234567890", status_validasi="Valid")
        before = len(store.docs)

        result = import_rows(store, [
            {"NISN": "1234567890", "Nama Ibu": "Sri"},
            {"Nama Lengkap": "Andi"},
        ], today=TODAY)

        assert (result.created, result.updated) == (1, 1)
        assert len(store.docs) == before + 1
        assert store.docs[existing]["namaIbu"] == "Sri"
        assert store.docs[existing]["namaLengkap"] == "Budi"
        assert store.docs[existing]["statusValidasi"] == "Valid"
        matching = [d for d in store.docs.values() if d.get("nisn") == "1234567890"]
        assert len(matching) == 1
        created = [d for d in store.docs.values() if d.get("namaLengkap") == "Andi"][0]
        assert created["statusValidasi"] == "Belum Diverifikasi"
        assert created["catatanValidasi"] is None
        assert len(store.batches) == 1

    def test_empty_rows_are_skipped(self, store):
        result = import_rows(store, [{"Kolom Aneh": "x"}], today=TODAY)
        assert (result.created, result.updated, result.skipped) == (0, 0, 1)
        assert store.batches == []

    def test_failure_rejects_whole_batch(self, store):
        store.add(nama_lengkap="Budi", nisn="111")
        before = dict(store.docs)
        store.fail_batch = True
        messages = []
        with pytest.raises(PersistenceError):
            import_rows(store, [{"NISN": "111", "Hobi": "Bola"}, {"Nama": "Andi"}],
                        notify=lambda t, d: messages.append(t))
        assert store.docs == before
        assert messages == []

    def test_notifies_counts(self, store):
        messages = []
        import_rows(store, [{"Nama": "Andi"}], notify=lambda t, d: messages.append(d))
        assert messages == ["1 data siswa baru ditambahkan, 0 data diperbarui."]


class TestReadTable:
    def test_csv_keeps_leading_zeros(self):
        content = b"Nama Lengkap,NISN,Hobi\nBudi,0012345678,\n,,\n"
        rows = read_table("siswa.csv", content)
        assert len(rows) == 1
        assert map_raw_row(rows[0]) == {"namaLengkap": "Budi", "nisn": "0012345678"}

    def test_unsupported_extension(self):
        with pytest.raises(ValidationError):
            read_table("siswa.pdf", b"")

    def test_empty_csv_is_rejected(self):
        with pytest.raises(ValidationError, match="format file Excel"):
            read_table("siswa.csv", b"")

    def test_corrupt_xlsx_is_rejected(self):
        with pytest.raises(ValidationError, match="format file Excel"):
            read_table("siswa.xlsx", b"PK bukan excel")
