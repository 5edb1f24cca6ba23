"""
Tests for dashboard statistics and report aggregates.
"""

from datetime import date

from reports import completeness_summary, dashboard_stats, report_aggregates
from schemas import StudentRecord


def make_records():
    return [
        StudentRecord(id="1", jenis_kelamin="Laki-laki", status_validasi="Valid",
                      tanggal_registrasi=date(2024, 9, 3), kecamatan="Cibinong",
                      pekerjaan_ayah="Petani", pekerjaan_ibu="Tidak bekerja",
                      penghasilan_ayah="< Rp. 500.000", punya_kip="Ya", status_anak="Yatim"),
        StudentRecord(id="2", jenis_kelamin="Perempuan", status_validasi="Residu",
                      catatan_validasi="x", tanggal_registrasi=date(2024, 8, 30),
                      kecamatan="Cibinong", nama_kelurahan_desa="Pakansari",
                      pekerjaan_ayah="Petani", pekerjaan_ibu="Pedagang Kecil",
                      penghasilan_ayah="Rp.2.000.000-Rp.4.999.999"),
        StudentRecord(id="3", tanggal_registrasi=date(2023, 7, 1),
                      penghasilan_ayah="Tidak Berpenghasilan", status_anak="Yatim Piatu"),
    ]


def test_dashboard_stats():
    stats = dashboard_stats(make_records(), today=date(2024, 9, 15))
    assert stats["total"] == 3
    assert (stats["valid"], stats["residu"], stats["unverified"]) == (1, 1, 1)
    assert stats["new_this_month"] == 1
    assert stats["gender"] == [
        {"name": "Laki-laki", "total": 1},
        {"name": "Perempuan", "total": 1},
    ]


def test_report_aggregates():
    report = report_aggregates(make_records())
    assert report["district"][0] == {"name": "Cibinong", "total": 2}
    assert {"name": "Tidak Diketahui", "total": 2} in report["village"]
    assert report["parent_occupation"][0] == {"name": "Petani", "value": 2}
    assert {"name": "Tidak bekerja", "value": 1} not in report["parent_occupation"]
    assert report["registration_trend"] == [{"name": "2023", "total": 1}, {"name": "2024", "total": 2}]
    assert report["kip"] == [{"name": "Punya KIP", "value": 1}, {"name": "Tidak Punya KIP", "value": 2}]
    assert [o["name"] for o in report["orphan_status"]] == ["Yatim Piatu", "Yatim", "Tidak"]
    assert report["underprivileged"] == [
        {"name": "Kurang Mampu", "value": 1},
        {"name": "Mampu", "value": 2},
    ]
    assert [i["name"] for i in report["parent_income"]] == ["< Rp. 500.000", "Rp.2.000.000-Rp.4.999.999"]


def test_completeness_summary(full_fields):
    records = make_records() + [StudentRecord(**full_fields)]
    assert completeness_summary(records) == {"Lengkap": 1, "Cukup": 0, "Kurang": 3}
