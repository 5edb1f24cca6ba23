"""
Tabular export of the records currently visible (or selected) in a view.
"""
import io
from typing import List

import pandas as pd

from completeness import completeness, completeness_bucket
from errors import ValidationError
from schemas import StudentRecord

EXPORT_COLUMNS = [
    ("Nama Lengkap", "nama_lengkap"),
    ("NISN", "nisn"),
    ("NIS", "nis"),
    ("NIK", "nik"),
    ("No. Kartu Keluarga", "no_kk"),
    ("Jenis Kelamin", "jenis_kelamin"),
    ("Tempat Lahir", "tempat_lahir"),
    ("Tanggal Lahir", "tanggal_lahir"),
    ("Agama", "agama"),
    ("Alamat Jalan", "alamat_jalan"),
    ("RT", "rt"),
    ("RW", "rw"),
    ("Nama Dusun", "nama_dusun"),
    ("Kelurahan/Desa", "nama_kelurahan_desa"),
    ("Kecamatan", "kecamatan"),
    ("Kode Pos", "kode_pos"),
    ("Nama Ayah", "nama_ayah"),
    ("Pekerjaan Ayah", "pekerjaan_ayah"),
    ("Penghasilan Ayah", "penghasilan_ayah"),
    ("Nama Ibu", "nama_ibu"),
    ("Pekerjaan Ibu", "pekerjaan_ibu"),
    ("Penghasilan Ibu", "penghasilan_ibu"),
    ("Nama Wali", "nama_wali"),
    ("Nomor HP", "nomor_hp"),
    ("Email", "email"),
    ("Tanggal Registrasi", "tanggal_registrasi"),
    ("Status Validasi", "status_validasi"),
    ("Catatan Validasi", "catatan_validasi"),
]

MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _cell(record: StudentRecord, key: str):
    value = getattr(record, key)
    if isinstance(value, list):
        return ", ".join(value)
    if hasattr(value, "value"):
        return value.value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value if value is not None else ""


def to_frame(records: List[StudentRecord]) -> pd.DataFrame:
    rows = []
    for record in records:
        row = {label: _cell(record, key) for label, key in EXPORT_COLUMNS}
        score = completeness(record)
        row["Kelengkapan (%)"] = round(score, 1)
        row["Kategori Kelengkapan"] = completeness_bucket(score)
        rows.append(row)
    columns = [label for label, _ in EXPORT_COLUMNS] + ["Kelengkapan (%)", "Kategori Kelengkapan"]
    return pd.DataFrame(rows, columns=columns)


def export_table(records: List[StudentRecord], fmt: str = "csv") -> bytes:
    if fmt not in MEDIA_TYPES:
        raise ValidationError(f"Format ekspor tidak didukung: {fmt}")
    df = to_frame(records)
    if fmt == "csv":
        return df.to_csv(index=False).encode("utf-8")
    buffer = io.BytesIO()
    df.to_excel(buffer, index=False, engine="openpyxl", sheet_name="Data Siswa")
    return buffer.getvalue()
