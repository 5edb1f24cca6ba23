"""
Import reconciliation keyed by NISN.

Raw spreadsheet rows are mapped to canonical camelCase keys, then each row is
either merged into the existing record holding the same NISN or created as a
new record. All creates and updates of one import go to storage as a single
atomic batch.
"""
import io
import logging
import zipfile
from collections import Counter
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from errors import ValidationError
from schemas import (
    FIELD_ALIASES,
    FORM_FIELDS,
    LIST_FIELDS,
    BatchOperation,
    StatusValidasi,
    StudentFields,
    StudentRecord,
)

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = ("xlsx", "csv")

IMPORT_HINT = "Pastikan format file Excel Anda benar."
IMPORT_FAILED = f"Gagal mengimpor data. {IMPORT_HINT}"

# Column headers as they appear on the registration form and printed profile.
COLUMN_LABELS = {
    "namaLengkap": ["Nama Lengkap", "Nama", "Nama Siswa"],
    "jenisKelamin": ["Jenis Kelamin", "JK", "L/P"],
    "nisn": ["NISN"],
    "nis": ["NIS", "NIPD"],
    "nik": ["NIK", "NIK Siswa"],
    "noKk": ["No. Kartu Keluarga", "No KK", "Nomor KK"],
    "tempatLahir": ["Tempat Lahir"],
    "tanggalLahir": ["Tanggal Lahir"],
    "noRegistrasiAktaLahir": ["No. Registrasi Akta Lahir", "No. Registasi Akta Lahir"],
    "agama": ["Agama", "Agama & Kepercayaan"],
    "kewarganegaraan": ["Kewarganegaraan"],
    "namaNegara": ["Nama Negara"],
    "berkebutuhanKhusus": ["Berkebutuhan Khusus", "Berkebutuhan Khusus Siswa"],
    "alamatJalan": ["Alamat Jalan", "Alamat"],
    "rt": ["RT"],
    "rw": ["RW"],
    "namaDusun": ["Nama Dusun", "Dusun"],
    "namaKelurahanDesa": ["Nama Kelurahan/Desa", "Kelurahan/Desa", "Kelurahan", "Desa"],
    "kecamatan": ["Kecamatan"],
    "kodePos": ["Kode Pos"],
    "tempatTinggal": ["Tempat Tinggal", "Jenis Tinggal"],
    "modaTransportasi": ["Moda Transportasi", "Alat Transportasi"],
    "anakKeberapa": ["Anak Ke-berapa", "Anak Ke"],
    "statusAnak": ["Status Anak", "Status Yatim/Piatu"],
    "punyaKip": ["Punya KIP", "Penerima KIP"],
    "uangMasuk": ["Uang Masuk"],
    "sekolahAsal": ["Asal Sekolah", "Sekolah Asal", "Asal Sekolah SMP/MTs"],
    "tinggiBadan": ["Tinggi Badan", "Tinggi Badan (cm)"],
    "beratBadan": ["Berat Badan", "Berat Badan (kg)"],
    "lingkarKepala": ["Lingkar Kepala", "Lingkar Kepala (cm)"],
    "jumlahSaudaraKandung": ["Jumlah Saudara Kandung"],
    "jumlahSaudaraTiri": ["Jumlah Saudara Tiri"],
    "hobi": ["Hobi"],
    "citaCita": ["Cita-cita", "Cita Cita"],
    "namaAyah": ["Nama Ayah", "Nama Ayah Kandung"],
    "statusAyah": ["Status Ayah"],
    "nikAyah": ["NIK Ayah"],
    "tahunLahirAyah": ["Tahun Lahir Ayah"],
    "pendidikanAyah": ["Pendidikan Ayah", "Pendidikan Terakhir Ayah", "Jenjang Pendidikan Ayah"],
    "pekerjaanAyah": ["Pekerjaan Ayah"],
    "penghasilanAyah": ["Penghasilan Ayah", "Penghasilan Bulanan Ayah"],
    "berkebutuhanKhususAyah": ["Berkebutuhan Khusus Ayah"],
    "namaIbu": ["Nama Ibu", "Nama Ibu Kandung"],
    "statusIbu": ["Status Ibu"],
    "nikIbu": ["NIK Ibu"],
    "tahunLahirIbu": ["Tahun Lahir Ibu"],
    "pendidikanIbu": ["Pendidikan Ibu", "Pendidikan Terakhir Ibu", "Jenjang Pendidikan Ibu"],
    "pekerjaanIbu": ["Pekerjaan Ibu"],
    "penghasilanIbu": ["Penghasilan Ibu", "Penghasilan Bulanan Ibu"],
    "berkebutuhanKhususIbu": ["Berkebutuhan Khusus Ibu"],
    "namaWali": ["Nama Wali"],
    "nikWali": ["NIK Wali"],
    "tahunLahirWali": ["Tahun Lahir Wali"],
    "pendidikanWali": ["Pendidikan Wali", "Pendidikan Terakhir Wali", "Jenjang Pendidikan Wali"],
    "pekerjaanWali": ["Pekerjaan Wali"],
    "penghasilanWali": ["Penghasilan Wali", "Penghasilan Bulanan Wali"],
    "nomorTeleponRumah": ["Nomor Telepon Rumah", "No. Telepon", "Telepon"],
    "nomorHp": ["Nomor HP", "No. HP", "HP"],
    "email": ["Email", "E-mail"],
}

LIST_KEYS = {FIELD_ALIASES[name] for name in LIST_FIELDS}


def normalize_header(header: Any) -> str:
    return " ".join(str(header).split()).lower()


def _build_column_aliases() -> Dict[str, str]:
    aliases = {}
    for name in FORM_FIELDS:
        key = FIELD_ALIASES[name]
        aliases[normalize_header(key)] = key
        aliases[normalize_header(name)] = key
        for label in COLUMN_LABELS.get(key, []):
            aliases[normalize_header(label)] = key
    return aliases


COLUMN_ALIASES = _build_column_aliases()


class ImportPlan(BaseModel):
    operations: List[BatchOperation] = Field(default_factory=list)
    created: int = 0
    updated: int = 0
    duplicate_nisns: List[str] = Field(default_factory=list)


class ImportResult(BaseModel):
    created: int = 0
    updated: int = 0
    skipped: int = 0
    duplicate_nisns: List[str] = Field(default_factory=list)


def clean_value(value: Any) -> Any:
    """Spreadsheet cell to stored value; ``None`` means the cell is missing."""
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    if value is None or pd.isna(value):
        return None
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return str(value).strip()


def map_raw_row(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map raw headers to canonical keys, dropping unknown headers and missing cells."""
    row = {}
    for header, value in raw.items():
        key = COLUMN_ALIASES.get(normalize_header(header))
        if key is None:
            continue
        value = clean_value(value)
        if value is None:
            continue
        if key in LIST_KEYS and isinstance(value, str):
            value = [v.strip() for v in value.split(",") if v.strip()]
        row[key] = value
    return row


def build_nisn_lookup(records: Iterable[StudentRecord]) -> Dict[str, str]:
    """NISN to record id. With duplicate NISNs the last record in fetch order wins."""
    lookup = {}
    for record in records:
        nisn = (record.nisn or "").strip()
        if not nisn:
            continue
        if nisn in lookup:
            logger.warning(f"Duplicate NISN {nisn}: records {lookup[nisn]} and {record.id}")
        lookup[nisn] = record.id
    return lookup


def _validated(row: Dict[str, Any], line: int) -> Dict[str, Any]:
    try:
        fields = StudentFields.model_validate(row)
    except SchemaError as e:
        loc = e.errors()[0]["loc"]
        column = loc[0] if loc else "?"
        logger.warning(f"Import row {line} rejected at {column}: {e.errors()[0]['msg']}")
        raise ValidationError(f"Baris {line}: kolom {column} tidak valid. {IMPORT_HINT}")
    dumped = fields.model_dump(by_alias=True, mode="json")
    return {key: dumped[key] for key in row}


def plan_import(rows: List[Dict[str, Any]], records: List[StudentRecord],
                today: Optional[date] = None) -> ImportPlan:
    """Decide create vs update for every mapped row against the pre-import snapshot."""
    lookup = build_nisn_lookup(records)
    counts = Counter((r.nisn or "").strip() for r in records)
    plan = ImportPlan(duplicate_nisns=sorted(n for n, c in counts.items() if n and c > 1))
    registered = (today or date.today()).isoformat()

    for line, row in enumerate(rows, start=1):
        fields = _validated({k: v for k, v in row.items() if v is not None}, line)
        nisn = (fields.get("nisn") or "").strip()
        if nisn and nisn in lookup:
            plan.operations.append(BatchOperation(kind="update", record_id=lookup[nisn], fields=fields))
            plan.updated += 1
        else:
            fields.update({
                "tanggalRegistrasi": registered,
                "statusValidasi": StatusValidasi.BELUM_DIVERIFIKASI.value,
                "catatanValidasi": None,
            })
            plan.operations.append(BatchOperation(kind="create", fields=fields))
            plan.created += 1
    return plan


def import_rows(store, raw_rows: Iterable[Dict[str, Any]], records: Optional[List[StudentRecord]] = None,
                today: Optional[date] = None, notify=None) -> ImportResult:
    """Reconcile a batch of raw rows into storage as one atomic write."""
    rows = [map_raw_row(raw) for raw in raw_rows]
    mapped = [row for row in rows if row]
    skipped = len(rows) - len(mapped)

    if records is None:
        records = store.fetch_all_records()
    plan = plan_import(mapped, records, today=today)

    if plan.operations:
        try:
            store.batch_write(plan.operations)
        except Exception:
            logger.exception(f"Error importing {len(plan.operations)} students")
            raise

    logger.info(f"Import finished: {plan.created} created, {plan.updated} updated, {skipped} skipped")
    if notify:
        notify(
            "Impor Berhasil!",
            f"{plan.created} data siswa baru ditambahkan, {plan.updated} data diperbarui.",
        )
    return ImportResult(
        created=plan.created,
        updated=plan.updated,
        skipped=skipped,
        duplicate_nisns=plan.duplicate_nisns,
    )


def read_table(filename: str, content: bytes) -> List[Dict[str, Any]]:
    """Parse an uploaded .xlsx or .csv file into raw rows."""
    ext = (filename or "").rsplit(".", 1)[-1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError("Hanya file .xlsx dan .csv yang didukung.")

    buffer = io.BytesIO(content)
    try:
        if ext == "xlsx":
            df = pd.read_excel(buffer, engine="openpyxl", dtype=str)
        else:
            df = pd.read_csv(buffer, dtype=str)
    except (ValueError, zipfile.BadZipFile, InvalidFileException) as e:
        logger.warning(f"Unreadable upload {filename}: {e}")
        raise ValidationError(IMPORT_FAILED)
    df.columns = [str(c).strip() for c in df.columns]
    df = df.dropna(how="all")
    return df.to_dict(orient="records")
