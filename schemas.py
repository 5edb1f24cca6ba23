"""
Database Schemas for the Student Records Portal

Each Pydantic model mirrors a MongoDB collection document. Python attributes are
snake_case; the stored keys are camelCase (see the alias generator below), so a
document read from the "students" collection validates straight into
StudentRecord.
"""
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class StatusValidasi(str, Enum):
    BELUM_DIVERIFIKASI = "Belum Diverifikasi"
    VALID = "Valid"
    RESIDU = "Residu"


STATUS_VALUES = [s.value for s in StatusValidasi]

# Fields owned by the system rather than the registration form.
SYSTEM_FIELDS = ("id", "tanggal_registrasi", "status_validasi", "catatan_validasi")

LIST_FIELDS = ("berkebutuhan_khusus", "berkebutuhan_khusus_ayah", "berkebutuhan_khusus_ibu")
DATE_FIELDS = ("tanggal_lahir", "tanggal_registrasi")


DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d")


def parse_date(value: Any) -> Any:
    """Best-effort date parsing; a value no known format matches is returned as is."""
    if value in ("", None):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10 and text[10] in "T ":
            text = text[:10]
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    return value


class StudentFields(BaseModel):
    """Descriptive attributes captured by the registration form."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    # DATA PRIBADI
    nama_lengkap: str = Field("", description="Nama lengkap siswa")
    jenis_kelamin: str = Field("", description="Laki-laki/Perempuan")
    nisn: str = Field("", description="Nomor Induk Siswa Nasional")
    nis: str = ""
    nik: str = ""
    no_kk: str = Field("", description="Nomor Kartu Keluarga")
    tempat_lahir: str = ""
    tanggal_lahir: Optional[date] = None
    no_registrasi_akta_lahir: str = ""
    agama: str = ""
    kewarganegaraan: str = Field("", description="WNI/WNA")
    nama_negara: str = ""
    berkebutuhan_khusus: List[str] = Field(default_factory=list)
    alamat_jalan: str = ""
    rt: str = ""
    rw: str = ""
    nama_dusun: str = ""
    nama_kelurahan_desa: str = ""
    kecamatan: str = ""
    kode_pos: str = ""
    tempat_tinggal: str = ""
    moda_transportasi: str = ""
    anak_keberapa: str = ""
    status_anak: str = Field("", description="Tidak/Yatim/Piatu/Yatim Piatu")
    punya_kip: str = Field("", description="Ya/Tidak")
    uang_masuk: str = ""
    sekolah_asal: str = ""
    tinggi_badan: str = ""
    berat_badan: str = ""
    lingkar_kepala: str = ""
    jumlah_saudara_kandung: str = ""
    jumlah_saudara_tiri: str = ""
    hobi: str = ""
    cita_cita: str = ""

    # DATA AYAH KANDUNG
    nama_ayah: str = ""
    status_ayah: str = ""
    nik_ayah: str = ""
    tahun_lahir_ayah: str = ""
    pendidikan_ayah: str = ""
    pekerjaan_ayah: str = ""
    penghasilan_ayah: str = ""
    berkebutuhan_khusus_ayah: List[str] = Field(default_factory=list)

    # DATA IBU KANDUNG
    nama_ibu: str = ""
    status_ibu: str = ""
    nik_ibu: str = ""
    tahun_lahir_ibu: str = ""
    pendidikan_ibu: str = ""
    pekerjaan_ibu: str = ""
    penghasilan_ibu: str = ""
    berkebutuhan_khusus_ibu: List[str] = Field(default_factory=list)

    # DATA WALI
    nama_wali: str = ""
    nik_wali: str = ""
    tahun_lahir_wali: str = ""
    pendidikan_wali: str = ""
    pekerjaan_wali: str = ""
    penghasilan_wali: str = ""

    # KONTAK
    nomor_telepon_rumah: str = ""
    nomor_hp: str = ""
    email: str = ""

    @model_validator(mode="before")
    @classmethod
    def _fill_missing(cls, data: Any) -> Any:
        """Replace nulls with the canonical empty value of each field."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for name, field in cls.model_fields.items():
            for key in {name, field.alias or name}:
                if key not in data:
                    continue
                value = data[key]
                if name in DATE_FIELDS:
                    data[key] = cls._coerce_date(key, value)
                elif value is None and name not in SYSTEM_FIELDS:
                    del data[key]
                elif name in LIST_FIELDS and isinstance(value, str):
                    data[key] = [v.strip() for v in value.split(",") if v.strip()]
        return data

    @classmethod
    def _coerce_date(cls, key: str, value: Any) -> Any:
        return parse_date(value)


class StudentRecord(StudentFields):
    """A student document as stored in the "students" collection."""

    id: Optional[str] = None
    tanggal_registrasi: Optional[date] = Field(None, description="Tanggal registrasi")
    status_validasi: StatusValidasi = StatusValidasi.BELUM_DIVERIFIKASI
    catatan_validasi: Optional[str] = Field(None, description="Catatan jika status Residu")

    @classmethod
    def _coerce_date(cls, key: str, value: Any) -> Any:
        # Legacy imports stored raw spreadsheet text; drop what cannot be read.
        parsed = parse_date(value)
        if parsed is not None and not isinstance(parsed, date):
            logger.warning(f"Unreadable {key} value {value!r}, treated as empty")
            return None
        return parsed

    @model_validator(mode="before")
    @classmethod
    def _normalize_status(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("status_validasi", "statusValidasi"):
            if key in data and data[key] not in STATUS_VALUES:
                data[key] = StatusValidasi.BELUM_DIVERIFIKASI
        return data

    @model_validator(mode="after")
    def _note_only_for_residu(self) -> "StudentRecord":
        if self.status_validasi != StatusValidasi.RESIDU or not self.catatan_validasi:
            self.catatan_validasi = None
        return self

    def to_document(self) -> Dict[str, Any]:
        """Storage shape: camelCase keys, ISO dates, no id."""
        return self.model_dump(by_alias=True, mode="json", exclude={"id"})


FORM_FIELDS = [name for name in StudentFields.model_fields]
FIELD_ALIASES = {name: to_camel(name) for name in StudentRecord.model_fields}


def merge_fields(record: StudentRecord, fields: Dict[str, Any]) -> StudentRecord:
    """Return a copy of record with camelCase storage fields overwritten."""
    data = record.to_document()
    data.update(fields)
    data["id"] = record.id
    return StudentRecord.model_validate(data)


class FilterCriteria(BaseModel):
    search: str = Field("", description="Cari nama atau NISN")
    status: Literal["all", "unverified", "valid", "residual"] = "all"
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    kelengkapan: Literal["Semua", "Lengkap", "Cukup", "Kurang"] = "Semua"


class BatchOperation(BaseModel):
    kind: Literal["create", "update", "delete"]
    record_id: Optional[str] = None
    fields: Dict[str, Any] = Field(default_factory=dict)


class PrintSettings(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = None
    school_letterhead_url: Optional[str] = Field(None, description="URL kop surat sekolah")
    academic_year: Optional[str] = Field(None, description="Tahun ajaran, misal: 2024/2025")
    signature_place: Optional[str] = None
    committee_head_title: Optional[str] = None
    committee_head_name: Optional[str] = None
    committee_head_nuptk: Optional[str] = None
    committee_head_nip: Optional[str] = None
    committee_head_npa: Optional[str] = None
