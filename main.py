import logging
import os
from datetime import date
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

import database
from bulk import view_for
from completeness import completeness, completeness_bucket, missing_fields
from errors import NotFoundError, PortalError, ValidationError
from export import MEDIA_TYPES, export_table
from reconcile import IMPORT_FAILED, import_rows, read_table
from reports import completeness_summary, dashboard_stats, report_aggregates
from schemas import FIELD_ALIASES, FilterCriteria, PrintSettings, StudentFields, StudentRecord
from validation import update_status

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Portal Data Siswa API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store():
    return database


class Acknowledgments:
    """Collects the user-facing confirmations emitted by core operations."""

    def __init__(self):
        self.messages: List[Dict[str, str]] = []

    def __call__(self, title: str, description: str):
        self.messages.append({"title": title, "description": description})


@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(PortalError)
async def portal_error_handler(request, exc: PortalError):
    return JSONResponse(status_code=500, content={"detail": exc.message})


class StudentIn(StudentFields):
    nama_lengkap: str = Field(..., description="Nama lengkap siswa")
    tanggal_registrasi: Optional[date] = None

    @field_validator("nama_lengkap")
    @classmethod
    def _nama_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Nama lengkap harus diisi.")
        return v

    @field_validator("nisn")
    @classmethod
    def _nisn_length(cls, v: str) -> str:
        if len(v) > 10:
            raise ValueError("NISN maksimal 10 digit.")
        return v

    @field_validator("nik", "nik_ayah", "nik_ibu", "nik_wali")
    @classmethod
    def _nik_length(cls, v: str) -> str:
        if v and len(v) != 16:
            raise ValueError("NIK harus 16 digit.")
        return v

    @field_validator("email")
    @classmethod
    def _email_format(cls, v: str) -> str:
        if v and ("@" not in v or "." not in v.split("@")[-1]):
            raise ValueError("Email tidak valid.")
        return v


class StatusIn(BaseModel):
    status: str = Field(..., description="Valid|Residu|Belum Diverifikasi")
    catatan: Optional[str] = Field(None, description="Catatan (hanya untuk Residu)")


class BulkIn(BaseModel):
    ids: List[str]
    criteria: Optional[FilterCriteria] = None


class BulkStatusIn(BulkIn):
    status: str
    catatan: Optional[str] = None


class ImportIn(BaseModel):
    rows: List[Dict[str, Any]]


def filter_criteria(
    search: str = "",
    status: Literal["all", "unverified", "valid", "residual"] = "all",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    kelengkapan: Literal["Semua", "Lengkap", "Cukup", "Kurang"] = "Semua",
) -> FilterCriteria:
    return FilterCriteria(
        search=search, status=status, date_from=date_from, date_to=date_to, kelengkapan=kelengkapan
    )


def student_out(record: StudentRecord) -> Dict[str, Any]:
    score = completeness(record)
    return {
        "id": record.id,
        **record.to_document(),
        "kelengkapan": round(score, 1),
        "kategoriKelengkapan": completeness_bucket(score),
    }


@app.get("/")
def root():
    return {"message": "Portal Data Siswa API"}


@app.get("/test")
def test_database():
    resp = {
        "backend": "✅ Running",
        "database": "❌ Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            resp["database"] = "✅ Connected"
            resp["collections"] = database.db.list_collection_names()
    except Exception as e:
        resp["error"] = str(e)
    return resp


# Students
@app.post("/students")
def create_student(payload: StudentIn, store=Depends(get_store)):
    data = payload.model_dump()
    data["tanggal_registrasi"] = payload.tanggal_registrasi or date.today()
    record = StudentRecord(**data)
    fields = record.to_document()
    student_id = store.create_record(fields)
    logger.info(f"Student {student_id} registered")
    return {"id": student_id, **fields, "message": "Data siswa baru berhasil disimpan."}


@app.get("/students")
def list_students(criteria: FilterCriteria = Depends(filter_criteria), store=Depends(get_store)):
    view = view_for(store, criteria)
    return [student_out(record) for record in view.visible()]


@app.get("/students/export")
def export_students(
    fmt: str = Query("csv", alias="format"),
    ids: Optional[List[str]] = Query(None),
    criteria: FilterCriteria = Depends(filter_criteria),
    store=Depends(get_store),
):
    if fmt not in MEDIA_TYPES:
        raise HTTPException(status_code=400, detail=f"Format ekspor tidak didukung: {fmt}")
    view = view_for(store, criteria)
    content = export_table(view.export_records(ids), fmt)
    return Response(
        content=content,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="data-siswa.{fmt}"'},
    )


@app.post("/students/bulk/status")
def bulk_update_status(payload: BulkStatusIn, store=Depends(get_store)):
    ack = Acknowledgments()
    view = view_for(store, payload.criteria, notify=ack)
    view.select(payload.ids)
    updated = view.bulk_update_status(payload.status, payload.catatan)
    return {"updated": updated, "ignored": len(set(payload.ids)) - updated, "messages": ack.messages}


@app.post("/students/bulk/delete")
def bulk_delete(payload: BulkIn, store=Depends(get_store)):
    ack = Acknowledgments()
    view = view_for(store, payload.criteria, notify=ack)
    view.select(payload.ids)
    deleted = view.bulk_delete()
    return {"deleted": deleted, "ignored": len(set(payload.ids)) - deleted, "messages": ack.messages}


def _run_import(store, rows: List[Dict[str, Any]]):
    ack = Acknowledgments()
    try:
        result = import_rows(store, rows, notify=ack)
    except ValidationError:
        raise
    except PortalError:
        # Includes a matched record deleted before the batch committed.
        raise HTTPException(status_code=500, detail=IMPORT_FAILED)
    return {**result.model_dump(), "messages": ack.messages}


@app.post("/students/import")
def import_students(payload: ImportIn, store=Depends(get_store)):
    return _run_import(store, payload.rows)


@app.post("/students/import/file")
def import_students_file(file: UploadFile = File(...), store=Depends(get_store)):
    rows = read_table(file.filename, file.file.read())
    if not rows:
        raise HTTPException(status_code=400, detail="File kosong.")
    return _run_import(store, rows)


@app.get("/students/{student_id}")
def get_student(student_id: str, store=Depends(get_store)):
    record = store.get_record(student_id)
    return {
        **student_out(record),
        "fieldKosong": [FIELD_ALIASES[name] for name in missing_fields(record)],
    }


@app.put("/students/{student_id}")
def edit_student(student_id: str, payload: StudentIn, store=Depends(get_store)):
    store.get_record(student_id)
    exclude = None if payload.tanggal_registrasi else {"tanggal_registrasi"}
    fields = payload.model_dump(by_alias=True, mode="json", exclude=exclude)
    store.update_record(student_id, fields)
    logger.info(f"Student {student_id} edited")
    return {"id": student_id, **fields, "message": "Data siswa berhasil diperbarui."}


@app.delete("/students/{student_id}")
def delete_student(student_id: str, store=Depends(get_store)):
    store.delete_record(student_id)
    logger.info(f"Student {student_id} deleted")
    return {"id": student_id, "message": "Data siswa telah berhasil dihapus dari sistem."}


@app.post("/students/{student_id}/status")
def set_student_status(student_id: str, payload: StatusIn, store=Depends(get_store)):
    ack = Acknowledgments()
    patch = update_status(store, student_id, payload.status, payload.catatan, notify=ack)
    return {"id": student_id, **patch, "messages": ack.messages}


# Dashboards
@app.get("/stats")
def get_stats(store=Depends(get_store)):
    records = store.fetch_all_records()
    return {**dashboard_stats(records), "kelengkapan": completeness_summary(records)}


@app.get("/reports")
def get_reports(store=Depends(get_store)):
    return report_aggregates(store.fetch_all_records())


# Print settings
@app.get("/settings/print")
def get_print_settings(store=Depends(get_store)):
    settings = store.get_print_settings()
    if settings is None:
        return {}
    return settings.model_dump(by_alias=True)


@app.put("/settings/print")
def update_print_settings(payload: PrintSettings, store=Depends(get_store)):
    fields = payload.model_dump(by_alias=True, exclude_unset=True, exclude={"id"})
    store.update_print_settings(fields)
    return {**fields, "message": "Pengaturan cetak berhasil disimpan."}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
