import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pymongo import DESCENDING, MongoClient
from pymongo.errors import OperationFailure, PyMongoError

from errors import NotFoundError, PersistenceError
from schemas import BatchOperation, PrintSettings, StudentRecord

# Load environment variables if present
load_dotenv()

logger = logging.getLogger(__name__)

# batch_write uses multi-document transactions, so the server must be a replica
# set member or mongos (a single-node replica set is enough for development).
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "appdb")

STUDENTS = "students"
PRINT_SETTINGS = "print_settings"
DEFAULT_SETTINGS_ID = "default"

# Server error code for transactions on a standalone mongod.
ILLEGAL_OPERATION = 20
TRANSACTIONS_UNAVAILABLE = (
    "Operasi massal gagal: MongoDB harus berjalan sebagai replica set untuk mendukung transaksi."
)

client = None
_db = None

try:
    client = MongoClient(DATABASE_URL)
    _db = client[DATABASE_NAME]
except PyMongoError as e:
    logger.error(f"Could not connect to {DATABASE_URL}: {e}")
    client = None
    _db = None

# Expose db for other modules
db = _db


def _collection(name: str):
    if db is None:
        raise PersistenceError("Database not initialized")
    return db[name]


def _object_id(doc_id: str) -> ObjectId:
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        raise NotFoundError(doc_id)


def _to_str_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    if doc.get("_id"):
        doc["id"] = str(doc["_id"])
        del doc["_id"]
    return doc


def _stamped(data: Dict[str, Any], created: bool = False) -> Dict[str, Any]:
    data = dict(data)
    data.pop("id", None)
    now = datetime.utcnow()
    if created and "created_at" not in data:
        data["created_at"] = now
    data["updated_at"] = now
    return data


def fetch_all_records() -> List[StudentRecord]:
    try:
        cursor = _collection(STUDENTS).find({}).sort("tanggalRegistrasi", DESCENDING)
        return [StudentRecord.model_validate(_to_str_id(doc)) for doc in cursor]
    except PyMongoError as e:
        logger.exception("Error fetching students")
        raise PersistenceError(f"Gagal memuat data siswa: {e.__class__.__name__}")


def get_record(record_id: str) -> StudentRecord:
    try:
        doc = _collection(STUDENTS).find_one({"_id": _object_id(record_id)})
    except PyMongoError as e:
        logger.exception(f"Error fetching student {record_id}")
        raise PersistenceError(f"Gagal memuat data siswa: {e.__class__.__name__}")
    if not doc:
        raise NotFoundError(record_id)
    return StudentRecord.model_validate(_to_str_id(doc))


def create_record(fields: Dict[str, Any]) -> str:
    try:
        result = _collection(STUDENTS).insert_one(_stamped(fields, created=True))
    except PyMongoError as e:
        logger.exception("Error adding student")
        raise PersistenceError(f"Gagal menyimpan data siswa: {e.__class__.__name__}")
    return str(result.inserted_id)


def update_record(record_id: str, fields: Dict[str, Any]) -> None:
    try:
        result = _collection(STUDENTS).update_one(
            {"_id": _object_id(record_id)}, {"$set": _stamped(fields)}
        )
    except PyMongoError as e:
        logger.exception(f"Error updating student {record_id}")
        raise PersistenceError(f"Gagal memperbarui data siswa: {e.__class__.__name__}")
    if result.matched_count == 0:
        raise NotFoundError(record_id)


def delete_record(record_id: str) -> None:
    try:
        result = _collection(STUDENTS).delete_one({"_id": _object_id(record_id)})
    except PyMongoError as e:
        logger.exception(f"Error deleting student {record_id}")
        raise PersistenceError(f"Gagal menghapus data siswa: {e.__class__.__name__}")
    if result.deleted_count == 0:
        raise NotFoundError(record_id)


def _apply(collection, op: BatchOperation, session) -> Optional[str]:
    if op.kind == "create":
        result = collection.insert_one(_stamped(op.fields, created=True), session=session)
        return str(result.inserted_id)
    if op.kind == "update":
        result = collection.update_one(
            {"_id": _object_id(op.record_id)}, {"$set": _stamped(op.fields)}, session=session
        )
        if result.matched_count == 0:
            raise NotFoundError(op.record_id)
        return None
    result = collection.delete_one({"_id": _object_id(op.record_id)}, session=session)
    if result.deleted_count == 0:
        raise NotFoundError(op.record_id)
    return None


def batch_write(operations: List[BatchOperation]) -> List[str]:
    """Apply creates, updates and deletes in one transaction; returns the created ids."""
    collection = _collection(STUDENTS)
    created = []
    try:
        with client.start_session() as session:
            with session.start_transaction():
                for op in operations:
                    inserted_id = _apply(collection, op, session)
                    if inserted_id:
                        created.append(inserted_id)
    except NotFoundError:
        logger.warning(f"Batch of {len(operations)} operations aborted: record not found")
        raise
    except PyMongoError as e:
        if isinstance(e, OperationFailure) and (e.code == ILLEGAL_OPERATION or "replica set" in str(e)):
            logger.error(f"Transactions unavailable on {DATABASE_URL}: {e}")
            raise PersistenceError(TRANSACTIONS_UNAVAILABLE)
        logger.exception(f"Batch of {len(operations)} operations failed")
        raise PersistenceError(f"Operasi massal gagal: {e.__class__.__name__}")
    return created


def get_print_settings() -> Optional[PrintSettings]:
    try:
        doc = _collection(PRINT_SETTINGS).find_one({"_id": DEFAULT_SETTINGS_ID})
    except PyMongoError as e:
        logger.exception("Error fetching print settings")
        raise PersistenceError(f"Gagal memuat pengaturan cetak: {e.__class__.__name__}")
    return PrintSettings.model_validate(_to_str_id(doc)) if doc else None


def update_print_settings(fields: Dict[str, Any]) -> None:
    try:
        _collection(PRINT_SETTINGS).update_one(
            {"_id": DEFAULT_SETTINGS_ID}, {"$set": _stamped(fields)}, upsert=True
        )
    except PyMongoError as e:
        logger.exception("Error updating print settings")
        raise PersistenceError(f"Gagal menyimpan pengaturan cetak: {e.__class__.__name__}")
