"""
Error taxonomy for the student records portal.

Core modules raise these and never retry; the HTTP layer in main.py turns them
into responses with localized messages.
"""


class PortalError(Exception):
    """Base class for every error raised by the portal core."""

    default_message = "Terjadi kesalahan."

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(PortalError):
    """Input rejected before any persistence call was made."""

    default_message = "Data tidak valid."


class PersistenceError(PortalError):
    """The storage layer rejected the operation."""

    default_message = "Gagal menyimpan data. Periksa izin akses atau format data."


class NotFoundError(PortalError):
    """The operation referenced a record that no longer exists."""

    default_message = "Siswa tidak ditemukan"

    def __init__(self, record_id: str = None, message: str = None):
        super().__init__(message)
        self.record_id = record_id
