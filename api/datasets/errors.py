"""
Dataset error taxonomy.

Each error carries the HTTP status it maps to; `api/main.py` installs the
handler that turns them into JSON responses.
"""

from __future__ import annotations


class DatasetError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DatasetError):
    status_code = 400


class UnsupportedFormat(DatasetError):
    status_code = 400


class MalformedInput(DatasetError):
    status_code = 422


class NotFound(DatasetError):
    status_code = 404


class DuplicateAddress(DatasetError):
    status_code = 500


class AddressExhausted(DuplicateAddress):
    """
    Every allocation attempt collided; a different display name is the only fix.
    """


class UploadTooLarge(ValidationError):
    status_code = 413
