"""
Exceptions raised by the Drive gateway.
"""

from typing import Optional


class DriveError(Exception):
    """Base class for all gateway errors."""


class TokenStoreError(DriveError):
    """The token file could not be written."""


class DriveRequestError(DriveError):
    """A Drive API request came back with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None, reason: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class QuotaExceededError(DriveRequestError):
    """The active account hit a rate limit or quota. Rotate and retry."""


class DownloadStatusError(DriveError):
    """A content download answered with something other than 200."""

    def __init__(self, file_id: str, status_code: int):
        super().__init__(f"Invalid status code {status_code} for {file_id}")
        self.file_id = file_id
        self.status_code = status_code


class ObjectNotFoundError(DriveError):
    """No child with the given name exists under the parent."""

    def __init__(self, name: str, parent_id: str):
        super().__init__(f"Could not find {name} in directory {parent_id}")
        self.name = name
        self.parent_id = parent_id
