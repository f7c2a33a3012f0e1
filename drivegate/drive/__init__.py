"""
Google Drive interaction module.

Handles authentication, account rotation, the API client, and change polling.
"""

from .auth import CredentialAuthorizer, CredentialConfig
from .changes import ChangePoller, PollResult
from .client import PartialResult, RemoteStorageClient
from .errors import (
    DownloadStatusError,
    DriveError,
    DriveRequestError,
    ObjectNotFoundError,
    QuotaExceededError,
    TokenStoreError,
)
from .gateway import DriveGateway
from .objects import APIObject, map_drive_file
from .pool import AccountPool

__all__ = [
    "AccountPool",
    "APIObject",
    "ChangePoller",
    "CredentialAuthorizer",
    "CredentialConfig",
    "DownloadStatusError",
    "DriveError",
    "DriveGateway",
    "DriveRequestError",
    "ObjectNotFoundError",
    "PartialResult",
    "PollResult",
    "QuotaExceededError",
    "RemoteStorageClient",
    "TokenStoreError",
    "map_drive_file",
]
