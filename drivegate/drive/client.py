"""
Google Drive API client for the gateway.

Handles all HTTP interactions with the Drive API for one account. The
session is an AuthorizedSession, which refreshes expired access tokens
before each request.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Iterator, Optional

import requests

from ..constants import (
    API_DOWNLOAD_URL,
    API_FILES,
    DEFAULT_TIMEOUT,
    FILE_FIELDS,
    LIST_FIELDS,
    PAGE_SIZE,
    QUOTA_REASONS,
)
from .errors import (
    DownloadStatusError,
    DriveError,
    DriveRequestError,
    ObjectNotFoundError,
    QuotaExceededError,
)
from .objects import APIObject, map_drive_file

logger = logging.getLogger(__name__)

# (session, object, chunk_size, chunk_dir) -> buffer handle
BufferFactory = Callable[[requests.Session, APIObject, int, Optional[Path]], object]


@dataclass
class PartialResult:
    """
    Items gathered by a paginated call, plus the error that stopped it.

    Iterates and indexes like a list of items. error is None when every
    page was fetched.
    """
    items: list = field(default_factory=list)
    error: Optional[Exception] = None
    pages: int = 0

    @property
    def complete(self) -> bool:
        return self.error is None

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]


def quote_query_value(value: str) -> str:
    """Escape a value for use inside single quotes in a Drive query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def error_from_response(response: requests.Response) -> DriveRequestError:
    """Build a typed error from a failed Drive response."""
    status = response.status_code
    message = f"Drive API error {status}"
    reason = ""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        message = error.get("message") or message
        errors = error.get("errors") or []
        if errors and isinstance(errors[0], dict):
            reason = errors[0].get("reason", "")

    if status == 429 or (status == 403 and reason in QUOTA_REASONS):
        return QuotaExceededError(message, status_code=status, reason=reason)
    return DriveRequestError(message, status_code=status, reason=reason)


class RemoteStorageClient:
    """
    Drive API client bound to one authenticated session.

    Built per call from the account pool's active account, so a rotation
    only affects clients created after it.
    """

    def __init__(
        self,
        session: requests.Session,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_dir: Optional[Path] = None,
        buffer_factory: Optional[BufferFactory] = None,
    ):
        """
        Initialize the Drive client.

        Args:
            session: Authenticated session (AuthorizedSession in production)
            timeout: Per-request timeout in seconds
            chunk_dir: Directory handed to the content buffer
            buffer_factory: Builds the buffer returned by open()
        """
        self.session = session
        self.timeout = timeout
        self.chunk_dir = chunk_dir
        self._buffer_factory = buffer_factory
        self._api_calls = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.session.close()

    @property
    def api_calls(self) -> int:
        """Total API calls made by this client."""
        return self._api_calls

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Make a request and raise a typed error on failure statuses."""
        timeout = kwargs.pop("timeout", self.timeout)
        response = self.session.request(method, url, timeout=timeout, **kwargs)
        self._api_calls += 1
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            error = error_from_response(response)
            response.close()
            raise error from e
        return response

    def iter_pages(self, query: str) -> Iterator[list[dict]]:
        """
        Yield each page of raw files matching a query.

        Pages are fetched one at a time; each page's nextPageToken gates
        the next request. Errors are raised from the generator.
        """
        page_token = None

        while True:
            params = {
                "q": query,
                "fields": LIST_FIELDS,
                "pageSize": PAGE_SIZE,
                "supportsAllDrives": "true",
                "includeItemsFromAllDrives": "true",
            }
            if page_token:
                params["pageToken"] = page_token

            data = self._request("GET", API_FILES, params=params).json()
            yield data.get("files", [])

            page_token = data.get("nextPageToken")
            if not page_token:
                break

    def list_files(self, query: str, strict: bool = False) -> PartialResult:
        """
        Collect all raw files matching a query.

        Args:
            query: Drive query expression
            strict: Raise page errors instead of returning a partial result

        Returns:
            PartialResult of raw file dicts
        """
        result = PartialResult()
        try:
            for files in self.iter_pages(query):
                result.pages += 1
                result.items.extend(files)
        except (DriveError, requests.RequestException, ValueError) as e:
            if strict:
                raise
            logger.warning("Listing stopped after %d page(s) for %r: %s", result.pages, query, e)
            result.error = e
        return result

    def get_object(self, file_id: str) -> APIObject:
        """
        Get one object by id.

        Files reporting a size of 0 get a second request for the real
        content length; if that fails the reported size is kept.
        """
        params = {"fields": FILE_FIELDS, "supportsAllDrives": "true"}
        raw = self._request("GET", f"{API_FILES}/{file_id}", params=params).json()
        obj = map_drive_file(raw)

        if obj.size == 0 and not obj.is_dir:
            try:
                obj = replace(obj, size=self.file_size(file_id))
            except (DriveError, requests.RequestException) as e:
                logger.debug("Could not resolve size of %s: %s", file_id, e)

        return obj

    def get_objects_by_parent(self, parent_id: str, strict: bool = False) -> PartialResult:
        """
        Get all objects directly under a folder.

        By default a failed page ends the listing and the objects gathered
        so far are returned with the error attached (see PartialResult).

        Args:
            parent_id: Drive folder ID
            strict: Raise page errors instead

        Returns:
            PartialResult of APIObject
        """
        query = f"'{quote_query_value(parent_id)}' in parents and trashed = false"
        result = self.list_files(query, strict=strict)
        result.items = [map_drive_file(raw) for raw in result.items]
        return result

    def get_file_by_name_and_parent(self, name: str, parent_id: str) -> dict:
        """
        Find a child by exact name.

        Returns:
            Raw file dict of the first match

        Raises:
            ObjectNotFoundError: if no child has that name
        """
        query = (
            f"'{quote_query_value(parent_id)}' in parents"
            f" and name = '{quote_query_value(name)}' and trashed = false"
        )
        params = {
            "q": query,
            "fields": LIST_FIELDS,
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
        }
        data = self._request("GET", API_FILES, params=params).json()

        for f in data.get("files", []):
            if f.get("name") == name:
                return f
        raise ObjectNotFoundError(name, parent_id)

    def file_size(self, file_id: str) -> int:
        """
        Get a file's content length from a download response.

        Only the headers are read. The body is closed unread, which drops
        the connection instead of downloading the file.

        Raises:
            DownloadStatusError: if the download doesn't answer 200
            QuotaExceededError: if the answer is a rate/quota error
        """
        url = API_DOWNLOAD_URL.format(file_id=file_id)
        response = self.session.request("GET", url, stream=True, timeout=self.timeout)
        self._api_calls += 1
        try:
            if response.status_code in (403, 429):
                error = error_from_response(response)
                if isinstance(error, QuotaExceededError):
                    raise error
            if response.status_code != 200:
                raise DownloadStatusError(file_id, response.status_code)
            return int(response.headers.get("Content-Length") or 0)
        finally:
            response.close()

    def open(self, obj: APIObject, chunk_size: int):
        """Hand the object to the content buffer with this client's session."""
        if self._buffer_factory is None:
            from .buffer import ChunkReader
            return ChunkReader.factory(self.session, obj, chunk_size, self.chunk_dir, timeout=self.timeout)
        return self._buffer_factory(self.session, obj, chunk_size, self.chunk_dir)
