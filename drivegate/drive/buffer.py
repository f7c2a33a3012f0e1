"""
Chunked content reader for Drive files.

Reads chunk-aligned byte ranges of a file through the authenticated
session. Nothing is written to disk.
"""

import logging
from pathlib import Path
from typing import Optional

import requests

from ..constants import DEFAULT_TIMEOUT
from .errors import DownloadStatusError
from .objects import APIObject

logger = logging.getLogger(__name__)


class ChunkReader:
    """
    Random-access reader over one remote file, one chunk per request.

    Owns its session: close() (or leaving a with block) releases it.
    """

    def __init__(
        self,
        session: requests.Session,
        obj: APIObject,
        chunk_size: int,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.session = session
        self.obj = obj
        self.chunk_size = chunk_size
        self.timeout = timeout

    @classmethod
    def factory(
        cls,
        session: requests.Session,
        obj: APIObject,
        chunk_size: int,
        chunk_dir: Optional[Path] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "ChunkReader":
        """Buffer factory signature used by RemoteStorageClient.open()."""
        return cls(session, obj, chunk_size, timeout=timeout)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.session.close()

    def read_chunk(self, index: int) -> bytes:
        """Read the chunk at the given chunk index."""
        start = index * self.chunk_size
        if self.obj.size and start >= self.obj.size:
            return b""
        end = start + self.chunk_size - 1
        if self.obj.size:
            end = min(end, self.obj.size - 1)

        response = self.session.request(
            "GET",
            self.obj.download_url,
            headers={"Range": f"bytes={start}-{end}"},
            timeout=self.timeout,
        )
        try:
            # Range starts past the end, e.g. on an empty file
            if response.status_code == 416:
                return b""
            if response.status_code not in (200, 206):
                raise DownloadStatusError(self.obj.id, response.status_code)
            data = response.content
        finally:
            response.close()

        # Server ignored the range and sent the whole file
        if response.status_code == 200:
            data = data[start:end + 1]
        return data

    def read(self, offset: int, size: int) -> bytes:
        """Read size bytes starting at offset (short at end of file)."""
        if offset < 0 or size < 0:
            raise ValueError("offset and size must be non-negative")
        parts = []
        remaining = size
        position = offset
        while remaining > 0:
            if self.obj.size and position >= self.obj.size:
                break
            index, skip = divmod(position, self.chunk_size)
            data = self.read_chunk(index)
            chunk = data[skip:skip + remaining]
            if not chunk:
                break
            parts.append(chunk)
            position += len(chunk)
            remaining -= len(chunk)
            # Short chunk: end of file
            if len(data) < self.chunk_size:
                break
        return b"".join(parts)
