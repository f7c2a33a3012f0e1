"""
Drive gateway: the entry point used by upper layers.

Authorizes the configured accounts, starts the change poller, and runs
metadata/listing/content calls against whichever account is active.
"""

import logging
from pathlib import Path
from typing import Optional, TextIO

from ..config import AccountConfig, GatewayConfig
from ..constants import DEFAULT_CHUNK_SIZE, DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT
from .changes import ChangePoller
from .client import BufferFactory, PartialResult, RemoteStorageClient
from .objects import APIObject
from .pool import AccountPool

logger = logging.getLogger(__name__)


class DriveGateway:
    """
    Multi-account access to Google Drive.

    Quota errors surface as QuotaExceededError; it is up to the caller to
    rotate_accounts() and retry. Calls already in flight keep using the
    account they started with.
    """

    def __init__(
        self,
        accounts: list[AccountConfig],
        token_path: Path,
        chunk_dir: Optional[Path] = None,
        cache=None,
        buffer_factory: Optional[BufferFactory] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
        input_stream: Optional[TextIO] = None,
        output_stream: Optional[TextIO] = None,
        pool: Optional[AccountPool] = None,
        start_polling: bool = True,
    ):
        """
        Initialize the gateway.

        Args:
            accounts: Accounts in rotation order
            token_path: Token file (created on first authorization)
            chunk_dir: Directory handed to the content buffer
            cache: Receives objects found by the change poller
                (default: a new MemoryCache)
            buffer_factory: Builds the buffer returned by open()
            poll_interval: Seconds between change polls
            chunk_size: Default chunk size for open()
            timeout: Per-request timeout in seconds
            input_stream: Operator input for the consent flow
            output_stream: Operator output for the consent flow
            pool: Pre-built account pool (skips authorization)
            start_polling: Start the change poller right away
        """
        if cache is None:
            from ..cache import MemoryCache
            cache = MemoryCache()

        self.cache = cache
        self.chunk_dir = Path(chunk_dir) if chunk_dir else None
        self.chunk_size = chunk_size
        self.timeout = timeout
        self._buffer_factory = buffer_factory

        self.pool = pool or AccountPool.authorize(
            accounts,
            token_path,
            input_stream=input_stream,
            output_stream=output_stream,
        )
        self.poller = ChangePoller(self._client, cache, interval=poll_interval)
        if start_polling:
            self.poller.start()

    @classmethod
    def from_config(cls, config: GatewayConfig, **kwargs) -> "DriveGateway":
        return cls(
            config.accounts,
            config.token_path,
            chunk_dir=config.chunk_dir,
            poll_interval=config.poll_interval,
            chunk_size=config.chunk_size,
            timeout=config.timeout,
            **kwargs,
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        """Stop the change poller."""
        self.poller.stop()

    def _client(self) -> RemoteStorageClient:
        """Client for the account that is active right now."""
        return RemoteStorageClient(
            self.pool.session(),
            timeout=self.timeout,
            chunk_dir=self.chunk_dir,
            buffer_factory=self._buffer_factory,
        )

    def rotate_accounts(self) -> int:
        """Switch to the next account. Returns the new 1-based index."""
        return self.pool.rotate()

    def get_object(self, file_id: str) -> APIObject:
        with self._client() as client:
            return client.get_object(file_id)

    def get_objects_by_parent(self, parent_id: str, strict: bool = False) -> PartialResult:
        with self._client() as client:
            return client.get_objects_by_parent(parent_id, strict=strict)

    def get_file_by_name_and_parent(self, name: str, parent_id: str) -> dict:
        with self._client() as client:
            return client.get_file_by_name_and_parent(name, parent_id)

    def file_size(self, file_id: str) -> int:
        with self._client() as client:
            return client.file_size(file_id)

    def open(self, obj: APIObject, chunk_size: Optional[int] = None):
        """
        Open a file for chunked reading.

        The returned buffer owns its session; close it when done.
        """
        return self._client().open(obj, chunk_size or self.chunk_size)
