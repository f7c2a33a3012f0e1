"""
Account pool for the Drive gateway.

Holds the credentials of every configured account and which one is
active. Callers rotate to the next account when the active one runs out
of quota.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import timezone
from pathlib import Path
from typing import Callable, Optional

from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials

from .auth import CredentialAuthorizer, CredentialConfig
from .errors import TokenStoreError
from .tokens import Token, store_tokens

logger = logging.getLogger(__name__)


class PoolCredentials(Credentials):
    """
    google.oauth2 Credentials that report back after every refresh.

    Refreshes are serialized per account. A thread that waited on another
    thread's refresh reuses the new token instead of refreshing again.
    """

    def __init__(self, *args, on_refresh: Optional[Callable[["PoolCredentials"], None]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._on_refresh = on_refresh
        self._refresh_lock = threading.Lock()

    def refresh(self, request):
        stale = self.token
        with self._refresh_lock:
            if self.token != stale and self.valid:
                return
            super().refresh(request)
        if self._on_refresh is not None:
            self._on_refresh(self)


@dataclass(frozen=True)
class ActiveAccount:
    """Consistent snapshot of the active account."""
    index: int  # 1-based
    config: CredentialConfig
    credentials: Credentials


class AccountPool:
    """
    Ordered set of authorized accounts with a 1-based active index.

    All reads and writes of the active index go through one lock, so
    active() always returns a matching (index, config, credentials).
    """

    def __init__(
        self,
        configs: list[CredentialConfig],
        tokens: list[Token],
        token_path: Optional[Path] = None,
        active_index: int = 1,
    ):
        """
        Initialize pool.

        Args:
            configs: Per-account OAuth settings, in rotation order
            tokens: Tokens lined up with configs (extra trailing tokens are
                kept only so they are written back with refreshed ones)
            token_path: Where refreshed tokens are persisted (None to skip)
            active_index: Starting account, 1-based
        """
        if not configs:
            raise ValueError("AccountPool needs at least one account")
        if len(tokens) < len(configs):
            raise ValueError(f"Expected at least {len(configs)} tokens, got {len(tokens)}")
        if not 1 <= active_index <= len(configs):
            raise ValueError(f"Active index {active_index} outside 1..{len(configs)}")

        self.token_path = Path(token_path) if token_path else None
        self._lock = threading.Lock()
        self._store_lock = threading.Lock()
        self._configs = list(configs)
        self._tokens = list(tokens)
        self._active_index = active_index
        self._credentials = [
            self._build_credentials(position, config, token)
            for position, (config, token) in enumerate(zip(self._configs, self._tokens))
        ]

    @classmethod
    def authorize(cls, accounts, token_path: Path, **kwargs) -> "AccountPool":
        """Authorize every account (interactive if needed) and build the pool."""
        configs, tokens = CredentialAuthorizer(accounts, token_path, **kwargs).authorize()
        return cls(configs, tokens, token_path=token_path)

    def __len__(self) -> int:
        return len(self._configs)

    @property
    def active_index(self) -> int:
        with self._lock:
            return self._active_index

    @property
    def tokens(self) -> list[Token]:
        """Copy of the current tokens (account order, then orphans)."""
        with self._lock:
            return list(self._tokens)

    def active(self) -> ActiveAccount:
        """Snapshot of the active account."""
        with self._lock:
            position = self._active_index - 1
            return ActiveAccount(
                index=self._active_index,
                config=self._configs[position],
                credentials=self._credentials[position],
            )

    def session(self) -> AuthorizedSession:
        """Authenticated requests session for the active account."""
        return AuthorizedSession(self.active().credentials)

    def rotate(self) -> int:
        """
        Switch to the next account, wrapping to 1 after the last.

        Returns:
            The new active index
        """
        with self._lock:
            self._active_index = (self._active_index % len(self._configs)) + 1
            index = self._active_index
            label = self._configs[index - 1].label
        logger.warning("Usage limit exceeded, rotating accounts to account #%d (%s)", index, label)
        return index

    def _build_credentials(self, position: int, config: CredentialConfig, token: Token) -> PoolCredentials:
        expiry = None
        if token.expiry is not None:
            # google-auth compares against naive UTC
            expiry = token.expiry.astimezone(timezone.utc).replace(tzinfo=None)
        return PoolCredentials(
            token=token.access_token or None,
            refresh_token=token.refresh_token or None,
            token_uri=config.token_uri,
            client_id=config.client_id,
            client_secret=config.client_secret,
            scopes=list(config.scopes),
            expiry=expiry,
            on_refresh=lambda creds: self._token_refreshed(position, creds),
        )

    def _token_refreshed(self, position: int, creds: Credentials):
        """Copy refreshed credentials into the token list and persist it."""
        with self._store_lock:
            with self._lock:
                fresh = Token.from_credentials(creds, account_id=self._configs[position].account_id)
                old = self._tokens[position]
                self._tokens[position] = replace(
                    old,
                    access_token=fresh.access_token,
                    refresh_token=fresh.refresh_token or old.refresh_token,
                    expiry=fresh.expiry,
                    account_id=fresh.account_id,
                )
                snapshot = list(self._tokens)

            logger.debug("Refreshed access token for account #%d", position + 1)
            if self.token_path is None:
                return
            try:
                store_tokens(self.token_path, snapshot)
            except TokenStoreError as e:
                # The refresh itself worked; only the copy on disk is stale
                logger.error("Could not persist refreshed token: %s", e)
