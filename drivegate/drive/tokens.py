"""
Token file persistence.

The token file is a JSON array with one object per account:
account_id, access_token, token_type, refresh_token, expiry.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .errors import TokenStoreError
from .objects import format_rfc3339, parse_rfc3339

logger = logging.getLogger(__name__)


@dataclass
class Token:
    """OAuth credential material for one account."""
    access_token: str = ""
    refresh_token: str = ""
    token_type: str = "Bearer"
    expiry: Optional[datetime] = None
    account_id: str = ""  # Empty for entries written by the old positional format

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "access_token": self.access_token,
            "token_type": self.token_type,
            "refresh_token": self.refresh_token,
            "expiry": format_rfc3339(self.expiry) if self.expiry else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Token":
        return cls(
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            token_type=data.get("token_type") or "Bearer",
            expiry=parse_rfc3339(data.get("expiry")),
            account_id=data.get("account_id", ""),
        )

    @classmethod
    def from_credentials(cls, creds, account_id: str = "") -> "Token":
        """Build a token from google.oauth2 Credentials."""
        expiry = creds.expiry
        if expiry is not None and expiry.tzinfo is None:
            # google-auth keeps expiry as naive UTC
            expiry = expiry.replace(tzinfo=timezone.utc)
        return cls(
            access_token=creds.token or "",
            refresh_token=creds.refresh_token or "",
            expiry=expiry,
            account_id=account_id,
        )


def load_tokens(path: Path) -> list[Token]:
    """
    Load tokens from the token file.

    A missing, unreadable or malformed file yields an empty list, which
    callers treat the same as "no credentials yet".
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        return []
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not load tokens from %s: %s", path, e)
        return []

    if not isinstance(data, list):
        logger.warning("Ignoring token file %s: expected a JSON array", path)
        return []

    return [Token.from_dict(item) for item in data if isinstance(item, dict)]


def store_tokens(path: Path, tokens: list[Token]):
    """
    Write all tokens to the token file, replacing it atomically.

    Raises:
        TokenStoreError: if the tokens can't be serialized or written
    """
    path = Path(path)
    try:
        payload = json.dumps([t.to_dict() for t in tokens], indent=2)
    except (TypeError, ValueError) as e:
        raise TokenStoreError(f"Could not store tokens, {e}") from e

    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        with os.fdopen(fd, "w") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise TokenStoreError(f"Could not store tokens, {e}") from e
