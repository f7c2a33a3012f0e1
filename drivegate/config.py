"""
Configuration management for the Drive gateway.

Config file (JSON):
- accounts: OAuth clients, one per Google account, in rotation order
- token_path: where the per-account tokens are kept
- chunk_dir: directory handed to the content buffer
- poll_interval / chunk_size / timeout: tuning knobs
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .constants import DEFAULT_CHUNK_SIZE, DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DRIVEGATE_CONFIG"
DEFAULT_CONFIG_NAME = "drivegate.json"


@dataclass(frozen=True)
class AccountConfig:
    """One Google account (OAuth client) used against Drive."""
    client_id: str
    client_secret: str
    name: str = ""

    @property
    def account_id(self) -> str:
        """Stable identifier tokens are keyed by."""
        return self.client_id

    @property
    def label(self) -> str:
        return self.name or self.client_id

    def to_dict(self) -> dict:
        d = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.name:
            d["name"] = self.name
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "AccountConfig":
        return cls(
            client_id=data.get("client_id", ""),
            client_secret=data.get("client_secret", ""),
            name=data.get("name", ""),
        )


@dataclass
class GatewayConfig:
    """Everything needed to construct a DriveGateway."""
    accounts: list[AccountConfig] = field(default_factory=list)
    token_path: Path = Path("token.json")
    chunk_dir: Path = Path("chunks")
    poll_interval: float = DEFAULT_POLL_INTERVAL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    timeout: float = DEFAULT_TIMEOUT

    def to_dict(self) -> dict:
        return {
            "accounts": [a.to_dict() for a in self.accounts],
            "token_path": str(self.token_path),
            "chunk_dir": str(self.chunk_dir),
            "poll_interval": self.poll_interval,
            "chunk_size": self.chunk_size,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict, base_dir: Optional[Path] = None) -> "GatewayConfig":
        """Build config from a dict; relative paths resolve against base_dir."""
        base_dir = base_dir or Path.cwd()

        def resolve(value: str, default: str) -> Path:
            p = Path(value or default).expanduser()
            return p if p.is_absolute() else base_dir / p

        accounts = [
            AccountConfig.from_dict(a)
            for a in data.get("accounts", [])
            if isinstance(a, dict)
        ]
        return cls(
            accounts=[a for a in accounts if a.client_id],
            token_path=resolve(data.get("token_path"), "token.json"),
            chunk_dir=resolve(data.get("chunk_dir"), "chunks"),
            poll_interval=float(data.get("poll_interval", DEFAULT_POLL_INTERVAL)),
            chunk_size=int(data.get("chunk_size", DEFAULT_CHUNK_SIZE)),
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
        )

    @classmethod
    def load(cls, path: Path) -> "GatewayConfig":
        """Load config from file. Missing or malformed files give defaults."""
        path = Path(path)
        data = {}
        if path.exists():
            try:
                with open(path) as f:
                    data = json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning("Could not load %s: %s", path, e)
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a JSON object", path)
            data = {}
        return cls.from_dict(data, base_dir=path.parent)

    def save(self, path: Path):
        """Save config to file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)


def get_config_path() -> Path:
    """Config path from DRIVEGATE_CONFIG, else drivegate.json in the cwd."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return Path.cwd() / DEFAULT_CONFIG_NAME
