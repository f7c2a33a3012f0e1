"""
Mapping from raw Drive file resources to APIObject.

Accepts both v3 field names (name, size, modifiedTime, parents as ids)
and the older v2 names (title, fileSize, modifiedDate, parents as refs).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ..constants import API_DOWNLOAD_URL, FOLDER_MIME_TYPE


@dataclass(frozen=True)
class APIObject:
    """A remote file or folder."""
    id: str
    name: str
    is_dir: bool = False
    size: int = 0
    mtime: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    parents: tuple = ()
    download_url: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_dir": self.is_dir,
            "size": self.size,
            "mtime": format_rfc3339(self.mtime),
            "parents": list(self.parents),
            "download_url": self.download_url,
        }


def format_rfc3339(value: datetime) -> str:
    """Format a datetime as RFC3339 in UTC (2024-01-02T03:04:05Z)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value: str) -> Optional[datetime]:
    """
    Parse an RFC3339 timestamp as returned by Drive.

    Returns:
        Timezone-aware datetime, or None if the value can't be parsed
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def _parse_size(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _parent_ids(parents) -> tuple:
    ids = []
    for parent in parents or []:
        if isinstance(parent, dict):
            parent = parent.get("id")
        if parent:
            ids.append(parent)
    return tuple(ids)


def map_drive_file(raw: dict, now: Optional[datetime] = None) -> APIObject:
    """
    Translate a raw Drive file dict into an APIObject.

    An unparsable modification time is replaced by the current time
    instead of failing the mapping.

    Args:
        raw: File resource as returned by the Drive API
        now: Fallback timestamp (defaults to current UTC time)

    Returns:
        APIObject for the file
    """
    file_id = raw.get("id", "")

    mtime = parse_rfc3339(raw.get("modifiedTime") or raw.get("modifiedDate"))
    if mtime is None:
        mtime = now or datetime.now(timezone.utc)

    return APIObject(
        id=file_id,
        name=raw.get("name") or raw.get("title") or "",
        is_dir=raw.get("mimeType") == FOLDER_MIME_TYPE,
        size=_parse_size(raw.get("size", raw.get("fileSize"))),
        mtime=mtime,
        parents=_parent_ids(raw.get("parents")),
        download_url=raw.get("downloadUrl") or API_DOWNLOAD_URL.format(file_id=file_id),
    )
