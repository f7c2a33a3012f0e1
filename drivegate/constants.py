"""
Shared constants for the Drive gateway.
"""

# OAuth endpoints used for every configured account
OAUTH_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
OAUTH_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Loopback redirect. Nothing listens there; the operator pastes the
# address the browser lands on (or just its code parameter).
OAUTH_REDIRECT_URI = "http://localhost"
OAUTH_SCOPES = ["https://www.googleapis.com/auth/drive"]

# Drive API v3
API_BASE = "https://www.googleapis.com/drive/v3"
API_FILES = f"{API_BASE}/files"
API_DOWNLOAD_URL = f"{API_FILES}/{{file_id}}?alt=media"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Fields requested for every file returned by the gateway
FILE_FIELDS = "id, name, mimeType, size, modifiedTime, parents"
LIST_FIELDS = f"nextPageToken, files({FILE_FIELDS})"
PAGE_SIZE = 1000

# Drive error reasons that mean the active account ran out of quota
QUOTA_REASONS = {
    "userRateLimitExceeded",
    "rateLimitExceeded",
    "quotaExceeded",
    "dailyLimitExceeded",
    "downloadQuotaExceeded",
}

DEFAULT_POLL_INTERVAL = 600  # 10 minutes
DEFAULT_CHUNK_SIZE = 10 * 1024 * 1024
DEFAULT_TIMEOUT = 60
