import os
import time
import json
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from googleapiclient.discovery import build
from googleapiclient.http import MediaFileUpload
from googleapiclient.errors import HttpError
from google.oauth2.credentials import Credentials
from google.auth.transport.requests import Request
from google.auth.exceptions import GoogleAuthError

SCOPES = ["https://www.googleapis.com/auth/youtube.upload"]
CLIENT_SECRET_FILE = os.environ.get("CLIENT_SECRET_FILE", "client_secret.json")
TOKEN_FILE = os.environ.get("YOUTUBE_TOKEN_FILE", "token.json")

UPLOAD_CATEGORY_ID = os.getenv("UPLOAD_CATEGORY_ID", "22")  # People & Blogs
UPLOAD_TAGS = [t.strip() for t in os.getenv("UPLOAD_TAGS", "shorts,automator").split(",") if t.strip()]
UPLOAD_MAX_RETRIES = int(os.getenv("UPLOAD_MAX_RETRIES", "5"))
CHUNK_SIZE = 1024 * 1024 * 16  # 16 MB

RETRIABLE_STATUS_CODES = (500, 502, 503, 504)

logger = logging.getLogger("uploader")


class CredentialsError(Exception):
    """No usable OAuth credentials. Fatal before any upload is attempted."""


class UploadError(Exception):
    def __init__(self, file_path: str, detail: str):
        self.file_path = file_path
        self.detail = detail
        super().__init__(f"Upload of '{os.path.basename(file_path)}' failed: {detail}")


def get_valid_credentials(
    client_secret_file: str = CLIENT_SECRET_FILE,
    token_file: str = TOKEN_FILE,
) -> Credentials:
    """
    Loads the stored token, refreshing (and re-saving) it when expired.
    Interactive consent is left to scripts/auth_youtube.py.
    """
    if not os.path.exists(client_secret_file):
        raise CredentialsError(
            f"{client_secret_file} not found. Download the OAuth client from the Google Cloud Console."
        )

    creds = None
    if os.path.exists(token_file):
        try:
            creds = Credentials.from_authorized_user_file(token_file, SCOPES)
        except (ValueError, OSError) as e:
            logger.warning(f"Failed to read token file: {e}")
            creds = None

    if creds and not creds.valid and creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
            with open(token_file, "w", encoding="utf-8") as f:
                f.write(creds.to_json())
            logger.info("✅ Token refreshed and saved.")
        except GoogleAuthError as e:
            logger.warning(f"Refresh failed: {e}")
            creds = None

    if not creds or not creds.valid:
        raise CredentialsError(
            "YouTube token expired or missing. Run 'python scripts/auth_youtube.py' to authorize this app."
        )
    return creds


def sanitize_title(title: Optional[str]) -> str:
    if title:
        final_title = title.replace("\n", " ").replace("\r", " ").replace("\t", " ")
        final_title = final_title.replace("<", "").replace(">", "")
        final_title = final_title.strip()
    else:
        final_title = ""

    if not final_title:
        final_title = "Untitled Video"
        logger.warning("⚠️ Title was empty or whitespace. Defaulting to 'Untitled Video'.")

    # YouTube caps titles at 100 chars
    if len(final_title) > 95:
        final_title = final_title[:95]
    return final_title


def format_publish_at(publish_at: datetime) -> str:
    """RFC 3339 in UTC, millisecond precision: 2026-10-20T14:00:00.000Z"""
    if publish_at.tzinfo is None:
        publish_at = publish_at.astimezone()
    utc = publish_at.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def build_request_body(
    title: str,
    description: str,
    publish_at: datetime,
    tags: Optional[List[str]] = None,
    category_id: str = UPLOAD_CATEGORY_ID,
) -> dict:
    return {
        "snippet": {
            "title": sanitize_title(title),
            "description": (description or "").strip(),
            "tags": list(UPLOAD_TAGS if tags is None else tags),
            "categoryId": category_id,
        },
        "status": {
            # Scheduled publishing requires a private upload
            "privacyStatus": "private",
            "publishAt": format_publish_at(publish_at),
            "selfDeclaredMadeForKids": False,
        },
    }


def _error_reason(e: HttpError) -> str:
    try:
        return str(json.loads(e.content.decode("utf-8"))).lower()
    except (ValueError, AttributeError):
        return str(e).lower()


class YouTubeUploader:
    """
    Upload gateway: schedule_upload(file, title, description, publish_at) -> video id.
    Any failure surfaces as UploadError.
    """

    def __init__(
        self,
        service=None,
        tags: Optional[List[str]] = None,
        category_id: str = UPLOAD_CATEGORY_ID,
        max_retries: int = UPLOAD_MAX_RETRIES,
        chunksize: int = CHUNK_SIZE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._service = service
        self.tags = tags
        self.category_id = category_id
        self.max_retries = max_retries
        self.chunksize = chunksize
        self.sleep = sleep

    def connect(self):
        """Build the API client now so credential problems show up before any work."""
        if self._service is None:
            creds = get_valid_credentials()
            self._service = build("youtube", "v3", credentials=creds)
        return self._service

    def schedule_upload(self, file_path: str, title: str, description: str, publish_at: datetime) -> str:
        if not file_path.lower().endswith(".mp4"):
            raise UploadError(file_path, "file must be .mp4")
        if not os.path.exists(file_path):
            raise UploadError(file_path, "file not found")

        service = self.connect()
        body = build_request_body(title, description, publish_at, self.tags, self.category_id)
        logger.info(f"📅 Scheduled Upload: {body['status']['publishAt']}")

        try:
            media = MediaFileUpload(
                file_path,
                chunksize=self.chunksize,
                resumable=True,
                mimetype="video/mp4",
            )
        except OSError as e:
            raise UploadError(file_path, str(e)) from e

        request = service.videos().insert(
            part="snippet,status",
            body=body,
            media_body=media,
        )

        logger.info("🚀 Starting upload: %s", file_path)
        retry = 0
        while True:
            try:
                status, response = request.next_chunk()
                if response is not None:
                    video_id = response.get("id")
                    if not video_id:
                        raise UploadError(file_path, f"unexpected response: {response}")
                    logger.info("✅ Upload complete: %s", video_id)
                    return video_id
                if status:
                    logger.info("Upload progress: %d%%", int(status.progress() * 100))
            except HttpError as e:
                reason = _error_reason(e)
                if "uploadlimitexceeded" in reason or "quotaexceeded" in reason:
                    logger.error("❌ CRITICAL: YouTube Upload Quota Exceeded for today.")
                    raise UploadError(file_path, "quota exceeded") from e
                if e.resp.status not in RETRIABLE_STATUS_CODES:
                    raise UploadError(file_path, f"HTTP {e.resp.status}: {reason[:200]}") from e
                retry = self._backoff(retry, file_path, e)
            except UploadError:
                raise
            except Exception as e:
                retry = self._backoff(retry, file_path, e)

    def _backoff(self, retry: int, file_path: str, error: Exception) -> int:
        retry += 1
        if retry > self.max_retries:
            logger.error("Max retries reached for upload.")
            raise UploadError(file_path, f"gave up after {self.max_retries} retries: {error}") from error
        logger.warning("Upload chunk failed (%s). Retry %d/%d", error, retry, self.max_retries)
        self.sleep(2 ** retry)
        return retry
