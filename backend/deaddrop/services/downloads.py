import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterator, Optional

from deaddrop import crud
from deaddrop.core.config import settings
from deaddrop.core.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from deaddrop.core.security import PasswordHasher, constant_time_equals, generate_download_token
from deaddrop.models.download_token import DownloadToken
from deaddrop.models.file import FileRecord
from deaddrop.schemas import DownloadGrant, FileInfo
from deaddrop.services.base import Controller
from deaddrop.services.uploads import check_file_code
from deaddrop.storage import BlobNotFoundError

logger = logging.getLogger(__name__)

DOWNLOAD_RETRY_LIMIT = 3


@dataclass
class DownloadPayload:
    filename: str
    mime_type: str
    size: int
    stream: Iterator[bytes]
    deleted: bool = False


class DownloadController(Controller):
    """
    Hands out single-use download tokens and serves the bytes behind them.

    The download counter only moves through a conditional UPDATE and each
    token is redeemed by deleting exactly one row, so concurrent requests
    can never over-count a file or share a token.
    """

    def __init__(self, db, storage, hasher: PasswordHasher, **kwargs):
        super().__init__(db, storage, **kwargs)
        self.hasher = hasher

    def _remove_file(self, record: FileRecord) -> None:
        file_id, storage_key = record.id, record.storage_key
        with self.measure("db"):
            removed = crud.file.remove(self.db, id=file_id)
        # Whoever removed the row owns the blob
        if removed:
            self.discard_blob(storage_key)

    def _get_available(self, code: str) -> FileRecord:
        with self.measure("db"):
            record = crud.file.get_by_code(self.db, code=code)
        if not record:
            raise NotFoundError("File not found")
        if record.expires_at < self.clock():
            self._remove_file(record)
            raise ExpiredError("File has expired")
        if record.is_exhausted:
            # The holder of the last token removes the file when redeeming it
            raise ExpiredError("Download limit reached")
        return record

    def describe(self, code: Optional[str]) -> FileInfo:
        code = check_file_code(code)
        record = self._get_available(code)
        return FileInfo(
            name=record.original_name,
            size=record.size,
            mime_type=record.mime_type,
            expires_at=record.expires_at,
            requires_password=bool(record.password_hash),
            downloads_remaining=record.downloads_remaining,
        )

    def request_download(self, code: Optional[str], password: Optional[str] = None) -> DownloadGrant:
        code = check_file_code(code)
        record = self._get_available(code)

        if record.password_hash:
            if not password:
                raise UnauthorizedError("Password required", requires_password=True)
            if not self.hasher.verify(password, record.password_hash):
                raise ForbiddenError("Incorrect password")

        for attempt in range(DOWNLOAD_RETRY_LIMIT):
            if attempt:
                record = self._get_available(code)
            next_count = record.download_count + 1
            with self.measure("db"):
                updated = crud.file.update_download_count(
                    self.db,
                    id=record.id,
                    expected_count=record.download_count,
                    next_count=next_count,
                    now=self.clock(),
                )
            if updated is not None:
                return self._issue_token(updated, next_count)
            logger.debug("Lost download race for %s on attempt %d", code, attempt + 1)

        raise ConflictError("Download in progress, please retry")

    def _issue_token(self, record: FileRecord, next_count: int) -> DownloadGrant:
        now = self.clock()
        delete_after = not record.is_unlimited and next_count >= record.max_downloads
        expires_at = now + timedelta(seconds=settings.DOWNLOAD_TOKEN_TTL_SECONDS)
        token = generate_download_token()
        with self.measure("db"):
            crud.download_token.issue(
                self.db,
                token=token,
                file_id=record.id,
                code=record.code,
                delete_after=delete_after,
                expires_at=expires_at,
                now=now,
            )
        logger.info("Download %d granted for %s", next_count, record.code)
        return DownloadGrant(
            token=token,
            download_url=f"{settings.API_V1_STR}/download/{record.code}/stream?token={token}",
            expires_at=expires_at,
        )

    def validate_token(self, code: str, token: Optional[str]) -> DownloadToken:
        """Check a token without redeeming it."""
        with self.measure("db"):
            record = crud.download_token.get_by_token(self.db, token=token or "")
        if not record:
            raise NotFoundError("Invalid download token")
        if not constant_time_equals(record.code, code):
            raise NotFoundError("Invalid download token")
        if record.expires_at < self.clock():
            raise ExpiredError("Download token expired")
        return record

    def consume_token(self, token: str) -> Optional[DownloadToken]:
        with self.measure("db"):
            return crud.download_token.consume(self.db, token=token)

    def open_download(self, code: Optional[str], token: Optional[str]) -> DownloadPayload:
        code = check_file_code(code)
        if not token:
            raise ValidationError("Download token required", field="token")
        self.validate_token(code, token)

        consumed = self.consume_token(token)
        if consumed is None:
            raise NotFoundError("Download token already used")

        with self.measure("db"):
            record = crud.file.get(self.db, id=consumed.file_id)
        if not record:
            raise NotFoundError("File not found")
        if record.expires_at < self.clock():
            self._remove_file(record)
            raise ExpiredError("File has expired")

        payload = DownloadPayload(
            filename=record.original_name,
            mime_type=record.mime_type,
            size=record.size,
            stream=self._open_stream(record.storage_key),
        )

        if consumed.delete_after:
            self._remove_file(record)
            payload.deleted = True
            logger.info("File %s removed after its last download", code)
        return payload

    def _open_stream(self, storage_key: str) -> Iterator[bytes]:
        storage = self.require_storage()
        try:
            with self.measure("storage"):
                return storage.get_stream(storage_key)
        except BlobNotFoundError:
            logger.warning("Blob %s missing for an existing file", storage_key)
            raise NotFoundError("File content not found")
