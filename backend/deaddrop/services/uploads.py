import logging
import uuid
from datetime import timedelta
from typing import Optional

from deaddrop import crud
from deaddrop.core.codes import CODE_RETRY_LIMIT, generate_file_code, is_valid_file_code
from deaddrop.core.config import settings
from deaddrop.core.errors import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    ResourceExhaustedError,
    ValidationError,
)
from deaddrop.core.security import PasswordHasher
from deaddrop.models.file import FileRecord
from deaddrop.models.upload_session import UploadSession
from deaddrop.schemas import UploadTicket
from deaddrop.services import validation
from deaddrop.services.base import Controller

logger = logging.getLogger(__name__)


def check_file_code(code: Optional[str]) -> str:
    if not code or not is_valid_file_code(code):
        raise ValidationError("Invalid code format", field="code")
    return code


class UploadController(Controller):
    """
    Reserve a code, receive the bytes, then atomically turn the upload
    session into a downloadable file.
    """

    def __init__(self, db, storage, hasher: PasswordHasher, **kwargs):
        super().__init__(db, storage, **kwargs)
        self.hasher = hasher

    def initiate(
        self,
        *,
        filename: Optional[str],
        size: Optional[int],
        mime_type: Optional[str] = None,
        expiry_minutes: Optional[int] = None,
        max_downloads: Optional[int] = None,
        password: Optional[str] = None,
    ) -> UploadTicket:
        self.require_storage()

        original_name = validation.sanitize_filename(filename)
        size = validation.validate_size(size)
        mime_type = validation.validate_mime_type(mime_type)
        expiry = validation.clamp_expiry_minutes(expiry_minutes)
        max_downloads = validation.validate_max_downloads(max_downloads)
        password = validation.normalize_password(password)
        password_hash = self.hasher.hash(password) if password else None

        now = self.clock()
        expires_at = now + timedelta(minutes=expiry)
        session_expires_at = now + timedelta(minutes=settings.UPLOAD_SESSION_TTL_MINUTES)
        storage_key = f"files/{uuid.uuid4()}"

        for attempt in range(CODE_RETRY_LIMIT):
            code = generate_file_code()
            session_in = {
                "code": code,
                "storage_key": storage_key,
                "original_name": original_name,
                "size": size,
                "mime_type": mime_type,
                "expires_at": expires_at,
                "max_downloads": max_downloads,
                "password_hash": password_hash,
                "session_expires_at": session_expires_at,
                "created_at": now,
            }
            with self.measure("db"):
                reserved = crud.upload_session.reserve(self.db, obj_in=session_in)
            if reserved:
                logger.info("Upload session %s reserved (%d bytes)", code, size)
                return UploadTicket(
                    code=code,
                    upload_url=f"{settings.API_V1_STR}/upload/{code}/content",
                    expires_at=expires_at,
                    session_expires_at=session_expires_at,
                )
            logger.debug("File code collision on attempt %d", attempt + 1)

        raise ResourceExhaustedError()

    def _get_open_session(self, code: Optional[str]) -> UploadSession:
        code = check_file_code(code)
        with self.measure("db"):
            session = crud.upload_session.get(self.db, id=code)
        if not session:
            raise NotFoundError("Upload session not found")
        if session.session_expires_at < self.clock():
            raise ExpiredError("Upload session expired")
        return session

    def expected_size(self, code: Optional[str]) -> int:
        """Declared byte count of an open session, checked before reading a body."""
        self.require_storage()
        return self._get_open_session(code).size

    def store_content(self, code: Optional[str], data: bytes) -> None:
        storage = self.require_storage()
        session = self._get_open_session(code)
        if len(data) != session.size:
            raise ValidationError("Uploaded size does not match the declared size", field="size")

        with self.measure("storage"):
            storage.put(session.storage_key, data, session.mime_type)

    def complete(self, code: Optional[str]) -> FileRecord:
        self.require_storage()
        code = check_file_code(code)

        with self.measure("db"):
            record = crud.upload_session.finalize(self.db, code=code, now=self.clock())
            if record is None:
                existing = crud.file.get_by_code(self.db, code=code)
        if record is None:
            if existing is not None:
                raise ConflictError("Upload already finalized")
            raise ExpiredError("Upload session expired")

        logger.info("Upload %s finalized", code)
        return record
