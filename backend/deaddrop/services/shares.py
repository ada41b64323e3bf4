import logging
import uuid
from datetime import timedelta
from typing import Optional

from deaddrop import crud
from deaddrop.core.codes import CODE_RETRY_LIMIT, generate_share_code, is_valid_share_code
from deaddrop.core.config import settings
from deaddrop.core.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
    ResourceExhaustedError,
    UnauthorizedError,
    ValidationError,
)
from deaddrop.core.security import PasswordHasher
from deaddrop.models.share import Share
from deaddrop.schemas import ShareCreated, ShareInfo, ShareView
from deaddrop.services import validation
from deaddrop.services.base import Controller
from deaddrop.storage import BlobNotFoundError

logger = logging.getLogger(__name__)

VIEW_RETRY_LIMIT = 2


def check_share_code(code: Optional[str]) -> str:
    if not code or not is_valid_share_code(code):
        raise ValidationError("Invalid code format", field="code")
    return code


class ShareController(Controller):
    def __init__(self, db, storage, hasher: PasswordHasher, **kwargs):
        super().__init__(db, storage, **kwargs)
        self.hasher = hasher

    def create(
        self,
        *,
        type: Optional[str],
        content: Optional[str],
        expiry_minutes: Optional[int] = None,
        password: Optional[str] = None,
        burn_after_reading: bool = False,
        language: Optional[str] = None,
        original_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> ShareCreated:
        share_type = validation.validate_share_type(type)
        content = validation.validate_share_content(share_type, content)
        expiry = validation.clamp_expiry_minutes(expiry_minutes)
        password = validation.normalize_password(password)

        size = len(content.encode("utf-8"))
        storage_key = None
        if share_type == "image":
            mime_type, data = validation.decode_image_data_url(content)
            size = len(data)
            if self.storage_ready():
                storage_key = f"shares/{uuid.uuid4()}"
                with self.measure("storage"):
                    self.storage.put(storage_key, data, mime_type)
                # Only the header stays in the database
                content = f"data:{mime_type};base64,"
        if original_name:
            original_name = validation.sanitize_filename(original_name)

        now = self.clock()
        expires_at = now + timedelta(minutes=expiry)
        share_in = {
            "type": share_type,
            "content": content,
            "original_name": original_name,
            "mime_type": mime_type,
            "size": size,
            "language": language,
            "storage_key": storage_key,
            "expires_at": expires_at,
            "password_hash": self.hasher.hash(password) if password else None,
            "burn_after_reading": bool(burn_after_reading),
        }

        try:
            created = self._insert(share_in, now)
        except Exception:
            self.discard_blob(storage_key)
            raise

        logger.info("Share %s created (%s)", created.code, share_type)
        return ShareCreated(
            code=created.code,
            url=f"{settings.BASE_URL.rstrip('/')}/s/{created.code}",
            expires_at=expires_at,
        )

    def _insert(self, share_in, now):
        for attempt in range(CODE_RETRY_LIMIT):
            with self.measure("db"):
                created = crud.share.create_atomic(
                    self.db, obj_in={**share_in, "code": generate_share_code()}, now=now
                )
            if created is not None:
                return created
            logger.debug("Share code collision on attempt %d", attempt + 1)
        raise ResourceExhaustedError()

    def _remove_share(self, share: Share) -> None:
        share_id, content_id, storage_key = share.id, share.content_id, share.storage_key
        with self.measure("db"):
            crud.share.remove_with_content(self.db, id=share_id, content_id=content_id)
        self.discard_blob(storage_key)

    def _get_viewable(self, code: str) -> Share:
        with self.measure("db"):
            share = crud.share.get_with_content(self.db, code=code)
        if not share:
            raise NotFoundError("Share not found")
        if share.expires_at < self.clock():
            self._remove_share(share)
            raise ExpiredError("Share has expired")
        if share.burned:
            raise ExpiredError("This share has been destroyed")
        return share

    def inspect(self, code: Optional[str]) -> ShareInfo:
        """Preview a share without counting a view."""
        code = check_share_code(code)
        share = self._get_viewable(code)
        return ShareInfo(
            code=share.code,
            type=share.type,
            expires_at=share.expires_at,
            requires_password=bool(share.password_hash),
            burn_after_reading=share.burn_after_reading,
        )

    def view(self, code: Optional[str], password: Optional[str] = None) -> ShareView:
        code = check_share_code(code)
        verified = False

        for attempt in range(VIEW_RETRY_LIMIT):
            share = self._get_viewable(code)

            if share.password_hash and not verified:
                if not password:
                    raise UnauthorizedError(
                        "Password required",
                        requires_password=True,
                        type=share.type,
                        burn_after_reading=share.burn_after_reading,
                    )
                if not self.hasher.verify(password, share.password_hash):
                    raise ForbiddenError("Incorrect password")
                verified = True

            content = share.content.content
            with self.measure("db"):
                updated = crud.share.record_view(
                    self.db,
                    id=share.id,
                    expected_view_count=share.view_count,
                    burn_after_reading=share.burn_after_reading,
                )
            if updated is None:
                logger.debug("Lost view race for share %s on attempt %d", code, attempt + 1)
                continue

            if updated.burned:
                logger.info("Share %s burned after reading", code)
            return ShareView(
                type=updated.type,
                content=self._render_content(updated, content),
                language=updated.language,
                original_name=updated.original_name,
                mime_type=updated.mime_type,
                expires_at=updated.expires_at,
                burn_after_reading=updated.burn_after_reading,
                burned=updated.burned,
                requires_password=bool(updated.password_hash),
            )

        raise ConflictError("Share is being viewed, please retry")

    def _render_content(self, share: Share, content: str) -> str:
        if not share.storage_key:
            return content
        storage = self.require_storage()
        try:
            with self.measure("storage"):
                data = storage.read_all(share.storage_key)
        except BlobNotFoundError:
            logger.warning("Blob %s missing for share %s", share.storage_key, share.code)
            raise NotFoundError("Share content not found")
        return validation.encode_image_data_url(share.mime_type or "image/png", data)
