import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from deaddrop.crud.base import CRUDBase
from deaddrop.models.file import FileRecord
from deaddrop.models.upload_session import UploadSession

logger = logging.getLogger(__name__)


class CRUDUploadSession(CRUDBase[UploadSession]):
    def reserve(self, db: Session, *, obj_in: Dict[str, Any]) -> bool:
        """
        Claim `obj_in["code"]` for a new upload.

        Returns False when the code is already taken by a session or a file.
        The session insert relies on the primary key; the file check runs in
        the same transaction after the insert, and finalize swaps a session
        for a file atomically, so a finalized code can not be claimed again.
        """
        db_obj = UploadSession(**obj_in)
        db.add(db_obj)
        try:
            db.flush()
            taken = db.query(FileRecord.id).filter(FileRecord.code == db_obj.code).first()
            if taken:
                db.rollback()
                logger.debug("Upload code %s belongs to a finalized file", obj_in["code"])
                return False
            db.commit()
        except IntegrityError:
            # Race condition: code was claimed by another request just now
            db.rollback()
            logger.debug("Upload code %s already reserved", obj_in["code"])
            return False
        return True

    def finalize(self, db: Session, *, code: str, now: datetime) -> Optional[FileRecord]:
        """
        Move a live session into file_metadata in a single transaction.

        Returns None when the session is missing, expired or was finalized by
        a concurrent call. On None nothing has been changed.
        """
        try:
            session = (
                db.query(UploadSession)
                .filter(UploadSession.code == code, UploadSession.session_expires_at >= now)
                .with_for_update()
                .first()
            )
            if not session:
                db.rollback()
                return None

            fields = {
                "code": session.code,
                "storage_key": session.storage_key,
                "original_name": session.original_name,
                "size": session.size,
                "mime_type": session.mime_type,
                "expires_at": session.expires_at,
                "max_downloads": session.max_downloads,
                "password_hash": session.password_hash,
            }

            deleted = (
                db.query(UploadSession)
                .filter(UploadSession.code == code)
                .delete(synchronize_session=False)
            )
            if deleted != 1:
                db.rollback()
                return None

            record = FileRecord(
                **fields,
                download_count=0,
                downloaded=False,
                created_at=now,
                updated_at=now,
            )
            db.add(record)
            db.commit()
        except IntegrityError:
            db.rollback()
            return None

        db.refresh(record)
        return record

    def get_expired_batch(self, db: Session, *, now: datetime, limit: int) -> List[Tuple[str, str]]:
        return (
            db.query(UploadSession.code, UploadSession.storage_key)
            .filter(UploadSession.session_expires_at < now)
            .limit(limit)
            .all()
        )

    def delete_expired(self, db: Session, *, codes: List[str], now: datetime) -> Tuple[int, List[str]]:
        """
        Delete the sessions in `codes` that are still expired at `now`.

        The expiry is checked again by the DELETE itself: a code may have been
        swept and reserved by a new upload since the batch was read. Returns
        the number of rows removed and the storage keys of those rows.
        """
        if not codes:
            return 0, []
        criteria = (UploadSession.code.in_(codes), UploadSession.session_expires_at < now)
        keys = [row.storage_key for row in db.query(UploadSession.storage_key).filter(*criteria).all()]
        deleted = db.query(UploadSession).filter(*criteria).delete(synchronize_session=False)
        db.commit()
        if deleted != len(keys):
            logger.debug("Expired session batch changed while sweeping (%d of %d)", deleted, len(keys))
        return deleted, keys


upload_session = CRUDUploadSession(UploadSession)
