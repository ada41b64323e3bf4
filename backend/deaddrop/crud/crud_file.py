from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

from deaddrop.crud.base import CRUDBase
from deaddrop.models.file import FileRecord, UNLIMITED_DOWNLOADS


class CRUDFile(CRUDBase[FileRecord]):
    def get_by_code(self, db: Session, *, code: str) -> Optional[FileRecord]:
        return db.query(FileRecord).filter(FileRecord.code == code).first()

    def update_download_count(
        self, db: Session, *, id: str, expected_count: int, next_count: int, now: datetime
    ) -> Optional[FileRecord]:
        """
        Conditionally advance download_count from `expected_count`.

        The WHERE clause is the only guard: if another download advanced the
        counter first no row matches and None is returned. The counter can
        never be pushed past max_downloads for limited files.
        """
        stmt = (
            update(FileRecord)
            .where(
                FileRecord.id == id,
                FileRecord.download_count == expected_count,
                or_(
                    FileRecord.max_downloads == UNLIMITED_DOWNLOADS,
                    FileRecord.max_downloads >= next_count,
                ),
            )
            .values(download_count=next_count, downloaded=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        db.commit()
        if result.rowcount != 1:
            return None
        return self.get(db, id=id)

    def remove(self, db: Session, *, id: str) -> bool:
        deleted = db.query(FileRecord).filter(FileRecord.id == id).delete(synchronize_session=False)
        db.commit()
        return deleted == 1

    def get_expired_batch(self, db: Session, *, now: datetime, limit: int) -> List[Tuple[str, str]]:
        """Files past their expiry or out of downloads."""
        return (
            db.query(FileRecord.id, FileRecord.storage_key)
            .filter(
                or_(
                    FileRecord.expires_at < now,
                    and_(
                        FileRecord.max_downloads != UNLIMITED_DOWNLOADS,
                        FileRecord.download_count >= FileRecord.max_downloads,
                    ),
                )
            )
            .limit(limit)
            .all()
        )

    def delete_many(self, db: Session, *, ids: List[str]) -> int:
        if not ids:
            return 0
        deleted = db.query(FileRecord).filter(FileRecord.id.in_(ids)).delete(synchronize_session=False)
        db.commit()
        return deleted


file = CRUDFile(FileRecord)
