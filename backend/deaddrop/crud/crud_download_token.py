from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from deaddrop.crud.base import CRUDBase
from deaddrop.models.download_token import DownloadToken


class CRUDDownloadToken(CRUDBase[DownloadToken]):
    def issue(
        self,
        db: Session,
        *,
        token: str,
        file_id: str,
        code: str,
        delete_after: bool,
        expires_at: datetime,
        now: datetime,
    ) -> DownloadToken:
        db_obj = DownloadToken(
            token=token,
            file_id=file_id,
            code=code,
            delete_after=delete_after,
            expires_at=expires_at,
            created_at=now,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def get_by_token(self, db: Session, *, token: str) -> Optional[DownloadToken]:
        """Read only lookup, never consumes the token."""
        if not token:
            return None
        return db.query(DownloadToken).filter(DownloadToken.token == token).first()

    def consume(self, db: Session, *, token: str) -> Optional[DownloadToken]:
        """
        Delete the token and return it as it was before deletion.

        Only the caller whose DELETE removed the row gets the record back;
        every concurrent caller for the same token gets None.
        """
        record = self.get_by_token(db, token=token)
        if record is None:
            return None
        db.expunge(record)
        deleted = (
            db.query(DownloadToken)
            .filter(DownloadToken.token == token)
            .delete(synchronize_session=False)
        )
        db.commit()
        if deleted != 1:
            return None
        return record

    def get_expired_batch(self, db: Session, *, now: datetime, limit: int) -> List[str]:
        rows = (
            db.query(DownloadToken.token)
            .filter(DownloadToken.expires_at < now)
            .limit(limit)
            .all()
        )
        return [row.token for row in rows]

    def delete_many(self, db: Session, *, tokens: List[str]) -> int:
        if not tokens:
            return 0
        deleted = (
            db.query(DownloadToken)
            .filter(DownloadToken.token.in_(tokens))
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted


download_token = CRUDDownloadToken(DownloadToken)
