from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from deaddrop.crud.base import CRUDBase
from deaddrop.models.share import Share, ShareContent


@dataclass(frozen=True)
class CreatedShare:
    share_id: str
    content_id: str
    code: str
    created_at: datetime


class CRUDShare(CRUDBase[Share]):
    def create_atomic(self, db: Session, *, obj_in: Dict[str, Any], now: datetime) -> Optional[CreatedShare]:
        """
        Insert the content row and the share row referencing it in one
        transaction. Returns None (and writes nothing) if the code is taken.
        """
        fields = dict(obj_in)
        content = ShareContent(content=fields.pop("content"), created_at=now)
        try:
            db.add(content)
            db.flush()
            share = Share(
                content_id=content.id,
                view_count=0,
                burned=False,
                created_at=now,
                **fields,
            )
            db.add(share)
            db.commit()
        except IntegrityError:
            db.rollback()
            return None

        return CreatedShare(
            share_id=share.id,
            content_id=content.id,
            code=share.code,
            created_at=share.created_at,
        )

    def get_with_content(self, db: Session, *, code: str) -> Optional[Share]:
        return db.query(Share).filter(Share.code == code).first()

    def record_view(
        self, db: Session, *, id: str, expected_view_count: int, burn_after_reading: bool
    ) -> Optional[Share]:
        """
        Conditionally advance view_count from `expected_view_count`, burning
        the share in the same statement when requested. Returns None if a
        concurrent view got there first.
        """
        values = {"view_count": expected_view_count + 1}
        if burn_after_reading:
            values["burned"] = True
        stmt = (
            update(Share)
            .where(Share.id == id, Share.view_count == expected_view_count, Share.burned == False)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        db.commit()
        if result.rowcount != 1:
            return None
        return self.get(db, id=id)

    def remove_with_content(self, db: Session, *, id: str, content_id: str) -> None:
        self.delete_many(db, rows=[(id, content_id)])

    def get_expired_batch(
        self, db: Session, *, now: datetime, limit: int
    ) -> List[Tuple[str, str, Optional[str]]]:
        return (
            db.query(Share.id, Share.content_id, Share.storage_key)
            .filter(Share.expires_at < now)
            .limit(limit)
            .all()
        )

    def delete_many(self, db: Session, *, rows: List[Tuple[str, str]]) -> int:
        """
        Delete shares with their content in one transaction.

        Content goes first; the foreign key cascades to the share where the
        database enforces it, and the explicit share delete covers the rest.
        """
        if not rows:
            return 0
        share_ids = [row[0] for row in rows]
        content_ids = [row[1] for row in rows]
        db.query(ShareContent).filter(ShareContent.id.in_(content_ids)).delete(synchronize_session=False)
        db.query(Share).filter(Share.id.in_(share_ids)).delete(synchronize_session=False)
        db.commit()
        return len(rows)


share = CRUDShare(Share)
