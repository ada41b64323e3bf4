"""
Periodic removal of expired resources.

Each pass handles one bounded batch per resource type, in a fixed order:
download tokens, upload sessions, files, shares. Metadata rows are deleted
and committed before their blobs; a blob that cannot be deleted is counted
in `storage_failed` and left behind, the row stays gone.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from deaddrop import crud
from deaddrop.core.clock import utcnow
from deaddrop.core.config import settings
from deaddrop.schemas import SweepStats
from deaddrop.storage import StorageGateway

logger = logging.getLogger(__name__)


def _delete_blobs(storage: Optional[StorageGateway], keys: Iterable[Optional[str]]) -> int:
    failed = 0
    for key in keys:
        if not key:
            continue
        if storage is None:
            logger.warning("No storage configured, blob %s left behind", key)
            failed += 1
            continue
        result = storage.delete(key)
        if not result.success:
            logger.warning("Failed to delete blob %s: %s", key, result.error)
            failed += 1
    return failed


def sweep(
    db: Session,
    storage: Optional[StorageGateway],
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> SweepStats:
    now = now or utcnow()
    limit = batch_size or settings.SWEEP_BATCH_SIZE
    stats = SweepStats()

    tokens = crud.download_token.get_expired_batch(db, now=now, limit=limit)
    stats.download_tokens = crud.download_token.delete_many(db, tokens=tokens)

    sessions = crud.upload_session.get_expired_batch(db, now=now, limit=limit)
    stats.upload_sessions, session_keys = crud.upload_session.delete_expired(
        db, codes=[row.code for row in sessions], now=now
    )
    # The bytes of an abandoned upload may already have been written
    stats.storage_failed += _delete_blobs(storage, session_keys)

    files = crud.file.get_expired_batch(db, now=now, limit=limit)
    stats.files = crud.file.delete_many(db, ids=[row.id for row in files])
    stats.storage_failed += _delete_blobs(storage, [row.storage_key for row in files])

    shares = crud.share.get_expired_batch(db, now=now, limit=limit)
    stats.shares = crud.share.delete_many(db, rows=[(row.id, row.content_id) for row in shares])
    stats.storage_failed += _delete_blobs(storage, [row.storage_key for row in shares])

    logger.info(
        "Sweep removed %d files, %d upload sessions, %d shares, %d download tokens (%d blob failures)",
        stats.files,
        stats.upload_sessions,
        stats.shares,
        stats.download_tokens,
        stats.storage_failed,
    )
    return stats
