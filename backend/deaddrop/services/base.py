import logging
from contextlib import nullcontext
from typing import Optional

from sqlalchemy.orm import Session

from deaddrop.core.clock import Clock, utcnow
from deaddrop.core.errors import StorageUnavailableError
from deaddrop.core.timing import Timings
from deaddrop.storage import StorageGateway

logger = logging.getLogger(__name__)


class Controller:
    """Holds the collaborators every controller works with."""

    def __init__(
        self,
        db: Session,
        storage: Optional[StorageGateway] = None,
        clock: Clock = utcnow,
        timings: Optional[Timings] = None,
    ):
        self.db = db
        self.storage = storage
        self.clock = clock
        self.timings = timings

    def measure(self, label: str):
        if self.timings is None:
            return nullcontext()
        return self.timings.measure(label)

    def storage_ready(self) -> bool:
        return self.storage is not None and self.storage.is_configured()

    def require_storage(self) -> StorageGateway:
        if not self.storage_ready():
            raise StorageUnavailableError()
        return self.storage

    def discard_blob(self, key: Optional[str]) -> bool:
        """Best-effort blob removal. Failures are logged, never raised."""
        if not key or self.storage is None:
            return True
        with self.measure("storage"):
            result = self.storage.delete(key)
        if not result.success:
            logger.warning("Failed to delete blob %s: %s", key, result.error)
        return result.success
