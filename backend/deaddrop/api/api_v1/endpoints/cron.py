import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from deaddrop import schemas
from deaddrop.api import deps
from deaddrop.core.clock import Clock
from deaddrop.core.config import settings
from deaddrop.core.errors import UnauthorizedError
from deaddrop.core.security import constant_time_equals
from deaddrop.services.sweep import sweep
from deaddrop.storage import StorageGateway

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    if not settings.CRON_SECRET:
        return
    if not authorization or not constant_time_equals(authorization, f"Bearer {settings.CRON_SECRET}"):
        logger.debug("Rejected cleanup trigger with bad credentials")
        raise UnauthorizedError("Unauthorized")


@router.get("/cleanup", response_model=schemas.SweepStats, dependencies=[Depends(verify_cron_secret)])
def run_cleanup(
    db: Session = Depends(deps.get_db),
    storage: StorageGateway = Depends(deps.get_storage),
    clock: Clock = Depends(deps.get_clock),
) -> Any:
    return sweep(db, storage, now=clock())
