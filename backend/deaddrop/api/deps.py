from functools import lru_cache
from typing import Generator

from fastapi import Depends

from deaddrop.core.clock import Clock, utcnow
from deaddrop.core.config import settings
from deaddrop.core.rate_limit import InMemoryCounterStore, RateLimiter, RedisCounterStore
from deaddrop.core.security import PasswordHasher
from deaddrop.core.timing import Timings
from deaddrop.db.session import SessionLocal
from deaddrop.services import DownloadController, ShareController, UploadController
from deaddrop.storage import StorageGateway, create_storage


def get_db() -> Generator:
    try:
        db = SessionLocal()
        yield db
    finally:
        db.close()


@lru_cache()
def get_storage() -> StorageGateway:
    return create_storage()


def get_hasher() -> PasswordHasher:
    return PasswordHasher()


def get_clock() -> Clock:
    return utcnow


def get_timings() -> Timings:
    return Timings()


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    if settings.RATE_LIMIT_BACKEND == "redis":
        import redis

        store = RedisCounterStore(redis.Redis.from_url(settings.REDIS_URL))
    else:
        store = InMemoryCounterStore()
    return RateLimiter(store, settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_MS)


def get_upload_controller(
    db=Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
    hasher: PasswordHasher = Depends(get_hasher),
    clock: Clock = Depends(get_clock),
    timings: Timings = Depends(get_timings),
) -> UploadController:
    return UploadController(db, storage, hasher, clock=clock, timings=timings)


def get_download_controller(
    db=Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
    hasher: PasswordHasher = Depends(get_hasher),
    clock: Clock = Depends(get_clock),
    timings: Timings = Depends(get_timings),
) -> DownloadController:
    return DownloadController(db, storage, hasher, clock=clock, timings=timings)


def get_share_controller(
    db=Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
    hasher: PasswordHasher = Depends(get_hasher),
    clock: Clock = Depends(get_clock),
    timings: Timings = Depends(get_timings),
) -> ShareController:
    return ShareController(db, storage, hasher, clock=clock, timings=timings)
