import logging

from deaddrop.api.deps import get_storage
from deaddrop.core.logging import setup_logging
from deaddrop.db.init_db import init_db
from deaddrop.db.session import SessionLocal, engine
from deaddrop.services.sweep import sweep

logger = logging.getLogger(__name__)


def main() -> None:
    setup_logging()
    init_db(engine)
    logger.info("Running expiry sweep")
    db = SessionLocal()
    try:
        stats = sweep(db, get_storage())
    finally:
        db.close()
    logger.info("Sweep finished: %s", stats.model_dump())


if __name__ == "__main__":
    main()
