import logging

from sqlalchemy.engine import Engine

from deaddrop.db.base import Base

logger = logging.getLogger(__name__)


def init_db(engine: Engine) -> None:
    # Tables are created directly; there are no migrations yet
    Base.metadata.create_all(bind=engine)
    logger.debug("Database tables ensured on %s", engine.url.render_as_string(hide_password=True))
