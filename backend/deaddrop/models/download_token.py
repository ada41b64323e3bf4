from sqlalchemy import Column, String, Boolean, DateTime
from deaddrop.core.clock import utcnow
from deaddrop.db.base_class import Base


class DownloadToken(Base):
    """Single-use grant to fetch the bytes of one file."""
    __tablename__ = "download_tokens"

    token = Column(String(128), primary_key=True, index=True)
    # No foreign key: the file row may be deleted while a token is outstanding
    file_id = Column(String(36), nullable=False, index=True)
    code = Column(String(16), nullable=False)
    # Decided when the token is issued, never recomputed
    delete_after = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
