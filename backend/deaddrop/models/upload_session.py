from sqlalchemy import Column, Integer, String, BigInteger, DateTime
from deaddrop.core.clock import utcnow
from deaddrop.db.base_class import Base


class UploadSession(Base):
    """A claim on a code while the client uploads the bytes."""
    __tablename__ = "upload_sessions"

    code = Column(String(16), primary_key=True, index=True)
    storage_key = Column(String(512), nullable=False)
    original_name = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False)
    mime_type = Column(String(255), nullable=False)

    # Lifetime of the file once finalized
    expires_at = Column(DateTime, nullable=False)
    max_downloads = Column(Integer, nullable=False, default=1)
    password_hash = Column(String(255), nullable=True)

    # Claim window for finishing the upload
    session_expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
