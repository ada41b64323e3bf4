import uuid

from sqlalchemy import Column, Integer, String, Boolean, BigInteger, DateTime
from deaddrop.core.clock import utcnow
from deaddrop.db.base_class import Base

UNLIMITED_DOWNLOADS = -1


class FileRecord(Base):
    __tablename__ = "file_metadata"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(16), unique=True, index=True, nullable=False)
    storage_key = Column(String(512), nullable=False)
    original_name = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False)
    mime_type = Column(String(255), nullable=False)

    expires_at = Column(DateTime, nullable=False, index=True)
    max_downloads = Column(Integer, nullable=False, default=1) # -1 for unlimited
    download_count = Column(Integer, nullable=False, default=0)
    password_hash = Column(String(255), nullable=True)
    downloaded = Column(Boolean, nullable=False, default=False)

    # Time fields
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_unlimited(self) -> bool:
        return self.max_downloads == UNLIMITED_DOWNLOADS

    @property
    def is_exhausted(self) -> bool:
        return not self.is_unlimited and self.download_count >= self.max_downloads

    @property
    def downloads_remaining(self):
        if self.is_unlimited:
            return "unlimited"
        return max(0, self.max_downloads - self.download_count)
