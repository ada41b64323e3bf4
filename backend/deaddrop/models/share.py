import uuid

from sqlalchemy import Column, Integer, String, Boolean, BigInteger, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from deaddrop.core.clock import utcnow
from deaddrop.db.base_class import Base

SHARE_TYPES = ("link", "paste", "image", "note", "code", "json", "csv")


class ShareContent(Base):
    __tablename__ = "share_contents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Share(Base):
    __tablename__ = "shares"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(16), unique=True, index=True, nullable=False)
    type = Column(String(16), nullable=False)
    content_id = Column(String(36), ForeignKey("share_contents.id", ondelete="CASCADE"), nullable=False)

    original_name = Column(String(255), nullable=True)
    mime_type = Column(String(255), nullable=True)
    size = Column(BigInteger, nullable=True)
    language = Column(String(64), nullable=True)
    # Set for image shares whose bytes live in object storage
    storage_key = Column(String(512), nullable=True)

    expires_at = Column(DateTime, nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    burn_after_reading = Column(Boolean, nullable=False, default=False)
    view_count = Column(Integer, nullable=False, default=0)
    burned = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow)

    content = relationship("ShareContent", lazy="joined")
