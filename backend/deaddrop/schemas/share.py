from typing import Optional
from pydantic import BaseModel
from datetime import datetime


class ShareCreate(BaseModel):
    type: Optional[str] = None
    content: Optional[str] = None
    expiry_minutes: Optional[int] = None
    password: Optional[str] = None
    burn_after_reading: bool = False
    language: Optional[str] = None
    original_name: Optional[str] = None
    mime_type: Optional[str] = None


class ShareCreated(BaseModel):
    code: str
    url: str
    expires_at: datetime


# Shown before the content is requested, never counts as a view
class ShareInfo(BaseModel):
    code: str
    type: str
    expires_at: datetime
    requires_password: bool
    burn_after_reading: bool


class ShareView(BaseModel):
    type: str
    content: str
    language: Optional[str] = None
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    expires_at: datetime
    burn_after_reading: bool
    burned: bool
    requires_password: bool
