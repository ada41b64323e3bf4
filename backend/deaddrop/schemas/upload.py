from typing import Optional
from pydantic import BaseModel
from datetime import datetime


class UploadCreate(BaseModel):
    filename: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None
    expiry_minutes: Optional[int] = None
    max_downloads: Optional[int] = None
    password: Optional[str] = None


class UploadTicket(BaseModel):
    code: str
    upload_url: str
    expires_at: datetime
    session_expires_at: datetime


class UploadComplete(BaseModel):
    code: Optional[str] = None


class UploadCompleted(BaseModel):
    code: str
    expires_at: datetime
