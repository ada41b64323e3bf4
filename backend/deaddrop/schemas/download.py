from typing import Optional, Union
from pydantic import BaseModel
from datetime import datetime


# Public info for the download page (hide storage details)
class FileInfo(BaseModel):
    name: str
    size: int
    mime_type: str
    expires_at: datetime
    requires_password: bool
    downloads_remaining: Union[int, str]


class DownloadRequest(BaseModel):
    password: Optional[str] = None


class DownloadGrant(BaseModel):
    token: str
    download_url: str
    expires_at: datetime
