from pydantic import BaseModel


class SweepStats(BaseModel):
    files: int = 0
    upload_sessions: int = 0
    shares: int = 0
    download_tokens: int = 0
    storage_failed: int = 0
