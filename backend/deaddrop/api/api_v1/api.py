from fastapi import APIRouter

from deaddrop.api.api_v1.endpoints import upload, download, share, cron

api_router = APIRouter()
api_router.include_router(upload.router, prefix="/upload", tags=["upload"])
api_router.include_router(download.router, prefix="/download", tags=["download"])
api_router.include_router(share.router, prefix="/share", tags=["share"])
api_router.include_router(cron.router, prefix="/cron", tags=["cron"])
