from typing import Any, Optional
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, Response
from fastapi.responses import StreamingResponse

from deaddrop import schemas
from deaddrop.api import deps
from deaddrop.core.timing import Timings
from deaddrop.services import DownloadController

router = APIRouter()


@router.get("/{code}", response_model=schemas.FileInfo)
def read_file_info(
    code: str,
    response: Response,
    controller: DownloadController = Depends(deps.get_download_controller),
    timings: Timings = Depends(deps.get_timings),
) -> Any:
    info = controller.describe(code)
    response.headers["Server-Timing"] = timings.header()
    return info


@router.post("/{code}", response_model=schemas.DownloadGrant)
def request_download(
    code: str,
    response: Response,
    download_in: Optional[schemas.DownloadRequest] = Body(None),
    controller: DownloadController = Depends(deps.get_download_controller),
    timings: Timings = Depends(deps.get_timings),
) -> Any:
    """
    Count a download and hand out a short lived single-use token for the
    stream endpoint.
    """
    password = download_in.password if download_in else None
    grant = controller.request_download(code, password)
    response.headers["Server-Timing"] = timings.header()
    return grant


@router.get("/{code}/stream")
def stream_file(
    code: str,
    token: Optional[str] = None,
    controller: DownloadController = Depends(deps.get_download_controller),
    timings: Timings = Depends(deps.get_timings),
) -> Any:
    payload = controller.open_download(code, token)
    quoted_name = quote(payload.filename)
    headers = {
        "Content-Disposition": f"attachment; filename=\"{quoted_name}\"; filename*=utf-8''{quoted_name}",
        "Content-Length": str(payload.size),
        "X-Content-Type-Options": "nosniff",
        "Server-Timing": timings.header(),
    }
    return StreamingResponse(payload.stream, media_type=payload.mime_type, headers=headers)
