from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from deaddrop import schemas
from deaddrop.api import deps
from deaddrop.core.errors import ValidationError
from deaddrop.core.timing import Timings
from deaddrop.services import UploadController

router = APIRouter()

BODY_TOO_LARGE = "Upload exceeds the declared size"


async def read_limited(chunks: AsyncIterator[bytes], limit: int) -> bytes:
    """Collect a request body, giving up as soon as it passes `limit` bytes."""
    received = bytearray()
    async for chunk in chunks:
        received.extend(chunk)
        if len(received) > limit:
            raise ValidationError(BODY_TOO_LARGE, field="size")
    return bytes(received)


@router.post("", response_model=schemas.UploadTicket)
def initiate_upload(
    *,
    upload_in: schemas.UploadCreate,
    response: Response,
    controller: UploadController = Depends(deps.get_upload_controller),
    timings: Timings = Depends(deps.get_timings),
) -> Any:
    """
    Reserve a code for a new upload. The bytes are sent to `upload_url`
    before the session expires, then the upload is completed.
    """
    ticket = controller.initiate(
        filename=upload_in.filename,
        size=upload_in.size,
        mime_type=upload_in.mime_type,
        expiry_minutes=upload_in.expiry_minutes,
        max_downloads=upload_in.max_downloads,
        password=upload_in.password,
    )
    response.headers["Server-Timing"] = timings.header()
    return ticket


@router.post("/complete", response_model=schemas.UploadCompleted)
def complete_upload(
    *,
    complete_in: schemas.UploadComplete,
    response: Response,
    controller: UploadController = Depends(deps.get_upload_controller),
    timings: Timings = Depends(deps.get_timings),
) -> Any:
    record = controller.complete(complete_in.code)
    response.headers["Server-Timing"] = timings.header()
    return schemas.UploadCompleted(code=record.code, expires_at=record.expires_at)


@router.put("/{code}/content")
async def upload_content(
    code: str,
    request: Request,
    response: Response,
    controller: UploadController = Depends(deps.get_upload_controller),
    timings: Timings = Depends(deps.get_timings),
) -> Any:
    # The controller talks to the database synchronously
    limit = await run_in_threadpool(controller.expected_size, code)
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise ValidationError(BODY_TOO_LARGE, field="size")
    data = await read_limited(request.stream(), limit)
    await run_in_threadpool(controller.store_content, code, data)
    response.headers["Server-Timing"] = timings.header()
    return {"code": code, "size": len(data)}
