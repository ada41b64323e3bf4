from typing import Any, Optional

from fastapi import APIRouter, Depends, Response

from deaddrop import schemas
from deaddrop.api import deps
from deaddrop.core.timing import Timings
from deaddrop.services import ShareController

router = APIRouter()


@router.post("", response_model=schemas.ShareCreated)
def create_share(
    *,
    share_in: schemas.ShareCreate,
    response: Response,
    controller: ShareController = Depends(deps.get_share_controller),
    timings: Timings = Depends(deps.get_timings),
) -> Any:
    created = controller.create(**share_in.model_dump())
    response.headers["Server-Timing"] = timings.header()
    return created


@router.get("/{code}/info", response_model=schemas.ShareInfo)
def get_share_info(
    code: str,
    controller: ShareController = Depends(deps.get_share_controller),
) -> Any:
    """
    Does not count as a view. Lets the client decide whether to ask for a
    password before fetching the content.
    """
    return controller.inspect(code)


@router.get("/{code}", response_model=schemas.ShareView)
def view_share(
    code: str,
    response: Response,
    password: Optional[str] = None,
    controller: ShareController = Depends(deps.get_share_controller),
    timings: Timings = Depends(deps.get_timings),
) -> Any:
    view = controller.view(code, password)
    response.headers["Server-Timing"] = timings.header()
    return view
