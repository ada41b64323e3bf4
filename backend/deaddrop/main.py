import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deaddrop.api import deps
from deaddrop.api.api_v1.api import api_router
from deaddrop.api.middleware import RateLimitMiddleware
from deaddrop.core.config import settings
from deaddrop.core.errors import AppError, RateLimitedError
from deaddrop.core.logging import setup_logging
from deaddrop.db.init_db import init_db
from deaddrop.db.session import engine

logger = logging.getLogger(__name__)

NO_STORE = "no-store, private"


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(engine)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)


def _current_rate_limiter():
    # Resolved per request so dependency overrides apply here too
    factory = app.dependency_overrides.get(deps.get_rate_limiter, deps.get_rate_limiter)
    return factory()


app.add_middleware(RateLimitMiddleware, get_limiter=_current_rate_limiter)


@app.middleware("http")
async def no_store_api_responses(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = NO_STORE
    return response


# Added last so it wraps every other middleware, 429 responses included
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "Retry-After",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "Server-Timing",
        "Content-Disposition",
    ],
)


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.debug("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    headers = {"Cache-Control": NO_STORE}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.debug("Validation error on %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body"},
        headers={"Cache-Control": NO_STORE},
    )


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
        headers={"Cache-Control": NO_STORE},
    )


def run() -> None:
    setup_logging()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
