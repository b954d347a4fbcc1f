import logging
import secrets
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Optional, Union

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from reviewer.backends import InferenceBackend, create_backend
from reviewer.config import Settings, get_settings
from reviewer.errors import ReviewError
from reviewer.health import check_backend_on_startup, check_health
from reviewer.review import ReviewHandler
from reviewer.uploads import UploadLimitMiddleware

# Initialize Limiter
limiter = Limiter(key_func=get_remote_address)


def ensure_dirs(settings: Settings):
    for directory in {settings.UPLOAD_DIR, settings.REVIEWS_DIR}:
        try:
            Path(directory).mkdir(parents=True, exist_ok=True)
            logging.info(f"Directory ready: {directory}")
        except OSError as e:
            logging.error(f"Failed to create directory {directory}: {e}")


def create_app(settings: Optional[Settings] = None, backend: Optional[InferenceBackend] = None) -> FastAPI:
    settings = settings or get_settings()
    backend = backend or create_backend(settings)
    handler = ReviewHandler(settings, backend)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.info(f"Provider: {backend.provider}, model: {backend.model}, timeout: {settings.timeout_seconds:g}s")
        ensure_dirs(settings)
        await check_backend_on_startup(settings, backend)
        logging.info("Ready for requests")
        yield
        logging.info("Shutting down gracefully...")

    app = FastAPI(
        title="Code Review API",
        description="Upload a source file and get an LLM review back.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend = backend
    app.state.handler = handler

    # Register Limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(UploadLimitMiddleware, path="/review", max_bytes=settings.MAX_UPLOAD_BYTES)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ReviewError)
    async def review_error_handler(request: Request, exc: ReviewError):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(request_id))

    @app.get("/", tags=["Info"])
    async def index():
        return {
            "message": "Code Review API",
            "endpoints": {
                "POST /review": "Upload a file for code review",
                "GET /health": "Health check",
            },
            "config": {
                "provider": backend.provider,
                "url": backend.url,
                "model": backend.model,
                "timeout": f"{settings.timeout_seconds:g}s",
            },
        }

    @app.post("/review", tags=["Review"])
    @limiter.limit(settings.RATE_LIMIT)
    async def review(
        request: Request,
        file: Annotated[Union[UploadFile, None], File()] = None,
    ):
        request_id = secrets.token_hex(6)
        request.state.request_id = request_id
        logging.info(f"[{request_id}] Starting review...")

        result = await handler.review(file, request_id)

        logging.info(f"[{request_id}] Completed successfully")
        return result.to_response(request_id)

    @app.get("/health", tags=["Health"])
    async def health():
        status_code, body = await check_health(settings, backend)
        return JSONResponse(status_code=status_code, content=body)

    return app


app = create_app()
