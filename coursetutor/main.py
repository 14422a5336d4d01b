# coursetutor/main.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import os
import time
import uuid
from typing import Optional

from coursetutor.api.routes import router
from coursetutor.errors import (
    DocumentProcessingError,
    EmbeddingDimensionError,
    InvalidCorpusIdError,
    NoTextExtractedError,
    StoreCorruptedError,
    ThrottledError,
    UpstreamError,
)
from coursetutor.observability.logger import (
    bind_request_id,
    get_logger,
    reset_request_id,
    setup_logging,
)
from coursetutor.services import TutorServices

logger = get_logger(__name__)


def create_app(services: Optional[TutorServices] = None) -> FastAPI:
    """
    Build the API. Pass `services` to inject collaborators (tests do);
    otherwise they are constructed from the environment at startup.
    """

    app = FastAPI(
        title="Course Tutor RAG API",
        description="Course-material grounding and streamed tutoring answers",
        version="1.0.0",
    )

    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Log every HTTP request with latency and record request metrics.
        """

        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        token = bind_request_id(request_id)

        logger.info(
            "request_started",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            }
        )

        start_time = time.time()

        try:

            response = await call_next(request)

        except Exception as e:

            latency = time.time() - start_time

            if app.state.services is not None:
                app.state.services.metrics.record_failure()

            logger.error(
                "request_failed",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "latency_seconds": round(latency, 3),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )

            raise

        finally:

            reset_request_id(token)

        latency = time.time() - start_time

        if app.state.services is not None:
            if response.status_code < 500:
                app.state.services.metrics.record_success(latency)
            else:
                app.state.services.metrics.record_failure()

        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_seconds": round(latency, 3),
            }
        )

        response.headers["X-Request-ID"] = request_id

        return response

    app.include_router(router)

    # ============================================================
    # LIFECYCLE
    # ============================================================

    @app.on_event("startup")
    async def startup_event():

        setup_logging()

        if not os.getenv("OPENAI_API_KEY") and app.state.services is None:
            logger.warning(
                "missing_api_key",
                extra={"warning_detail": "OPENAI_API_KEY not set. Startup will fail."}
            )

        if app.state.services is None:
            app.state.services = TutorServices.from_environment()

        logger.info("application_startup", extra={"version": app.version})

    @app.on_event("shutdown")
    async def shutdown_event():

        if app.state.services is not None:
            app.state.services.posthog.shutdown()

        logger.info("application_shutdown")

    # ============================================================
    # ERROR MAPPING
    # ============================================================

    def _error_response(request: Request, status_code: int, exc, **extra_content):

        request_id = getattr(request.state, "request_id", "unknown")

        logger.warning(
            "request_error",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "status_code": status_code,
                "error": str(exc),
                "error_type": type(exc).__name__,
                "details": getattr(exc, "details", {}),
            },
        )

        if app.state.services is not None:
            app.state.services.posthog.track_error(
                distinct_id=request_id,
                error_type=type(exc).__name__,
                error_message=str(exc),
                endpoint=request.url.path,
            )

        return JSONResponse(
            status_code=status_code,
            content={"error": str(exc), "request_id": request_id, **extra_content},
        )

    @app.exception_handler(InvalidCorpusIdError)
    async def invalid_corpus_handler(request: Request, exc: InvalidCorpusIdError):
        return _error_response(request, status.HTTP_400_BAD_REQUEST, exc)

    @app.exception_handler(DocumentProcessingError)
    async def document_processing_handler(request: Request, exc: DocumentProcessingError):
        return _error_response(request, status.HTTP_400_BAD_REQUEST, exc)

    @app.exception_handler(NoTextExtractedError)
    async def no_text_handler(request: Request, exc: NoTextExtractedError):
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            exc,
            suggestion=NoTextExtractedError.suggestion,
        )

    @app.exception_handler(EmbeddingDimensionError)
    async def dimension_handler(request: Request, exc: EmbeddingDimensionError):
        return _error_response(request, status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(ThrottledError)
    async def throttled_handler(request: Request, exc: ThrottledError):
        if app.state.services is not None:
            app.state.services.metrics.record_throttled()
        return _error_response(request, status.HTTP_503_SERVICE_UNAVAILABLE, exc)

    @app.exception_handler(UpstreamError)
    async def upstream_handler(request: Request, exc: UpstreamError):
        return _error_response(request, status.HTTP_502_BAD_GATEWAY, exc)

    @app.exception_handler(StoreCorruptedError)
    async def corrupted_handler(request: Request, exc: StoreCorruptedError):
        return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):

        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "unhandled_exception",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "error": str(exc),
                "error_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An internal error occurred. Please try again.",
                "request_id": request_id,
                "error_type": type(exc).__name__
            }
        )

    @app.get("/")
    async def root():

        return {
            "message": "Course Tutor RAG API",
            "version": app.version,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from coursetutor.config import HOST, PORT

    uvicorn.run(
        "coursetutor.main:app",
        host=HOST,
        port=PORT,
    )
