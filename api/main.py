from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers import chat, conversations, data_upload, health, messages
from economist_ai.exception import EconomistException, ErrorType
from economist_ai.logger import GLOBAL_LOGGER as log
from orchestrator.service_container import ServiceContainer, build_container


def _error_response(status: int, message: str, type: str, details=None, fallback=None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={
            "success": False,
            "data": None,
            "error": {"message": message, "type": type, "details": details, "fallback": fallback},
        },
    )


async def economist_exception_handler(request: Request, exc: EconomistException):
    log.warning("Request failed | path=%s | error=%s", request.url.path, str(exc))
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', []))}: {err.get('msg')}" for err in exc.errors()
    )
    return _error_response(400, "Invalid request", ErrorType.VALIDATION_ERROR, problems)


async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error | path=%s", request.url.path)
    return _error_response(
        500,
        "An unexpected error occurred",
        ErrorType.UNKNOWN_ERROR,
        type(exc).__name__,
        "Please try again later",
    )


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI app. A prebuilt container (tests) is used as-is;
    otherwise the production container is assembled at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Application startup initiated")
        owned = container is None
        app.state.container = container or build_container()
        await app.state.container.startup()
        yield
        if owned:
            await app.state.container.aclose()
        log.info("Application shutdown")

    app = FastAPI(title="Economist AI Backend", version="1.0", lifespan=lifespan)
    if container is not None:
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(EconomistException, economist_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(conversations.router, tags=["conversations"])
    app.include_router(data_upload.router, tags=["documents"])
    app.include_router(messages.router, tags=["messages"])
    app.include_router(chat.router, tags=["chat"])

    @app.get("/")
    async def root():
        return {"message": "Economist AI backend is running"}

    return app


app = create_app()
