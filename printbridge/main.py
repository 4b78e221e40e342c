"""FastAPI application entry point for the local print bridge."""

import json
import logging
import socket
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from printbridge.api.routes import api_router
from printbridge.core.config import Settings, get_settings
from printbridge.core.errors import PrintBridgeError
from printbridge.core.security import extract_token, generate_token, verify_token
from printbridge.services.bridge import PrintBridgeService

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")

CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization", "X-Auth-Token"]

# Reachable without a token even when authentication is required
PUBLIC_EXACT_PATHS = ["/health"]


class JSONFormatter(logging.Formatter):
    def format(self, record):
        return json.dumps({
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        })


def configure_logging(settings: Settings) -> None:
    """Human-readable logs in debug mode, one JSON object per line otherwise."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    for handler in root_logger.handlers:
        if getattr(handler, "_print_bridge", False):
            return

    handler = logging.StreamHandler(sys.stdout)
    if settings.debug:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    else:
        handler.setFormatter(JSONFormatter())
    handler._print_bridge = True
    root_logger.addHandler(handler)


def _error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message}, headers=headers)


class PreflightMiddleware(BaseHTTPMiddleware):
    """Answer every OPTIONS request with 204 and the CORS headers only."""

    async def dispatch(self, request: Request, call_next):
        if request.method != "OPTIONS":
            return await call_next(request)
        return Response(
            status_code=204,
            headers={
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Methods": ", ".join(CORS_METHODS),
                "Access-Control-Allow-Headers": ", ".join(CORS_HEADERS),
                "Access-Control-Max-Age": "600",
            },
        )


class AuthEnforcementMiddleware(BaseHTTPMiddleware):
    """Require the bridge token on every path except the health check."""

    async def dispatch(self, request: Request, call_next):
        settings: Settings = request.app.state.settings
        if not settings.require_auth or request.url.path in PUBLIC_EXACT_PATHS:
            return await call_next(request)

        if not verify_token(extract_token(request.headers), request.app.state.auth_token):
            logger.warning(f"Rejected unauthenticated {request.method} {request.url.path}")
            return _error_response(401, "Unauthorized", headers={"WWW-Authenticate": "Bearer"})
        return await call_next(request)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies larger than ``max_body_bytes`` up front."""

    async def dispatch(self, request: Request, call_next):
        limit = request.app.state.settings.max_body_bytes
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > limit:
            return _error_response(413, "Payload too large")
        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        # Health checks are polled every few seconds by the POS
        if request.url.path in PUBLIC_EXACT_PATHS:
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            log_level,
            f"{request.method} {request.url.path} - Status: {response.status_code} - Time: {process_time:.3f}s"
        )
        return response


async def print_bridge_error_handler(request: Request, exc: PrintBridgeError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        message = str(first.get("msg", "Invalid request")).removeprefix("Value error, ")
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        if field and first.get("type") != "value_error":
            message = f"{field}: {message}"
    else:
        message = "Invalid request"
    return _error_response(400, message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    # Rendered outside CORSMiddleware, so the header is set here
    return _error_response(500, str(exc) or "Internal error", headers={"Access-Control-Allow-Origin": "*"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    logger.info(f"{settings.service_name} v{settings.version} running on http://{settings.host}:{settings.port}")
    if settings.require_auth:
        logger.info(f"AUTH TOKEN (copy to Flowp Settings): {app.state.auth_token}")
    config = app.state.bridge.get_config()
    logger.info(f"Active printer: type={config.type.value} target={config.target or '(none)'}")

    yield

    logger.info(f"Shutting down {settings.service_name}")


def create_app(
    settings: Optional[Settings] = None,
    bridge: Optional[PrintBridgeService] = None,
) -> FastAPI:
    """Build the bridge application around one owned PrintBridgeService."""
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.service_name,
        description="Local bridge from the POS to ESC/POS receipt printers",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.bridge = bridge or PrintBridgeService(settings)
    app.state.bridge.store.load()
    app.state.auth_token = settings.auth_token
    if settings.require_auth and not settings.auth_token:
        app.state.auth_token = generate_token()

    app.add_exception_handler(PrintBridgeError, print_bridge_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_middleware(AuthEnforcementMiddleware)
    app.add_middleware(BodySizeLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    # CORS and preflight added last so they run first (Starlette LIFO order),
    # keeping CORS headers on 401/413 responses too.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )
    app.add_middleware(PreflightMiddleware)

    app.include_router(api_router)
    return app


def _ensure_port_available(host: str, port: int) -> None:
    with socket.socket(socket.AF_INET6 if ":" in host else socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, port))


def run() -> None:
    """Console entry point: serve the bridge on the loopback interface."""
    import uvicorn

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid print bridge configuration:\n{e}", file=sys.stderr)
        sys.exit(1)

    app = create_app(settings)
    try:
        _ensure_port_available(settings.host, settings.port)
    except OSError as e:
        logger.critical(
            f"Cannot listen on {settings.host}:{settings.port} ({e}). "
            "Is another print bridge already running?"
        )
        sys.exit(1)

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
