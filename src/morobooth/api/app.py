"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from morobooth.api.admin import router as admin_router
from morobooth.app_logging import configure_logging
from morobooth.config import parse_allowed_origins
from morobooth.containers import AppContainer
from morobooth.services.gateway import DownloadRequest


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container
    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_allowed_origins(container.settings.cors_allow_origins),
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/validate-download")
    async def validate_download(
        request: Request,
        photo_id: str | None = Query(default=None, alias="photoId"),
        token: str | None = Query(default=None),
    ) -> JSONResponse:
        """Exchange a photo id and access token for a signed download URL."""
        state_container: AppContainer = request.app.state.container
        gateway = state_container.download_gateway
        if gateway is None:
            logger.error("Download requested but the remote store is not configured")
            return JSONResponse(
                status_code=500, content={"error": "Server configuration error"}
            )
        response = await gateway.validate(
            DownloadRequest(
                photo_id=photo_id,
                token=token,
                client_address=_client_address(request),
                user_agent=request.headers.get("user-agent", "unknown"),
            )
        )
        return JSONResponse(
            status_code=response.status_code,
            content=response.body,
            headers=response.headers,
        )

    return app


def _client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
