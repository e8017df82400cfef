"""
FastAPI application entry point.
Challenge: Mount routes, metrics, logging and the domain-error translation in one place.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from studyswap.api.v1.router import api_router
from studyswap.config import get_settings
from studyswap.core.errors import BarterError

logger = logging.getLogger(__name__)


async def barter_error_handler(request: Request, exc: BarterError) -> JSONResponse:
    """Every refused operation answers with {success, error, message}."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s refused (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(
        title=settings.app_name,
        description="Peer-to-peer study material marketplace: barter negotiation and item reservation.",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics at /metrics
    app.mount("/metrics", make_asgi_app())

    app.add_exception_handler(BarterError, barter_error_handler)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
