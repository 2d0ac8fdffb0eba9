"""
FastAPI application entry point for the ArchonPro API.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from archon_api.config import get_settings
from archon_api.dependencies import init_backends
from archon_api.errors import register_error_handlers
from archon_api.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    init_backends()

    app = FastAPI(title="ArchonPro API", version="0.1.0")
    register_error_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
