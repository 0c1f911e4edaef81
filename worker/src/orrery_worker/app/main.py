from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from ..services.engine import CompositionEngine
from .routes import router
from .settings import Settings, get_settings, log_quality_config


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI instance."""
    settings = settings or get_settings()
    log_quality_config(settings)
    engine = CompositionEngine.from_settings(settings)
    app = FastAPI(title="Orrery Worker", version="0.1.0")
    app.state.settings = settings
    app.state.engine = engine
    app.include_router(router)
    return app


app = create_app()
