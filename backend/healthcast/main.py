# healthcast/main.py
from __future__ import annotations

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from healthcast import __version__
from healthcast.config import get_settings
from healthcast.core.security import get_current_user
from healthcast.db.session import init_db
from healthcast.observability.logging import configure_logging
from healthcast.observability.metrics import router as observability_router
from healthcast.observability.middleware import register_request_middleware, unhandled_exception_handler
from healthcast.routers.auth import router as auth_router
from healthcast.routers.forecast import router as forecast_router
from healthcast.routers.health import router as health_router
from healthcast.routers.imports import router as imports_router
from healthcast.services.area_cache import AreaNameCache

configure_logging()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Healthcast", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=86400,
    )

    register_request_middleware(app)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.state.area_cache = AreaNameCache(ttl_seconds=settings.AREA_CACHE_TTL_SECONDS)

    @app.on_event("startup")
    def _ensure_tables() -> None:
        init_db()

    # Public routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(observability_router)

    # Private routers share the same auth dependency
    require_auth = [Depends(get_current_user)]
    app.include_router(forecast_router, dependencies=require_auth)
    app.include_router(imports_router, dependencies=require_auth)

    return app


app = create_app()
