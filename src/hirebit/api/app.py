from __future__ import annotations

from dataclasses import asdict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from hirebit.api.routes import router as inbound_router
from hirebit.config import get_settings
from hirebit.core.runtime import get_ingestion_status
from hirebit.db.init import init_database
from hirebit.db.schema import SCHEMA_VERSION
from hirebit.logging_config import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup() -> None:
        configure_logging()
        app.state.schema_features = init_database()

    @app.get("/health")
    def health() -> JSONResponse:
        features = getattr(app.state, "schema_features", None)
        return JSONResponse(
            {
                "status": "ok",
                "schema_version": features.version if features else SCHEMA_VERSION,
                "webhook_supported": bool(features and features.webhook_supported),
                "features": asdict(features) if features else {},
                "ingestion": jsonable_encoder(get_ingestion_status().snapshot()),
            }
        )

    app.include_router(inbound_router)
    return app
