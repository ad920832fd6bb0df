from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from database import engine, session_scope
from models import Base
from routes import data as data_routes
from routes import reports as reports_routes
from services.data_service import DataService


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name)

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(data_routes.router)
    app.include_router(reports_routes.router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.on_event("startup")
    def _startup() -> None:
        # Log path config clearly for debugging
        print(f"[CONFIG] DATA_RAW_DIR={settings.data_raw_dir}")
        print(f"[CONFIG] DATA_REFERENCE_DIR={settings.data_reference_dir}")
        print(f"[CONFIG] DATABASE_URL={settings.database_url}")
        print(f"[CONFIG] EXCLUDED_REQUEST_TYPES={','.join(settings.excluded_request_types)}")
        print(f"[CONFIG] MIN_TOTAL_REQUESTS={settings.min_total_requests}")
        print(f"[CONFIG] TOP_N_PER_AREA={settings.top_n_per_area}")

        if settings.recreate_db_on_startup:
            Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)

        # Load the configured files once (only if the DB is empty).
        if not settings.ingest_on_startup:
            return
        svc = DataService()
        with session_scope() as db:
            if svc.has_any_data(db):
                print("[INGEST] Requests already loaded; skipping startup ingest.")
                return
            try:
                svc.ingest_configured(db)
            except FileNotFoundError as e:
                print(f"[INGEST] Startup ingest skipped, file not found: {e}")

    return app


app = create_app()
