import logging
import os
import threading

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text

from app.routes import assets, sync
from app.database.base import Base
from app.database.session import engine
from app.models import Asset, AssetHistoryEvent, AssetLifecycleCycle  # noqa: F401
from app.core.auth import SyncRequestRejected
from app.core.config import CORS_ORIGINS, CORS_ORIGIN_REGEX, parse_cors_origins
from app.core.timezone import now_business

logger = logging.getLogger("uvicorn.error")
app = FastAPI(title="Gestão de Patrimônio")

cors_origins = parse_cors_origins(CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_origin_regex=CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


@app.middleware("http")
async def ensure_utf8_json_charset(request: Request, call_next):
    response = await call_next(request)
    content_type = str(response.headers.get("content-type", ""))
    if content_type.startswith("application/json") and "charset=" not in content_type.lower():
        response.headers["content-type"] = "application/json; charset=utf-8"
    return response


@app.exception_handler(SyncRequestRejected)
async def sync_request_rejected_handler(request: Request, exc: SyncRequestRejected):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.error, "timestamp": now_business().isoformat()},
    )


def ensure_asset_columns():
    inspector = inspect(engine)
    if "assets" not in inspector.get_table_names():
        return
    columns = [col["name"] for col in inspector.get_columns("assets")]
    with engine.begin() as conn:
        if "effective_registration_date" not in columns:
            conn.execute(text("ALTER TABLE assets ADD COLUMN effective_registration_date DATE"))
        if "retroactive_justification" not in columns:
            conn.execute(text("ALTER TABLE assets ADD COLUMN retroactive_justification TEXT"))
        if "version" not in columns:
            conn.execute(text("ALTER TABLE assets ADD COLUMN version INTEGER DEFAULT 1"))
        conn.execute(
            text(
                "UPDATE assets "
                "SET version = 1 "
                "WHERE version IS NULL"
            )
        )


def ensure_asset_history_columns():
    inspector = inspect(engine)
    if "patrimonio_historico" not in inspector.get_table_names():
        return
    columns = [col["name"] for col in inspector.get_columns("patrimonio_historico")]
    with engine.begin() as conn:
        if "data_evento_real" not in columns:
            conn.execute(text("ALTER TABLE patrimonio_historico ADD COLUMN data_evento_real DATE"))
        if "registro_retroativo" not in columns:
            conn.execute(text("ALTER TABLE patrimonio_historico ADD COLUMN registro_retroativo BOOLEAN DEFAULT FALSE"))
        if "usuario_nome" not in columns:
            conn.execute(text("ALTER TABLE patrimonio_historico ADD COLUMN usuario_nome VARCHAR"))


def run_db_bootstrap() -> None:
    steps = [
        ("create_all", lambda: Base.metadata.create_all(bind=engine)),
        ("ensure_asset_columns", ensure_asset_columns),
        ("ensure_asset_history_columns", ensure_asset_history_columns),
    ]
    for step_name, step_fn in steps:
        try:
            step_fn()
        except Exception:  # pragma: no cover - startup hardening
            logger.exception("Falha ao executar bootstrap do banco (etapa: %s)", step_name)


_bootstrap_lock = threading.Lock()
_bootstrap_started = False


def trigger_db_bootstrap() -> None:
    global _bootstrap_started
    with _bootstrap_lock:
        if _bootstrap_started:
            return
        _bootstrap_started = True

    mode = str(os.getenv("DB_BOOTSTRAP_MODE", "background") or "background").strip().lower()
    if mode == "off":
        logger.info("DB bootstrap desativado (DB_BOOTSTRAP_MODE=off).")
        return
    if mode == "sync":
        logger.info("Executando DB bootstrap em modo sincronizado.")
        run_db_bootstrap()
        return

    logger.info("Executando DB bootstrap em background.")
    threading.Thread(target=run_db_bootstrap, daemon=True, name="db-bootstrap").start()


app.include_router(assets.router)
app.include_router(sync.router)

@app.get("/")
def root():
    return {"message": "API rodando corretamente!"}


@app.get("/health")
def healthcheck():
    return {"status": "ok"}


@app.get("/health/db")
def healthcheck_db():
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    return {"status": "ok"}


@app.on_event("startup")
def startup_event():
    trigger_db_bootstrap()
