import logging
import os
import threading

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import (
    ADMIN_EMAIL,
    ADMIN_NAME,
    ADMIN_PASSWORD,
    ADMIN_USERNAME,
    CORS_ORIGIN_REGEX,
    CORS_ORIGINS,
    parse_cors_origins,
)
from app.core.permissions import ROLE_ADMIN
from app.core.security import get_password_hash
from app.database.base import Base
from app.database.session import SessionLocal, engine
from app.models import app_config, audit_log, equipment, license, user  # noqa: F401
from app.models.user import User
from app.routes import approvals, audit, auth, equipments, licenses, settings, users
from app.services.app_settings import ensure_default_settings

logger = logging.getLogger("uvicorn.error")
app = FastAPI(title="Inventário Pro")

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


def ensure_admin_user():
    if not ADMIN_PASSWORD:
        return
    email = ADMIN_EMAIL or f"{ADMIN_USERNAME}@inventariopro.local"
    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.username == ADMIN_USERNAME).first()
        if existing:
            if existing.role != ROLE_ADMIN:
                existing.role = ROLE_ADMIN
                db.commit()
            return
        admin = User(
            username=ADMIN_USERNAME,
            real_name=ADMIN_NAME,
            email=email,
            password=get_password_hash(ADMIN_PASSWORD),
            role=ROLE_ADMIN,
        )
        db.add(admin)
        db.commit()
    finally:
        db.close()


def ensure_settings_rows():
    db = SessionLocal()
    try:
        ensure_default_settings(db)
        db.commit()
    finally:
        db.close()


def run_db_bootstrap() -> None:
    steps = [
        ("create_all", lambda: Base.metadata.create_all(bind=engine)),
        ("ensure_admin_user", ensure_admin_user),
        ("ensure_default_settings", ensure_settings_rows),
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


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(equipments.router)
app.include_router(licenses.router)
app.include_router(approvals.router)
app.include_router(audit.router)
app.include_router(settings.router)

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
