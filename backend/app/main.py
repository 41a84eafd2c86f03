import logging
import os
import threading
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import inspect, text
from app.routes import auth, functions, push, schedules, users
from app.database.base import Base
from app.database.session import engine, SessionLocal
from app.models import assignment, deleted_identity, team_function, user
from app.core.config import (
    ADMIN_EMAIL,
    ADMIN_NAME,
    CORS_ORIGINS,
    CORS_ORIGIN_REGEX,
    parse_cors_origins,
)
from app.core.errors import register_exception_handlers
from app.models.user import User

logger = logging.getLogger("uvicorn.error")
app = FastAPI(title="Escala de Equipe")
register_exception_handlers(app)

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

uploads_dir = Path(os.getenv("UPLOADS_DIR", Path(__file__).resolve().parents[1] / "uploads")).resolve()
uploads_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(uploads_dir)), name="uploads")

STATIC_DIR = Path(__file__).resolve().parent / "static"


def ensure_user_columns():
    inspector = inspect(engine)
    if "users" not in inspector.get_table_names():
        return
    columns = [col["name"] for col in inspector.get_columns("users")]
    with engine.begin() as conn:
        if "avatar_url" not in columns:
            conn.execute(text("ALTER TABLE users ADD COLUMN avatar_url VARCHAR"))
        if "push_subscription" not in columns:
            conn.execute(text("ALTER TABLE users ADD COLUMN push_subscription TEXT"))
        conn.execute(text("UPDATE users SET role = 'user' WHERE role IS NULL OR TRIM(role) = ''"))


def ensure_team_function_colors():
    inspector = inspect(engine)
    if "team_functions" not in inspector.get_table_names():
        return
    with engine.begin() as conn:
        conn.execute(
            text(
                "UPDATE team_functions "
                "SET color = '#062D49' "
                "WHERE color IS NULL OR TRIM(color) = ''"
            )
        )


def ensure_admin_user():
    if not ADMIN_EMAIL:
        return
    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.email == ADMIN_EMAIL.strip().lower()).first()
        if not existing:
            # O perfil é criado no primeiro login desse email, já como admin.
            return
        updated = False
        if existing.role != "admin":
            existing.role = "admin"
            updated = True
        if ADMIN_NAME and not existing.full_name:
            existing.full_name = ADMIN_NAME
            updated = True
        if updated:
            db.commit()
    finally:
        db.close()


def run_db_bootstrap() -> None:
    steps = [
        ("create_all", lambda: Base.metadata.create_all(bind=engine)),
        ("ensure_user_columns", ensure_user_columns),
        ("ensure_team_function_colors", ensure_team_function_colors),
        ("ensure_admin_user", ensure_admin_user),
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


app.include_router(functions.router)
app.include_router(users.router)
app.include_router(schedules.router)
app.include_router(auth.router)
app.include_router(push.router)

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


@app.get("/sw.js", include_in_schema=False)
def service_worker():
    return FileResponse(
        STATIC_DIR / "sw.js",
        media_type="application/javascript",
        headers={"Service-Worker-Allowed": "/", "Cache-Control": "no-cache"},
    )


@app.on_event("startup")
def startup_event():
    trigger_db_bootstrap()
