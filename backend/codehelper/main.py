import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from . import __version__
from .account_routes import router as account_router
from .assessment_routes import router as assessment_router
from .chat_routes import router as chat_router
from .config import get_settings
from .db.session import get_engine, init_schema, session_scope
from .logging_config import configure_logging
from .profile_routes import router as profile_router
from .seed import seed_catalog
from .task_routes import router as task_router


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger.info("Code Helper API starting (database configured: %s)", bool(settings.database_url))
    logger.info("OpenAI API key configured: %s", bool(settings.openai_api_key))
    if settings.auto_create_schema:
        init_schema()
    if settings.seed_catalog:
        with session_scope() as session:
            seed_catalog(session)
    yield


app = FastAPI(title="Code Helper API", version=__version__, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(account_router)
app.include_router(profile_router)
app.include_router(assessment_router)
app.include_router(task_router)
app.include_router(chat_router)


@app.get("/healthz")
def health() -> Dict[str, str]:
    return {"status": "ok", "version": __version__}


@app.get("/healthz/database")
def database_health() -> Dict[str, str]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.error("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {"status": "ok", "dialect": engine.dialect.name}


def run() -> None:
    import uvicorn

    uvicorn.run("codehelper.main:app", host="0.0.0.0", port=8000)
