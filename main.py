import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.responses import JSONResponse

from dal.storage_dal import StorageDAL
from routes.diagnose_route import router as diagnose_router
from routes.session_route import router as session_router
from services.diagnosis.diagnosis_client import DIAGNOSE_PATH, DiagnosisClient
from services.diagnosis.session_store import SessionStore
from services.diagnosis.upstream_client import UpstreamAnalysisClient
from services.image_store import ImageStore
from utils.config import Settings
from utils.database_init import AsyncDatabaseInitializer

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)

INTERNAL_BASE_URL = "http://vsids.internal"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _diagnosis_http_client(app: FastAPI, settings: Settings) -> tuple[httpx.AsyncClient, str]:
    """Return the client and endpoint the session uses to reach /api/diagnose."""
    if settings.diagnose_endpoint_url:
        return httpx.AsyncClient(), settings.diagnose_endpoint_url
    # In-process: requests go straight into this app without a socket.
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url=INTERNAL_BASE_URL), DIAGNOSE_PATH


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite-backed storage slots (kept across restarts)
      - the image and session stores, restored from storage
      - the HTTP clients for the analysis service and the diagnose endpoint
    and attach them to `app.state`.
    """
    settings: Settings = app.state.settings

    db_initializer = AsyncDatabaseInitializer(settings.database_dir)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    storage = StorageDAL(db_initializer, quota_bytes=settings.storage_quota_bytes)
    image_store = ImageStore()
    session_store = SessionStore(image_store, storage, byte_ceiling=settings.history_max_bytes)
    await session_store.load()
    app.state.image_store = image_store
    app.state.session_store = session_store

    upstream_http = httpx.AsyncClient(transport=app.state.upstream_transport)
    app.state.upstream_client = UpstreamAnalysisClient(
        upstream_http, url=settings.upstream_url, timeout=settings.request_timeout
    )

    diagnosis_http, endpoint = _diagnosis_http_client(app, settings)
    app.state.diagnosis_client = DiagnosisClient(
        image_store, session_store, diagnosis_http, endpoint=endpoint, timeout=settings.request_timeout
    )
    app.state.turn_lock = asyncio.Lock()

    try:
        yield
    finally:
        for client in (diagnosis_http, upstream_http):
            try:
                await client.aclose()
            except Exception as exc:
                # Ignore shutdown errors to avoid masking more important issues.
                LOGGER.debug("Error while closing HTTP client: %s", exc)


def create_app(
    settings: Optional[Settings] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        settings: Runtime configuration; read from the environment when omitted.
        upstream_transport: Optional httpx transport for the analysis service
            (e.g. `httpx.MockTransport`); the default network transport otherwise.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.upstream_transport = upstream_transport

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """The diagnose endpoint reports unreadable bodies as 400 with an `error` field."""
        if request.url.path.startswith("/api/"):
            return JSONResponse({"error": "Invalid request format"}, status_code=400)
        return await request_validation_exception_handler(request, exc)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting storage and session wiring.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        image_store = getattr(request.app.state, "image_store", None)
        return {
            "ok": True,
            "db_initialized": has_db,
            "image_bound": bool(image_store and image_store.has()),
        }

    app.include_router(diagnose_router)
    app.include_router(session_router)

    return app


app = create_app()
