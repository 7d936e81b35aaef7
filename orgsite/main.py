"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from orgsite.api.errors import register_exception_handlers
from orgsite.api.v1 import router as v1_router
from orgsite.core.config import settings
from orgsite.core.logging import configure_logging

configure_logging(settings)

app = FastAPI(
    title="Orgsite API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Cookie auth needs explicit origins; "*" is not allowed together with credentials.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(v1_router, prefix=settings.API_V1_PREFIX)

# Local blob store is served from here (BLOB_PUBLIC_BASE_URL points at it in dev).
app.mount("/static", StaticFiles(directory=settings.BLOB_STORAGE_DIR, check_dir=False), name="static")


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Orgsite API"}
