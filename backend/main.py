"""Saved Locations: FastAPI backend."""
import logging
import os
import subprocess
import sys

from fastapi import FastAPI

# Session lifecycle, invariant repairs and lookup failures are logged at INFO/WARNING.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logging.getLogger("location_core").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware

from api.deps import close_geocoder
from api.routes import router
from api.sessions import router as sessions_router
from location_core import store

app = FastAPI(
    title="Saved Locations",
    description="Saved ride locations: up to three per user, one default, with display addresses",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:8081", "http://127.0.0.1:8081"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")
app.include_router(sessions_router, prefix="/api")


@app.on_event("startup")
def startup() -> None:
    """Run DB migrations."""
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        cwd=backend_dir,
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise RuntimeError(f"Alembic upgrade failed: {result.stderr or result.stdout}")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Close open sessions (cancelling pending address lookups) and the geocoder client."""
    await store.close_all()
    await close_geocoder()


@app.get("/")
def root() -> dict:
    """Root redirect/info."""
    return {"service": "saved-locations", "docs": "/docs", "health": "/api/health"}


if __name__ == "__main__":
    import uvicorn

    from utils.config import PORT

    uvicorn.run("main:app", host="0.0.0.0", port=PORT, log_config=None)
