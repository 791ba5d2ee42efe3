"""
main.py

Entry point for the Project Portal API.

Configures logging, builds the dashboard store over the configured storage
medium, wires it into the FastAPI dependency system and starts uvicorn.

Usage
-----
    # Option 1 - run directly
    python main.py

    # Option 2 - run via uvicorn CLI (recommended for development)
    uvicorn main:app --reload --port 8000

Configuration comes from PORTAL_* environment variables or a .env file
(see settings.py).  PORTAL_STORAGE_PATH="" keeps everything in memory.

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI
    http://localhost:8000/redoc     ← ReDoc
    http://localhost:8000/health    ← liveness check

Quick-start walkthrough (use Swagger UI or curl)
-------------------------------------------------
1.  POST   /api/v1/session        - sign in with {"email": ..., "user_type": "team"}
2.  GET    /api/v1/dashboard      - collections, stats, and a fresh profile
3.  POST   /api/v1/files          - register "Invoice - Acme $2,500.00" tagged invoice
4.  GET    /api/v1/invoices       - the derived pending invoice appears first
5.  PATCH  /api/v1/invoices/{id}  - {"status": "paid"}
6.  DELETE /api/v1/files/{id}     - the file and its invoice are gone
"""

import logging

import uvicorn

from api import app, get_store
from infrastructure import build_store
from logging_config import setup_logging
from settings import get_settings

settings = get_settings()
setup_logging(settings.log_level, settings.log_file)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire the concrete store into the FastAPI dependency system.
# One store per process; every request shares it.
# ---------------------------------------------------------------------------

store = build_store(settings.storage_path, settings.default_timezone)
app.dependency_overrides[get_store] = lambda: store

logger.info(
    "%s ready: %d reports, %d invoices, %d providers, %d files",
    settings.app_name,
    len(store.reports),
    len(store.invoices),
    len(store.service_providers),
    len(store.uploaded_files),
)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=True,          # auto-reload on file changes during development
        log_level=settings.log_level.lower(),
    )
