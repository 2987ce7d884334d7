"""FastAPI application entry point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import connections, cron, gocardless, reconciliation, sync
from logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Bank Sync",
    description="GoCardless bank synchronization and payment reconciliation",
    version="0.1.0",
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(connections.router)
app.include_router(cron.router)
app.include_router(gocardless.router)
app.include_router(reconciliation.router)
app.include_router(sync.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
