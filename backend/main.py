"""
FastAPI application entry point for the store sync service.

Exposes the tenant sync trigger. Run with:
    uvicorn main:app
"""

import logging

from fastapi import FastAPI

from shopsync import __version__
from shopsync.api.routes import sync

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="ShopSync API",
    description="Multi-tenant store data synchronization",
    version=__version__,
)

app.include_router(sync.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
