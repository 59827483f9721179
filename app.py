"""Main FastAPI application for the journal bot engine."""

import logging
import os
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

# Configure logging BEFORE importing any modules that use logger
log_level = os.getenv('LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=getattr(logging, log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Import after logging is configured
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from journalbots.constants import auto_install_default_bots
from journalbots.routers import bots_router

# Create FastAPI app
app = FastAPI(
    title="Journal Bot Engine",
    description="Command parsing, execution and plugin lifecycle for journal collaboration bots",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bots_router)  # /api/bots endpoints


@app.get("/")
async def root():
    return {"message": "Journal Bot Engine API", "docs": "/docs"}


@app.on_event("startup")
async def startup_event():
    """Install bundled bots and rebuild executor state from the store."""
    from journalbots.dependencies import get_engine

    logger.info("Starting Journal Bot Engine")
    engine = get_engine()
    await engine.start(install_defaults=auto_install_default_bots())


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event."""
    from journalbots.dependencies import get_engine

    logger.info("Shutting down Journal Bot Engine")
    await get_engine().stop()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "9090"))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=True)
