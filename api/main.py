"""
FastAPI application entrypoint.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from api import routes
from api.routes import router

logging.basicConfig(level=getattr(logging, routes.settings.LOG_LEVEL.upper(), logging.DEBUG))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if routes.settings.PRELOAD_MODEL:
        asyncio.get_running_loop().create_task(routes.pipeline.load_model())
    yield
    await routes.pipeline.stop_all()


app = FastAPI(title="Live Detection Annotator API", version="1.0.0", lifespan=lifespan)
app.include_router(router)

@app.get("/health")
def health() -> dict:
    """
    Health check endpoint.

    Returns:
        dict: Simple status payload.
    """
    return {"status": "ok"}
