"""
Thingpedia Cloud Service

FastAPI application serving the Thingpedia RPC surface.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from almond_cloud import __version__
from almond_cloud.api import thingpedia
from almond_cloud.config import settings
from almond_cloud.errors import ThingpediaError

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Device, schema, example and entity lookups for Thingpedia clients",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ThingpediaError)
async def thingpedia_error_handler(request: Request, exc: ThingpediaError):
    logger.info(f"[API] {request.url.path}: {exc.code} {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc), "code": exc.code})


@app.exception_handler(NotImplementedError)
async def not_implemented_handler(request: Request, exc: NotImplementedError):
    return JSONResponse(status_code=501, content={"error": str(exc) or "Not Implemented", "code": "ENOSYS"})


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "thingpedia",
        "version": __version__,
    }


app.include_router(thingpedia.router)
