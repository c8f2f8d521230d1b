"""
REST API
HTTP front end over an InspectionService (FastAPI, JSON in and out).
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..errors import InputError
from .service import InspectionService

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class InspectRequest(BaseModel):
    image_path: Optional[str] = None
    image: Optional[str] = None  # base64, optionally with a data: URL prefix


class ConfigRequest(BaseModel):
    visualization_enabled: Optional[bool] = None
    auto_save: Optional[bool] = None


def create_app(service: InspectionService) -> FastAPI:
    """Build the FastAPI application bound to a service."""
    app = FastAPI(title="Inspection API Server", version=__version__)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InputError)
    async def input_error_handler(request: Request, exc: InputError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Bad Request", "message": str(exc)})

    @app.get("/")
    def root():
        return {"name": "Inspection API Server", "version": __version__, "status": "running"}

    # Sync handlers run in the threadpool, so inspections may overlap
    @app.post(f"{API_PREFIX}/inspect")
    def inspect(request: InspectRequest):
        if request.image:
            result = service.inspect_base64(request.image)
        elif request.image_path:
            result = service.inspect_path(request.image_path)
        else:
            raise InputError("image_path or image is required")

        if not result.success:
            logger.warning(f"API inspection failed: {result.error_message}")
            return JSONResponse(status_code=500, content={
                "error": "Inspection Failed",
                "message": result.error_message,
            })
        return result.to_dict()

    @app.get(f"{API_PREFIX}/status")
    def status():
        return service.status()

    @app.get(f"{API_PREFIX}/statistics")
    def statistics():
        return service.statistics()

    @app.get(f"{API_PREFIX}/detectors")
    def detectors():
        return {"detectors": service.detector_info()}

    @app.post(f"{API_PREFIX}/config")
    def update_config(request: ConfigRequest):
        return service.update_config(
            visualization_enabled=request.visualization_enabled,
            auto_save=request.auto_save,
        )

    return app
