import os
import logging
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from .errors import (
    InvalidJobStateError, JobNotFoundError, LocalizerError, PermissionDeniedError, ValidationError,
)
from .orchestrator import JobCoordinator

logger = logging.getLogger("video_localizer")

_STATUS_CODES = {
    ValidationError: 400,
    InvalidJobStateError: 400,
    PermissionDeniedError: 403,
    JobNotFoundError: 404,
}


class TextItem(BaseModel):
    text: str
    start: float
    end: float
    position: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    style: Optional[str] = None
    role: Optional[str] = None


class NamingParts(BaseModel):
    id: str = ""
    date: str = ""
    product: str = ""
    type: str = ""
    author: str = ""


class JobRequest(BaseModel):
    name: str
    video: str = Field(description="Clean source video, relative to the uploads directory")
    texts: List[TextItem] = Field(default_factory=list)
    analyze: bool = False
    style: Optional[str] = None
    font_size: Optional[int] = None
    hook_style: Optional[str] = None
    cta_style: Optional[str] = None
    per_text_styles: bool = False
    uppercase: bool = False
    languages: Optional[List[str]] = None
    naming: Optional[NamingParts] = None


class PreviewRequest(BaseModel):
    video: str
    texts: List[TextItem]
    name: str = "preview"
    style: Optional[str] = None
    font_size: Optional[int] = None
    hook_style: Optional[str] = None
    cta_style: Optional[str] = None
    per_text_styles: bool = True
    uppercase: bool = False


class VideoRequest(BaseModel):
    video: str


class TranslateRequest(BaseModel):
    texts: List[str]
    language: str = "English"


class DeleteRequest(BaseModel):
    author: Optional[str] = None


def status_code_for(error: LocalizerError) -> int:
    for error_type, code in _STATUS_CODES.items():
        if isinstance(error, error_type):
            return code
    return 500


class LocalizerHttpServer:
    def __init__(self, coordinator: JobCoordinator, host: str = "0.0.0.0", port: int = 8000):
        self.coordinator = coordinator
        self.host = host
        self.port = port
        self.app = FastAPI(title="Video Localizer API")
        self.server: Optional[uvicorn.Server] = None
        self.setup_routes()

    def setup_routes(self):
        """Setup API routes"""
        coordinator = self.coordinator

        @self.app.exception_handler(LocalizerError)
        async def localizer_error(request: Request, exc: LocalizerError):
            code = status_code_for(exc)
            if code >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {exc}")
            return JSONResponse(status_code=code, content={"detail": str(exc)})

        @self.app.get("/healthz")
        def health_check():
            """Health check endpoint"""
            if not coordinator.store.ping():
                raise HTTPException(status_code=503, detail="Job store unreachable")
            return {"ok": True, "status": "healthy"}

        @self.app.post("/jobs")
        def submit_job(request: JobRequest):
            job = coordinator.submit(request.model_dump(exclude_none=True))
            return {"job_id": job.id, "status": "queued"}

        @self.app.get("/jobs")
        def list_jobs():
            return {"jobs": [job.summary() for job in coordinator.list_jobs()]}

        @self.app.get("/jobs/{job_id}")
        def get_job(job_id: str):
            return coordinator.get(job_id).to_dict()

        @self.app.get("/jobs/{job_id}/video/{language}")
        def download_video(job_id: str, language: str):
            path = coordinator.output_path(job_id, language)
            return FileResponse(path, media_type="video/mp4", filename=os.path.basename(path))

        @self.app.get("/jobs/{job_id}/zip")
        def download_archive(job_id: str):
            path = coordinator.build_archive(job_id)
            return FileResponse(path, media_type="application/zip", filename=os.path.basename(path))

        @self.app.post("/jobs/{job_id}/cancel")
        def cancel_job(job_id: str):
            job = coordinator.cancel(job_id)
            return {"ok": True, "status": job.status.value, "cancelled": job.cancelled}

        @self.app.delete("/jobs/{job_id}")
        def delete_job(job_id: str, request: Optional[DeleteRequest] = None):
            coordinator.delete(job_id, request.author if request else None)
            return {"ok": True}

        @self.app.post("/analyze/text")
        def analyze_text(request: VideoRequest):
            segments = coordinator.analyze_text(request.video)
            return {"segments": [s.to_dict() for s in segments]}

        @self.app.post("/analyze/scenes")
        def analyze_scenes(request: VideoRequest):
            scenes = coordinator.split_scenes(request.video)
            return {"scenes": [s.to_dict() for s in scenes]}

        @self.app.post("/translate")
        def translate(request: TranslateRequest):
            return {"translations": coordinator.translate_to_language(request.texts, request.language)}

        @self.app.post("/preview")
        def preview(request: PreviewRequest):
            path = coordinator.render_preview(request.model_dump(exclude_none=True))
            return {"ok": True, "video": path}

    def serve(self):
        """Run the HTTP server in the calling thread until it exits"""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            log_config=None,
            access_log=False
        )
        self.server = uvicorn.Server(config)
        self.server.run()

    def stop(self):
        """Ask a running server to finish its requests and exit"""
        if self.server is not None:
            self.server.should_exit = True
        logger.info("HTTP server stopped")
