import asyncio
import json
import logging
import os
import re
import shutil
import time
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from common_schemas.models import UploadAck, UploadRejected
from common_schemas.service_utils import get_service_logger
from media_processing.subtitles_handling import resolve_style

from .errors import IngressValidationError
from .pipeline import Job, process_video
from .registry import SubscriberRegistry, emit
from .settings import OrchestratorSettings

SETTINGS = OrchestratorSettings.from_env()

get_service_logger("subburn", SETTINGS.log_level)
logger = logging.getLogger("subburn.orchestrator")

app = FastAPI(title="subtitle orchestrator")
app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

REGISTRY = SubscriberRegistry()
ACTIVE_JOBS: Dict[str, asyncio.Task] = {}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

app.mount(
    SETTINGS.download_prefix,
    StaticFiles(directory=str(SETTINGS.outputs_dir), check_dir=False),
    name="download",
)


@app.on_event("startup")
async def startup_event() -> None:
    SETTINGS.ensure_dirs()
    logger.info("Uploads: %s | Outputs: %s", SETTINGS.uploads_dir, SETTINGS.outputs_dir)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    tasks = list(ACTIVE_JOBS.values())
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


@app.exception_handler(IngressValidationError)
async def ingress_validation_handler(request: Request, exc: IngressValidationError) -> JSONResponse:
    return JSONResponse(UploadRejected(error=exc.message).model_dump(), status_code=400)


def safe_filename(name: str) -> str:
    stem = Path((name or "upload").replace("\\", "/")).name
    return _UNSAFE_CHARS.sub("_", stem).strip("._") or "upload"


def stored_upload_name(original_name: str) -> str:
    safe = safe_filename(original_name)
    # extracted audio lands at uploads/<job id>.wav, so a stored .wav would be overwritten
    if Path(safe).suffix.lower() == ".wav":
        safe = f"{Path(safe).stem}.wave"
    return safe


def unique_upload_path(uploads_dir: Path, original_name: str) -> Path:
    """Reserve ``<epoch ms>-<safe name>`` in uploads_dir.

    The file is created exclusively, so concurrent uploads of the same name
    in the same millisecond always end up with distinct paths.
    """
    name = stored_upload_name(original_name)
    uploads_dir.mkdir(parents=True, exist_ok=True)
    stamp = int(time.time() * 1000)
    while True:
        candidate = uploads_dir / f"{stamp}-{name}"
        try:
            with candidate.open("xb"):
                pass
        except FileExistsError:
            stamp += 1
            continue
        return candidate


async def run_in_thread(func, *args, **kwargs):
    return await asyncio.to_thread(func, *args, **kwargs)


def persist_upload(upload: UploadFile, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("wb") as dest:
        shutil.copyfileobj(upload.file, dest)


def launch_job(job: Job) -> asyncio.Task:
    task = asyncio.create_task(process_video(job, SETTINGS), name=f"job-{job.id}")
    ACTIVE_JOBS[job.id] = task

    def _forget(t: asyncio.Task) -> None:
        ACTIVE_JOBS.pop(job.id, None)
        if not t.cancelled() and t.exception() is not None:
            logger.error("Job task %s raised", job.id, exc_info=t.exception())

    task.add_done_callback(_forget)
    return task


def format_sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


@app.get("/events")
async def events() -> StreamingResponse:
    subscriber = REGISTRY.open()

    async def event_stream():
        try:
            async for event in subscriber.stream():
                yield format_sse(event)
        finally:
            REGISTRY.close(subscriber.subscriber_id)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.post("/upload", response_model=UploadAck)
async def upload(
    video: Optional[UploadFile] = File(None),
    subscriber_id: Optional[str] = Form(None, alias="subscriberId"),
    socket_id: Optional[str] = Form(None, alias="socketId"),
    subtitle_style: Optional[str] = Form(None, alias="subtitleStyle"),
) -> UploadAck:
    if video is None or not video.filename:
        raise IngressValidationError("No file uploaded")

    stored_path = await run_in_thread(unique_upload_path, SETTINGS.uploads_dir, video.filename)
    await run_in_thread(persist_upload, video, stored_path)

    requested_id = (subscriber_id or socket_id or "").strip()
    subscriber = REGISTRY.get(requested_id)
    if subscriber is None:
        logger.info("Subscriber not found for ID: %s", requested_id or "<none>")

    job = Job.create(
        stored_path,
        SETTINGS,
        subscriber=subscriber,
        original_filename=video.filename,
        style=resolve_style(subtitle_style),
    )
    emit(subscriber, "log", "🚀 Received file. Starting process...", job_id=job.id)

    launch_job(job)
    logger.info("Accepted %s as job %s", video.filename, job.id)
    return UploadAck(job_id=job.id)


@app.get("/healthz")
def healthz():
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "5000")))
