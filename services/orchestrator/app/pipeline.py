from __future__ import annotations

import asyncio
import logging
import shutil
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from media_processing.audio_processing import build_extract_audio_cmd
from media_processing.subtitles_handling import STYLE_PRESETS, SubtitleStyle, build_burn_cmd
from media_processing.transcription import build_whisper_cmd

from .errors import MissingArtifactError, PipelineError
from .registry import JobPublisher, Subscriber
from .runner_api import run_tool, tool_env
from .settings import OrchestratorSettings
from .workspace import JobWorkspace

logger = logging.getLogger("subburn.pipeline")


class Stage(str, Enum):
    QUEUED = "queued"
    EXTRACTING_AUDIO = "extracting_audio"
    TRANSCRIBING = "transcribing"
    BURNING = "burning"
    COMPLETED = "completed"
    FAILED = "failed"


_NEXT_STAGE = {
    Stage.QUEUED: Stage.EXTRACTING_AUDIO,
    Stage.EXTRACTING_AUDIO: Stage.TRANSCRIBING,
    Stage.TRANSCRIBING: Stage.BURNING,
    Stage.BURNING: Stage.COMPLETED,
}
TERMINAL_STAGES = frozenset({Stage.COMPLETED, Stage.FAILED})


@dataclass
class Job:
    workspace: JobWorkspace
    source_video_path: Path
    events: JobPublisher
    original_filename: str = ""
    style: SubtitleStyle = field(default_factory=lambda: STYLE_PRESETS["default"])
    stage: Stage = Stage.QUEUED

    @classmethod
    def create(
        cls,
        stored_path: Path,
        settings: OrchestratorSettings,
        subscriber: Optional[Subscriber] = None,
        original_filename: str = "",
        style: Optional[SubtitleStyle] = None,
    ) -> "Job":
        workspace = JobWorkspace.for_stored_file(
            stored_path.name,
            uploads_dir=settings.uploads_dir,
            outputs_dir=settings.outputs_dir,
            work_root=settings.work_root,
        )
        if workspace.audio_collides_with_source():
            raise ValueError(f"Stored upload {stored_path.name!r} would be overwritten by its extracted audio")
        return cls(
            workspace=workspace,
            source_video_path=stored_path.resolve(),
            events=JobPublisher(workspace.job_id, subscriber),
            original_filename=original_filename,
            style=style or STYLE_PRESETS["default"],
        )

    @property
    def id(self) -> str:
        return self.workspace.job_id


def advance(job: Job, target: Stage) -> None:
    if job.stage in TERMINAL_STAGES:
        raise RuntimeError(f"Job {job.id} already finished ({job.stage.value}); cannot move to {target.value}")
    if target is not Stage.FAILED and _NEXT_STAGE.get(job.stage) is not target:
        raise RuntimeError(f"Illegal transition for job {job.id}: {job.stage.value} -> {target.value}")
    logger.debug("Job %s: %s -> %s", job.id, job.stage.value, target.value)
    job.stage = target


class StepTimer:
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.timings: Dict[str, float] = {}

    @contextmanager
    def time(self, label: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self.timings[label] = duration
            logger.info("Job %s: %s finished in %.2fs", self.job_id, label, duration)


async def extract_audio_step(job: Job, settings: OrchestratorSettings) -> None:
    cmd = build_extract_audio_cmd(settings.ffmpeg_bin, job.source_video_path, job.workspace.audio_path)
    await run_tool(cmd, description="FFmpeg audio extraction failed", events=job.events)


async def transcribe_step(job: Job, settings: OrchestratorSettings) -> None:
    ws = job.workspace
    cmd = build_whisper_cmd(settings.whisper_bin, ws.audio_path, ws.outputs_dir, model=settings.whisper_model)
    await run_tool(
        cmd,
        description="Whisper transcription failed",
        events=job.events,
        env=tool_env(settings.ffmpeg_bin),
    )
    if not ws.subtitle_path.exists():
        raise MissingArtifactError("SRT file was not generated.", ws.subtitle_path)


async def burn_subtitles_step(job: Job, settings: OrchestratorSettings) -> None:
    ws = job.workspace
    # libass filter paths are fragile; a short relative name under work_root avoids escaping
    await asyncio.to_thread(shutil.copyfile, ws.subtitle_path, ws.temp_subtitle_path)
    cmd = build_burn_cmd(
        settings.ffmpeg_bin,
        job.source_video_path,
        ws.temp_subtitle_name,
        ws.output_video_path,
        job.style,
    )
    await run_tool(cmd, description="FFmpeg subtitle burn failed", events=job.events, cwd=ws.work_root)
    if not ws.output_video_path.exists():
        raise MissingArtifactError("Subtitled video was not produced.", ws.output_video_path)


def _fail(job: Job, message: str) -> None:
    advance(job, Stage.FAILED)
    job.events.error(message)
    job.events.log(f"Error: {message}")


async def process_video(job: Job, settings: OrchestratorSettings) -> Stage:
    """Drive one job from upload to subtitled video.

    Never raises for pipeline failures; the outcome is reported to the
    subscriber and returned as the terminal stage. Intermediates are removed
    on every exit path.
    """
    events = job.events
    ws = job.workspace
    timer = StepTimer(job.id)
    logger.info("Job %s started for %s", job.id, job.original_filename or job.source_video_path.name)
    if not events.attached:
        logger.info("Job %s has no subscriber; events will be dropped", job.id)

    try:
        advance(job, Stage.EXTRACTING_AUDIO)
        events.log("🎵 Step 1: Extracting audio...")
        events.progress(10)
        with timer.time("extract_audio"):
            await extract_audio_step(job, settings)
        events.log("✅ Audio extracted.")

        advance(job, Stage.TRANSCRIBING)
        events.log("🧠 Step 2: Generating subtitles (Whisper)...")
        events.progress(30)
        with timer.time("transcribe"):
            await transcribe_step(job, settings)
        events.log("✅ Subtitles generated.")

        advance(job, Stage.BURNING)
        events.log("🎥 Step 3: Burning subtitles into video...")
        events.progress(60)
        with timer.time("burn_subtitles"):
            await burn_subtitles_step(job, settings)
        ws.remove_temp_subtitle()

        advance(job, Stage.COMPLETED)
        events.log("✅ Video processing complete!")
        events.progress(100)
        events.complete(ws.download_url(settings.download_prefix))
    except PipelineError as exc:
        logger.error("Job %s failed during %s: %s", job.id, job.stage.value, exc)
        _fail(job, str(exc))
    except asyncio.CancelledError:
        logger.warning("Job %s cancelled during %s", job.id, job.stage.value)
        job.stage = Stage.FAILED
        events.error("Job cancelled")
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Job %s crashed during %s", job.id, job.stage.value)
        _fail(job, str(exc) or exc.__class__.__name__)
    finally:
        ws.cleanup()
        logger.info(
            "Job %s finished: %s (%s)",
            job.id,
            job.stage.value,
            ", ".join(f"{k}={v:.2f}s" for k, v in timer.timings.items()) or "no steps timed",
        )
    return job.stage
