from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger("subburn.workspace")

OUTPUT_PREFIX = "subtitled_"
TEMP_SUBTITLE_PREFIX = "temp_"


def job_id_from_stored_name(stored_name: str) -> str:
    """Strip the trailing extension: ``1700000000000-movie.mp4`` -> ``1700000000000-movie``."""
    name = Path(stored_name).name
    job_id = Path(name).stem if Path(name).suffix else name
    if not job_id or job_id in {".", ".."} or "/" in job_id or "\\" in job_id:
        raise ValueError(f"Cannot derive a safe job id from {stored_name!r}")
    return job_id


@dataclass(frozen=True)
class JobWorkspace:
    job_id: str
    uploads_dir: Path
    outputs_dir: Path
    work_root: Path
    source_path: Optional[Path] = None

    @classmethod
    def for_stored_file(
        cls,
        stored_name: str | Path,
        uploads_dir: Path,
        outputs_dir: Path,
        work_root: Path,
    ) -> "JobWorkspace":
        return cls(
            job_id=job_id_from_stored_name(str(stored_name)),
            uploads_dir=Path(uploads_dir),
            outputs_dir=Path(outputs_dir),
            work_root=Path(work_root),
            source_path=Path(uploads_dir) / Path(str(stored_name)).name,
        )

    @property
    def audio_path(self) -> Path:
        return self.uploads_dir / f"{self.job_id}.wav"

    @property
    def subtitle_path(self) -> Path:
        # whisper names its output after the audio file's base name
        return self.outputs_dir / f"{self.audio_path.stem}.srt"

    @property
    def output_video_name(self) -> str:
        return f"{OUTPUT_PREFIX}{self.job_id}.mp4"

    @property
    def output_video_path(self) -> Path:
        return self.outputs_dir / self.output_video_name

    @property
    def temp_subtitle_name(self) -> str:
        return f"{TEMP_SUBTITLE_PREFIX}{self.job_id}.srt"

    @property
    def temp_subtitle_path(self) -> Path:
        return self.work_root / self.temp_subtitle_name

    def download_url(self, prefix: str = "/download") -> str:
        return f"{prefix.rstrip('/')}/{self.output_video_name}"

    def intermediates(self) -> List[Path]:
        paths = [self.audio_path, self.temp_subtitle_path]
        if self.source_path is None:
            return paths
        # the raw upload belongs to ingress and is never removed here
        source = self.source_path.resolve()
        return [p for p in paths if p.resolve() != source]

    def audio_collides_with_source(self) -> bool:
        return self.source_path is not None and self.audio_path.resolve() == self.source_path.resolve()

    def remove_temp_subtitle(self) -> None:
        _remove_quietly(self.temp_subtitle_path)

    def cleanup(self) -> None:
        """Remove the audio file and temp subtitle copy. Safe to call repeatedly."""
        for path in self.intermediates():
            _remove_quietly(path)


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Failed to remove intermediate %s", path, exc_info=True)
