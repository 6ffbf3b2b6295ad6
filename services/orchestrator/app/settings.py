"""
Runtime configuration for the subtitle orchestrator.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from common_schemas.service_utils import read_tool_params

BASE = Path(__file__).resolve().parents[3]


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class OrchestratorSettings:
    """Directories, tool binaries and HTTP options for one orchestrator process."""

    # Filesystem layout
    uploads_dir: Path = BASE / "uploads"
    outputs_dir: Path = BASE / "outputs"
    work_root: Path = BASE  # temp subtitle copies live here; ffmpeg runs with this cwd

    # External tools
    ffmpeg_bin: str = "ffmpeg"
    whisper_bin: str = "whisper"
    whisper_model: str = "base"

    # HTTP surface
    download_prefix: str = "/download"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "OrchestratorSettings":
        """Create settings from environment variables, falling back to tool YAML defaults."""
        whisper_defaults = read_tool_params("whisper")
        return cls(
            uploads_dir=Path(os.getenv("SUBBURN_UPLOADS_DIR", str(cls.uploads_dir))).resolve(),
            outputs_dir=Path(os.getenv("SUBBURN_OUTPUTS_DIR", str(cls.outputs_dir))).resolve(),
            work_root=Path(os.getenv("SUBBURN_WORK_ROOT", str(cls.work_root))).resolve(),
            ffmpeg_bin=os.getenv("FFMPEG_BIN", cls.ffmpeg_bin),
            whisper_bin=os.getenv("WHISPER_BIN", cls.whisper_bin),
            whisper_model=os.getenv("WHISPER_MODEL", str(whisper_defaults.get("model") or cls.whisper_model)),
            download_prefix=os.getenv("DOWNLOAD_PREFIX", cls.download_prefix).rstrip("/") or cls.download_prefix,
            cors_origins=_split_csv(os.getenv("CORS_ORIGINS", "*")) or ["*"],
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )

    def ensure_dirs(self) -> None:
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.outputs_dir.mkdir(parents=True, exist_ok=True)
        self.work_root.mkdir(parents=True, exist_ok=True)
