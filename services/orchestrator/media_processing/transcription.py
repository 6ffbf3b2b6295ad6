from pathlib import Path
from typing import Any, Dict, List, Optional

from common_schemas.service_utils import read_tool_params


def build_whisper_cmd(
    whisper_bin: str,
    audio_path: Path | str,
    output_dir: Path | str,
    model: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """
    Run the whisper CLI over ``audio_path``. The CLI writes
    ``<output_dir>/<audio stem>.<output_format>``; callers rely on that name.
    """
    cfg = params if params is not None else read_tool_params("whisper")
    cmd = [
        whisper_bin,
        str(audio_path),
        "--model", str(model or cfg.get("model") or "base"),
        "--output_format", str(cfg.get("output_format") or "srt"),
        "--output_dir", str(output_dir),
    ]
    language = cfg.get("language")
    if language:
        cmd += ["--language", str(language)]
    return cmd
