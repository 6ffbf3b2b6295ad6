from pathlib import Path
from typing import Any, Dict, List, Optional

from common_schemas.service_utils import read_tool_params


def build_extract_audio_cmd(
    ffmpeg_bin: str,
    video_path: Path | str,
    audio_path: Path | str,
    params: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """
    Convert the source video's audio track to the PCM wav whisper expects.
    Parameters default to ``ffmpeg.yaml`` (16 kHz, mono, pcm_s16le).
    """
    cfg = params if params is not None else read_tool_params("ffmpeg")
    return [
        ffmpeg_bin, "-y",
        "-i", str(video_path),
        "-ar", str(cfg.get("sample_rate", 16000)),
        "-ac", str(cfg.get("channels", 1)),
        "-c:a", str(cfg.get("audio_codec", "pcm_s16le")),
        str(audio_path),
    ]
