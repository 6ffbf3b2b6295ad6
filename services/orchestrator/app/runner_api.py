from __future__ import annotations

import asyncio
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ToolInvocationError
from .registry import JobPublisher

logger = logging.getLogger("subburn.tools")

_STDERR_TAIL = 2000


def tool_env(ffmpeg_bin: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Environment overrides for a single tool run.

    When ffmpeg is configured as an explicit path, its directory goes first on
    PATH so tools that shell out to ``ffmpeg`` (whisper does) find the same
    binary.
    """
    overrides: Dict[str, str] = dict(extra or {})
    ffmpeg_dir = Path(ffmpeg_bin).parent
    if str(ffmpeg_dir) not in {"", "."}:
        current = overrides.get("PATH", os.environ.get("PATH", ""))
        overrides["PATH"] = os.pathsep.join(p for p in (str(ffmpeg_dir), current) if p)
    return overrides


def _failure_message(description: str, proc: subprocess.CompletedProcess) -> str:
    stderr = (proc.stderr or "").strip()
    if len(stderr) > _STDERR_TAIL:
        stderr = "..." + stderr[-_STDERR_TAIL:]
    detail = f": {stderr}" if stderr else ""
    return f"{description} (exit code {proc.returncode}){detail}"


async def run_tool(
    cmd: List[str],
    *,
    description: str,
    events: Optional[JobPublisher] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[Path | str] = None,
) -> str:
    """Run an external tool and return its stdout.

    Raises ToolInvocationError on spawn failure or non-zero exit, after
    mirroring the message to the job's subscriber as a log event.
    """
    run_env = {**os.environ, **env} if env else None

    def _run() -> subprocess.CompletedProcess:
        return subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
            env=run_env,
            cwd=str(cwd) if cwd is not None else None,
        )

    logger.debug("Running %s: %s", description, cmd)
    try:
        proc = await asyncio.to_thread(_run)
    except OSError as exc:
        message = f"{description}: could not start {cmd[0]!r} ({exc})"
        logger.error(message)
        if events is not None:
            events.log(f"Error: {message}")
        raise ToolInvocationError(message) from exc

    if proc.returncode != 0:
        message = _failure_message(description, proc)
        logger.error("%s\nSTDOUT: %s\nSTDERR: %s", description, proc.stdout, proc.stderr)
        if events is not None:
            events.log(f"Error: {message}")
        raise ToolInvocationError(message, returncode=proc.returncode, stderr=proc.stderr or "")

    return proc.stdout or ""
