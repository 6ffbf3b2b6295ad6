from __future__ import annotations

from pathlib import Path
from typing import Optional


class PipelineError(Exception):
    """Base class for failures the orchestrator reports as job errors."""


class ToolInvocationError(PipelineError):
    """An external tool exited non-zero or could not be started."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.returncode = returncode
        self.stderr = stderr


class MissingArtifactError(PipelineError):
    """A tool reported success but its expected output file is absent."""

    def __init__(self, message: str, path: Path | str) -> None:
        super().__init__(message)
        self.message = message
        self.path = Path(path)


class IngressValidationError(Exception):
    """The upload request is unusable; surfaced to the client as HTTP 400."""

    def __init__(self, message: str = "No file uploaded") -> None:
        super().__init__(message)
        self.message = message
