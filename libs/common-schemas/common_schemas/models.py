from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional

EventKind = Literal["subscribed", "log", "progress", "complete", "error"]


# Ingress
class UploadAck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = "Upload successful, processing started"
    job_id: str = Field(..., alias="jobId")


class UploadRejected(BaseModel):
    error: str


# Event stream
class JobEvent(BaseModel):
    """One message pushed to a subscriber.

    Only the fields relevant to ``type`` are set; the rest are dropped on the
    wire (see ``wire()``).
    """
    model_config = ConfigDict(populate_by_name=True)

    type: EventKind
    job_id: Optional[str] = Field(None, alias="jobId")
    message: Optional[str] = None
    percent: Optional[int] = Field(None, ge=0, le=100)
    download_url: Optional[str] = Field(None, alias="downloadUrl")
    subscriber_id: Optional[str] = Field(None, alias="subscriberId")

    def wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
