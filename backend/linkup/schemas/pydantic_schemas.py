from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Literal

JobStatus = Literal["processing", "completed", "failed"]
GigType = Literal["work_request", "job_posting"]


class RecordingCallback(BaseModel):
    """Fields Twilio posts when a recording is ready."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    recording_sid: str = Field(alias="RecordingSid", min_length=1)
    call_sid: str = Field(alias="CallSid", min_length=1)
    recording_url: str = Field(alias="RecordingUrl", min_length=1)


class VoiceJobCreate(BaseModel):
    caller_phone: Optional[str] = None
    recording_sid: str
    recording_url: str
    gradio_event_id: str
    status: JobStatus = "processing"
    gig_type: Optional[GigType] = None
    category_confidence: Optional[float] = None
    category_indicators: Optional[List[str]] = None


class VoiceJobRead(BaseModel):
    id: str
    caller_phone: Optional[str] = None
    recording_sid: str
    recording_url: Optional[str] = None
    gradio_event_id: Optional[str] = None
    status: JobStatus
    transcription: Optional[str] = None
    raw_transcription: Optional[str] = None
    is_patois: Optional[bool] = None
    gig_type: Optional[GigType] = None
    category_confidence: Optional[float] = None
    category_indicators: Optional[List[str]] = None
    created_at: Optional[str] = None


class VoiceJobListResponse(BaseModel):
    items: List[VoiceJobRead]
    total: int
    page: int
    page_size: int


class CompletionRequest(BaseModel):
    event_id: str = Field(min_length=1)
    attempt: int = Field(default=1, ge=1)


class OtpSendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")


class OtpVerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    code: Optional[str] = None
