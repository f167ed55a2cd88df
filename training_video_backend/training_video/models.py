"""
Pydantic models and enums for scripts, video jobs and pipeline progress.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Persisted records ────────────────────────────────────────────────────────

class VideoStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoStatus.COMPLETED, VideoStatus.FAILED)

    def can_transition_to(self, new: "VideoStatus") -> bool:
        return new in _TRANSITIONS[self]


_TRANSITIONS = {
    VideoStatus.PENDING: {VideoStatus.PROCESSING},
    VideoStatus.PROCESSING: {VideoStatus.COMPLETED, VideoStatus.FAILED},
    VideoStatus.COMPLETED: set(),
    VideoStatus.FAILED: set(),
}


class Script(BaseModel):
    id: str
    title: str
    content: str
    status: VideoStatus = VideoStatus.PENDING
    video_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class VideoJob(BaseModel):
    id: str
    script_id: str
    status: VideoStatus = VideoStatus.PENDING
    video_url: Optional[str] = None
    avatar_used: Optional[str] = None
    error_message: Optional[str] = None
    duration: int = 0
    talk_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ── Progress ─────────────────────────────────────────────────────────────────

class ProgressStep(str, Enum):
    VALIDATING = "VALIDATING"
    GENERATING_AUDIO = "GENERATING_AUDIO"
    GENERATING_VIDEO = "GENERATING_VIDEO"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class ProgressState(BaseModel):
    current_step: ProgressStep
    progress_percent: int
    message: str
    error: Optional[str] = None


# ── Configuration values ─────────────────────────────────────────────────────

class AvatarConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary: str
    fallbacks: List[str] = Field(default_factory=list)


class RetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(3, ge=0)
    retry_delay_ms: int = Field(1000, gt=0)
    exponential_backoff: bool = True


class AvatarCategory(str, Enum):
    BUSINESS = "business"
    GENERAL = "general"
    CASUAL = "casual"
    EDUCATION = "education"


class Avatar(BaseModel):
    id: str
    name: str
    source_url: str
    thumbnail_url: Optional[str] = None
    description: Optional[str] = None
    category: AvatarCategory = AvatarCategory.GENERAL
    is_active: bool = True


# ── Adapter results ──────────────────────────────────────────────────────────

class SpeechResult(BaseModel):
    audio_ref: str


class TalkStatus(BaseModel):
    status: str
    result_url: Optional[str] = None
    error_detail: Optional[str] = None


class AvatarRenderResult(BaseModel):
    video_url: str
    avatar_used: str
    talk_id: Optional[str] = None


# ── API request models ───────────────────────────────────────────────────────

class ScriptCreateRequest(BaseModel):
    title: str = "Untitled Video"
    content: str


class VideoGenerateRequest(BaseModel):
    script_id: str
    presenter_url: Optional[str] = None


# ── Pipeline state ───────────────────────────────────────────────────────────

class PipelineState(BaseModel):
    job_id: str
    script_id: str
    content: str
    presenter_url: Optional[str] = None
    validated: bool = False
    audio_ref: Optional[str] = None
    video_url: Optional[str] = None
    avatar_used: Optional[str] = None
    talk_id: Optional[str] = None
