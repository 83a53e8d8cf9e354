"""
Pydantic models and enums for runs, batches and the HTTP API.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .. import config
from ..cost import PipelineCostEstimate
from ..models import (
    AnimationType,
    CharacterStyle,
    GenerationSpec,
    SkeletonType,
    StageResult,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


# ── Run Status ───────────────────────────────────────────────────────────────

class RunStatus(str, Enum):
    PENDING = "PENDING"
    IMAGE_DONE = "IMAGE_DONE"
    VIDEO_DONE = "VIDEO_DONE"
    VIDEO_SKIPPED_OR_FAILED = "VIDEO_SKIPPED_OR_FAILED"
    RIGGING_DONE = "RIGGING_DONE"
    RIGGING_SKIPPED = "RIGGING_SKIPPED"
    EXPORT_DONE = "EXPORT_DONE"
    FAILED = "FAILED"


TERMINAL_STATUSES = {RunStatus.EXPORT_DONE, RunStatus.FAILED}


# ── Pipeline Run ─────────────────────────────────────────────────────────────

class PipelineRun(BaseModel):
    """
    Everything one run produced. Stage slots are write-once and the video
    list only grows; nothing already recorded is ever edited.
    """

    run_id: str = Field(default_factory=new_run_id)
    character_name: str
    spec: GenerationSpec
    status: RunStatus = RunStatus.PENDING
    image: Optional[StageResult] = None
    videos: list[StageResult] = Field(default_factory=list)
    rigging: Optional[StageResult] = None
    export: Optional[StageResult] = None
    warnings: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: str = Field(default_factory=_now_iso)
    duration_seconds: float = 0.0
    config: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _set_once(self, slot: str, result: StageResult):
        if getattr(self, slot) is not None:
            raise ValueError(f"{slot} result already recorded for run {self.run_id}")
        setattr(self, slot, result)

    def record_image(self, result: StageResult):
        self._set_once("image", result)

    def record_rigging(self, result: StageResult):
        self._set_once("rigging", result)

    def record_export(self, result: StageResult):
        self._set_once("export", result)

    def add_video(self, result: StageResult):
        kind = result.metadata.get("animation")
        requested = {a.value for a in self.spec.animations}
        if kind not in requested:
            raise ValueError(f"Animation {kind!r} was not requested for run {self.run_id}")
        if any(v.metadata.get("animation") == kind for v in self.videos):
            raise ValueError(f"Animation {kind!r} already recorded for run {self.run_id}")
        self.videos.append(result)

    def finalize(self, duration_seconds: float):
        self.duration_seconds = round(duration_seconds, 3)


# ── Batch ────────────────────────────────────────────────────────────────────

class _CamelModel(BaseModel):
    """Accepts both snake_case and the camelCase keys of hand-written batch files."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BatchCharacterConfig(_CamelModel):
    name: Optional[str] = None
    prompt: str = Field(..., min_length=1)
    style: Optional[CharacterStyle] = None
    animations: Optional[list[AnimationType]] = None
    skeleton: Optional[SkeletonType] = None


class BatchDefaults(_CamelModel):
    style: CharacterStyle = CharacterStyle.PIXEL
    animations: list[AnimationType] = Field(default_factory=lambda: [AnimationType.IDLE])
    skeleton: SkeletonType = SkeletonType.BIPED


class ProviderSelection(_CamelModel):
    image: str = config.DEFAULT_IMAGE_PROVIDER
    video: str = config.DEFAULT_VIDEO_PROVIDER
    rigging: str = config.DEFAULT_RIGGING_PROVIDER


class BatchOptions(_CamelModel):
    concurrency: int = Field(config.BATCH_CONCURRENCY, ge=1)
    continue_on_error: bool = True
    skip_animation: bool = False
    skip_rigging: bool = False
    skip_export: bool = False


class BatchConfig(_CamelModel):
    characters: list[BatchCharacterConfig]
    output_dir: str
    defaults: BatchDefaults = Field(default_factory=BatchDefaults)
    providers: ProviderSelection = Field(default_factory=ProviderSelection)
    options: BatchOptions = Field(default_factory=BatchOptions)


class BatchItemResult(BaseModel):
    name: str
    success: bool
    result: Optional[PipelineRun] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0


class BatchReport(BaseModel):
    total: int
    successful: int = 0
    failed: int = 0
    results: list[BatchItemResult] = Field(default_factory=list)
    total_duration_seconds: float = 0.0
    created_at: str = Field(default_factory=_now_iso)

    def append(self, item: BatchItemResult):
        self.results.append(item)
        if item.success:
            self.successful += 1
        else:
            self.failed += 1


# ── API Request / Response Models ────────────────────────────────────────────

class PipelineRunRequest(BaseModel):
    prompt: str = Field(..., min_length=1, description="Character description")
    style: CharacterStyle = CharacterStyle.PIXEL
    animations: list[AnimationType] = Field(default_factory=lambda: [AnimationType.IDLE])
    skeleton: SkeletonType = SkeletonType.BIPED
    name: Optional[str] = None
    resolution: int = Field(512, gt=0)


class PipelineStatusResponse(BaseModel):
    run_id: str
    status: RunStatus
    current_step: str = ""
    progress_pct: int = 0
    result: Optional[PipelineRun] = None
    error: Optional[str] = None
    estimate: Optional[PipelineCostEstimate] = None
    formatted_estimate: Optional[str] = None
