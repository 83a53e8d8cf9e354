"""
Core value types shared by provider clients and the pipeline.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PLACEHOLDER_PROVIDER = "placeholder"
SKIPPED_PROVIDER = "skipped"


# ── Vocabularies ─────────────────────────────────────────────────────────────

class CharacterStyle(str, Enum):
    PIXEL = "pixel"
    ANIME = "anime"
    LOWPOLY = "lowpoly"
    PAINTERLY = "painterly"
    VOXEL = "voxel"


class AnimationType(str, Enum):
    IDLE = "idle"
    WALK = "walk"
    RUN = "run"
    ATTACK = "attack"
    JUMP = "jump"
    DEATH = "death"
    HURT = "hurt"


class SkeletonType(str, Enum):
    BIPED = "biped"
    QUADRUPED = "quadruped"
    CUSTOM = "custom"


class Stage(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    RIGGING = "rigging"
    EXPORT = "export"


# ── Generation Spec ──────────────────────────────────────────────────────────

class GenerationSpec(BaseModel):
    """Input to one pipeline run. Frozen once a run starts."""

    model_config = ConfigDict(frozen=True)

    prompt: str = Field(..., min_length=1)
    style: CharacterStyle = CharacterStyle.PIXEL
    animations: tuple[AnimationType, ...] = (AnimationType.IDLE,)
    skeleton: SkeletonType = SkeletonType.BIPED
    output_dir: str
    resolution: int = Field(512, gt=0)
    name: Optional[str] = None

    @field_validator("prompt")
    @classmethod
    def _strip_prompt(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("prompt must not be blank")
        return value

    @field_validator("animations")
    @classmethod
    def _distinct_animations(cls, value: tuple) -> tuple:
        # order-preserving dedupe
        return tuple(dict.fromkeys(value))


# ── Stage Result ─────────────────────────────────────────────────────────────

class StageResult(BaseModel):
    """
    Output of one stage call.

    `artifact` is a local path (or URL) of the produced file. An empty
    artifact marks a stage that was skipped or produced nothing; provider
    "placeholder" marks a locally synthesized stand-in.
    """

    model_config = ConfigDict(frozen=True)

    stage: Stage
    artifact: str = ""
    provider: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_placeholder(self) -> bool:
        return self.provider == PLACEHOLDER_PROVIDER

    @property
    def is_empty(self) -> bool:
        return not self.artifact

    @classmethod
    def empty(cls, stage: Stage, reason: str = "skipped") -> "StageResult":
        return cls(stage=stage, provider=SKIPPED_PROVIDER, metadata={"reason": reason})
