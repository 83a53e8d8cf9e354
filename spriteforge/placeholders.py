"""
Locally synthesized stand-ins for soft-failable stages.

A placeholder lets a run reach its terminal state when a remote service is
unavailable. Placeholder artifacts are tiny marker files, not real media.
"""

import time
import logging
from typing import Optional

from .models import PLACEHOLDER_PROVIDER, AnimationType, SkeletonType, Stage, StageResult
from .presets import get_animation_preset, parse_duration
from .storage import animations_dir, model_dir, write_artifact

logger = logging.getLogger(__name__)


def placeholder_video(animation, output_dir: str, reason: str = "") -> StageResult:
    kind = AnimationType(animation).value
    preset = get_animation_preset(kind)
    marker = f"PLACEHOLDER_VIDEO:{kind}:{int(time.time() * 1000)}"
    path = write_artifact(animations_dir(output_dir), f"{kind}.mp4", marker.encode("utf-8"))
    logger.warning(f"Using placeholder video for {kind}{f' ({reason})' if reason else ''}")
    return StageResult(
        stage=Stage.VIDEO,
        artifact=str(path),
        provider=PLACEHOLDER_PROVIDER,
        metadata={
            "animation": kind,
            "duration": parse_duration(preset["duration"]),
            "fps": preset["fps"],
            "reason": reason,
        },
    )


def placeholder_model(skeleton, output_dir: str, reason: str = "") -> StageResult:
    skeleton_type = SkeletonType(skeleton).value
    marker = f"PLACEHOLDER_MODEL:{skeleton_type}:{int(time.time() * 1000)}"
    path = write_artifact(model_dir(output_dir), "placeholder.glb", marker.encode("utf-8"))
    logger.warning(f"Using placeholder model{f' ({reason})' if reason else ''}")
    return StageResult(
        stage=Stage.RIGGING,
        artifact=str(path),
        provider=PLACEHOLDER_PROVIDER,
        metadata={
            "base_model": str(path),
            "skeleton": skeleton_type,
            "bone_count": 0,
            "reason": reason,
        },
    )


class PlaceholderVideoClient:
    """Video 'provider' that never touches the network."""

    name = PLACEHOLDER_PROVIDER

    async def generate(
        self,
        sprite_path: str,
        animation: AnimationType,
        output_dir: str,
        duration: Optional[str] = None,
    ) -> StageResult:
        return placeholder_video(animation, output_dir, reason="placeholder provider selected")


class PlaceholderRiggingClient:
    name = PLACEHOLDER_PROVIDER

    async def generate(self, sprite_path: str, skeleton: SkeletonType, output_dir: str) -> StageResult:
        return placeholder_model(skeleton, output_dir, reason="placeholder provider selected")
