"""
Stage 2: Animation — sprite + animation kind → looping video clip.

Providers:
  - Veo 3.1 via the Gemini API (inline image in, inline video out)
  - Runway Gen-3 Alpha (data-URI init image in, hosted video URL out)

Output lands at {output_dir}/animations/{kind}.mp4.
"""

import base64
import binascii
import logging
from typing import Optional, Union

import httpx

from .errors import ProviderError
from .http_client import download, require_key, send_json
from .models import AnimationType, Stage, StageResult
from .presets import build_animation_prompt, get_animation_preset, parse_duration
from .storage import animations_dir, require_file, write_artifact

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

VEO_MODEL = "veo-3.1"
VEO_API_URL = f"https://generativelanguage.googleapis.com/v1beta/models/{VEO_MODEL}:generateContent"

RUNWAY_API_URL = "https://api.runwayml.com/v1/generate"
RUNWAY_MODEL = "gen3a_turbo"

VIDEO_TIMEOUT = 300


def _resolve_duration(animation: AnimationType, duration: Optional[Union[str, float]]) -> str:
    if duration is None:
        return get_animation_preset(animation)["duration"]
    if isinstance(duration, (int, float)):
        return f"{duration:g}s"
    return duration


def _video_result(provider: str, path, animation: AnimationType, duration: str, prompt: str) -> StageResult:
    kind = AnimationType(animation).value
    return StageResult(
        stage=Stage.VIDEO,
        artifact=str(path),
        provider=provider,
        metadata={
            "animation": kind,
            "duration": parse_duration(duration),
            "fps": get_animation_preset(kind)["fps"],
            "prompt": prompt,
        },
    )


class VeoVideoClient:
    name = "veo"
    env_var = "GOOGLE_API_KEY"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def generate(
        self,
        sprite_path: str,
        animation: AnimationType,
        output_dir: str,
        duration: Optional[Union[str, float]] = None,
    ) -> StageResult:
        """
        Animate the sprite with Veo 3.1.

        Args:
            sprite_path: Local path of the sprite from stage 1.
            animation:   Animation kind; selects the prompt preset.
            output_dir:  Character output directory.
            duration:    Override ("4s" or seconds); defaults to the preset.
        """
        sprite = require_file(sprite_path, "Sprite image")
        api_key = require_key(self.name, self.env_var)

        kind = AnimationType(animation).value
        final_duration = _resolve_duration(kind, duration)
        prompt = build_animation_prompt(kind)

        logger.info(f"[VideoGen] Creating {kind} animation from {sprite} via {self.name} ({final_duration})")

        data = await send_json(
            self.name,
            "POST",
            VEO_API_URL,
            transport=self._transport,
            timeout=VIDEO_TIMEOUT,
            params={"key": api_key},
            json={
                "contents": [{
                    "parts": [
                        {"text": prompt},
                        {
                            "inlineData": {
                                "mimeType": "image/png",
                                "data": base64.b64encode(sprite.read_bytes()).decode("utf-8"),
                            }
                        },
                    ]
                }],
                "generationConfig": {
                    "responseModalities": ["VIDEO"],
                    "videoDuration": final_duration,
                },
            },
        )

        candidates = data.get("candidates") or []
        parts = candidates[0].get("content", {}).get("parts", []) if candidates else []
        video_b64 = parts[0].get("inlineData", {}).get("data") if parts else None
        if not video_b64:
            raise ProviderError(self.name, "No video data in response")

        try:
            video_bytes = base64.b64decode(video_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProviderError(self.name, f"Invalid base64 video data: {e}") from e

        path = write_artifact(animations_dir(output_dir), f"{kind}.mp4", video_bytes)
        logger.info(f"[VideoGen] Saved {kind} animation to {path}")
        return _video_result(self.name, path, kind, final_duration, prompt)


class RunwayVideoClient:
    name = "runway"
    env_var = "RUNWAY_API_KEY"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def generate(
        self,
        sprite_path: str,
        animation: AnimationType,
        output_dir: str,
        duration: Optional[Union[str, float]] = None,
    ) -> StageResult:
        sprite = require_file(sprite_path, "Sprite image")
        api_key = require_key(self.name, self.env_var)

        kind = AnimationType(animation).value
        final_duration = _resolve_duration(kind, duration)
        prompt = build_animation_prompt(kind)
        image_b64 = base64.b64encode(sprite.read_bytes()).decode("utf-8")

        logger.info(f"[VideoGen] Creating {kind} animation from {sprite} via {self.name} ({final_duration})")

        data = await send_json(
            self.name,
            "POST",
            RUNWAY_API_URL,
            transport=self._transport,
            timeout=VIDEO_TIMEOUT,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": RUNWAY_MODEL,
                "prompt": prompt,
                "init_image": f"data:image/png;base64,{image_b64}",
                "duration": parse_duration(final_duration),
            },
        )

        video_url = data.get("video")
        if not video_url:
            raise ProviderError(self.name, "No video URL in response")

        # Runway hosts the clip; pull it down so the run is self-contained
        video_bytes = await download(self.name, video_url, transport=self._transport, timeout=VIDEO_TIMEOUT)

        path = write_artifact(animations_dir(output_dir), f"{kind}.mp4", video_bytes)
        logger.info(f"[VideoGen] Saved {kind} animation to {path}")
        return _video_result(self.name, path, kind, final_duration, prompt)
