"""
Stage 1: Sprite generation — text prompt → single character image.

Providers:
  - OpenAI DALL·E 3   (images/generations, b64_json response)
  - Stability SD3     (stable-image/generate/sd3, raw image bytes)

Both expose the same `generate()` signature so the orchestrator can swap
them without branching on provider identity.
"""

import base64
import binascii
import logging
from typing import Optional

import httpx

from .errors import ProviderError
from .http_client import require_key, send, send_json
from .models import CharacterStyle, Stage, StageResult
from .presets import build_image_prompt
from .storage import SPRITE_FILENAME, write_artifact

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

OPENAI_IMAGES_URL = "https://api.openai.com/v1/images/generations"
OPENAI_IMAGE_MODEL = "dall-e-3"

STABILITY_SD3_URL = "https://api.stability.ai/v2beta/stable-image/generate/sd3"
STABILITY_MODEL = "sd3-large"

IMAGE_TIMEOUT = 120


def _openai_size(resolution: int) -> str:
    return "1024x1024" if resolution <= 512 else "1792x1024"


class OpenAIImageClient:
    name = "openai"
    env_var = "OPENAI_API_KEY"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def generate(
        self,
        prompt: str,
        style: CharacterStyle,
        output_dir: str,
        resolution: int = 512,
    ) -> StageResult:
        """
        Generate one sprite with DALL·E 3 and save it as sprite.png.

        Returns:
            StageResult with the local sprite path and the revised prompt.
        """
        api_key = require_key(self.name, self.env_var)
        full_prompt = build_image_prompt(prompt, style)

        logger.info(f"[ImageGen] Generating {CharacterStyle(style).value} character via {self.name}: \"{prompt}\"")

        data = await send_json(
            self.name,
            "POST",
            OPENAI_IMAGES_URL,
            transport=self._transport,
            timeout=IMAGE_TIMEOUT,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": OPENAI_IMAGE_MODEL,
                "prompt": full_prompt,
                "n": 1,
                "size": _openai_size(resolution),
                "quality": "hd",
                "response_format": "b64_json",
            },
        )

        items = data.get("data") or []
        if not items or not items[0].get("b64_json"):
            raise ProviderError(self.name, "No base64 image data returned")

        try:
            image_bytes = base64.b64decode(items[0]["b64_json"], validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProviderError(self.name, f"Invalid base64 image data: {e}") from e

        path = write_artifact(output_dir, SPRITE_FILENAME, image_bytes)
        logger.info(f"[ImageGen] Saved sprite to {path}")

        return StageResult(
            stage=Stage.IMAGE,
            artifact=str(path),
            provider=self.name,
            metadata={
                "model": OPENAI_IMAGE_MODEL,
                "prompt": full_prompt,
                "revised_prompt": items[0].get("revised_prompt"),
                "resolution": resolution,
            },
        )


class StabilityImageClient:
    name = "stability"
    env_var = "STABILITY_API_KEY"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def generate(
        self,
        prompt: str,
        style: CharacterStyle,
        output_dir: str,
        resolution: int = 512,
    ) -> StageResult:
        api_key = require_key(self.name, self.env_var)
        full_prompt = build_image_prompt(prompt, style)

        logger.info(f"[ImageGen] Generating {CharacterStyle(style).value} character via {self.name}: \"{prompt}\"")

        # SD3 only accepts multipart; the empty file part forces that encoding
        response = await send(
            self.name,
            "POST",
            STABILITY_SD3_URL,
            transport=self._transport,
            timeout=IMAGE_TIMEOUT,
            headers={"Authorization": f"Bearer {api_key}", "Accept": "image/*"},
            data={
                "prompt": full_prompt,
                "model": STABILITY_MODEL,
                "output_format": "png",
                "aspect_ratio": "1:1",
            },
            files={"none": ("", b"")},
        )

        if not response.content:
            raise ProviderError(self.name, "Empty image body", response.status_code)

        path = write_artifact(output_dir, SPRITE_FILENAME, response.content)
        logger.info(f"[ImageGen] Saved sprite to {path}")

        return StageResult(
            stage=Stage.IMAGE,
            artifact=str(path),
            provider=self.name,
            metadata={
                "model": STABILITY_MODEL,
                "prompt": full_prompt,
                "seed": response.headers.get("seed"),
                "resolution": resolution,
            },
        )
