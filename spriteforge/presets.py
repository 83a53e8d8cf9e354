"""
Preset Library — Hidden prompt templates for sprite and animation generation.
Users pick a style / animation kind, we inject the actual prompt wording.
"""

import re

from .errors import ValidationError

STYLE_PRESETS = {
    "pixel": {
        "prefix": "pixel art sprite sheet, game asset, transparent background, ",
        "suffix": ", 8-bit style, clean edges, no anti-aliasing, game-ready",
    },
    "anime": {
        "prefix": "anime chibi character, game sprite, transparent background, ",
        "suffix": ", cel shaded, cute proportions, high quality",
    },
    "lowpoly": {
        "prefix": "low poly 3D character render, game asset, transparent background, ",
        "suffix": ", flat shading, geometric, minimalist style",
    },
    "painterly": {
        "prefix": "hand-painted fantasy character, game art, transparent background, ",
        "suffix": ", stylized, vibrant colors, concept art quality",
    },
    "voxel": {
        "prefix": "voxel art character, 3D cube style, game asset, transparent background, ",
        "suffix": ", minecraft-like, blocky, isometric view",
    },
}

ANIMATION_PRESETS = {
    "idle": {
        "prompt": (
            "subtle idle breathing animation, gentle swaying motion, seamless loop, "
            "character stays in place"
        ),
        "duration": "4s",
        "fps": 24,
    },
    "walk": {
        "prompt": (
            "walking animation cycle, smooth footsteps, 8-frame walk cycle, seamless loop, "
            "side view movement"
        ),
        "duration": "4s",
        "fps": 24,
    },
    "run": {
        "prompt": "running animation, fast movement, dynamic pose, seamless loop, energetic motion",
        "duration": "3s",
        "fps": 30,
    },
    "attack": {
        "prompt": "attack swing animation, weapon slash motion, return to idle pose, powerful strike",
        "duration": "2s",
        "fps": 30,
    },
    "jump": {
        "prompt": "jumping animation, crouch to leap to landing, smooth arc, natural gravity",
        "duration": "2s",
        "fps": 24,
    },
    "death": {
        "prompt": "death animation, dramatic fall, fade out effect, final pose",
        "duration": "3s",
        "fps": 24,
    },
    "hurt": {
        "prompt": "hurt reaction animation, flinch backwards, brief recovery, return to stance",
        "duration": "1s",
        "fps": 24,
    },
}

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*s", re.IGNORECASE)


def _value(kind) -> str:
    return getattr(kind, "value", kind)


def build_image_prompt(prompt: str, style) -> str:
    """Wrap the user's prompt in the style's prefix/suffix."""
    preset = STYLE_PRESETS.get(_value(style))
    if not preset:
        raise ValidationError(f"Unknown style: {_value(style)}. Available: {list(STYLE_PRESETS.keys())}")
    return f"{preset['prefix']}{prompt}{preset['suffix']}"


def get_animation_preset(animation) -> dict:
    """Get a copy of the animation preset (prompt, duration, fps)."""
    preset = ANIMATION_PRESETS.get(_value(animation))
    if not preset:
        raise ValidationError(f"Unknown animation: {_value(animation)}")
    return dict(preset)


def build_animation_prompt(animation) -> str:
    kind = _value(animation)
    preset = get_animation_preset(kind)
    return (
        f"Animate this character sprite: {preset['prompt']}. "
        f"Maintain character consistency, smooth motion, game-ready animation. "
        f"Animation type: {kind}, seamless looping required."
    )


def list_animation_types() -> list[str]:
    return list(ANIMATION_PRESETS.keys())


def parse_duration(duration: str) -> float:
    """'4s' → 4.0. Unparseable values fall back to 4 seconds."""
    match = _DURATION_RE.search(duration or "")
    return float(match.group(1)) if match else 4.0
