"""
Pre-flight cost estimation.

Pure functions over a static pricing table — no network, no state. Numbers
are advisory only and never persisted as authoritative.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .errors import ValidationError

CURRENCY = "USD"

# Pricing (USD, as of 2026-01)
PRICING = {
    "openai": {"dall-e-3": {"standard": 0.04, "hd": 0.08}},  # per image
    "stability": {"sd-3": 0.025},                              # per image
    "pixellab": {"pixellab": 0.02},                            # per image (estimated)
    "google": {"veo-3.1": 0.05, "veo-2": 0.03},                # per second of video
    "runway": {"gen-3-alpha": 0.10, "gen-2": 0.05},            # per second of video
    "tripo": {"image-to-3d": 0.15, "rigging": 0.10, "texturing": 0.05},  # per model
}

IMAGE_PROVIDERS = ("openai", "stability", "pixellab")
VIDEO_PROVIDERS = ("veo", "runway", "placeholder")
RIGGING_PROVIDERS = ("tripo", "placeholder")

DEFAULT_ANIMATION_SECONDS = 4.0


def _money(amount: float) -> float:
    # float sums like 0.04 + 0.4 + 0.25 otherwise drift off the cent
    return round(amount, 6)


class CostEstimate(BaseModel):
    provider: str
    operation: str
    units: float
    unit_price: float
    currency: str = CURRENCY
    estimated_cost: float


class PipelineEstimateOptions(BaseModel):
    image_provider: str = "openai"
    video_provider: str = "veo"
    rigging_provider: str = "tripo"
    animation_count: int = Field(1, ge=0)
    animation_duration: float = Field(DEFAULT_ANIMATION_SECONDS, ge=0)
    image_quality: str = "standard"
    image_count: int = Field(1, ge=0)
    rigging_count: int = Field(1, ge=0)


class PipelineCostEstimate(BaseModel):
    image_generation: CostEstimate
    video_animation: CostEstimate
    rigging_3d: CostEstimate
    total: float
    currency: str = CURRENCY


class BatchCostEstimate(BaseModel):
    per_character: PipelineCostEstimate
    character_count: int
    total: float
    currency: str = CURRENCY


# ── Per-stage estimates ──────────────────────────────────────────────────────

def estimate_image_cost(provider: str, count: int = 1, quality: str = "standard") -> CostEstimate:
    if provider == "openai":
        prices = PRICING["openai"]["dall-e-3"]
        if quality not in prices:
            raise ValidationError(f"Unknown image quality: {quality}. Available: {list(prices)}")
        unit_price = prices[quality]
        operation = f"dall-e-3-{quality}"
    elif provider == "stability":
        unit_price = PRICING["stability"]["sd-3"]
        operation = "sd-3"
    elif provider == "pixellab":
        unit_price = PRICING["pixellab"]["pixellab"]
        operation = "pixellab"
    else:
        raise ValidationError(f"Unknown image provider: {provider}. Available: {list(IMAGE_PROVIDERS)}")

    return CostEstimate(
        provider=provider,
        operation=operation,
        units=count,
        unit_price=unit_price,
        estimated_cost=_money(count * unit_price),
    )


def estimate_video_cost(provider: str, duration_seconds: float, animation_count: int = 1) -> CostEstimate:
    if provider == "veo":
        unit_price = PRICING["google"]["veo-3.1"]
        operation = "veo-3.1"
    elif provider == "runway":
        unit_price = PRICING["runway"]["gen-3-alpha"]
        operation = "gen-3-alpha"
    elif provider == "placeholder":
        unit_price = 0.0
        operation = "placeholder"
    else:
        raise ValidationError(f"Unknown video provider: {provider}. Available: {list(VIDEO_PROVIDERS)}")

    total_seconds = duration_seconds * animation_count
    return CostEstimate(
        provider=provider,
        operation=operation,
        units=total_seconds,
        unit_price=unit_price,
        estimated_cost=_money(total_seconds * unit_price),
    )


def estimate_rigging_cost(provider: str, count: int = 1) -> CostEstimate:
    if provider == "tripo":
        unit_price = _money(PRICING["tripo"]["image-to-3d"] + PRICING["tripo"]["rigging"])
        operation = "tripo-full"
    elif provider == "placeholder":
        unit_price = 0.0
        operation = "placeholder"
    else:
        raise ValidationError(f"Unknown rigging provider: {provider}. Available: {list(RIGGING_PROVIDERS)}")

    return CostEstimate(
        provider=provider,
        operation=operation,
        units=count,
        unit_price=unit_price,
        estimated_cost=_money(count * unit_price),
    )


# ── Pipeline / batch ─────────────────────────────────────────────────────────

def estimate_pipeline_cost(options: PipelineEstimateOptions) -> PipelineCostEstimate:
    image = estimate_image_cost(options.image_provider, options.image_count, options.image_quality)
    video = estimate_video_cost(options.video_provider, options.animation_duration, options.animation_count)
    rigging = estimate_rigging_cost(options.rigging_provider, options.rigging_count)

    return PipelineCostEstimate(
        image_generation=image,
        video_animation=video,
        rigging_3d=rigging,
        total=_money(image.estimated_cost + video.estimated_cost + rigging.estimated_cost),
    )


def estimate_batch_cost(character_count: int, options: PipelineEstimateOptions) -> BatchCostEstimate:
    if character_count < 0:
        raise ValidationError(f"character_count must be >= 0, got {character_count}")
    per_character = estimate_pipeline_cost(options)
    return BatchCostEstimate(
        per_character=per_character,
        character_count=character_count,
        total=_money(per_character.total * character_count),
    )


def format_cost(amount: float, currency: str = CURRENCY) -> str:
    if currency == "USD":
        return f"${amount:.2f}"
    return f"{amount:.2f} {currency}"


def options_for_run(
    animation_count: int,
    image_provider: str = "openai",
    video_provider: str = "veo",
    rigging_provider: str = "tripo",
    skip_animation: bool = False,
    skip_rigging: bool = False,
    animation_duration: Optional[float] = None,
) -> PipelineEstimateOptions:
    """Estimate options for a planned run, zeroing out skipped stages."""
    return PipelineEstimateOptions(
        image_provider=image_provider,
        video_provider=video_provider,
        rigging_provider=rigging_provider,
        animation_count=0 if skip_animation else animation_count,
        animation_duration=animation_duration if animation_duration is not None else DEFAULT_ANIMATION_SECONDS,
        rigging_count=0 if skip_rigging else 1,
    )
