"""
BatchCoordinator — runs many characters through the pipeline.

Characters are processed in chunks of `options.concurrency`: chunks run one
after another, characters inside a chunk run concurrently. Every character
shares the coordinator's RateLimiter, so provider quotas hold across the
whole batch.
"""

import json
import time
import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..cost import BatchCostEstimate, estimate_batch_cost, format_cost, options_for_run
from ..errors import PipelineFailed, ValidationError
from ..models import AnimationType, CharacterStyle, GenerationSpec, SkeletonType
from ..rate_limiter import RateLimiter
from ..retry import RetryPolicy
from ..storage import ensure_dir, require_file, sanitize_name
from .metadata import save_report
from .models import (
    BatchCharacterConfig,
    BatchConfig,
    BatchDefaults,
    BatchItemResult,
    BatchOptions,
    BatchReport,
    ProviderSelection,
)
from .orchestrator import CharacterGenerationService

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[ProviderSelection, BatchOptions], CharacterGenerationService]


# ── Helpers ──────────────────────────────────────────────────────────────────

def chunk_list(items: list, size: int) -> list[list]:
    if size < 1:
        raise ValidationError(f"chunk size must be >= 1, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


def unique_names(names: list[str]) -> list[str]:
    """Suffix repeated names with _2, _3... in input order."""
    used: set[str] = set()
    result = []
    for name in names:
        candidate, n = name, 2
        while candidate in used:
            candidate = f"{name}_{n}"
            n += 1
        used.add(candidate)
        result.append(candidate)
    return result


def build_spec(character: BatchCharacterConfig, defaults: BatchDefaults, name: str, output_dir: str) -> GenerationSpec:
    return GenerationSpec(
        prompt=character.prompt,
        name=name,
        style=character.style or defaults.style,
        animations=tuple(character.animations or defaults.animations),
        skeleton=character.skeleton or defaults.skeleton,
        output_dir=output_dir,
    )


def estimate_batch_config(config: BatchConfig) -> BatchCostEstimate:
    """
    Pre-flight cost for a whole batch. Every character is priced with the
    longest animation list in the batch, so mixed configs get an upper bound.
    """
    counts = [len(set(c.animations or config.defaults.animations)) for c in config.characters]
    options = options_for_run(
        max(counts, default=0),
        image_provider=config.providers.image,
        video_provider=config.providers.video,
        rigging_provider=config.providers.rigging,
        skip_animation=config.options.skip_animation,
        skip_rigging=config.options.skip_rigging,
    )
    return estimate_batch_cost(len(config.characters), options)


# ── Config Loading ───────────────────────────────────────────────────────────

def validate_batch_config(data) -> BatchConfig:
    if not isinstance(data, dict):
        raise ValidationError("Batch config must be a JSON object")
    try:
        return BatchConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid batch config: {e}") from e


def load_batch_config(path: Union[str, Path]) -> BatchConfig:
    path = require_file(path, "Batch config")
    ext = path.suffix.lower()
    if ext in (".yaml", ".yml"):
        raise ValidationError("YAML config not yet supported. Use JSON format.")
    if ext != ".json":
        raise ValidationError(f"Unsupported config format: {ext or path.name}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Batch config is not valid JSON: {e}") from e
    return validate_batch_config(data)


def create_batch_config_template() -> BatchConfig:
    return BatchConfig(
        characters=[
            BatchCharacterConfig(
                name="knight",
                prompt="cute pixel art knight with sword and shield",
                style=CharacterStyle.PIXEL,
                animations=[AnimationType.IDLE, AnimationType.WALK, AnimationType.ATTACK],
                skeleton=SkeletonType.BIPED,
            ),
            BatchCharacterConfig(
                name="wizard",
                prompt="anime wizard with magical staff",
                style=CharacterStyle.ANIME,
                animations=[AnimationType.IDLE, AnimationType.WALK],
                skeleton=SkeletonType.BIPED,
            ),
            BatchCharacterConfig(
                name="dragon",
                prompt="cute pixel dragon breathing fire",
                style=CharacterStyle.PIXEL,
                animations=[AnimationType.IDLE, AnimationType.WALK],
                skeleton=SkeletonType.QUADRUPED,
            ),
        ],
        output_dir="./output/batch",
        defaults=BatchDefaults(),
        providers=ProviderSelection(image="openai", video="veo", rigging="tripo"),
        options=BatchOptions(concurrency=2, continue_on_error=True),
    )


# ── Coordinator ──────────────────────────────────────────────────────────────

class BatchCoordinator:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        service_factory: Optional[ServiceFactory] = None,
    ):
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self._service_factory = service_factory or self._default_service

    def _default_service(self, providers: ProviderSelection, options: BatchOptions) -> CharacterGenerationService:
        return CharacterGenerationService(
            self.rate_limiter,
            self.retry_policy,
            providers=providers,
            skip_animation=options.skip_animation,
            skip_rigging=options.skip_rigging,
            skip_export=options.skip_export,
        )

    async def _run_item(
        self,
        service: CharacterGenerationService,
        spec: GenerationSpec,
    ) -> tuple[BatchItemResult, Optional[Exception]]:
        started = time.monotonic()
        logger.info(f"[Batch] Processing: {spec.name}")
        try:
            run = await service.run(spec)
        except Exception as e:
            logger.error(f"[Batch] ✗ Failed: {spec.name} - {e}")
            item = BatchItemResult(
                name=spec.name,
                success=False,
                result=e.run if isinstance(e, PipelineFailed) else None,
                error=str(e),
                duration_seconds=round(time.monotonic() - started, 3),
            )
            return item, e

        logger.info(f"[Batch] ✓ Completed: {spec.name}")
        item = BatchItemResult(
            name=spec.name,
            success=True,
            result=run,
            duration_seconds=round(time.monotonic() - started, 3),
        )
        return item, None

    async def run(self, config: BatchConfig) -> BatchReport:
        """
        Generate every character in `config` and persist batch-report.json.

        Raises:
            The first item error when options.continue_on_error is false,
            after the report for the processed chunks has been saved.
        """
        started = time.monotonic()
        options = config.options
        output_dir = ensure_dir(config.output_dir)

        logger.info(f"[Batch] Starting batch generation of {len(config.characters)} characters")
        logger.info(f"[Batch] Output directory: {output_dir}")
        logger.info(f"[Batch] Concurrency: {options.concurrency}")

        names = unique_names([sanitize_name(c.name or c.prompt) for c in config.characters])
        specs = [
            build_spec(character, config.defaults, name, str(output_dir / name))
            for character, name in zip(config.characters, names)
        ]

        service = self._service_factory(config.providers, options)
        cost = estimate_batch_config(config)
        logger.info(f"[Batch] Estimated cost: {format_cost(cost.total)} for {cost.character_count} characters")
        report = BatchReport(total=len(specs))

        for chunk in chunk_list(specs, options.concurrency):
            outcomes = await asyncio.gather(*(self._run_item(service, spec) for spec in chunk))

            first_error = None
            for item, error in outcomes:
                report.append(item)
                if error is not None and first_error is None:
                    first_error = error

            if first_error is not None and not options.continue_on_error:
                report.total_duration_seconds = round(time.monotonic() - started, 3)
                save_report(report, output_dir)
                logger.error(f"[Batch] Aborting after failure ({report.failed} failed)")
                raise first_error

        report.total_duration_seconds = round(time.monotonic() - started, 3)
        save_report(report, output_dir)

        logger.info(f"[Batch] Total: {report.total}, Success: {report.successful}, Failed: {report.failed}")
        logger.info(f"[Batch] Total time: {report.total_duration_seconds:.1f}s")
        return report
