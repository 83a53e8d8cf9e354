"""
CharacterGenerationService — per-character stage coordinator.

Chains the four stages for one GenerationSpec:
  Stage 1: Sprite image (OpenAI / Stability)        — fatal on failure
  Stage 2: Animation videos, one per animation kind — concurrent, soft-fail
  Stage 3: Mesh + rig (Tripo)                       — placeholder on failure
  Stage 4: Three.js export                          — empty marker on failure

Every provider call goes through the shared RateLimiter and the RetryPolicy.
"""

import time
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .. import metrics
from ..errors import PipelineFailed
from ..models import GenerationSpec, Stage, StageResult
from ..placeholders import placeholder_model, placeholder_video
from ..provider_factory import ProviderFactory
from ..rate_limiter import RateLimiter
from ..retry import STAGE_FAILURE_POLICIES, FailurePolicy, RetryPolicy
from ..storage import ensure_dir, sanitize_name
from .metadata import save_run
from .models import (
    PipelineRun,
    PipelineStatusResponse,
    ProviderSelection,
    RunStatus,
    new_run_id,
)

logger = logging.getLogger(__name__)


class CharacterGenerationService:
    """
    Usage:
        limiter = RateLimiter()
        service = CharacterGenerationService(limiter)
        run = await service.run(GenerationSpec(prompt="a knight", output_dir="out/knight"))

    `clients` overrides the provider picked by name for a stage, keyed by
    Stage; anything exposing `name` and the stage's `generate` signature works.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        providers: Optional[ProviderSelection] = None,
        clients: Optional[dict] = None,
        skip_animation: bool = False,
        skip_rigging: bool = False,
        skip_export: bool = False,
        failure_policies: Optional[dict[Stage, FailurePolicy]] = None,
    ):
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.providers = providers or ProviderSelection()
        self.skip_animation = skip_animation
        self.skip_rigging = skip_rigging
        self.skip_export = skip_export
        self.failure_policies = dict(STAGE_FAILURE_POLICIES)
        self.failure_policies.update({Stage(k): FailurePolicy(v) for k, v in (failure_policies or {}).items()})

        overrides = {Stage(k): v for k, v in (clients or {}).items()}
        self._clients = {
            Stage.IMAGE: overrides.get(Stage.IMAGE) or ProviderFactory.get_provider(Stage.IMAGE, self.providers.image),
            Stage.VIDEO: overrides.get(Stage.VIDEO) or ProviderFactory.get_provider(Stage.VIDEO, self.providers.video),
            Stage.RIGGING: overrides.get(Stage.RIGGING) or ProviderFactory.get_provider(Stage.RIGGING, self.providers.rigging),
            Stage.EXPORT: overrides.get(Stage.EXPORT) or ProviderFactory.get_provider(Stage.EXPORT, "threejs"),
        }
        self._jobs: dict[str, PipelineStatusResponse] = {}

    # ── Status Tracking ──────────────────────────────────────────────────

    def get_status(self, run_id: str) -> Optional[PipelineStatusResponse]:
        return self._jobs.get(run_id)

    def _update_status(self, run: PipelineRun, step: str = "", progress: int = 0):
        terminal = run.is_terminal
        self._jobs[run.run_id] = PipelineStatusResponse(
            run_id=run.run_id,
            status=run.status,
            current_step=step,
            progress_pct=progress,
            result=run if terminal else None,
            error=run.error,
        )
        logger.info(f"[{run.run_id}] {run.status.value} → {step} ({progress}%)")

    def _run_config(self) -> dict:
        return {
            "providers": self.providers.model_dump(),
            "skip_animation": self.skip_animation,
            "skip_rigging": self.skip_rigging,
            "skip_export": self.skip_export,
            "retry": {
                "max_attempts": self.retry_policy.max_attempts,
                "base_delay": self.retry_policy.base_delay,
            },
            "failure_policies": {stage.value: policy.value for stage, policy in self.failure_policies.items()},
        }

    # ── Provider Calls ───────────────────────────────────────────────────

    async def _call_provider(
        self,
        run: PipelineRun,
        stage: Stage,
        call: Callable[[], Awaitable[StageResult]],
        label: str,
        placeholder: Optional[Callable[[Exception], StageResult]] = None,
    ) -> StageResult:
        """
        One stage call: limiter admission per attempt, retry per stage policy.

        Errors the retry policy does not absorb (credential, validation) still
        become a placeholder when the stage policy asks for one.
        """
        client = self._clients[stage]
        policy = self.failure_policies[stage]
        bucket = ProviderFactory.rate_bucket(client.name)

        async def attempt() -> StageResult:
            if bucket:
                await self.rate_limiter.acquire(bucket)
            return await call()

        def record_failure(e: Exception):
            metrics.inc_counter(f"errors.{stage.value}")
            metrics.record_error(stage.value, type(e).__name__, str(e), run.run_id)

        def substitute(e: Exception) -> StageResult:
            record_failure(e)
            return placeholder(e)

        metrics.inc_counter(f"stages.{stage.value}")
        started = time.monotonic()
        try:
            return await self.retry_policy.run(
                attempt,
                label=f"{run.run_id}:{label}",
                failure_policy=policy,
                placeholder=substitute if placeholder is not None else None,
            )
        except Exception as e:
            record_failure(e)
            if policy is FailurePolicy.SOFT_FAIL_WITH_PLACEHOLDER and placeholder is not None:
                logger.warning(f"[{run.run_id}] {label} failed ({type(e).__name__}), using placeholder")
                return placeholder(e)
            raise
        finally:
            metrics.record_latency(f"stages.{stage.value}", (time.monotonic() - started) * 1000)

    # ── Pipeline ─────────────────────────────────────────────────────────

    def start(self, spec: GenerationSpec, run_id: Optional[str] = None) -> str:
        """Register a pending run and return its id; pair with run_safely()."""
        run_id = run_id or new_run_id()
        self._jobs[run_id] = PipelineStatusResponse(
            run_id=run_id,
            status=RunStatus.PENDING,
            current_step="Queued",
        )
        return run_id

    async def run(self, spec: GenerationSpec, run_id: Optional[str] = None) -> PipelineRun:
        """
        Run all stages for one character.

        Returns:
            The finalized PipelineRun (status EXPORT_DONE).

        Raises:
            PipelineFailed: the image stage (or something unexpected) failed.
                The run carried by the exception is already persisted.
        """
        run = PipelineRun(
            run_id=run_id or new_run_id(),
            character_name=spec.name or sanitize_name(spec.prompt),
            spec=spec,
            config=self._run_config(),
        )
        started = time.monotonic()
        metrics.inc_counter("runs.started")

        try:
            ensure_dir(spec.output_dir)

            # ── Stage 1: Sprite ──────────────────────────────────────
            self._update_status(run, f"Generating sprite with {self._clients[Stage.IMAGE].name}...", 5)
            await self._run_image(run)
            self._update_status(run, "Sprite ready", 25)

            # ── Stage 2: Animations ──────────────────────────────────
            await self._run_videos(run)
            self._update_status(run, f"{len(run.videos)}/{len(spec.animations)} animations", 50)

            # ── Stage 3: Mesh + Rig ──────────────────────────────────
            await self._run_rigging(run)
            self._update_status(run, "Rigging finished", 75)

            # ── Stage 4: Export ──────────────────────────────────────
            await self._run_export(run)
            run.status = RunStatus.EXPORT_DONE

        except Exception as e:
            logger.error(f"Pipeline failed for run {run.run_id}: {e}", exc_info=True)
            run.status = RunStatus.FAILED
            run.error = str(e)
            self._finish(run, started, "Pipeline failed", 100)
            metrics.inc_counter("runs.failed")
            raise PipelineFailed(run, e) from e

        self._finish(run, started, "Pipeline complete!", 100)
        metrics.inc_counter("runs.completed")
        return run

    async def run_safely(self, spec: GenerationSpec, run_id: Optional[str] = None):
        """Background-task wrapper: failure is already recorded in the job table."""
        try:
            await self.run(spec, run_id)
        except PipelineFailed as e:
            logger.info(f"[{e.run.run_id}] Background run ended in FAILED")

    def _finish(self, run: PipelineRun, started: float, step: str, progress: int):
        run.finalize(time.monotonic() - started)
        save_run(run)
        self._update_status(run, step, progress)
        logger.info(f"[{run.run_id}] Finished {run.status.value} in {run.duration_seconds:.1f}s")

    # ── Stages ───────────────────────────────────────────────────────────

    async def _run_image(self, run: PipelineRun):
        spec = run.spec
        client = self._clients[Stage.IMAGE]
        result = await self._call_provider(
            run,
            Stage.IMAGE,
            lambda: client.generate(spec.prompt, spec.style, spec.output_dir, spec.resolution),
            label=f"image:{client.name}",
        )
        run.record_image(result)
        run.status = RunStatus.IMAGE_DONE

    async def _generate_video(self, run: PipelineRun, animation) -> StageResult:
        spec = run.spec
        client = self._clients[Stage.VIDEO]
        return await self._call_provider(
            run,
            Stage.VIDEO,
            lambda: client.generate(run.image.artifact, animation, spec.output_dir),
            label=f"video:{client.name}:{animation.value}",
            placeholder=lambda e: placeholder_video(animation, spec.output_dir, reason=str(e)),
        )

    async def _run_videos(self, run: PipelineRun):
        spec = run.spec
        if self.skip_animation or not spec.animations:
            logger.info(f"[{run.run_id}] Skipping animation stage")
            run.status = RunStatus.VIDEO_SKIPPED_OR_FAILED
            return

        self._update_status(
            run, f"Animating {len(spec.animations)} clips with {self._clients[Stage.VIDEO].name}...", 30
        )
        outcomes = await asyncio.gather(
            *(self._generate_video(run, animation) for animation in spec.animations),
            return_exceptions=True,
        )

        hard_fail = self.failure_policies[Stage.VIDEO] is FailurePolicy.HARD_FAIL
        for animation, outcome in zip(spec.animations, outcomes):
            if isinstance(outcome, Exception) and hard_fail:
                raise outcome
            if isinstance(outcome, Exception):
                logger.warning(f"[{run.run_id}] Animation {animation.value} dropped: {outcome}")
                run.warnings.append(f"video:{animation.value}: {outcome}")
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            run.add_video(outcome)

        real = [v for v in run.videos if not v.is_placeholder]
        run.status = RunStatus.VIDEO_DONE if real else RunStatus.VIDEO_SKIPPED_OR_FAILED

    async def _run_rigging(self, run: PipelineRun):
        spec = run.spec
        if self.skip_rigging:
            logger.info(f"[{run.run_id}] Skipping rigging stage")
            run.record_rigging(StageResult.empty(Stage.RIGGING, "skipped by configuration"))
            run.status = RunStatus.RIGGING_SKIPPED
            return

        client = self._clients[Stage.RIGGING]
        self._update_status(run, f"Building rigged model with {client.name}...", 55)
        try:
            result = await self._call_provider(
                run,
                Stage.RIGGING,
                lambda: client.generate(run.image.artifact, spec.skeleton, spec.output_dir),
                label=f"rigging:{client.name}",
                placeholder=lambda e: placeholder_model(spec.skeleton, spec.output_dir, reason=str(e)),
            )
        except Exception as e:
            if self.failure_policies[Stage.RIGGING] is FailurePolicy.HARD_FAIL:
                raise
            logger.warning(f"[{run.run_id}] Rigging dropped: {e}")
            run.warnings.append(f"rigging: {e}")
            run.record_rigging(StageResult.empty(Stage.RIGGING, str(e)))
            run.status = RunStatus.RIGGING_SKIPPED
            return

        run.record_rigging(result)
        run.status = RunStatus.RIGGING_DONE

    async def _run_export(self, run: PipelineRun):
        if self.skip_export:
            logger.info(f"[{run.run_id}] Skipping export stage")
            run.record_export(StageResult.empty(Stage.EXPORT, "skipped by configuration"))
            return
        if run.rigging is None or run.rigging.is_empty:
            run.record_export(StageResult.empty(Stage.EXPORT, "no model to export"))
            return

        client = self._clients[Stage.EXPORT]
        animations = [v.metadata.get("animation") for v in run.videos]
        self._update_status(run, "Packaging web export...", 90)
        try:
            result = await self._call_provider(
                run,
                Stage.EXPORT,
                lambda: client.generate(run.rigging, run.spec.output_dir, animations),
                label=f"export:{client.name}",
            )
        except Exception as e:
            if self.failure_policies[Stage.EXPORT] is FailurePolicy.HARD_FAIL:
                raise
            logger.warning(f"[{run.run_id}] Export failed: {e}")
            run.warnings.append(f"export: {e}")
            result = StageResult.empty(Stage.EXPORT, str(e))
        run.record_export(result)
