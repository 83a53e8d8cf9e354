"""
FastAPI routes for character generation.

Pipeline Endpoints:
  POST /pipeline/run          — Start a run in the background
  GET  /pipeline/status/{id}  — Run status (404 if unknown)
  POST /pipeline/estimate     — Cost estimate for a planned run
  GET  /pipeline/rate-limits  — Current window usage per provider

Batch Endpoints:
  POST /batch/run             — Run a batch config and return the report
  POST /batch/estimate        — Cost estimate for a batch config
  GET  /batch/template        — Example batch config

The service and rate limiter live on app.state (see main.create_app).
"""

import logging
from pathlib import Path

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request

from .. import config
from ..cost import PipelineEstimateOptions, estimate_pipeline_cost, format_cost, options_for_run
from ..errors import PipelineFailed, ValidationError
from ..models import GenerationSpec
from ..storage import sanitize_name
from .batch import BatchCoordinator, create_batch_config_template, estimate_batch_config
from .models import BatchConfig, PipelineRunRequest, PipelineStatusResponse, new_run_id

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Pipeline Router
# ═════════════════════════════════════════════════════════════════════════════

pipeline_router = APIRouter(prefix="/pipeline", tags=["pipeline"])


@pipeline_router.post("/run", response_model=PipelineStatusResponse)
async def run_pipeline(body: PipelineRunRequest, request: Request, background_tasks: BackgroundTasks):
    """Start the full character pipeline (async); the response carries the cost estimate."""
    service = request.app.state.service
    run_id = new_run_id()
    name = sanitize_name(body.name or body.prompt)

    try:
        spec = GenerationSpec(
            prompt=body.prompt,
            style=body.style,
            animations=tuple(body.animations),
            skeleton=body.skeleton,
            resolution=body.resolution,
            name=name,
            # run_id suffix: one directory per run
            output_dir=str(Path(config.OUTPUT_DIR) / f"{name}_{run_id}"),
        )
        cost = estimate_pipeline_cost(options_for_run(
            len(spec.animations),
            image_provider=service.providers.image,
            video_provider=service.providers.video,
            rigging_provider=service.providers.rigging,
            skip_animation=service.skip_animation,
            skip_rigging=service.skip_rigging,
        ))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    service.start(spec, run_id)
    background_tasks.add_task(service.run_safely, spec, run_id)

    return PipelineStatusResponse(
        run_id=run_id,
        status="PENDING",
        current_step="Pipeline started — generating sprite...",
        progress_pct=0,
        estimate=cost,
        formatted_estimate=format_cost(cost.total),
    )


@pipeline_router.get("/status/{run_id}", response_model=PipelineStatusResponse)
async def get_pipeline_status(run_id: str, request: Request):
    status = request.app.state.service.get_status(run_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return status


@pipeline_router.post("/estimate")
async def estimate(options: PipelineEstimateOptions):
    try:
        result = estimate_pipeline_cost(options)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {**result.model_dump(), "formatted_total": format_cost(result.total)}


@pipeline_router.get("/rate-limits")
async def rate_limits(request: Request):
    limiter = request.app.state.rate_limiter
    return [status.model_dump() for status in limiter.get_all_status()]


# ═════════════════════════════════════════════════════════════════════════════
# Batch Router
# ═════════════════════════════════════════════════════════════════════════════

batch_router = APIRouter(prefix="/batch", tags=["batch"])


@batch_router.post("/run")
async def run_batch(batch: BatchConfig, request: Request):
    """
    Run every character in the config and return the batch report.

    Errors:
      - 400: Invalid config (unknown provider, bad options)
      - 500: A character failed with continueOnError disabled
    """
    coordinator = BatchCoordinator(
        request.app.state.rate_limiter,
        request.app.state.service.retry_policy,
    )
    try:
        report = await coordinator.run(batch)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PipelineFailed as e:
        raise HTTPException(status_code=500, detail=f"Batch aborted: {e}")
    except Exception as e:
        logger.error(f"Batch failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    return report


@batch_router.post("/estimate")
async def estimate_batch(batch: BatchConfig):
    try:
        result = estimate_batch_config(batch)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {**result.model_dump(), "formatted_total": format_cost(result.total)}


@batch_router.get("/template")
async def batch_template():
    return create_batch_config_template().model_dump(mode="json", by_alias=True)
