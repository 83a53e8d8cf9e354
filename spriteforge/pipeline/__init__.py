"""
Character Generation Pipeline

Orchestration for:
  Single runs — Sprite → Animations → Mesh + Rig → Three.js export
  Batches     — Many characters in concurrency-bounded chunks, one report
"""

from .orchestrator import CharacterGenerationService
from .batch import BatchCoordinator
from .routes import pipeline_router, batch_router
from .models import RunStatus, PipelineRun, BatchReport

__all__ = [
    "CharacterGenerationService",
    "BatchCoordinator",
    "pipeline_router",
    "batch_router",
    "RunStatus",
    "PipelineRun",
    "BatchReport",
]
