"""
Run metadata and batch report persistence.

Each run writes `<output_dir>/metadata.json` once it reaches a terminal
state; each batch writes `<batch_output_dir>/batch-report.json`.
"""

import logging
from pathlib import Path
from typing import Union

from ..storage import BATCH_REPORT_FILENAME, METADATA_FILENAME, write_artifact
from .models import BatchReport, PipelineRun

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def save_run(run: PipelineRun) -> Path:
    path = write_artifact(run.spec.output_dir, METADATA_FILENAME, run.model_dump_json(indent=2))
    logger.info(f"[{run.run_id}] Metadata saved to {path}")
    return path


def load_run(path: PathLike) -> PipelineRun:
    """Load a run from a metadata file or from the run's output directory."""
    path = Path(path)
    if path.is_dir():
        path = path / METADATA_FILENAME
    return PipelineRun.model_validate_json(path.read_text(encoding="utf-8"))


def save_report(report: BatchReport, output_dir: PathLike) -> Path:
    path = write_artifact(output_dir, BATCH_REPORT_FILENAME, report.model_dump_json(indent=2))
    logger.info(f"Batch report saved to {path}")
    return path


def load_report(path: PathLike) -> BatchReport:
    path = Path(path)
    if path.is_dir():
        path = path / BATCH_REPORT_FILENAME
    return BatchReport.model_validate_json(path.read_text(encoding="utf-8"))
