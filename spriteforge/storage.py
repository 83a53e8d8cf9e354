"""
Local file staging for pipeline artifacts.

Every character gets its own directory:
  {output_dir}/sprite.png
  {output_dir}/animations/{kind}.mp4
  {output_dir}/model/base.glb, rigged.glb
  {output_dir}/preview.html
  {output_dir}/metadata.json
"""

import re
import logging
from pathlib import Path
from typing import Union

from .errors import ValidationError

logger = logging.getLogger(__name__)

SPRITE_FILENAME = "sprite.png"
ANIMATIONS_DIR = "animations"
MODEL_DIR = "model"
PREVIEW_FILENAME = "preview.html"
METADATA_FILENAME = "metadata.json"
BATCH_REPORT_FILENAME = "batch-report.json"

MAX_NAME_LENGTH = 30

PathLike = Union[str, Path]


def ensure_dir(path: PathLike) -> Path:
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def write_artifact(directory: PathLike, filename: str, data: Union[bytes, str]) -> Path:
    """Write one artifact, creating parent directories as needed."""
    target = ensure_dir(directory) / filename
    if isinstance(data, str):
        target.write_text(data, encoding="utf-8")
    else:
        target.write_bytes(data)
    logger.info(f"Wrote {target} ({target.stat().st_size} bytes)")
    return target


def require_file(path: PathLike, label: str) -> Path:
    """Precondition check for a stage input artifact."""
    candidate = Path(path) if path else None
    if candidate is None or not candidate.is_file():
        raise ValidationError(f"{label} not found: {path!r}")
    return candidate


def animations_dir(output_dir: PathLike) -> Path:
    return Path(output_dir) / ANIMATIONS_DIR


def model_dir(output_dir: PathLike) -> Path:
    return Path(output_dir) / MODEL_DIR


def sanitize_name(prompt: str) -> str:
    """
    Derive a directory-safe character name from a free-text prompt:
    lowercase, runs of non [a-z0-9] collapsed to "_", truncated.
    """
    return re.sub(r"[^a-z0-9]+", "_", prompt.lower())[:MAX_NAME_LENGTH]
