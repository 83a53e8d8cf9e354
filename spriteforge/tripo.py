"""
Stage 3: 3D model + rig — Tripo3D task API.

Two dependent tasks, each following the same protocol:
  POST /task            → { data: { task_id } }          (submit)
  GET  /task/{task_id}  → { data: { status, progress, output: { model } } }  (poll)
  GET  output.model     → .glb bytes                      (fetch)

  1. image_to_model  → model/base.glb
  2. rig (original_model_task_id = task 1) → model/rigged.glb

Each task moves SUBMITTED → POLLING → SUCCEEDED | FAILED. Polling is bounded
(TRIPO_MAX_POLL_ATTEMPTS × TRIPO_POLL_INTERVAL); running out raises
TimeoutExceeded.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx

from . import config
from .errors import ProviderError, TimeoutExceeded
from .http_client import download, require_key, send_json
from .models import SkeletonType, Stage, StageResult
from .storage import model_dir, require_file, write_artifact

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

TRIPO_API_BASE = "https://api.tripo3d.ai/v2/openapi"
TRIPO_MODEL_VERSION = "v2.5-20250117"

BONE_COUNTS = {
    "biped": 25,
    "quadruped": 32,
    "custom": 20,
}

# Tripo has no generic rig; custom skeletons are rigged as biped
RIG_TYPES = {
    "biped": "biped",
    "quadruped": "quadruped",
    "custom": "biped",
}


class TaskState(str, Enum):
    SUBMITTED = "SUBMITTED"
    POLLING = "POLLING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass
class TripoTask:
    task_id: str
    kind: str
    state: TaskState = TaskState.SUBMITTED
    progress: int = 0
    output_url: Optional[str] = None
    polls: int = 0


def _parse_progress(value) -> int:
    """Progress is informational; accept 45, "45", 45.5 or "45.5", else 0."""
    try:
        return int(float(value or 0))
    except (TypeError, ValueError):
        return 0


class TripoClient:
    name = "tripo"
    env_var = "TRIPO_API_KEY"

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        poll_interval: float = config.TRIPO_POLL_INTERVAL,
        max_poll_attempts: int = config.TRIPO_MAX_POLL_ATTEMPTS,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self._transport = transport
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self._sleep = sleep or asyncio.sleep

    # ── Protocol steps ───────────────────────────────────────────────────

    async def submit(self, payload: dict, api_key: str) -> TripoTask:
        data = await send_json(
            self.name,
            "POST",
            f"{TRIPO_API_BASE}/task",
            transport=self._transport,
            headers={"Authorization": f"Bearer {api_key}"},
            json=payload,
        )
        task_id = (data.get("data") or {}).get("task_id")
        if not task_id:
            raise ProviderError(self.name, f"Submit returned no task_id: {data}")

        logger.info(f"[Rigging] Created {payload['type']} task: {task_id}")
        return TripoTask(task_id=task_id, kind=payload["type"])

    async def poll(self, task: TripoTask, api_key: str) -> TripoTask:
        """Poll until the task reaches a terminal state."""
        task.state = TaskState.POLLING

        for attempt in range(self.max_poll_attempts):
            task.polls = attempt + 1
            data = await send_json(
                self.name,
                "GET",
                f"{TRIPO_API_BASE}/task/{task.task_id}",
                transport=self._transport,
                headers={"Authorization": f"Bearer {api_key}"},
            )
            record = data.get("data") or {}
            status = record.get("status", "")
            task.progress = _parse_progress(record.get("progress"))

            if status == "success":
                output_url = (record.get("output") or {}).get("model")
                if not output_url:
                    task.state = TaskState.FAILED
                    raise ProviderError(self.name, f"No model output for task {task.task_id}")
                task.state = TaskState.SUCCEEDED
                task.output_url = output_url
                return task

            if status in ("failed", "cancelled", "banned", "expired"):
                task.state = TaskState.FAILED
                raise ProviderError(self.name, f"Task {task.task_id} {status}")

            logger.info(f"[Rigging] Task {task.task_id}: {status or 'unknown'} ({task.progress}%)")
            await self._sleep(self.poll_interval)

        raise TimeoutExceeded(
            self.name,
            f"Task {task.task_id} timed out after {self.max_poll_attempts} polls",
        )

    async def fetch(self, task: TripoTask, destination: Path) -> Path:
        content = await download(self.name, task.output_url, transport=self._transport, timeout=120)
        return write_artifact(destination.parent, destination.name, content)

    # ── Stage entry point ────────────────────────────────────────────────

    async def generate(self, sprite_path: str, skeleton: SkeletonType, output_dir: str) -> StageResult:
        """
        Convert the sprite to a textured mesh, then rig it.

        Returns:
            StageResult whose artifact is model/rigged.glb; metadata carries
            the base model path, skeleton and bone count.
        """
        sprite = require_file(sprite_path, "Sprite image")
        api_key = require_key(self.name, self.env_var)
        skeleton_type = SkeletonType(skeleton).value
        target_dir = model_dir(output_dir)

        logger.info(f"[Rigging] Converting {sprite} to 3D model (skeleton={skeleton_type})")

        model_task = await self.submit(
            {
                "type": "image_to_model",
                "file": {"type": "png", "data": base64.b64encode(sprite.read_bytes()).decode("utf-8")},
                "model_version": TRIPO_MODEL_VERSION,
                "face_limit": 10000,
                "texture": True,
                "pbr": True,
            },
            api_key,
        )
        await self.poll(model_task, api_key)
        base_path = await self.fetch(model_task, target_dir / "base.glb")
        logger.info(f"[Rigging] Downloaded base model to {base_path}")

        rig_task = await self.submit(
            {
                "type": "rig",
                "original_model_task_id": model_task.task_id,
                "rig_type": RIG_TYPES[skeleton_type],
            },
            api_key,
        )
        await self.poll(rig_task, api_key)
        rigged_path = await self.fetch(rig_task, target_dir / "rigged.glb")
        logger.info(f"[Rigging] Downloaded rigged model to {rigged_path}")

        return StageResult(
            stage=Stage.RIGGING,
            artifact=str(rigged_path),
            provider=self.name,
            metadata={
                "base_model": str(base_path),
                "skeleton": skeleton_type,
                "bone_count": BONE_COUNTS[skeleton_type],
                "model_task_id": model_task.task_id,
                "rig_task_id": rig_task.task_id,
            },
        )
