"""Tests for the Tripo submit → poll → fetch protocol."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from spriteforge.errors import CredentialMissing, ProviderError, TimeoutExceeded
from spriteforge.models import SkeletonType, Stage
from spriteforge.tripo import TaskState, TripoClient, TripoTask


class FakeTripoServer:
    """Routes Tripo API calls; each task reports `running` for a few polls first."""

    def __init__(self, polls_before_success=1, final_status="success"):
        self.polls_before_success = polls_before_success
        self.final_status = final_status
        self.submitted = []
        self.polls = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "cdn.tripo.test":
            return httpx.Response(200, content=f"glTF:{request.url.path}".encode())

        path = request.url.path
        if request.method == "POST" and path.endswith("/task"):
            payload = json.loads(request.content)
            self.submitted.append(payload)
            task_id = "model-1" if payload["type"] == "image_to_model" else "rig-1"
            return httpx.Response(200, json={"code": 0, "data": {"task_id": task_id}})

        task_id = path.rsplit("/", 1)[-1]
        count = self.polls[task_id] = self.polls.get(task_id, 0) + 1
        if count <= self.polls_before_success:
            return httpx.Response(200, json={"data": {"status": "running", "progress": 40}})
        record = {"status": self.final_status, "progress": 100}
        if self.final_status == "success":
            record["output"] = {"model": f"https://cdn.tripo.test/{task_id}.glb"}
        return httpx.Response(200, json={"data": record})


@pytest.fixture
def sprite(tmp_path):
    path = tmp_path / "sprite.png"
    path.write_bytes(b"\x89PNG fake")
    return path


@pytest.fixture(autouse=True)
def _tripo_key(monkeypatch):
    monkeypatch.setenv("TRIPO_API_KEY", "tsk_test")


def _client(server, **kwargs):
    kwargs.setdefault("sleep", AsyncMock())
    return TripoClient(transport=httpx.MockTransport(server), poll_interval=5, **kwargs)


class TestTripoClient:
    async def test_generate_model_then_rig(self, tmp_path, sprite):
        server = FakeTripoServer(polls_before_success=2)
        sleep = AsyncMock()
        result = await _client(server, sleep=sleep).generate(str(sprite), SkeletonType.QUADRUPED, str(tmp_path))

        assert result.stage == Stage.RIGGING
        assert result.artifact == str(tmp_path / "model" / "rigged.glb")
        assert (tmp_path / "model" / "base.glb").read_bytes() == b"glTF:/model-1.glb"
        assert (tmp_path / "model" / "rigged.glb").read_bytes() == b"glTF:/rig-1.glb"
        assert result.metadata["bone_count"] == 32
        assert result.metadata["skeleton"] == "quadruped"

        assert [p["type"] for p in server.submitted] == ["image_to_model", "rig"]
        assert server.submitted[1]["original_model_task_id"] == "model-1"
        assert server.submitted[1]["rig_type"] == "quadruped"
        # two "running" polls per task, each followed by one poll_interval sleep
        assert sleep.await_count == 4
        sleep.assert_awaited_with(5)

    async def test_custom_skeleton_rigged_as_biped(self, tmp_path, sprite):
        server = FakeTripoServer(polls_before_success=0)
        result = await _client(server).generate(str(sprite), "custom", str(tmp_path))
        assert server.submitted[1]["rig_type"] == "biped"
        assert result.metadata["bone_count"] == 20

    async def test_failed_task(self, tmp_path, sprite):
        server = FakeTripoServer(polls_before_success=0, final_status="failed")
        with pytest.raises(ProviderError, match="failed"):
            await _client(server).generate(str(sprite), "biped", str(tmp_path))
        assert not (tmp_path / "model" / "base.glb").exists()

    async def test_poll_exhaustion_times_out(self, tmp_path, sprite):
        server = FakeTripoServer(polls_before_success=100)
        sleep = AsyncMock()
        client = _client(server, sleep=sleep, max_poll_attempts=3)
        with pytest.raises(TimeoutExceeded):
            await client.generate(str(sprite), "biped", str(tmp_path))
        assert server.polls["model-1"] == 3
        assert sleep.await_count == 3

    async def test_missing_key(self, tmp_path, sprite, monkeypatch):
        monkeypatch.delenv("TRIPO_API_KEY")
        with pytest.raises(CredentialMissing):
            await _client(FakeTripoServer()).generate(str(sprite), "biped", str(tmp_path))


class TestPollStateMachine:
    async def test_task_transitions_to_succeeded(self):
        client = _client(FakeTripoServer(polls_before_success=1))
        task = TripoTask(task_id="model-1", kind="image_to_model")
        assert task.state is TaskState.SUBMITTED

        await client.poll(task, "tsk_test")
        assert task.state is TaskState.SUCCEEDED
        assert task.polls == 2
        assert task.output_url == "https://cdn.tripo.test/model-1.glb"

    async def test_task_transitions_to_failed(self):
        client = _client(FakeTripoServer(polls_before_success=0, final_status="cancelled"))
        task = TripoTask(task_id="model-1", kind="image_to_model")
        with pytest.raises(ProviderError):
            await client.poll(task, "tsk_test")
        assert task.state is TaskState.FAILED

    async def test_submit_without_task_id(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"code": 2000, "data": {}}))
        client = TripoClient(transport=transport)
        with pytest.raises(ProviderError, match="no task_id"):
            await client.submit({"type": "image_to_model"}, "tsk_test")

    @pytest.mark.parametrize("progress, expected", [("45.5", 45), (72.9, 72), ("n/a", 0), (None, 0)])
    async def test_odd_progress_values_do_not_break_polling(self, progress, expected):
        responses = iter([
            {"data": {"status": "running", "progress": progress}},
            {"data": {"status": "success", "progress": progress, "output": {"model": "https://cdn.tripo.test/m.glb"}}},
        ])
        client = _client(lambda r: httpx.Response(200, json=next(responses)))
        task = TripoTask(task_id="model-1", kind="image_to_model")

        await client.poll(task, "tsk_test")
        assert task.state is TaskState.SUCCEEDED
        assert task.progress == expected
