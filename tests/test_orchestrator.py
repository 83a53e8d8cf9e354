"""Tests for the CharacterGenerationService stage state machine."""

from pathlib import Path

import pytest

from spriteforge import metrics
from spriteforge.errors import CredentialMissing, PipelineFailed, ProviderError, ValidationError
from spriteforge.models import AnimationType, GenerationSpec, Stage
from spriteforge.pipeline.metadata import load_run
from spriteforge.pipeline.models import ProviderSelection, RunStatus
from spriteforge.pipeline.orchestrator import CharacterGenerationService
from spriteforge.rate_limiter import RateLimiter
from spriteforge.retry import FailurePolicy

from fakes import FakeImageClient, FakeRiggingClient, FakeVideoClient


@pytest.fixture
def spec(tmp_path):
    return GenerationSpec(
        prompt="cute pixel art knight",
        animations=(AnimationType.IDLE, AnimationType.WALK, AnimationType.ATTACK),
        output_dir=str(tmp_path / "knight"),
    )


class TestHappyPath:
    async def test_all_stages_complete(self, make_service, spec):
        service = make_service()
        run = await service.run(spec)

        assert run.status is RunStatus.EXPORT_DONE
        assert run.character_name == "cute_pixel_art_knight"
        assert Path(run.image.artifact).name == "sprite.png"
        assert [v.metadata["animation"] for v in run.videos] == ["idle", "walk", "attack"]
        assert run.rigging.provider == "tripo"
        assert run.export.provider == "threejs"
        assert Path(run.export.metadata["preview"]).exists()
        assert run.export.metadata["animations"] == ["idle", "walk", "attack"]
        assert run.error is None

    async def test_metadata_written_once_and_loadable(self, make_service, spec):
        run = await make_service().run(spec)
        loaded = load_run(spec.output_dir)
        assert loaded.run_id == run.run_id
        assert loaded.status is RunStatus.EXPORT_DONE
        assert [v.artifact for v in loaded.videos] == [v.artifact for v in run.videos]
        assert loaded.config["providers"] == {"image": "openai", "video": "veo", "rigging": "tripo"}
        assert loaded.config["retry"] == {"max_attempts": 3, "base_delay": 2.0}

    async def test_status_table_tracks_terminal_state(self, make_service, spec):
        service = make_service()
        run = await service.run(spec, run_id="abc123")
        status = service.get_status("abc123")
        assert status.status is RunStatus.EXPORT_DONE
        assert status.progress_pct == 100
        assert status.result.run_id == run.run_id == "abc123"

    async def test_start_registers_pending(self, make_service, spec):
        service = make_service()
        run_id = service.start(spec)
        assert service.get_status(run_id).status is RunStatus.PENDING
        assert service.get_status("missing") is None

    async def test_transient_image_failure_is_retried(self, make_service, spec, retry_policy):
        image = FakeImageClient(fail_times=2)
        run = await make_service(image=image).run(spec)
        assert run.status is RunStatus.EXPORT_DONE
        assert image.calls == 3
        assert retry_policy._sleep.await_count == 2

    async def test_metrics_recorded(self, make_service, spec):
        await make_service().run(spec)
        counters = metrics.get_snapshot()["counters"]
        assert counters["runs.completed"] == 1
        assert counters["stages.video"] == 3
        assert counters["stages.image"] == 1

    async def test_exhausted_retries_with_placeholder_are_counted_as_errors(self, make_service, spec):
        rigging = FakeRiggingClient(error=ProviderError("tripo", "task failed"))
        run = await make_service(rigging=rigging).run(spec)
        assert run.rigging.is_placeholder

        snap = metrics.get_snapshot()
        assert snap["counters"]["errors.rigging"] == 1
        assert snap["error_patterns"] == {"rigging:ProviderError": 1}
        assert snap["recent_errors"][-1]["run_id"] == run.run_id


class TestImageFailure:
    async def test_image_failure_fails_run(self, make_service, spec):
        """An image-stage failure ends the run in FAILED with no downstream results."""
        image = FakeImageClient(error=ProviderError("openai", "down", 503))
        video = FakeVideoClient()
        rigging = FakeRiggingClient()

        with pytest.raises(PipelineFailed) as exc_info:
            await make_service(image=image, video=video, rigging=rigging).run(spec)

        run = exc_info.value.run
        assert run.status is RunStatus.FAILED
        assert run.videos == []
        assert run.rigging is None
        assert run.export is None
        assert "down" in run.error
        assert image.calls == 3
        assert video.calls == []
        assert rigging.calls == 0

        loaded = load_run(spec.output_dir)
        assert loaded.status is RunStatus.FAILED
        assert loaded.duration_seconds >= 0

    async def test_missing_image_credentials_fail_immediately(self, make_service, spec):
        image = FakeImageClient(error=CredentialMissing("openai", "OPENAI_API_KEY"))
        with pytest.raises(PipelineFailed) as exc_info:
            await make_service(image=image).run(spec)
        assert isinstance(exc_info.value.cause, CredentialMissing)
        assert image.calls == 1

    async def test_failed_run_visible_in_status(self, make_service, spec):
        service = make_service(image=FakeImageClient(error=ProviderError("openai", "down")))
        with pytest.raises(PipelineFailed) as exc_info:
            await service.run(spec)
        status = service.get_status(exc_info.value.run.run_id)
        assert status.status is RunStatus.FAILED
        assert status.error


class TestVideoStage:
    async def test_failed_animation_is_omitted(self, make_service, spec):
        """Fewer videos than requested, but the run still completes."""
        video = FakeVideoClient(failing=["walk"])
        run = await make_service(video=video).run(spec)

        assert run.status is RunStatus.EXPORT_DONE
        assert [v.metadata["animation"] for v in run.videos] == ["idle", "attack"]
        assert len(run.videos) < len(spec.animations)
        assert any("walk" in w for w in run.warnings)
        # three attempts for the failing clip, one each for the others
        assert video.calls.count(AnimationType.WALK) == 3

    async def test_all_animations_failing_still_completes(self, make_service, spec):
        video = FakeVideoClient(failing=["idle", "walk", "attack"])
        run = await make_service(video=video).run(spec)
        assert run.status is RunStatus.EXPORT_DONE
        assert run.videos == []
        assert run.export.metadata["animations"] == []

    async def test_placeholder_policy_substitutes_clip(self, make_service, spec):
        video = FakeVideoClient(failing=["walk"])
        service = make_service(video=video, failure_policies={Stage.VIDEO: FailurePolicy.SOFT_FAIL_WITH_PLACEHOLDER})
        run = await service.run(spec)

        walk = [v for v in run.videos if v.metadata["animation"] == "walk"][0]
        assert walk.is_placeholder
        assert Path(walk.artifact).read_text().startswith("PLACEHOLDER_VIDEO:walk:")
        assert len(run.videos) == 3

    async def test_hard_fail_video_fails_run(self, make_service, spec):
        video = FakeVideoClient(failing=["attack"])
        service = make_service(video=video, failure_policies={Stage.VIDEO: FailurePolicy.HARD_FAIL})
        with pytest.raises(PipelineFailed) as exc_info:
            await service.run(spec)
        assert exc_info.value.run.status is RunStatus.FAILED

    async def test_skip_animation(self, make_service, spec):
        video = FakeVideoClient()
        run = await make_service(video=video, skip_animation=True).run(spec)
        assert run.videos == []
        assert video.calls == []
        assert run.status is RunStatus.EXPORT_DONE


class TestRiggingStage:
    async def test_rigging_failure_uses_placeholder_model(self, make_service, spec):
        rigging = FakeRiggingClient(error=ProviderError("tripo", "task failed"))
        run = await make_service(rigging=rigging).run(spec)

        assert run.status is RunStatus.EXPORT_DONE
        assert run.rigging.is_placeholder
        assert run.rigging.metadata["bone_count"] == 0
        assert rigging.calls == 3
        assert run.export.metadata["placeholder_model"] is True

    async def test_rigging_credentials_missing_uses_placeholder(self, make_service, spec):
        rigging = FakeRiggingClient(error=CredentialMissing("tripo", "TRIPO_API_KEY"))
        run = await make_service(rigging=rigging).run(spec)
        assert run.rigging.is_placeholder
        assert rigging.calls == 1
        assert "TRIPO_API_KEY" in run.rigging.metadata["reason"]

    async def test_skip_rigging_leaves_empty_markers(self, make_service, spec):
        rigging = FakeRiggingClient()
        run = await make_service(rigging=rigging, skip_rigging=True).run(spec)
        assert rigging.calls == 0
        assert run.rigging.is_empty
        assert run.export.is_empty
        assert run.status is RunStatus.EXPORT_DONE

    async def test_hard_fail_override_fails_run(self, make_service, spec):
        rigging = FakeRiggingClient(error=ProviderError("tripo", "task failed"))
        service = make_service(rigging=rigging, failure_policies={Stage.RIGGING: FailurePolicy.HARD_FAIL})
        with pytest.raises(PipelineFailed):
            await service.run(spec)


class TestExportStage:
    async def test_skip_export(self, make_service, spec):
        run = await make_service(skip_export=True).run(spec)
        assert run.export.is_empty
        assert run.export.metadata["reason"] == "skipped by configuration"
        assert not (Path(spec.output_dir) / "preview.html").exists()

    async def test_export_failure_leaves_empty_marker(self, make_service, spec):
        class BrokenExporter:
            name = "threejs"

            async def generate(self, model, output_dir, animations):
                raise ValidationError("model unreadable")

        service = make_service()
        service._clients[Stage.EXPORT] = BrokenExporter()
        run = await service.run(spec)
        assert run.status is RunStatus.EXPORT_DONE
        assert run.export.is_empty
        assert "model unreadable" in run.export.metadata["reason"]


class TestRateLimiting:
    async def test_limiter_acquired_per_attempt(self, spec, retry_policy, clock):
        """A retried call takes a fresh admission, so it waits out the window."""
        limiter = RateLimiter(limits={"openai": 1}, window_seconds=60, clock=clock, sleep=clock.sleep)
        service = CharacterGenerationService(
            limiter,
            retry_policy,
            clients={
                Stage.IMAGE: FakeImageClient(fail_times=1),
                Stage.VIDEO: FakeVideoClient(),
                Stage.RIGGING: FakeRiggingClient(),
            },
        )
        run = await service.run(spec)
        assert run.status is RunStatus.EXPORT_DONE
        assert clock.sleeps == [60.0]

    async def test_veo_uses_google_bucket(self, make_service, spec):
        limiter = RateLimiter()
        await make_service(rate_limiter=limiter).run(spec)
        assert limiter.get_status("google").used == 3
        assert limiter.get_status("openai").used == 1
        assert limiter.get_status("tripo").used == 1


class TestConstruction:
    def test_unknown_provider_rejected(self):
        with pytest.raises(ValidationError):
            CharacterGenerationService(RateLimiter(), providers=ProviderSelection(video="sora"))

    def test_default_clients_from_provider_selection(self):
        service = CharacterGenerationService(
            RateLimiter(), providers=ProviderSelection(image="stability", video="runway", rigging="placeholder")
        )
        assert service._clients[Stage.IMAGE].name == "stability"
        assert service._clients[Stage.VIDEO].name == "runway"
        assert service._clients[Stage.RIGGING].name == "placeholder"
