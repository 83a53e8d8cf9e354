"""Tests for the error hierarchy."""

from spriteforge.errors import (
    CredentialMissing,
    PipelineFailed,
    ProviderError,
    SpriteForgeError,
    TimeoutExceeded,
    ValidationError,
)


class TestErrors:
    def test_credential_missing_names_env_var(self):
        err = CredentialMissing("openai", "OPENAI_API_KEY")
        assert err.provider == "openai"
        assert "OPENAI_API_KEY" in str(err)
        assert isinstance(err, SpriteForgeError)
        assert not isinstance(err, ProviderError)

    def test_provider_error_message_includes_status(self):
        err = ProviderError("runway", "quota exceeded", 429)
        assert err.status_code == 429
        assert str(err) == "runway API error (429): quota exceeded"

    def test_provider_error_without_status(self):
        assert str(ProviderError("veo", "no video")) == "veo API error: no video"

    def test_timeout_is_provider_error(self):
        """Timeouts go through the same retry path as other provider failures."""
        err = TimeoutExceeded("tripo", "timed out")
        assert isinstance(err, ProviderError)

    def test_validation_error_is_value_error(self):
        assert issubclass(ValidationError, ValueError)

    def test_pipeline_failed_carries_run(self):
        cause = ProviderError("openai", "down", 503)
        err = PipelineFailed(run="run-object", cause=cause)
        assert err.run == "run-object"
        assert err.cause is cause
        assert str(err) == str(cause)
