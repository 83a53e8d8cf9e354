"""
Typed failures raised across the generation pipeline.

  CredentialMissing — required API key absent; never retried
  ProviderError     — remote call failed (bad status, malformed body, task failed)
  TimeoutExceeded   — polling/admission budget exhausted; retried like ProviderError
  ValidationError   — malformed local input; surfaced immediately
  PipelineFailed    — a run reached FAILED; carries the persisted PipelineRun
"""

from typing import Optional


class SpriteForgeError(Exception):
    """Base class for all pipeline errors."""


class CredentialMissing(SpriteForgeError):
    def __init__(self, provider: str, env_var: str):
        self.provider = provider
        self.env_var = env_var
        super().__init__(f"{env_var} environment variable is required for {provider}")


class ProviderError(SpriteForgeError):
    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.message = message
        self.status_code = status_code
        prefix = f"{provider} API error"
        if status_code is not None:
            prefix += f" ({status_code})"
        super().__init__(f"{prefix}: {message}")


class TimeoutExceeded(ProviderError):
    """Polling attempts or rate-limit wait budget exhausted."""


class ValidationError(SpriteForgeError, ValueError):
    pass


class PipelineFailed(SpriteForgeError):
    def __init__(self, run, cause: Exception):
        self.run = run
        self.cause = cause
        super().__init__(str(cause))
