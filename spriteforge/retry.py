"""
Bounded retry with exponential backoff around a single provider call.

Delay before attempt n+1 is base_delay * 2^(n-1): 2s, 4s, 8s... with the
default base. CredentialMissing and ValidationError are never retried.

What happens once attempts run out is decided per stage by FailurePolicy:
  HARD_FAIL                   — re-raise; the run fails
  SOFT_FAIL_SKIP              — re-raise; the coordinator drops the result
  SOFT_FAIL_WITH_PLACEHOLDER  — return a locally synthesized placeholder
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from . import config
from .errors import ProviderError, ValidationError
from .models import Stage, StageResult

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    HARD_FAIL = "hard_fail"
    SOFT_FAIL_SKIP = "soft_fail_skip"
    SOFT_FAIL_WITH_PLACEHOLDER = "soft_fail_with_placeholder"


# No sprite ⇒ nothing downstream can run, so only the image stage is fatal.
STAGE_FAILURE_POLICIES: dict[Stage, FailurePolicy] = {
    Stage.IMAGE: FailurePolicy.HARD_FAIL,
    Stage.VIDEO: FailurePolicy.SOFT_FAIL_SKIP,
    Stage.RIGGING: FailurePolicy.SOFT_FAIL_WITH_PLACEHOLDER,
    Stage.EXPORT: FailurePolicy.SOFT_FAIL_SKIP,
}

Placeholder = Callable[[Exception], StageResult]


class RetryPolicy:
    def __init__(
        self,
        max_attempts: int = config.RETRY_MAX_ATTEMPTS,
        base_delay: float = config.RETRY_BASE_DELAY,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if not isinstance(max_attempts, int) or max_attempts < 1:
            raise ValidationError(f"max_attempts must be a positive integer, got {max_attempts!r}")
        if base_delay < 0:
            raise ValidationError(f"base_delay must be >= 0, got {base_delay!r}")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep or asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.base_delay * (2 ** (attempt - 1))

    async def run(
        self,
        call: Callable[[], Awaitable[StageResult]],
        *,
        label: str = "",
        failure_policy: FailurePolicy = FailurePolicy.HARD_FAIL,
        placeholder: Optional[Placeholder] = None,
    ) -> StageResult:
        """
        Invoke `call` until it succeeds or attempts are exhausted.

        Args:
            call:           Zero-arg coroutine factory, one fresh awaitable per attempt.
            label:          Log prefix, e.g. "video:veo:walk".
            failure_policy: What to do after the last attempt fails.
            placeholder:    Builds the stand-in result from the last error;
                            required for SOFT_FAIL_WITH_PLACEHOLDER.

        Raises:
            CredentialMissing / ValidationError immediately.
            The last ProviderError when the policy does not substitute a placeholder.
        """
        if failure_policy is FailurePolicy.SOFT_FAIL_WITH_PLACEHOLDER and placeholder is None:
            raise ValidationError(f"{label or 'call'}: placeholder policy requires a placeholder factory")

        last_error: Optional[ProviderError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await call()
            except ProviderError as e:
                last_error = e
                if attempt < self.max_attempts:
                    delay = self.delay_for(attempt)
                    logger.warning(
                        f"[Retry] {label} attempt {attempt}/{self.max_attempts} failed: {e} "
                        f"— retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                else:
                    logger.warning(f"[Retry] {label} attempt {attempt}/{self.max_attempts} failed: {e}")

        if failure_policy is FailurePolicy.SOFT_FAIL_WITH_PLACEHOLDER:
            logger.warning(f"[Retry] {label} exhausted {self.max_attempts} attempts, using placeholder")
            return placeholder(last_error)

        raise last_error
