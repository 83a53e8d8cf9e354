"""
Process-wide configuration, loaded once at import.

API keys are NOT cached here — provider clients read them at call time so a
missing key surfaces as CredentialMissing on the stage that needs it.
"""

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


# ── Output ───────────────────────────────────────────────────────────────────

OUTPUT_DIR = os.getenv("SPRITEFORGE_OUTPUT_DIR", "./output")

# ── Retry ────────────────────────────────────────────────────────────────────

RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "3"))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "2.0"))  # 2, 4, 8...

# ── Rate limiting ────────────────────────────────────────────────────────────

RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
RATE_LIMIT_MAX_WAIT = _optional_float("RATE_LIMIT_MAX_WAIT")  # None = wait forever

# ── Batch ────────────────────────────────────────────────────────────────────

BATCH_CONCURRENCY = int(os.getenv("BATCH_CONCURRENCY", "1"))

# ── Provider defaults ────────────────────────────────────────────────────────

DEFAULT_IMAGE_PROVIDER = os.getenv("DEFAULT_IMAGE_PROVIDER", "openai")
DEFAULT_VIDEO_PROVIDER = os.getenv("DEFAULT_VIDEO_PROVIDER", "veo")
DEFAULT_RIGGING_PROVIDER = os.getenv("DEFAULT_RIGGING_PROVIDER", "tripo")

TRIPO_POLL_INTERVAL = float(os.getenv("TRIPO_POLL_INTERVAL", "5"))
TRIPO_MAX_POLL_ATTEMPTS = int(os.getenv("TRIPO_MAX_POLL_ATTEMPTS", "60"))

# ── Worker ───────────────────────────────────────────────────────────────────

WORKER_SHARED_SECRET = os.getenv("WORKER_SHARED_SECRET", "")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
