import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from . import config
from . import metrics
from .auth_middleware import WorkerAuthMiddleware
from .pipeline import CharacterGenerationService, batch_router, pipeline_router
from .provider_factory import ProviderFactory
from .rate_limiter import RateLimiter
from .models import Stage

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    rate_limiter: Optional[RateLimiter] = None,
    service: Optional[CharacterGenerationService] = None,
) -> FastAPI:
    """
    Build the worker app. One RateLimiter is shared by every run the app
    starts, single and batch alike.
    """
    rate_limiter = rate_limiter or (service.rate_limiter if service else RateLimiter())
    service = service or CharacterGenerationService(rate_limiter)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Worker starting up (env={config.ENVIRONMENT}, output={config.OUTPUT_DIR})")
        metrics.inc_counter("worker.starts")
        yield
        logger.info("Worker shutting down...")

    app = FastAPI(title="spriteforge", lifespan=lifespan)
    app.state.rate_limiter = rate_limiter
    app.state.service = service
    app.add_middleware(WorkerAuthMiddleware)
    app.include_router(pipeline_router)
    app.include_router(batch_router)

    @app.get("/health")
    def health_check():
        """Verify worker is running and which provider keys are configured."""
        return {
            "status": "ok",
            "output_dir": config.OUTPUT_DIR,
            "keys": {
                env_var: bool(os.environ.get(env_var))
                for env_var in ("OPENAI_API_KEY", "STABILITY_API_KEY", "GOOGLE_API_KEY", "RUNWAY_API_KEY", "TRIPO_API_KEY")
            },
            "providers": {stage.value: ProviderFactory.list_providers(stage) for stage in Stage},
        }

    @app.get("/metrics")
    def metrics_endpoint():
        """Return a snapshot of all worker metrics."""
        return metrics.get_snapshot()

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("spriteforge.main:app", host="0.0.0.0", port=port, reload=True)
