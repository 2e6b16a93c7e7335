"""Application factory wiring the tracker into a FastAPI app."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from .api import SubjectResolver, install
from .clock import Clock
from .config import QuotaConfig, load_for_environment
from .logger import new_logger
from .tracker import QuotaTracker

DEFAULT_CONFIG_DIR = Path("config")


def create_app(
    config: QuotaConfig | None = None,
    *,
    tracker: QuotaTracker | None = None,
    clock: Clock | None = None,
    subject_resolver: SubjectResolver | None = None,
    prefix: str = "/api",
) -> FastAPI:
    """Build a FastAPI app exposing the usage routes.

    The sweeper runs for the lifetime of the app.
    """
    config = config or load_for_environment(DEFAULT_CONFIG_DIR)
    tracker = tracker or QuotaTracker.from_config(config, clock=clock)
    log = new_logger(config.logging.level, config.logging.format)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info(
            "Usage quota tracker starting",
            environment=tracker.environment,
            services=tracker.policy.services,
            failure_mode=tracker.enforcer.failure_mode,
        )
        await tracker.start()
        try:
            yield
        finally:
            await tracker.stop()
            log.info("Usage quota tracker stopped")

    app = FastAPI(title="usage-quota", lifespan=lifespan)
    install(app, tracker, subject_resolver=subject_resolver, prefix=prefix)
    return app
