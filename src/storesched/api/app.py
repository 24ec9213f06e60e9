# src/storesched/api/app.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI

from storesched.config import load_settings
from storesched.engine import HandlerRegistry, Scheduler, SchedulerConfig, load_handler_modules
from storesched.engine import builtin
from storesched.logging import configure_logging, get_logger
from storesched.storage import SQLiteDB, apply_migrations

from .routes import router

_LOG = get_logger(__name__)

RegistryHook = Callable[[HandlerRegistry], None]


def create_app(register_handlers: Optional[RegistryHook] = None) -> FastAPI:
    """
    Builds the HTTP service for one scheduler node.

    `register_handlers` lets an embedding application add its own handlers
    besides the builtin ones and those named in STORESCHED_HANDLER_MODULES.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """
        Responsible for:
        - loading settings
        - configuring logging
        - running DB migrations
        - building the handler registry
        - starting the scheduler (bootstrap + timers)
        - stopping the scheduler on shutdown, which releases owned tasks
        """
        settings = load_settings()
        configure_logging(settings.log_level, node_id=settings.node_id)

        db = SQLiteDB(settings.db_path)

        # Every node runs migrations at startup (idempotent)
        with db.session() as conn:
            apply_migrations(conn)

        registry = HandlerRegistry()
        builtin.register_handlers(registry)
        load_handler_modules(registry, settings.handler_modules)
        if register_handlers is not None:
            register_handlers(registry)

        app.state.settings = settings
        app.state.db = db

        cfg = SchedulerConfig(
            check_interval_ms=settings.check_interval_ms,
            claim_interval_ms=settings.claim_interval_ms,
            recapture_delay_ms=settings.recapture_delay_ms,
            expiry_delay_ms=settings.expiry_delay_ms,
            verbose=settings.verbose,
        )
        scheduler = Scheduler(db=db, node_id=settings.node_id, cfg=cfg, registry=registry)
        scheduler.start()
        app.state.scheduler = scheduler

        _LOG.info("Startup complete (node %s).", settings.node_id)

        try:
            yield
        finally:
            scheduler_obj = getattr(app.state, "scheduler", None)
            if scheduler_obj is not None:
                scheduler_obj.stop(timeout_s=5.0)
            _LOG.info("Shutdown complete.")

    app = FastAPI(
        title="Store-coordinated Task Scheduler",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()
