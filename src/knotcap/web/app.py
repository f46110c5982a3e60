"""FastAPI application factory for the Knotcap web API."""

from __future__ import annotations

from fastapi import FastAPI

from knotcap import __version__
from knotcap.config import KnotConfig
from knotcap.export.har import ArchiveBuilder
from knotcap.export.pipeline import Exporter, ExportPipeline
from knotcap.policy.store import PolicyStore
from knotcap.session.files import SessionFiles
from knotcap.storage.db import get_db
from knotcap.storage.repos import PolicyRepo, SessionRepo


async def create_app(
    config: KnotConfig | None = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or KnotConfig.load()

    app = FastAPI(
        title="Knotcap",
        version=__version__,
        docs_url="/api/docs",
    )

    # Shared collaborators live in app state
    app.state.config = config
    app.state.db = await get_db(config.db_path)
    app.state.files = SessionFiles(config.logs_dir)
    app.state.policy_store = PolicyStore(PolicyRepo(app.state.db))
    await app.state.policy_store.load()
    app.state.pipeline = ExportPipeline(
        SessionRepo(app.state.db),
        Exporter(
            app.state.files,
            config.output_dir,
            product_name=config.product_name,
            builder=ArchiveBuilder(app.state.files, config.small_body_limit),
        ),
    )

    # Register API routers
    from knotcap.web.api.export import router as export_router
    from knotcap.web.api.policies import router as policies_router
    from knotcap.web.api.sessions import router as sessions_router

    app.include_router(sessions_router, prefix="/api")
    app.include_router(policies_router, prefix="/api")
    app.include_router(export_router, prefix="/api")

    @app.on_event("shutdown")
    async def shutdown() -> None:
        if hasattr(app.state, "db"):
            await app.state.db.close()

    return app
