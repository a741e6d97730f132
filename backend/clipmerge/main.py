"""
clipmerge backend service: HTTP control surface.

Run with:
    uvicorn clipmerge.main:app
"""

import logging
from typing import Mapping, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .execution.errors import ToolNotFoundError
from .execution.ffmpeg import MergeExecutor
from .execution.tools import ToolPaths, resolve_tool_paths
from .jobs.engine import BatchEngine
from .persistence.preferences import PreferencesStore
from .routes import control
from .settings import EngineSettings, load_settings

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[EngineSettings] = None,
    tools: Optional[ToolPaths] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> FastAPI:
    """
    Build the application.

    Tools are resolved once here. When they are missing the service still
    starts: analysis, classification and journal endpoints keep working
    and /control/merge answers 503.

    Args:
        settings: Engine settings (defaults to load_settings())
        tools: Pre-resolved tool paths (defaults to resolve_tool_paths())
        environ: Environment mapping for settings and tool discovery
    """
    settings = settings or load_settings(environ)

    app = FastAPI(title="clipmerge", version=__version__)

    # CORS middleware for a local frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.store = PreferencesStore(
        settings.preferences_path, journal_capacity=settings.journal_capacity
    )
    app.state.merge_monitor = control.MergeMonitor()
    app.state.tools_error = None

    if tools is None:
        try:
            tools = resolve_tool_paths(environ)
        except ToolNotFoundError as e:
            logger.warning(f"[Startup] {e}; merging disabled")
            app.state.tools_error = str(e)

    app.state.tools = tools
    app.state.engine = (
        BatchEngine(MergeExecutor(tools, settings), app.state.store, settings)
        if tools is not None
        else None
    )

    app.include_router(control.router)

    @app.get("/")
    async def root():
        return {"service": "clipmerge", "status": "running"}

    return app


app = create_app()
