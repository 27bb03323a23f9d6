#!/usr/bin/env python
"""FastAPI server for the threadclip web interface."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Add src directory to Python path for imports
src_dir = Path(__file__).parent.parent
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import shutdown_services
from api.job_store import close_job_store
from api.routers import clips, core, credentials, jobs
from utils.config import load_config, require_valid_config
from utils.logging import setup_logging

logger = logging.getLogger(__name__)


def create_app(validate: bool = True) -> FastAPI:
    """Build the application.

    Args:
        validate: Refuse to start when required configuration is missing
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config = load_config()
        setup_logging(config.get("log_level", "INFO"), json_output=config.get("log_json", False))
        if validate:
            require_valid_config(config)
        logger.info("threadclip API started")
        yield
        await shutdown_services()
        await close_job_store()
        logger.info("threadclip API stopped")

    app = FastAPI(title="threadclip API", version="1.0.0", lifespan=lifespan)

    # CORS middleware for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],  # Vite default port
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    app.include_router(core.router)
    app.include_router(jobs.router)
    app.include_router(clips.router)
    app.include_router(credentials.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
