import os
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError

# Early environment loading BEFORE reading settings
here = os.path.dirname(os.path.abspath(__file__))
load_dotenv(os.path.join(os.path.dirname(here), ".env"), override=False)

from devpush.api.build import router as build_router
from devpush.api.proxy import router as proxy_router
from devpush.api.responses import error_response, respond
from devpush.build import BuildCoordinator
from devpush.config import Settings
from devpush.errors import DevpushError


# Basic logger for server diagnostics (inherits uvicorn handlers)
logger = logging.getLogger("devpush.server")
if not logger.handlers:
    logger.setLevel(logging.INFO)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("serving builds from %s", settings.work_dir)
        yield
        await run_in_threadpool(app.state.coordinator.shutdown)

    app = FastAPI(title="devpush", lifespan=lifespan)
    app.state.settings = settings
    app.state.coordinator = BuildCoordinator(settings)

    @app.exception_handler(DevpushError)
    async def _devpush_error(request: Request, exc: DevpushError):
        return error_response(exc)

    @app.exception_handler(OSError)
    async def _os_error(request: Request, exc: OSError):
        logger.error("%s %s: %s", request.method, request.url.path, exc)
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return respond(code=400, error="Invalid request.", message=str(exc.errors()))

    app.include_router(build_router)
    # Catch-all; must stay last so the control routes win.
    app.include_router(proxy_router)
    return app


app = create_app()


if __name__ == "__main__":
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)
