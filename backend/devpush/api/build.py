import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from devpush.api.auth import require_admin
from devpush.api.responses import respond
from devpush.build import BuildCoordinator, BuildStatus
from devpush.tree import DirEntry


logger = logging.getLogger("devpush.api.build")


# Handlers that take the coordinator's lock are plain `def` so they run in the
# thread pool and a held lock never blocks the event loop.
router = APIRouter(
    prefix="/_devpush/build", tags=["build"], dependencies=[Depends(require_admin)]
)


class CreateBuildRequest(BaseModel):
    """Payload to open a new build: the app config and the client's tree."""

    config: str = ""
    files: list[DirEntry] = Field(default_factory=list)


def get_coordinator(request: Request) -> BuildCoordinator:
    return request.app.state.coordinator


def _status_fields(status: BuildStatus) -> dict[str, str]:
    return {
        "build_id": status.build_id,
        "state": status.state.value,
        "address": status.address,
    }


@router.post("/create")
def create_build(
    body: CreateBuildRequest,
    coordinator: BuildCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    build, need = coordinator.create(body.config, body.files)
    return respond(
        message="Build created.",
        build_id=build.id,
        state=build.state.value,
        need_files=need,
    )


@router.post("/put")
async def put_file(
    request: Request,
    build_id: str = Query("", alias="id"),
    filename: str = "",
    sha1: str = "",
) -> JSONResponse:
    data = await request.body()
    coordinator = get_coordinator(request)
    await run_in_threadpool(coordinator.put_file, build_id, filename, sha1, data)
    return respond(message=f"Wrote {filename}")


@router.post("/start")
def start_build(
    coordinator: BuildCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    status = coordinator.start_build()
    logger.info("build[%s] running on %s", status.build_id, status.address)
    return respond(message="App is running.", **_status_fields(status))


@router.post("/stop")
def stop_build(
    coordinator: BuildCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    status = coordinator.stop()
    return respond(message="App stopped.", **_status_fields(status))


@router.api_route("/status", methods=["GET", "POST"])
def build_status(
    coordinator: BuildCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    status = coordinator.status()
    if status is None:
        return respond(message="No build.")
    return respond(
        message=f"App is {status.state.value}.", log=status.log, **_status_fields(status)
    )
