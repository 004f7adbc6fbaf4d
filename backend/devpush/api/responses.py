import logging

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from devpush import VERSION, VERSION_HEADER
from devpush.errors import (
    AuthError,
    BadRequestError,
    ChecksumMismatch,
    CompileError,
    InvalidStateError,
)


logger = logging.getLogger("devpush.api")


DEVPUSH_HEADERS: dict[str, str] = {VERSION_HEADER: VERSION}


class Envelope(BaseModel):
    """Body of every control response. Unset fields are left out of the JSON."""

    code: int | None = None
    error: str | None = None
    kind: str | None = None
    message: str | None = None
    build_id: str | None = None
    need_files: list[str] | None = None
    state: str | None = None
    address: str | None = None
    log: str | None = None


def respond(code: int | None = None, **fields) -> JSONResponse:
    envelope = Envelope(code=code, **fields)
    if code is not None:
        status_code = code
    elif envelope.error:
        status_code = 500
    else:
        status_code = 200
    return JSONResponse(
        envelope.model_dump(exclude_none=True),
        status_code=status_code,
        headers=DEVPUSH_HEADERS,
    )


def status_for(err: Exception) -> int:
    if isinstance(err, AuthError):
        return err.code
    if isinstance(err, (BadRequestError, ChecksumMismatch)):
        return 400
    if isinstance(err, InvalidStateError):
        return 409
    return 500


def error_response(err: Exception) -> JSONResponse:
    code = status_for(err)
    logger.warning("request failed (%d): %s", code, err)
    message = err.output if isinstance(err, CompileError) else None
    return respond(code=code, error=str(err), kind=type(err).__name__, message=message)
