import logging

import httpx
from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse, Response

from devpush.api.responses import DEVPUSH_HEADERS
from devpush.build import BuildCoordinator


logger = logging.getLogger("devpush.api.proxy")

router = APIRouter(tags=["proxy"])

NO_APP_TEXT = "No app has been deployed yet. Run `devpush deploy` to push one.\n"

# Connection-scoped headers never cross the proxy. httpx already decoded the
# body, so content-encoding and content-length would no longer match.
_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
        "content-encoding",
    }
)


def _forward_headers(headers) -> list[tuple[str, str]]:
    return [(k, v) for k, v in headers.items() if k.lower() not in _HOP_HEADERS]


@router.api_route(
    "/{path:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def proxy_app(path: str, request: Request) -> Response:
    """Forward app traffic to the running build, or explain why there is none.

    The slot's read lock is held until the app has answered, so a deploy
    waits for in-flight requests instead of killing their target.
    """
    coordinator: BuildCoordinator = request.app.state.coordinator
    body = await request.body()
    target = await run_in_threadpool(coordinator.hold_route)
    try:
        if target.state is None:
            return PlainTextResponse(NO_APP_TEXT, status_code=503, headers=DEVPUSH_HEADERS)
        if target.address is None:
            return PlainTextResponse(
                f"state: {target.state.value}\n{target.log}",
                status_code=503,
                headers=DEVPUSH_HEADERS,
            )
        return await _forward(request, target.address, path, body)
    finally:
        coordinator.release_route()


async def _forward(request: Request, address: str, path: str, body: bytes) -> Response:
    url = f"http://{address}/{path}"
    timeout = request.app.state.settings.proxy_timeout
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            upstream = await client.request(
                request.method,
                url,
                params=list(request.query_params.multi_items()),
                headers=_forward_headers(request.headers),
                content=body,
            )
    except httpx.HTTPError as e:
        logger.warning("proxy to %s failed: %s", url, e)
        return PlainTextResponse(
            f"Could not reach the app at {address}: {e}\n", status_code=502
        )

    response = Response(content=upstream.content, status_code=upstream.status_code)
    for key, value in upstream.headers.multi_items():
        if key.lower() not in _HOP_HEADERS:
            response.headers.append(key, value)
    return response
