import logging
from pathlib import Path
from typing import Any

import httpx

from devpush import VERSION, VERSION_HEADER
from devpush.config import DEFAULT_UPLOAD_WORKERS
from devpush.errors import ChecksumMismatch, RemoteError
from devpush.tree import DirEntry, snapshot
from devpush.upload import iter_upload_paths, upload_all


logger = logging.getLogger("devpush.client")

BUILD_PREFIX = "/_devpush/build"


class DevpushClient:
    """Talks to a devpush server's control endpoints.

    Safe to share between upload workers; requests go through one
    ``httpx.Client`` connection pool.
    """

    def __init__(
        self,
        target: str,
        token: str | None = None,
        timeout: float = 300.0,
        http: httpx.Client | None = None,
    ) -> None:
        self.target = target.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        if http is None:
            http = httpx.Client(base_url=self.target, timeout=timeout)
        http.headers.update(headers)
        self._http = http

    def __enter__(self) -> "DevpushClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def create_build(self, config_text: str, files: list[DirEntry]) -> tuple[str, list[str]]:
        body = self._do(
            "POST",
            "/create",
            json={
                "config": config_text,
                "files": [entry.model_dump() for entry in files],
            },
        )
        return body["build_id"], list(body.get("need_files") or [])

    def put_file(self, build_id: str, dest: str, sha1: str, path: Path) -> None:
        data = Path(path).read_bytes()
        self._do(
            "POST",
            "/put",
            params={"id": build_id, "filename": dest, "sha1": sha1},
            content=data,
        )

    def start_build(self) -> dict[str, Any]:
        return self._do("POST", "/start")

    def status(self) -> dict[str, Any]:
        return self._do("GET", "/status")

    def stop(self) -> dict[str, Any]:
        return self._do("POST", "/stop")

    def deploy(
        self, config_path: str | Path, workers: int = DEFAULT_UPLOAD_WORKERS
    ) -> dict[str, Any]:
        """Push the app next to ``config_path`` and start it.

        Only files the server reports as missing or changed are sent.
        """
        config_path = Path(config_path)
        root = config_path.resolve().parent
        config_text = config_path.read_text(encoding="utf-8")

        files = snapshot(root, follow_links=True)
        build_id, need = self.create_build(config_text, files)
        logger.info("build %s: server needs %d paths", build_id, len(need))
        if need:
            sent = upload_all(
                build_id, iter_upload_paths(root, need), root, self.put_file, workers=workers
            )
            logger.info("build %s: uploaded %d files", build_id, sent)
        return self.start_build()

    def _do(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        resp = self._http.request(method, BUILD_PREFIX + path, **kwargs)

        version = resp.headers.get(VERSION_HEADER)
        if version is None:
            raise RemoteError(
                f"{self.target} is not a devpush server (HTTP {resp.status_code}).",
                code=resp.status_code,
            )
        if version != VERSION:
            raise RemoteError(
                f"Version mismatch: server speaks {version}, client speaks {VERSION}.",
                code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise RemoteError(
                f"Could not decode response: {e}", code=resp.status_code
            ) from e

        if body.get("message"):
            logger.info("remote: %s", body["message"])
        if body.get("error"):
            if body.get("kind") == ChecksumMismatch.__name__:
                raise ChecksumMismatch(body["error"])
            raise RemoteError(body["error"], code=body.get("code", resp.status_code))
        return body
