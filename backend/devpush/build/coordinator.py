from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from devpush.build.lifecycle import Build, BuildState, BuildStatus
from devpush.build.runtimes import resolve_toolchain
from devpush.build.rwlock import RWLock
from devpush.config import Settings, parse_app_config
from devpush.errors import BadRequestError, BuildIDMismatchError, NoBuildError
from devpush.tree import DirEntry, diff, snapshot
from devpush.upload.receiver import ensure_dir, remove_path, safe_target, write_file


logger = logging.getLogger("devpush.coordinator")


def make_build_id() -> str:
    return f"build_{int(time.time()*1000)}_{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class RouteTarget:
    """Where to forward app traffic, or why not to.

    ``address`` is set only when the live build is running.
    """

    address: str | None
    state: BuildState | None
    log: str


class BuildCoordinator:
    """Owns the single build slot and serializes access to it.

    ``create``, ``start_build``, ``stop`` and ``status`` hold the write lock
    for their whole duration, compiles included. ``put_file`` and
    ``route_target`` share the read lock, and so does app traffic between
    ``hold_route`` and ``release_route``.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._lock = RWLock()
        self._build: Build | None = None

    @property
    def work_dir(self) -> Path:
        return self.settings.work_dir

    def create(self, config_text: str, files: list[DirEntry]) -> tuple[Build, list[str]]:
        """Replace the slot with a new build and sync the tree towards ``files``.

        Returns the new build and the paths the client still has to upload.
        Stale paths are deleted from disk before returning.
        """
        with self._lock.write_locked():
            if not config_text or not config_text.strip():
                raise BadRequestError("Missing config file.")
            if not files:
                raise BadRequestError("Missing dir list.")
            config = parse_app_config(config_text)
            toolchain = resolve_toolchain(config, self.settings)
            for entry in files:
                safe_target(self.work_dir, entry.path)

            current = self._build
            if current is not None and current.refresh() is BuildState.RUNNING:
                current.stop()

            self.work_dir.mkdir(parents=True, exist_ok=True)
            build = Build(
                id=make_build_id(),
                work_dir=self.work_dir,
                config=config,
                toolchain=toolchain,
            )
            self._build = build
            logger.info("Created build %s (runtime=%s)", build.id, toolchain.name)

            # Artifact names are root-relative; deeper files of the same name still sync.
            ours = [
                entry
                for entry in snapshot(self.work_dir)
                if entry.path not in toolchain.artifacts
            ]
            result = diff(ours, files)
            for entry in result.remove:
                logger.info("Removing %s", entry.path)
                remove_path(self.work_dir, entry.path)
            # Uploads only carry files; directories (empty ones included) are made here.
            for entry in files:
                if entry.is_dir:
                    ensure_dir(self.work_dir, entry.path)

            need = [entry.path for entry in result.add]
            if need:
                build.state = BuildState.FETCHING
            logger.info(
                "build[%s] needs %d paths, removed %d", build.id, len(need), len(result.remove)
            )
            return build, need

    def put_file(self, build_id: str, dest: str, sha1: str, data: bytes) -> Path:
        with self._lock.read_locked():
            build = self._require_build()
            if not build_id:
                raise BadRequestError("Missing build ID.")
            if build_id != build.id:
                raise BuildIDMismatchError("Build ID does not match.")
            return write_file(build.work_dir, dest, sha1, data)

    def start_build(self) -> BuildStatus:
        """Compile then launch the live build. A failed compile never launches."""
        with self._lock.write_locked():
            build = self._require_build()
            build.build()
            build.start()
            return build.describe()

    def stop(self) -> BuildStatus:
        with self._lock.write_locked():
            build = self._require_build()
            build.stop()
            return build.describe()

    def status(self) -> BuildStatus | None:
        with self._lock.write_locked():
            if self._build is None:
                return None
            self._build.refresh()
            return self._build.describe()

    def route_target(self) -> RouteTarget:
        with self._lock.read_locked():
            return self._target()

    def hold_route(self) -> RouteTarget:
        """Return the forwarding decision and keep the read lock.

        The slot cannot be replaced or stopped until :meth:`release_route`,
        so a forwarded request is never cut off by a concurrent deploy.
        """
        self._lock.acquire_read()
        try:
            return self._target()
        except BaseException:
            self._lock.release_read()
            raise

    def release_route(self) -> None:
        self._lock.release_read()

    def _target(self) -> RouteTarget:
        build = self._build
        if build is None:
            return RouteTarget(address=None, state=None, log="")
        if build.state is BuildState.RUNNING:
            return RouteTarget(address=build.listen_address, state=build.state, log="")
        return RouteTarget(address=None, state=build.state, log=build.output.text())

    def shutdown(self) -> None:
        """Kill the running app, if any. Called when the server exits."""
        with self._lock.write_locked():
            build = self._build
            if build is not None and build.refresh() is BuildState.RUNNING:
                build.stop()

    def _require_build(self) -> Build:
        if self._build is None:
            raise NoBuildError("No build created.")
        return self._build
