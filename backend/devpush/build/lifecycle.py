from __future__ import annotations

import logging
import os
import socket
import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO

from devpush.build.runtimes import Toolchain
from devpush.config import AppConfig
from devpush.errors import CompileError, InvalidStateError, ProcessLaunchError


logger = logging.getLogger("devpush.build")


class BuildState(str, Enum):
    CREATED = "created"
    FETCHING = "fetching"
    BUILDING = "building"
    BUILT = "built"
    RUNNING = "running"
    STOPPED = "stopped"


_BUILDABLE = frozenset({BuildState.CREATED, BuildState.FETCHING, BuildState.BUILT})


class OutputLog:
    """Append-only byte log shared by the compiler and the running app."""

    def __init__(self) -> None:
        self._buf = bytearray()
        self._lock = threading.Lock()

    def write(self, data: bytes) -> None:
        with self._lock:
            self._buf.extend(data)

    def getvalue(self) -> bytes:
        with self._lock:
            return bytes(self._buf)

    def text(self) -> str:
        return self.getvalue().decode("utf-8", errors="replace")


def pick_free_port(host: str = "127.0.0.1") -> int:
    # The socket is closed before the child binds, so another process could
    # take the port in between. The child then fails to bind and exits, which
    # shows up as a stopped build with the bind error in its log.
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return int(sock.getsockname()[1])


def _pump(stream: IO[bytes], log: OutputLog) -> None:
    with stream:
        for line in iter(stream.readline, b""):
            log.write(line)


@dataclass(frozen=True)
class BuildStatus:
    build_id: str
    state: BuildState
    address: str
    log: str
    runtime: str


@dataclass
class Build:
    """The build slot's record: one working tree, one artifact, one process.

    Callers serialize every method except :meth:`describe` through the
    coordinator's write lock.
    """

    id: str
    work_dir: Path
    config: AppConfig
    toolchain: Toolchain
    state: BuildState = BuildState.CREATED
    listen_address: str = ""
    output: OutputLog = field(default_factory=OutputLog)
    process: subprocess.Popen | None = field(default=None, repr=False)

    def build(self) -> None:
        """Compile the working tree. Only a successful compile leaves the record built."""
        if self.state not in _BUILDABLE:
            raise InvalidStateError(f"Cannot build when {self.state.value}.")
        self.state = BuildState.BUILDING

        command = self.toolchain.build_command
        if not command:
            self.state = BuildState.BUILT
            return

        logger.info("build[%s] running %s", self.id, " ".join(command))
        try:
            result = subprocess.run(
                command,
                cwd=str(self.work_dir),
                env=self._environ(building=True),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as e:
            self.output.write(f"{e}\n".encode("utf-8"))
            self.state = BuildState.CREATED
            raise CompileError(f"Build failed: {e}", self.output.text()) from e

        self.output.write(result.stdout or b"")
        if result.returncode != 0:
            self.state = BuildState.CREATED
            raise CompileError(
                f"Build failed: exit status {result.returncode}", self.output.text()
            )
        self.state = BuildState.BUILT

    def start(self) -> None:
        if self.state is not BuildState.BUILT:
            raise InvalidStateError(f"Cannot start when {self.state.value}.")

        command = self.toolchain.run_command
        try:
            port = pick_free_port()
            process = subprocess.Popen(
                command,
                cwd=str(self.work_dir),
                env=self._environ(port=port),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            raise ProcessLaunchError(f"Could not run {command[0]}: {e}") from e

        self.process = process
        self.listen_address = f"127.0.0.1:{port}"
        threading.Thread(
            target=_pump,
            args=(process.stdout, self.output),
            name=f"devpush-output-{self.id}",
            daemon=True,
        ).start()
        self.state = BuildState.RUNNING
        logger.info("build[%s] running pid=%d on %s", self.id, process.pid, self.listen_address)

    def stop(self) -> None:
        if self.state is not BuildState.RUNNING:
            raise InvalidStateError("Tried to stop binary when not running.")
        if self.process is None:
            self.state = BuildState.STOPPED
            raise InvalidStateError("Tried to stop binary when process not running.")
        self.process.kill()
        self.process.wait()
        self.state = BuildState.STOPPED
        logger.info("build[%s] stopped", self.id)

    def refresh(self) -> BuildState:
        """Notice a running process that has exited on its own."""
        if self.state is BuildState.RUNNING and self.process is not None:
            code = self.process.poll()
            if code is not None:
                self.output.write(f"\nProcess exited with status {code}.\n".encode("utf-8"))
                self.state = BuildState.STOPPED
                logger.warning("build[%s] exited unexpectedly with status %d", self.id, code)
        return self.state

    def describe(self) -> BuildStatus:
        return BuildStatus(
            build_id=self.id,
            state=self.state,
            address=self.listen_address,
            log=self.output.text(),
            runtime=self.toolchain.name,
        )

    def _environ(self, *, building: bool = False, port: int | None = None) -> dict[str, str]:
        env = dict(os.environ)
        var = self.toolchain.library_var
        library = self.toolchain.library_path(self.work_dir)
        if building and env.get(var):
            env[var] = env[var] + os.pathsep + library
        else:
            env[var] = library
        if port is not None:
            env["PORT"] = str(port)
            env.update(self.config.env_variables)
        return env
