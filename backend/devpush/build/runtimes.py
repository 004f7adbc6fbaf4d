from __future__ import annotations

import shlex
import sys
from dataclasses import dataclass, replace
from pathlib import Path

from devpush.config import AppConfig, Settings
from devpush.errors import ConfigError


@dataclass(frozen=True)
class Toolchain:
    """How to compile and launch one runtime.

    Attributes:
        name: Runtime family, e.g. "go".
        build_command: Compile step run in the working directory; empty to skip.
        run_command: Command that starts the app; it must listen on $PORT.
        library_var: Environment variable pointing at vendored libraries.
        library_dir: Working-directory-relative directory for ``library_var``.
        artifacts: Build outputs the server keeps out of its tree snapshot.
    """

    name: str
    build_command: tuple[str, ...]
    run_command: tuple[str, ...]
    library_var: str
    library_dir: str
    artifacts: tuple[str, ...] = ()

    def library_path(self, work_dir: Path) -> str:
        return str(work_dir / self.library_dir)


TOOLCHAINS: dict[str, Toolchain] = {
    "go": Toolchain(
        name="go",
        build_command=("go", "build", "-tags", "appenginevm", "-o", "a.out"),
        run_command=("./a.out",),
        library_var="GOPATH",
        library_dir="_gopath",
        artifacts=("a.out",),
    ),
    "python": Toolchain(
        name="python",
        build_command=(sys.executable, "-m", "compileall", "-q", "."),
        run_command=(sys.executable, "main.py"),
        library_var="PYTHONPATH",
        library_dir="lib",
    ),
}


def _split(command: str, what: str) -> tuple[str, ...]:
    try:
        parts = tuple(shlex.split(command))
    except ValueError as e:
        raise ConfigError(f"Could not parse {what} {command!r}: {e}") from e
    if not parts:
        raise ConfigError(f"Empty {what}.")
    return parts


def resolve_toolchain(config: AppConfig, settings: Settings) -> Toolchain:
    """Pick the toolchain for ``config.runtime`` and apply overrides.

    Precedence for the run command: server setting, then the app's
    ``entrypoint``, then the runtime default.
    """
    runtime = (config.runtime or "").strip().lower()
    base = None
    for name, toolchain in TOOLCHAINS.items():
        if runtime.startswith(name):
            base = toolchain
            break
    if base is None:
        supported = ", ".join(sorted(TOOLCHAINS))
        raise ConfigError(
            f"Unsupported runtime {config.runtime!r}. Supported: {supported}."
        )

    build_command = base.build_command
    run_command = base.run_command
    if config.entrypoint is not None:
        run_command = _split(config.entrypoint, "entrypoint")
    if settings.build_command:
        build_command = _split(settings.build_command, "build command")
    if settings.run_command:
        run_command = _split(settings.run_command, "run command")
    return replace(base, build_command=build_command, run_command=run_command)
