from devpush.build.coordinator import BuildCoordinator, RouteTarget
from devpush.build.lifecycle import Build, BuildState, BuildStatus
from devpush.build.runtimes import TOOLCHAINS, Toolchain, resolve_toolchain

__all__ = [
    "TOOLCHAINS",
    "Build",
    "BuildCoordinator",
    "BuildState",
    "BuildStatus",
    "RouteTarget",
    "Toolchain",
    "resolve_toolchain",
]
