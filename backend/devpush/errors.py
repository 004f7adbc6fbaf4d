class DevpushError(Exception):
    """Base class for every error raised by devpush."""


class BadRequestError(DevpushError):
    pass


class ConfigError(BadRequestError):
    pass


class BadPathError(BadRequestError):
    pass


class BuildIDMismatchError(BadRequestError):
    pass


class NoBuildError(BadRequestError):
    pass


class TransferError(DevpushError):
    pass


class ChecksumMismatch(TransferError):
    pass


class InvalidStateError(DevpushError):
    pass


class CompileError(DevpushError):
    """The build step failed. ``output`` holds the captured compiler output."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class ProcessLaunchError(DevpushError):
    pass


class SnapshotError(OSError):
    pass


class RemoteError(DevpushError):
    """The server answered with an error envelope."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class AuthError(DevpushError):
    def __init__(self, message: str, code: int = 401) -> None:
        super().__init__(message)
        self.code = code
