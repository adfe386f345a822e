from __future__ import annotations


class DependencyTrackError(Exception):
    """Base class for every failure raised by dtrack_publisher."""


class ApiClientError(DependencyTrackError):
    """A remote operation against Dependency-Track failed.

    Transport failures and unexpected HTTP statuses both surface as this type;
    the subclasses only exist for callers that care about the difference.
    """

    def __init__(self, operation: str, status_code: int | None = None, reason: str = "", detail: str | None = None):
        self.operation = operation
        self.status_code = status_code
        self.reason = reason
        self.detail = detail
        super().__init__(self._format())

    def _format(self) -> str:
        msg = f"{self.operation} failed"
        if self.status_code is not None:
            msg += f": HTTP {self.status_code} {self.reason}".rstrip()
        if self.detail:
            msg += f" ({self.detail})"
        return msg


class ConnectivityError(ApiClientError):
    """DNS failure, refused connection or timeout."""


class ProtocolError(ApiClientError):
    def __init__(self, operation: str, status_code: int, reason: str = "", body: str | None = None):
        self.body = body
        super().__init__(operation, status_code, reason)


class DecodeError(ApiClientError):
    """The server answered 200 but the body is not what the operation expects."""


class ValidationError(DependencyTrackError):
    """Invalid caller input, detected before any network call."""


class PollingTimeoutError(DependencyTrackError):
    def __init__(self, token: str, elapsed: float, timeout: float):
        self.token = token
        self.elapsed = elapsed
        self.timeout = timeout
        super().__init__(
            f"processing of upload token {token} not confirmed after {elapsed:.0f}s (limit {timeout:.0f}s)"
        )


class PollingAbortedError(DependencyTrackError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"waiting for upload token {token} was aborted")


class ProjectNotFoundError(DependencyTrackError):
    def __init__(self, name: str, version: str):
        self.name = name
        self.version = version
        super().__init__(f"no active project named {name!r} with version {version!r}")


class UploadFailedError(DependencyTrackError):
    def __init__(self, status_code: int | None = None, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        msg = "upload failed"
        if status_code is not None:
            msg += f": HTTP {status_code} {reason}".rstrip()
        super().__init__(msg)
