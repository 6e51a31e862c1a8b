from __future__ import annotations


class FolioError(Exception):
    pass


class ConfigurationError(FolioError):
    """A required input (config file, served root, source file) is missing or invalid."""


class ServerError(FolioError):
    pass


class BindError(ServerError):
    def __init__(self, port: int, cause: OSError) -> None:
        super().__init__(f"Could not bind port {port}: {cause}")
        self.port = port
        self.cause = cause


class NoAvailablePortError(ServerError):
    def __init__(self, start: int, end: int) -> None:
        super().__init__(f"No available port found in range {start}-{end - 1}")
        self.start = start
        self.end = end


class ShutdownTimeoutError(ServerError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Server did not shut down within {timeout:.1f}s")
        self.timeout = timeout


class RequestError(FolioError):
    """Per-request failure. Mapped to an HTTP status and never propagated past the handler."""

    status = 500
    body = "Internal server error"


class SecurityViolation(RequestError):
    status = 403
    body = "Forbidden"


class NotFound(RequestError):
    status = 404
    body = "File not found"

    def __init__(self, message: str = "", body: str | None = None) -> None:
        super().__init__(message)
        if body is not None:
            self.body = body


class TransientIOError(RequestError):
    status = 500
    body = "Internal server error"


class BuildError(FolioError):
    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"Build stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause


class AuditError(FolioError):
    pass
