# catalog_api/errors.py


class UpstreamError(RuntimeError):
    """A third-party API was unreachable, answered non-2xx or sent unusable JSON."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
