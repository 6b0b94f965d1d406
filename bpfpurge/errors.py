from typing import Optional


class PurgeError(Exception):
    pass


class ClientInitError(PurgeError):
    pass


class ProfileError(PurgeError):
    pass


class MaxRetriesExceeded(PurgeError):
    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"max retries exceeded after {attempts} attempts: {last_error}")


class ResourceError(PurgeError):
    """Failure tied to a single resource; never aborts the rest of the run."""

    def __init__(self, resource, message: str):
        self.resource = resource
        super().__init__(message)


class FinalizerRemovalError(ResourceError):
    pass


class DeletionError(ResourceError):
    pass


class PurgeTimeout(PurgeError):
    """The overall deadline elapsed; `result` holds the progress made before it."""

    def __init__(self, message: str, result=None):
        self.result = result
        super().__init__(message)
