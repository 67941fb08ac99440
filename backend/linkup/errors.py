from typing import Optional


class LinkUpError(Exception):
    """Base class for pipeline errors."""


class ValidationError(LinkUpError):
    """Inbound request is missing required fields."""


class FetchError(LinkUpError):
    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class GatewayError(LinkUpError):
    stage = "gateway"

    def __init__(self, message: str, status_code: Optional[int] = None, storage_path: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.storage_path = storage_path


class UploadError(GatewayError):
    """Raw audio never reached the gateway; a retry must re-upload."""

    stage = "upload"


class SubmitError(GatewayError):
    """Audio is uploaded (see storage_path); a retry only needs to resubmit."""

    stage = "submit"


class ResultError(GatewayError):
    stage = "result"


class StoreError(LinkUpError):
    retryable = False


class NotFoundError(StoreError):
    pass


class StoreConnectivityError(StoreError):
    retryable = True


class InvalidTransitionError(StoreError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move voice job from {current} to {target}")
        self.current = current
        self.target = target


class VerificationError(LinkUpError):
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
