from typing import Any, Optional


class HMSError(Exception):
    """Base failure raised by the billing and room services.

    The HTTP layer maps ``status_code`` onto the response; services never
    format responses themselves.
    """

    status_code = 500

    def __init__(self, message: str, errors: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(HMSError):
    status_code = 400


class NotFound(HMSError):
    status_code = 404


class Conflict(HMSError):
    status_code = 409
