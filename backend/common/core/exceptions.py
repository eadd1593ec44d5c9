class AppException(Exception):
    """Base application exception."""

    pass


class UpstreamError(AppException):
    """An external provider call failed or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidWebhookPayloadError(AppException):
    """Webhook payload for a known event could not be decoded."""

    pass
