"""Failure taxonomy for the label extraction pipeline.

Every error carries the HTTP status the API surface answers with and a short
message that is safe to show to the user. Provider details stay in the logs.

NoTextDetected and a degraded interpretation are normal outcomes, not errors,
and are therefore not part of this hierarchy.
"""


class LabelPipelineError(Exception):
    """Base class for fatal pipeline failures."""

    status_code = 500
    user_message = "Label extraction failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.user_message
        super().__init__(self.detail)


class Unauthenticated(LabelPipelineError):
    """No verified requester identity."""

    status_code = 401
    user_message = "User must be authenticated"


class PermissionDenied(LabelPipelineError):
    """Requester is not the owner of the target scope."""

    status_code = 403
    user_message = "Cannot extract for another user"


class InvalidRequest(LabelPipelineError):
    """Malformed image reference or owner id."""

    status_code = 400
    user_message = "Invalid request"


class OcrUnavailable(LabelPipelineError):
    """Text detection provider call failed."""

    status_code = 502
    user_message = "Text recognition is temporarily unavailable, please try again"


class PersistenceFailed(LabelPipelineError):
    """The extraction record could not be written."""

    status_code = 500
    user_message = "Could not save the extraction, please try again"


class DeadlineExceeded(LabelPipelineError):
    """Provider calls did not finish within the request deadline."""

    status_code = 504
    user_message = "Label extraction took too long, please try again"
