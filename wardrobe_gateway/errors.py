"""Exception hierarchy for the AI job gateway.

Dispatcher-level errors map onto HTTP status codes of the trigger endpoint.
Handler-level errors (``JobError`` subclasses) are caught at the dispatcher
boundary and recorded verbatim on the failed job row.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for gateway errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self)


class Unauthorized(GatewayError):
    """Missing or invalid authorization."""

    status_code = 401
    code = "UNAUTHORIZED"


class MissingJobId(GatewayError):
    """job_id is required."""

    status_code = 400
    code = "MISSING_JOB_ID"


class JobNotFound(GatewayError):
    """Job not found."""

    status_code = 404
    code = "NOT_FOUND"


class JobConflict(GatewayError):
    """Job already running."""

    status_code = 409
    code = "CONFLICT"


class InvalidTransition(GatewayError):
    """Illegal job status transition."""

    code = "INVALID_TRANSITION"


class SupabaseError(GatewayError):
    """Supabase request failed."""

    code = "SUPABASE_ERROR"


class JobError(GatewayError):
    """Base class for failures raised while executing a job."""

    code = "JOB_FAILED"


class UnknownJobType(JobError):
    code = "UNKNOWN_JOB_TYPE"

    def __init__(self, job_type: str):
        super().__init__(f"Unknown job type: {job_type}")
        self.job_type = job_type


class InvalidInput(JobError):
    code = "INVALID_INPUT"


class ImageNotFound(JobError):
    code = "IMAGE_NOT_FOUND"


class DownloadFailed(JobError):
    code = "DOWNLOAD_FAILED"


class InvalidImage(JobError):
    code = "INVALID_IMAGE"


class GenerationBlocked(JobError):
    code = "GENERATION_BLOCKED"


class NoOutput(JobError):
    code = "NO_OUTPUT"


class UpstreamError(JobError):
    """Model API error; the upstream message is kept as-is."""

    code = "UPSTREAM_ERROR"


class UploadFailed(JobError):
    code = "UPLOAD_FAILED"


class RecordCreateFailed(JobError):
    code = "RECORD_CREATE_FAILED"


class ParseError(JobError):
    code = "PARSE_ERROR"
