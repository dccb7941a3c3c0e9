"""Custom exception classes for the classroom transcription service."""


class ClassroomException(Exception):
    """Base exception for all application-specific errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class ValidationError(ClassroomException):
    """Raised when a required identifier or file is missing from a request."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            details="The request is missing a required value"
        )


class UnsupportedTypeError(ClassroomException):
    """Raised when an uploaded file's MIME type is not allowed."""

    def __init__(self, file_type: str | None):
        super().__init__(
            message="Invalid file type provided",
            details=f"Files of type {file_type or 'unknown'} are not accepted"
        )
        self.file_type = file_type


class UploadTooLargeError(ClassroomException):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, limit: int):
        super().__init__(
            message="File is too large",
            details=f"Uploads are limited to {limit} bytes"
        )
        self.limit = limit


class DuplicateReportError(ClassroomException):
    """Raised when creating a report that already exists for the user."""

    def __init__(self, user_id: str, report_id: str):
        super().__init__(
            message="A report with the given report ID already exists for this user",
            details=f"Report {report_id} already exists for user {user_id}"
        )
        self.user_id = user_id
        self.report_id = report_id


class ReportNotFoundError(ClassroomException):
    """Raised when a report is not found."""

    def __init__(self, user_id: str, report_id: str):
        super().__init__(
            message=f"Report not found: {report_id}",
            details=f"No report {report_id} exists for user {user_id}"
        )
        self.user_id = user_id
        self.report_id = report_id


class UploadFailureError(ClassroomException):
    """
    Base for failures after side effects have started.

    Carries the partial-state flags reported back to the client and whatever
    response data was already gathered.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        upload_status: str | None = None,
        transfer_status: str | None = None,
        data: dict | None = None,
    ):
        if original_error:
            details = f"{message}: {original_error}"
        else:
            details = message
        super().__init__(message="An error occurred", details=details)
        self.original_error = original_error
        self.upload_status = upload_status
        self.transfer_status = transfer_status
        self.data = data or {}


class PersistenceError(UploadFailureError):
    """Raised when relocating a file or updating the report store fails."""

    def __init__(self, operation: str, original_error: Exception | None = None, **kwargs):
        super().__init__(
            f"Failed to {operation}",
            original_error=original_error,
            **kwargs,
        )
        self.operation = operation


class TransferError(UploadFailureError):
    """Raised when the Workstation cannot be reached or rejects a request."""

    def __init__(self, operation: str, original_error: Exception | None = None, **kwargs):
        super().__init__(
            f"Workstation error during {operation}",
            original_error=original_error,
            **kwargs,
        )
        self.operation = operation


class TranscriptionFailedError(ClassroomException):
    """Raised by the status poller when the engine reports a failed job."""

    def __init__(self, progress: str | None, messages=None):
        super().__init__(
            message="Engine failed to transcribe file!",
            details=f"Last reported progress: {progress}"
        )
        self.progress = progress
        self.messages = messages


class PollTimeoutError(ClassroomException):
    """Raised by the status poller when a job does not finish in time."""

    def __init__(self, timeout: float, progress: str | None):
        super().__init__(
            message=f"Transcription did not finish within {timeout:.0f} seconds",
            details=f"Last reported progress: {progress}"
        )
        self.timeout = timeout
        self.progress = progress
