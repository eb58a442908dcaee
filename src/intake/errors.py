class IntakeError(Exception):
    """Base class for bulk intake errors."""


class ExtractionError(IntakeError):
    """EXIF parsing or image processing failed for a single photo."""


class WorkflowStateError(IntakeError):
    """An operation was attempted in a workflow step that does not allow it."""


class PersistenceError(IntakeError):
    """A draft could not be written, read or decoded."""


class SubmissionError(IntakeError):
    """Base class for per-incident submission failures."""


class UploadError(SubmissionError):
    pass


class ReportCreationError(SubmissionError):
    pass
