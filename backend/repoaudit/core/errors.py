"""Exception hierarchy for the audit pipeline.

Every pipeline error carries a short machine-readable ``code`` which is what
ends up on the job row; the message is kept for logs and failure reports.
Unit-level problems are not represented here because they never leave the
unit boundary: they are turned into failure verdicts instead.
"""


class PipelineError(Exception):
    code = "pipeline_error"

    def __init__(self, message: str = "", *, code: str = None):
        super().__init__(message or self.__class__.__name__)
        if code:
            self.code = code


class JobRejectedError(PipelineError):
    """Raised before any per-unit work began; no report is written."""
    code = "job_rejected"


class ArchiveFetchError(JobRejectedError):
    code = "fetch_failed"


class MalformedArchiveError(JobRejectedError):
    code = "malformed_archive"


class NothingToAnalyzeError(JobRejectedError):
    code = "nothing_to_analyze"


class NoResultsError(PipelineError):
    code = "no_results"


class ReportPersistenceError(PipelineError):
    code = "report_persistence_failed"


class InvalidTransitionError(PipelineError):
    code = "invalid_transition"


class JobNotFoundError(PipelineError):
    code = "job_not_found"


class StorageError(PipelineError):
    code = "storage_error"


class ClassifierError(PipelineError):
    code = "classifier_error"
