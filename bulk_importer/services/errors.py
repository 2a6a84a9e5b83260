"""Exception taxonomy for the import pipeline."""

from __future__ import annotations


class ImportPipelineError(Exception):
    """Base class for import pipeline failures."""


class RowValidationError(ImportPipelineError, ValueError):
    """A single row failed a required-field or type check.

    Row-local: caught by the row processor and recorded against the row.
    """


class FetchError(ImportPipelineError):
    """The uploaded source file could not be retrieved or decoded."""


class PersistenceError(ImportPipelineError):
    """A ledger or store write failed; retryable at the step level."""


class JobNotFoundError(ImportPipelineError, LookupError):
    """No job with this id exists for the requesting tenant."""

    def __init__(self, job_id: str):
        super().__init__(f"Import job {job_id} not found")
        self.job_id = job_id
