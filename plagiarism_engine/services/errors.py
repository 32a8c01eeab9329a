from plagiarism_engine.models.schemas import ErrorCode


class PlagiarismEngineError(Exception):
    """Base class for failures that end a check attempt."""
    code = ErrorCode.INTERNAL_ERROR
    retryable = False


class CorpusUnavailableError(PlagiarismEngineError):
    code = ErrorCode.CORPUS_UNAVAILABLE
    retryable = True


class JobTimeoutError(PlagiarismEngineError):
    code = ErrorCode.TIMEOUT


class InvariantViolation(PlagiarismEngineError):
    """A computed report broke one of its own bounds (offsets, scores)."""


class JobStoreError(PlagiarismEngineError):
    """The job store could not be read or written."""
    retryable = True
