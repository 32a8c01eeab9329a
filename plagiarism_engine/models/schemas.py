from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ───── Job state ─────

class CheckStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (CheckStatus.PENDING, CheckStatus.PROCESSING)


class ErrorCode(str, Enum):
    CORPUS_UNAVAILABLE = "corpus_unavailable"
    TIMEOUT = "timeout"
    INTERNAL_ERROR = "internal_error"
    INTERRUPTED = "interrupted"


class PatternKind(str, Enum):
    REPETITIVE_STRUCTURE = "repetitive_structure"
    UNUSUAL_VOCABULARY = "unusual_vocabulary"
    INCONSISTENT_STYLE = "inconsistent_style"
    COMMON_PHRASES = "common_phrases"


# ───── Submission context supplied by the caller ─────

class Scope(CamelModel):
    course_id: Optional[int] = None
    assignment_id: Optional[int] = None


class SourceMetadata(CamelModel):
    student_id: Optional[str] = None
    course_name: str = ""
    assignment_title: str = ""
    submission_date: Optional[datetime] = None


# ───── Report ─────

class MatchedSource(CamelModel):
    source_id: int
    similarity: float = Field(ge=0, le=100)
    matched_text: str
    source_text: str
    start_index: Optional[int] = Field(default=None, ge=0)   # into the checked text
    end_index: Optional[int] = Field(default=None, ge=0)
    source_start_index: Optional[int] = Field(default=None, ge=0)  # into the source text
    source_end_index: Optional[int] = Field(default=None, ge=0)
    # length of the source text the source span indexes; internal only
    source_length: Optional[int] = Field(default=None, ge=0, exclude=True)
    student_id: Optional[str] = None
    course_name: str = ""
    assignment_title: str = ""
    submission_date: Optional[datetime] = None


class SuspiciousPattern(CamelModel):
    type: PatternKind
    confidence: float = Field(ge=0, le=1)
    description: str
    text_segment: str
    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)


class AnalysisResult(CamelModel):
    text_length: int = 0
    word_count: int = 0
    unique_words: int = 0
    average_word_length: float = 0.0
    sentence_count: int = 0
    average_sentence_length: float = 0.0
    readability_score: float = 0.0
    lexical_diversity: float = Field(default=0.0, ge=0, le=1)
    processed_at: datetime


class PlagiarismResult(CamelModel):
    submission_id: int
    similarity_score: float = Field(ge=0, le=100)
    matched_sources: List[MatchedSource]
    suspicious_patterns: List[SuspiciousPattern]
    analysis_results: AnalysisResult
    status: CheckStatus = CheckStatus.COMPLETED


class PlagiarismCheck(CamelModel):
    submission_id: int
    attempt_id: str
    status: CheckStatus
    requested_by: Optional[str] = None
    requested_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    retry_count: int = 0
    scope: Scope = Field(default_factory=Scope)
    result: Optional[PlagiarismResult] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    # Kept so an interrupted job can be re-run; never sent to clients.
    text: str = Field(default="", exclude=True)
    source: SourceMetadata = Field(default_factory=SourceMetadata, exclude=True)

    @model_validator(mode="after")
    def _result_matches_status(self):
        if self.status == CheckStatus.COMPLETED and self.result is None:
            raise ValueError("a completed check must carry a result")
        if self.status == CheckStatus.FAILED:
            if self.result is not None:
                raise ValueError("a failed check cannot carry a result")
            if not self.error:
                raise ValueError("a failed check must carry an error reason")
        return self


# ───── Request bodies ─────

class CheckRequest(CamelModel):
    submission_id: int
    text: str
    course_id: Optional[int] = None
    assignment_id: Optional[int] = None
    requested_by: Optional[str] = None
    student_id: Optional[str] = None
    course_name: str = ""
    assignment_title: str = ""
    submission_date: Optional[datetime] = None


class Message(BaseModel):
    message: str
