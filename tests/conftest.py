"""
Shared fixtures: isolated corpus indexes and job stores per test, plus
helpers for building corpus entries from plain text.
"""

import pytest

from plagiarism_engine.models.documents import CorpusEntry
from plagiarism_engine.models.schemas import SourceMetadata
from plagiarism_engine.services.corpus_index import CorpusIndex
from plagiarism_engine.services.fingerprint import fingerprint
from plagiarism_engine.services.job_store import InMemoryJobStore
from plagiarism_engine.utils.text_utils import content_hash, normalize


@pytest.fixture
def index():
    return CorpusIndex()


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def make_entry():
    def _make(submission_id, text, scope_key="assignment:1", student_id=None):
        doc = normalize(text)
        return CorpusEntry(
            submission_id=submission_id,
            scope_key=scope_key,
            doc=doc,
            sketch=fingerprint(doc),
            content_hash=content_hash(doc),
            source=SourceMetadata(student_id=student_id, course_name="Biology", assignment_title="Essay 1"),
        )
    return _make
