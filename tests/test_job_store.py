import copy
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

from plagiarism_engine.models.schemas import (
    AnalysisResult,
    CheckStatus,
    ErrorCode,
    PlagiarismCheck,
    PlagiarismResult,
    Scope,
    SourceMetadata,
)
from plagiarism_engine.services.job_store import InMemoryJobStore, MongoJobStore

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_check(submission_id=1, attempt_id="a1", status=CheckStatus.PENDING, course_id=10, assignment_id=20, **kw):
    return PlagiarismCheck(
        submission_id=submission_id,
        attempt_id=attempt_id,
        status=status,
        requested_at=NOW,
        scope=Scope(course_id=course_id, assignment_id=assignment_id),
        **kw,
    )


def make_result(submission_id=1):
    return PlagiarismResult(
        submission_id=submission_id,
        similarity_score=0.0,
        matched_sources=[],
        suspicious_patterns=[],
        analysis_results=AnalysisResult(processed_at=NOW),
    )


# ---- record invariants ----

def test_completed_check_requires_result():
    with pytest.raises(ValidationError):
        make_check(status=CheckStatus.COMPLETED)
    assert make_check(status=CheckStatus.COMPLETED, result=make_result()).result is not None


def test_failed_check_requires_error_and_no_result():
    with pytest.raises(ValidationError):
        make_check(status=CheckStatus.FAILED)
    with pytest.raises(ValidationError):
        make_check(status=CheckStatus.FAILED, error="boom", result=make_result())
    failed = make_check(status=CheckStatus.FAILED, error="boom", error_code=ErrorCode.TIMEOUT)
    assert failed.error_code == ErrorCode.TIMEOUT


def test_text_is_not_serialized():
    check = make_check(text="secret essay", source=SourceMetadata(student_id="s-1"))
    dumped = check.model_dump(by_alias=True)
    assert "text" not in dumped
    assert "source" not in dumped
    assert dumped["attemptId"] == "a1"


# ---- in-memory store ----

@pytest.mark.asyncio
async def test_insert_only_when_absent(store):
    first = make_check(attempt_id="a1")
    assert await store.compare_and_set(1, None, first)
    assert not await store.compare_and_set(1, None, make_check(attempt_id="a2"))
    assert (await store.get(1)).attempt_id == "a1"


@pytest.mark.asyncio
async def test_replace_requires_matching_status_and_attempt(store):
    pending = make_check()
    await store.compare_and_set(1, None, pending)
    processing = pending.model_copy(update={"status": CheckStatus.PROCESSING})

    stale = make_check(attempt_id="other")
    assert not await store.compare_and_set(1, stale, processing)
    assert await store.compare_and_set(1, pending, processing)
    # the pending record it was based on is no longer current
    assert not await store.compare_and_set(1, pending, processing)
    assert (await store.get(1)).status == CheckStatus.PROCESSING


@pytest.mark.asyncio
async def test_returned_records_are_copies(store):
    await store.compare_and_set(1, None, make_check(text="original"))
    got = await store.get(1)
    got.text = "changed"
    assert (await store.get(1)).text == "original"


@pytest.mark.asyncio
async def test_get_missing(store):
    assert await store.get(404) is None


@pytest.mark.asyncio
async def test_list_filters(store):
    await store.compare_and_set(3, None, make_check(3, course_id=1, assignment_id=1))
    await store.compare_and_set(1, None, make_check(1, course_id=1, assignment_id=2))
    await store.compare_and_set(2, None, make_check(
        2, course_id=2, assignment_id=3, status=CheckStatus.FAILED, error="x"))

    assert [c.submission_id for c in await store.list()] == [1, 2, 3]
    assert [c.submission_id for c in await store.list(course_id=1)] == [1, 3]
    assert [c.submission_id for c in await store.list(course_id=1, assignment_id=2)] == [1]
    assert [c.submission_id for c in await store.list(statuses=[CheckStatus.FAILED])] == [2]
    assert await store.list(course_id=99) == []


# ---- MongoDB store over an in-process collection ----

def _lookup(doc, dotted):
    for part in dotted.split("."):
        if not isinstance(doc, dict) or part not in doc:
            return None
        doc = doc[part]
    return doc


def _matches(doc, query):
    for key, cond in query.items():
        value = _lookup(doc, key)
        if isinstance(cond, dict) and "$in" in cond:
            if value not in cond["$in"]:
                return False
        elif value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction):
        self._docs = sorted(self._docs, key=lambda d: d[key], reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        return self._docs


class FakeCollection:
    def __init__(self):
        self.docs = {}

    async def find_one(self, query):
        for doc in self.docs.values():
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def insert_one(self, document):
        if document["_id"] in self.docs:
            raise DuplicateKeyError("E11000 duplicate key error")
        self.docs[document["_id"]] = copy.deepcopy(document)

    async def find_one_and_replace(self, query, replacement):
        for key, doc in self.docs.items():
            if _matches(doc, query):
                self.docs[key] = copy.deepcopy(replacement)
                return doc
        return None

    def find(self, query):
        return FakeCursor([copy.deepcopy(d) for d in self.docs.values() if _matches(d, query)])


class FakeClient:
    def __init__(self):
        self.collection = FakeCollection()
        self.closed = False

    def __getitem__(self, name):
        return {"plagiarism_checks": self.collection}

    def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_mongo_store_round_trips_hidden_fields():
    client = FakeClient()
    store = MongoJobStore(client, "plagiarism")
    check = make_check(text="essay body", source=SourceMetadata(student_id="s-9", course_name="History"))
    assert await store.compare_and_set(1, None, check)

    raw = client.collection.docs[1]
    assert raw["_id"] == 1
    assert raw["text"] == "essay body"
    assert raw["status"] == "pending"

    loaded = await store.get(1)
    assert loaded.text == "essay body"
    assert loaded.source.student_id == "s-9"
    assert loaded.requested_at == NOW
    assert loaded.scope == Scope(course_id=10, assignment_id=20)


@pytest.mark.asyncio
async def test_mongo_store_compare_and_set():
    client = FakeClient()
    store = MongoJobStore(client, "plagiarism")
    pending = make_check()
    assert await store.compare_and_set(1, None, pending)
    assert not await store.compare_and_set(1, None, make_check(attempt_id="a2"))

    processing = pending.model_copy(update={"status": CheckStatus.PROCESSING})
    assert await store.compare_and_set(1, pending, processing)
    assert not await store.compare_and_set(1, pending, processing)

    completed = processing.model_copy(update={"status": CheckStatus.COMPLETED, "result": make_result()})
    assert await store.compare_and_set(1, processing, completed)
    loaded = await store.get(1)
    assert loaded.status == CheckStatus.COMPLETED
    assert loaded.result.submission_id == 1


@pytest.mark.asyncio
async def test_mongo_store_list_and_close():
    client = FakeClient()
    store = MongoJobStore(client, "plagiarism")
    await store.compare_and_set(2, None, make_check(2, course_id=1))
    await store.compare_and_set(1, None, make_check(1, course_id=1, assignment_id=5))
    await store.compare_and_set(3, None, make_check(3, course_id=2))

    assert [c.submission_id for c in await store.list(course_id=1)] == [1, 2]
    assert [c.submission_id for c in await store.list(course_id=1, assignment_id=5)] == [1]
    assert [c.submission_id for c in await store.list(statuses=[CheckStatus.PENDING])] == [1, 2, 3]
    assert await store.get(404) is None

    await store.close()
    assert client.closed
