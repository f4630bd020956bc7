import asyncio
import os
from types import SimpleNamespace

import pytest

# Settings are read at import time
os.environ.setdefault("DOCUMENT_STORE_BACKEND", "memory")
os.environ.setdefault("DEBUG", "false")

from examprep.services.document_store import MemoryDocumentStore  # noqa: E402


QUIZ_ID = "quiz-1"
STUDENT_ID = "student-1"

SAMPLE_QUIZ = {
    "title": "Biology Mock 1",
    "selectedQuestions": [
        {"id": "q1", "options": ["A", "B", "C", "D"], "correctAnswer": "A", "subject": "Biology"},
        {"id": "q2", "options": ["A", "B", "C", "D"], "correctAnswer": "B", "subject": {"name": "Chemistry"}},
        {"id": "q3", "options": ["A", "B", "C", "D"], "correctAnswer": "C", "subject": "Biology", "graceMark": True},
    ],
    "accessType": "series",
    "series": ["fresher"],
    "duration": 30,
    "maxAttempts": 2,
    "published": True,
    "createdBy": "admin-1",
}


class FakeEmbeddings:
    def __init__(self, vector):
        self.vector = vector
        self.calls = []

    async def create(self, model, input):
        self.calls.append(input)
        items = input if isinstance(input, list) else [input]
        return SimpleNamespace(data=[SimpleNamespace(embedding=list(self.vector)) for _ in items])


class FakeStream:
    def __init__(self, parts, fail_after=None):
        self.parts = parts
        self.fail_after = fail_after

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for index, part in enumerate(self.parts):
            if self.fail_after is not None and index >= self.fail_after:
                raise ConnectionError("stream dropped")
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=part))])


class FakeCompletions:
    def __init__(self, reply="", stream_parts=None, fail_after=None):
        self.reply = reply
        self.stream_parts = stream_parts or []
        self.fail_after = fail_after
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if kwargs.get("stream"):
            return FakeStream(self.stream_parts, self.fail_after)
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    """Just enough of AsyncOpenAI for embeddings and chat completions"""

    def __init__(self, vector=(1.0, 0.0, 0.0), reply="", stream_parts=None, fail_after=None):
        self.embeddings = FakeEmbeddings(vector)
        self.chat = SimpleNamespace(completions=FakeCompletions(reply, stream_parts, fail_after))

    @property
    def chat_calls(self):
        return self.chat.completions.calls


def run(coro):
    return asyncio.run(coro)


def seed(store, documents):
    async def write_all():
        for path, data in documents.items():
            await store.set(path, data)
    run(write_all())


def read(store, path):
    return run(store.get(path))


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def quiz_store(store):
    """Store holding a series quiz, an enrolled student and an open attempt"""
    seed(store, {
        f"quizzes/{QUIZ_ID}": dict(SAMPLE_QUIZ),
        f"users/{STUDENT_ID}": {"role": "student", "name": "Sara"},
        "users/admin-1": {"role": "admin", "name": "Admin"},
        "enrollments/e1": {"studentId": STUDENT_ID, "seriesId": "fresher", "status": "active"},
        f"users/{STUDENT_ID}/quizAttempts/{QUIZ_ID}": {
            "answers": {},
            "flags": {},
            "currentIndex": 0,
            "remainingTime": 1800,
            "completed": False,
            "attemptNumber": 1,
        },
    })
    return store


@pytest.fixture
def fake_openai():
    return FakeOpenAI


@pytest.fixture
def helpers():
    return SimpleNamespace(run=run, seed=seed, read=read, quiz_id=QUIZ_ID, student_id=STUDENT_ID)
