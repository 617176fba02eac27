"""
Shared fixtures: isolated SQLite database, fake Gemini generator, API client
"""
import json
import os
import tempfile

# Settings are read at import time, so configure the environment first
_TEST_DB_DIR = tempfile.mkdtemp(prefix="papergen-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB_DIR}/test.db"
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["CACHE_ENABLED"] = "false"

import pytest

import papergen.models  # noqa: F401
from papergen.database import Base, SessionLocal, engine
from papergen.errors import GeneratorError
from papergen.schemas.paper import GenerationConfig, Section


class FakeGenerator:
    """Stands in for GeminiService: returns canned responses and records prompts"""

    model_name = "fake-gemini"

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.prompts = []

    def generate(self, prompt, temperature=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        if self.responses:
            return self.responses[0]
        return "I could not produce JSON this time."


def build_ai_paper(sections, answer=None, prefix="Describe"):
    """A well-formed model response for (name, count, marks) section triples"""
    return {
        "title": "Physics Midterm",
        "subjectName": "Physics",
        "instructions": "Answer all questions.",
        "totalMarks": sum(marks for _, _, marks in sections),
        "duration": "3 Hours",
        "sections": [
            {
                "name": name,
                "instructions": "Answer all questions from this section",
                "questions": [
                    {
                        "id": i + 1,
                        "text": f"{prefix} how wave interference produces pattern number {i + 1} in {name}, "
                                f"with a labelled diagram and one worked example.",
                        "marks": marks / count,
                        "type": "Theoretical",
                        "difficulty": "Medium",
                        "bloomLevel": "Understand",
                        "chapter": "Waves",
                        "answer": answer,
                    }
                    for i in range(count)
                ],
            }
            for name, count, marks in sections
        ],
    }


@pytest.fixture
def ai_paper():
    return build_ai_paper


@pytest.fixture
def ai_response():
    def _response(sections, **kwargs):
        return json.dumps(build_ai_paper(sections, **kwargs))
    return _response


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def failing_generator():
    return FakeGenerator(error=GeneratorError("Gemini generation failed: 503 UNAVAILABLE"))


@pytest.fixture
def section_a():
    return Section(name="Section A", marks=50, question_count=5, question_type="Theoretical")


@pytest.fixture
def config(section_a):
    return GenerationConfig(total_marks=50, sections=[section_a])


@pytest.fixture
def source_text():
    return (
        "Chapter 1: Waves\n\n"
        "Waves transfer energy without transferring matter. Interference occurs when two waves "
        "overlap, producing constructive and destructive patterns.\n\n"
        "Chapter 2: Optics\n\n"
        "Optics studies the behaviour of light, including reflection, refraction and diffraction "
        "through lenses and slits. Exercise 2.1 asks for the focal length of a convex lens.\n"
    )


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(fake_generator):
    from fastapi.testclient import TestClient

    from papergen.dependencies import get_cache_service, get_gemini_service
    from papergen.main import app
    from papergen.utils.cache import CacheService

    app.dependency_overrides[get_gemini_service] = lambda: fake_generator
    app.dependency_overrides[get_cache_service] = lambda: CacheService("redis://localhost:6379/0", enabled=False)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
