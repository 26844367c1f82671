"""Pytest configuration and fixtures for Docent tests."""
import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine, event

from docent.assistant import Assistant
from docent.config import Settings
from docent.core.db import build_session_factory, init_db
from docent.core.repositories import (
    ConversationRepository,
    FeedbackRepository,
    KnowledgeRepository,
    MessageRepository,
    PersonalityRepository,
)
from docent.llms.base import Embedder, TextGenerator
from docent.resilience import EmbeddingError, GenerationError


# =============================================================================
# FAKE MODEL COLLABORATORS
# =============================================================================


class FakeEmbedder(Embedder):
    """Returns scripted vectors per exact input text, or a default vector."""

    dimension = 3

    def __init__(self, vectors=None, default=None, fail=False):
        self.vectors = dict(vectors or {})
        self.default = default if default is not None else [0.0, 0.0, 1.0]
        self.fail = fail
        self.calls = []

    async def embed(self, text):
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("embedding service unavailable")
        return list(self.vectors.get(text, self.default))


class FakeGenerator(TextGenerator):
    """Scripted completions and streamed chunks; records every call."""

    def __init__(self, reply="Here is what I found.", chunks=None, fail=False, fail_after=None):
        self.reply = reply
        self.chunks = list(chunks) if chunks is not None else ["Here is ", "what I ", "found."]
        self.fail = fail
        self.fail_after = fail_after
        self.calls = []

    def _record(self, kind, system_prompt, history, user_message, temperature, max_tokens):
        self.calls.append(
            {
                "kind": kind,
                "system_prompt": system_prompt,
                "history": list(history),
                "user_message": user_message,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )

    async def complete(self, system_prompt, history, user_message, *, temperature=None, max_tokens=None):
        self._record("complete", system_prompt, history, user_message, temperature, max_tokens)
        if self.fail:
            raise GenerationError("model unavailable")
        return self.reply

    async def complete_stream(self, system_prompt, history, user_message, *, temperature=None, max_tokens=None):
        self._record("stream", system_prompt, history, user_message, temperature, max_tokens)
        if self.fail:
            raise GenerationError("model unavailable")
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i == self.fail_after:
                raise GenerationError("stream interrupted")
            yield chunk


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'docent-test.db'}",
        PERSONALITY_NAME="Docent Test",
        PERSONALITY_TONE=None,
        PERSONALITY_INSTRUCTIONS=None,
        OPENAI_API_KEY="test-key",
        ANTHROPIC_API_KEY="test-key",
    )


@pytest.fixture
def engine(settings):
    """File-backed SQLite engine; sessions run on executor threads."""
    engine = create_engine(settings.DATABASE_URL, connect_args={"check_same_thread": False})

    # Enable foreign key support in SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def conversation_repo(session_factory):
    return ConversationRepository(session_factory)


@pytest.fixture
def message_repo(session_factory):
    return MessageRepository(session_factory)


@pytest.fixture
def knowledge_repo(session_factory):
    return KnowledgeRepository(session_factory)


@pytest.fixture
def personality_repo(session_factory):
    return PersonalityRepository(session_factory)


@pytest.fixture
def feedback_repo(session_factory):
    return FeedbackRepository(session_factory)


# =============================================================================
# COLLABORATORS AND FACADE
# =============================================================================


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def assistant(settings, session_factory, generator, embedder):
    return Assistant(settings, session_factory=session_factory, generator=generator, embedder=embedder)
