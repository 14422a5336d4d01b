# tests/conftest.py
import re
import sys
import os
from types import SimpleNamespace

import httpx
import openai
import pytest
from fastapi.testclient import TestClient

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from coursetutor.llm.client import GenerationClient
from coursetutor.main import create_app
from coursetutor.memory.store import DocumentStore
from coursetutor.observability.metrics import MetricsTracker
from coursetutor.observability.posthog_client import PostHogClient
from coursetutor.services import TutorServices


# ============================================================
# UPSTREAM ERRORS
# ============================================================

def rate_limit_error() -> openai.RateLimitError:
    """A real openai.RateLimitError as the SDK raises it on HTTP 429."""
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(429, request=request)
    return openai.RateLimitError("Rate limit reached", response=response, body=None)


def server_error() -> openai.InternalServerError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(500, request=request)
    return openai.InternalServerError("Internal error", response=response, body=None)


# ============================================================
# FAKE EMBEDDINGS
# ============================================================

class FakeEmbedder:
    """
    Bag-of-words embedder over a growing vocabulary.

    Texts sharing words get positive cosine similarity; texts with no
    words in common score exactly 0.
    """

    def __init__(self, dim: int = 256, fail_on: str = None):
        self.dim = dim
        self.fail_on = fail_on
        self.vocab = {}
        self.calls = []

    async def embed(self, text):
        self.calls.append(text)

        if self.fail_on and self.fail_on in text:
            raise RuntimeError("embedding backend unavailable")

        vector = [0.0] * self.dim
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            index = self.vocab.setdefault(word, len(self.vocab) % self.dim)
            vector[index] += 1.0
        return vector


# ============================================================
# FAKE OPENAI CLIENTS
# ============================================================

def _delta_chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeStream:
    """Async iterator shaped like openai.AsyncStream of chat chunks."""

    def __init__(self, deltas, fail_after=None):
        self._chunks = [SimpleNamespace(choices=[]), _delta_chunk(None)]
        self._chunks += [_delta_chunk(d) for d in deltas]
        self._chunks.append(_delta_chunk(""))
        self._fail_after = fail_after
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        emitted = 0
        for chunk in self._chunks:
            if self._fail_after is not None and emitted >= self._fail_after:
                raise server_error()
            if chunk.choices and chunk.choices[0].delta.content:
                emitted += 1
            yield chunk

    async def close(self):
        self.closed = True


class FakeChatClient:
    """
    Scripted stand-in for AsyncOpenAI().chat.completions.

    Each outcome is consumed per create() call: an exception is raised,
    anything else is returned as the stream.
    """

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.streams = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        self.streams.append(outcome)
        return outcome


class FakeEmbeddingsClient:
    """Scripted stand-in for AsyncOpenAI().embeddings."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.embeddings = SimpleNamespace(create=self._create)

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def embedding_response(vector):
    return SimpleNamespace(data=[SimpleNamespace(embedding=vector)])


class RecordingSleep:
    """No-op replacement for asyncio.sleep that remembers each delay."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def store(tmp_path):
    return DocumentStore(root=str(tmp_path / "storage"))


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def no_sleep():
    return RecordingSleep()


@pytest.fixture
def make_generator(no_sleep):
    """Build a GenerationClient over a scripted chat client."""

    def _make(*outcomes, max_attempts=8):
        chat_client = FakeChatClient(outcomes)
        generator = GenerationClient(
            client=chat_client,
            model="test-model",
            max_attempts=max_attempts,
            sleep=no_sleep,
        )
        return generator, chat_client

    return _make


@pytest.fixture
def make_services(tmp_path, store, embedder, make_generator, monkeypatch):
    monkeypatch.delenv("POSTHOG_API_KEY", raising=False)

    def _make(*outcomes):
        generator, chat_client = make_generator(*outcomes)
        services = TutorServices(
            store=store,
            embedder=embedder,
            generator=generator,
            metrics=MetricsTracker(path=str(tmp_path / "metrics.json")),
            posthog=PostHogClient(),
        )
        return services, chat_client

    return _make


@pytest.fixture
def services(make_services):
    services, _ = make_services(FakeStream(["Think about ", "what a hash map ", "stores."]))
    return services


@pytest.fixture
def client(services):
    """
    FastAPI test client with injected fakes.

    Startup events are not run, so no OpenAI key is needed.
    """
    return TestClient(create_app(services))
