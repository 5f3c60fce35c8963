"""Shared test fixtures for backend tests."""

import asyncio
from typing import Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from gerai.core.config import Settings
from gerai.core.database import get_session, seed_defaults
from gerai.core.vault import SecretVault
from gerai.services.events import StreamEvent
from gerai.services.extractor import MemoryExtractor
from gerai.services.llm.base import BaseModelBackend, StreamRequest, StreamResult
from gerai.services.llm.mock import MockBackend
from gerai.services.orchestrator import ConversationOrchestrator
from gerai.services.store import ChatStore
from gerai.services.streams import StreamRegistry

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def get_test_session():
    with Session(test_engine) as session:
        yield session


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables and seed providers before each test, drop after."""
    import gerai.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    with Session(test_engine) as session:
        seed_defaults(session)
    yield
    SQLModel.metadata.drop_all(test_engine)


class EventCollector:
    """Event sink that records everything the orchestrator emits."""

    def __init__(self) -> None:
        self.events: list[StreamEvent] = []

    async def __call__(self, event: StreamEvent) -> None:
        self.events.append(event)

    def of_type(self, kind: str) -> list[StreamEvent]:
        return [e for e in self.events if e.type == kind]

    def deltas(self) -> list[str]:
        return [e.delta for e in self.of_type("chunk")]  # type: ignore[union-attr]

    async def wait_for_chunks(self, count: int, timeout: float = 2.0) -> None:
        async def _poll():
            while len(self.of_type("chunk")) < count:
                await asyncio.sleep(0.001)
        await asyncio.wait_for(_poll(), timeout)


class ScriptedBackend(BaseModelBackend):
    """Backend that plays back fixed chunks.

    With hold=True it waits for cancellation after the chunks, then plays
    late_chunks as a backend that is slow to notice the cancel would.
    """

    def __init__(
        self,
        chunks: tuple[str, ...] = ("Hello", " world"),
        continuation_id: Optional[str] = "resp_1",
        hold: bool = False,
        late_chunks: tuple[str, ...] = (),
        fail_with: Optional[Exception] = None,
        complete_reply: object = '{"general": [], "scoped": []}',
        requires_credential: bool = False,
        supports_memory_extraction: bool = True,
    ):
        self.chunks = chunks
        self.continuation_id = continuation_id
        self.hold = hold
        self.late_chunks = late_chunks
        self.fail_with = fail_with
        self.complete_reply = complete_reply
        self.requires_credential = requires_credential
        self.supports_memory_extraction = supports_memory_extraction
        self.requests: list[StreamRequest] = []
        self.complete_calls: list[dict] = []

    async def stream(self, request, on_chunk, cancel):
        self.requests.append(request)
        text = ""
        for chunk in self.chunks:
            if cancel.is_set():
                return StreamResult(output_text=text, aborted=True)
            text += chunk
            await on_chunk(chunk)
        if self.fail_with is not None:
            raise self.fail_with
        if self.hold:
            await cancel.wait()
            for chunk in self.late_chunks:
                await on_chunk(chunk)
            return StreamResult(output_text=text, aborted=True)
        return StreamResult(output_text=text, continuation_id=self.continuation_id)

    async def complete(self, credential, input, model, instructions=None):
        self.complete_calls.append({"credential": credential, "input": input, "model": model})
        if isinstance(self.complete_reply, Exception):
            raise self.complete_reply
        return self.complete_reply

    async def list_models(self, credential):
        return ["scripted-1", "scripted-2"]


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        _env_file=None,
        default_model="mock",
        data_dir=tmp_path,
        vault_key_path=tmp_path / "vault.key",
    )


@pytest.fixture
def vault(tmp_path):
    return SecretVault(tmp_path / "vault.key")


@pytest.fixture
def store():
    return ChatStore(test_engine)


@pytest.fixture
def make_orchestrator(store, vault, test_settings):
    """Build an orchestrator whose every provider resolves to the given backend."""
    def _make(backend: BaseModelBackend, **overrides) -> ConversationOrchestrator:
        config = test_settings.model_copy(update=overrides) if overrides else test_settings
        return ConversationOrchestrator(
            store=store,
            registry=StreamRegistry(),
            extractor=MemoryExtractor(store),
            vault=vault,
            backend_factory=lambda provider_id: backend,
            config=config,
        )
    return _make


@pytest.fixture
def chat_backend():
    return MockBackend(chunk_interval=0, reply="Hello from agent")


@pytest.fixture
def orchestrator(make_orchestrator, chat_backend):
    return make_orchestrator(chat_backend)


@pytest.fixture
def client(orchestrator):
    """FastAPI TestClient wired to the test DB and orchestrator."""
    from gerai.api.chat import get_orchestrator

    with (
        patch("gerai.core.database.engine", test_engine),
        patch("gerai.api.chat._orchestrator", orchestrator),
    ):
        from gerai.main import app

        app.dependency_overrides[get_session] = get_test_session
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()
