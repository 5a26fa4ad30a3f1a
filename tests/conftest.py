"""
Shared test fixtures for the notes RAG bridge.

Provides: env configuration, HelperConfig, an in-process Qdrant emulator
served through httpx.MockTransport, a deterministic embedder, a scripted
LLM client and in-memory repositories.
"""

import inspect
import json
import logging

import httpx
import pytest

from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.exceptions import CompletionError, EmbeddingError
from shared.helper.HelperConfig import HelperConfig
from shared.repositories.memory.InMemoryChunkMirrorRepository import InMemoryChunkMirrorRepository
from shared.repositories.memory.InMemoryDocumentUnitRepository import InMemoryDocumentUnitRepository

COLLECTION = "notes"


##########################################
################ CONFIG ##################
##########################################

@pytest.fixture(autouse=True)
def base_env(monkeypatch, tmp_path):
    """Minimal env configuration every client and service can be built from."""
    env = {
        "LOG_DIR": str(tmp_path / "logs"),
        "APP_API_KEY": "test-api-key",
        "EMBED_ENGINE": "ollama",
        "EMBED_MODEL": "nomic-embed-text",
        "EMBED_OLLAMA_BASE_URL": "http://ollama.test",
        "EMBED_OPENAI_API_KEY": "sk-embed",
        "LLM_ENGINE": "ollama",
        "LLM_CHAT_MODEL": "llama3",
        "LLM_FAST_MODEL": "llama3-mini",
        "LLM_OLLAMA_BASE_URL": "http://ollama.test",
        "LLM_OPENAI_API_KEY": "sk-chat",
        "RAG_ENGINE": "qdrant",
        "RAG_QDRANT_BASE_URL": "http://qdrant.test",
        "RAG_QDRANT_COLLECTION": COLLECTION,
        "RAG_PINECONE_INDEX_HOST": "notes-abc123.svc.pinecone.test",
        "RAG_PINECONE_API_KEY": "pc-key",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    for key in ("CHUNK_SIZE", "CHUNK_OVERLAP", "RAG_UPSERT_BATCH_SIZE", "VECTORIZE_SUMMARIES", "QA_TOP_K"):
        monkeypatch.delenv(key, raising=False)
    return env


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=logging.getLogger("notes_rag_bridge.tests"))


##########################################
############# QDRANT EMULATOR ############
##########################################

class QdrantEmulator:
    """Answers the subset of the Qdrant REST API the RAG client uses, from memory.

    Attributes:
        points: id -> {"vector": [...], "payload": {...}}
        requests: every request as (method, path, body)
        fail_upserts: 1-based upsert call numbers that answer with HTTP 500
        fail_fetches: 1-based fetch call numbers that answer with HTTP 500
    """

    def __init__(self, collection: str = COLLECTION):
        self.collection = collection
        self.points: dict[str, dict] = {}
        self.exists = False
        self.vector_size = 4
        self.requests: list[tuple[str, str, dict | None]] = []
        self.fail_upserts: set[int] = set()
        self.fail_fetches: set[int] = set()
        self.fail_searches = False
        self._upsert_calls = 0
        self._fetch_calls = 0

    def payloads(self) -> list[dict]:
        return [point["payload"] for point in self.points.values()]

    def requests_to(self, method: str, suffix: str) -> list[dict | None]:
        return [body for m, path, body in self.requests if m == method and path.endswith(suffix)]

    @staticmethod
    def _matches(payload: dict, filter: dict | None) -> bool:
        if not filter:
            return True
        return all(payload.get(cond["key"]) == cond["match"]["value"] for cond in filter.get("must", []))

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        method = request.method
        body = json.loads(request.content) if request.content else None
        self.requests.append((method, path, body))
        prefix = f"/collections/{self.collection}"

        if path == "/healthz":
            return httpx.Response(200, text="healthz check passed")
        if path == f"{prefix}/exists":
            return httpx.Response(200, json={"result": {"exists": self.exists}})
        if path == prefix and method == "PUT":
            self.exists = True
            self.vector_size = body["vectors"]["size"]
            return httpx.Response(200, json={"result": True})
        if path == prefix and method == "GET":
            return httpx.Response(200, json={"result": {"config": {"params": {"vectors": {"size": self.vector_size}}}}})
        if path == f"{prefix}/points" and method == "PUT":
            self._upsert_calls += 1
            if self._upsert_calls in self.fail_upserts:
                return httpx.Response(500, json={"status": {"error": "upsert failed"}})
            for point in body["points"]:
                self.points[point["id"]] = {"vector": point["vector"], "payload": point["payload"]}
            return httpx.Response(200, json={"result": {"status": "completed"}})
        if path == f"{prefix}/points" and method == "POST":
            self._fetch_calls += 1
            if self._fetch_calls in self.fail_fetches:
                return httpx.Response(500, json={"status": {"error": "fetch failed"}})
            result = [
                {"id": point_id, "vector": self.points[point_id]["vector"], "payload": self.points[point_id]["payload"]}
                for point_id in body["ids"]
                if point_id in self.points
            ]
            return httpx.Response(200, json={"result": result})
        if path == f"{prefix}/points/search":
            if self.fail_searches:
                return httpx.Response(503, json={"status": {"error": "unavailable"}})
            hits = [
                {
                    "id": point_id,
                    "score": sum(a * b for a, b in zip(body["vector"], point["vector"])),
                    "payload": point["payload"],
                }
                for point_id, point in self.points.items()
                if self._matches(point["payload"], body.get("filter"))
            ]
            hits.sort(key=lambda hit: hit["score"], reverse=True)
            return httpx.Response(200, json={"result": hits[: body["limit"]]})
        if path == f"{prefix}/points/delete":
            if "points" in body:
                for point_id in body["points"]:
                    self.points.pop(point_id, None)
            else:
                doomed = [pid for pid, point in self.points.items() if self._matches(point["payload"], body["filter"])]
                for point_id in doomed:
                    del self.points[point_id]
            return httpx.Response(200, json={"result": {"status": "completed"}})
        return httpx.Response(404, json={"status": {"error": f"unknown route {method} {path}"}})


@pytest.fixture
def qdrant() -> QdrantEmulator:
    return QdrantEmulator()


@pytest.fixture
async def rag_client(helper_config, qdrant):
    client = RAGClientQdrant(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(qdrant.handler))
    yield client
    await client.close()


##########################################
############## FAKE EMBEDDER #############
##########################################

class FakeEmbedClient:
    """Deterministic 4-dimensional embedder that records every batch it was asked for."""

    DIMENSION = 4

    def __init__(self):
        self.calls: list[list[str]] = []
        self.fail = False

    def get_model_name(self) -> str:
        return "fake-embed"

    def _vector(self, text: str) -> list[float]:
        return [1.0, (len(text) % 7) / 7.0, text.count(" ") / 100.0, 0.5]

    async def do_embed(self, texts):
        texts = [texts] if isinstance(texts, str) else list(texts)
        self.calls.append(texts)
        if self.fail:
            raise EmbeddingError("embedding backend unavailable")
        return [self._vector(text) for text in texts]

    async def do_embed_one(self, text: str) -> list[float]:
        return (await self.do_embed([text]))[0]

    async def do_fetch_embedding_vector_size(self):
        return self.DIMENSION, "Cosine"


@pytest.fixture
def embed_client() -> FakeEmbedClient:
    return FakeEmbedClient()


##########################################
############### FAKE LLM #################
##########################################

class ScriptedLLMClient:
    """LLM client double with scripted replies.

    JSON-mode chat calls (intent classification) answer with
    classification_reply; other chat calls with chat_reply; streams yield
    stream_tokens and raise CompletionError after fail_stream_after tokens
    when that is set.
    """

    chat_model = "llama3"
    fast_model = "llama3-mini"

    def __init__(self):
        self.classification_reply = json.dumps({
            "intent": "in_domain",
            "confidence": 0.9,
            "domain_topics": ["biology"],
            "suggested_pipeline": "rag_only",
            "reasoning": "asks about the attached paper",
        })
        self.chat_reply = "Scripted answer."
        self.stream_tokens = ["Scripted ", "streamed ", "answer."]
        self.fail_classification = False
        self.fail_chat = False
        self.fail_stream_after: int | None = None
        self.calls: list[dict] = []

    async def do_chat(self, messages, model=None, temperature=None, json_mode=False, max_tokens=None) -> str:
        self.calls.append({
            "kind": "chat",
            "messages": messages,
            "model": model,
            "temperature": temperature,
            "json_mode": json_mode,
            "max_tokens": max_tokens,
        })
        if json_mode:
            if self.fail_classification:
                raise CompletionError("classification backend unavailable")
            return self.classification_reply
        if self.fail_chat:
            raise CompletionError("chat backend unavailable")
        return self.chat_reply

    async def do_complete(self, prompt, model=None, temperature=None) -> str:
        return await self.do_chat([{"role": "user", "content": prompt}], model=model, temperature=temperature)

    async def do_chat_stream(self, messages, model=None, temperature=None, max_tokens=None):
        self.calls.append({"kind": "stream", "messages": messages, "model": model, "temperature": temperature})
        for i, token in enumerate(self.stream_tokens):
            if self.fail_stream_after is not None and i >= self.fail_stream_after:
                raise CompletionError("stream interrupted")
            yield token
        if self.fail_stream_after is not None and self.fail_stream_after >= len(self.stream_tokens):
            raise CompletionError("stream interrupted")

    async def do_complete_streaming(self, prompt, on_token, model=None, temperature=None) -> str:
        parts = []
        async for token in self.do_chat_stream([{"role": "user", "content": prompt}], model=model, temperature=temperature):
            parts.append(token)
            result = on_token(token)
            if inspect.isawaitable(result):
                await result
        return "".join(parts)

    def chat_calls(self, json_mode: bool | None = None) -> list[dict]:
        return [
            call for call in self.calls
            if call["kind"] == "chat" and (json_mode is None or call["json_mode"] == json_mode)
        ]


@pytest.fixture
def llm_client() -> ScriptedLLMClient:
    return ScriptedLLMClient()


##########################################
############## REPOSITORIES ##############
##########################################

@pytest.fixture
def repository() -> InMemoryDocumentUnitRepository:
    return InMemoryDocumentUnitRepository()


@pytest.fixture
def chunk_mirror() -> InMemoryChunkMirrorRepository:
    return InMemoryChunkMirrorRepository()


class ChunkRecorder:
    """on_chunk callback that records every (text, is_complete) call."""

    def __init__(self):
        self.calls: list[tuple[str, bool]] = []

    async def __call__(self, text: str, is_complete: bool) -> None:
        self.calls.append((text, is_complete))

    @property
    def text(self) -> str:
        return "".join(text for text, _ in self.calls)

    @property
    def terminal_calls(self) -> list[tuple[str, bool]]:
        return [call for call in self.calls if call[1]]


@pytest.fixture
def recorder() -> ChunkRecorder:
    return ChunkRecorder()
