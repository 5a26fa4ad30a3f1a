"""FastAPI application entry point for the notes RAG bridge."""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from server.api.routers.HealthRouter import health_router
from server.api.routers.QueryRouter import query_router
from server.api.routers.WebhookRouter import webhook_router
from services.qa.IntentClassifier import IntentClassifier
from services.qa.PipelineOrchestrator import PipelineOrchestrator
from services.qa.synthesizers.DocumentSynthesizer import DocumentSynthesizer
from services.qa.synthesizers.ExternalSynthesizer import ExternalSynthesizer
from services.qa.synthesizers.HybridSynthesizer import HybridSynthesizer
from services.retrieval.SecureRetriever import SecureRetriever
from services.vectorization.VectorizationService import VectorizationService
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.repositories.ChunkMirrorRepositoryInterface import ChunkMirrorRepositoryInterface
from shared.repositories.DocumentUnitRepositoryInterface import DocumentUnitRepositoryInterface
from shared.repositories.memory.InMemoryChunkMirrorRepository import InMemoryChunkMirrorRepository
from shared.repositories.memory.InMemoryDocumentUnitRepository import InMemoryDocumentUnitRepository

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


def create_app(
    repository: DocumentUnitRepositoryInterface | None = None,
    chunk_mirror: ChunkMirrorRepositoryInterface | None = None,
    embed_client: EmbedClientInterface | None = None,
    llm_client: LLMClientInterface | None = None,
    rag_client: RAGClientInterface | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Clients that are not passed in are built from env configuration at
    startup, booted, health-checked and closed on shutdown. Passed-in clients
    are used as they are and never booted or closed here.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # when the app starts
        app.state.logging = logging
        app.state.config = HelperConfig(logger=logging)
        config = app.state.config

        owned_clients: list[ClientInterface] = []
        embed = embed_client
        if embed is None:
            embed = EmbedClientManager(helper_config=config).get_client()
            owned_clients.append(embed)
        llm = llm_client
        if llm is None:
            llm = LLMClientManager(helper_config=config).get_client()
            owned_clients.append(llm)
        rag = rag_client
        if rag is None:
            rag = RAGClientManager(helper_config=config).get_client()
            owned_clients.append(rag)

        logging.info("Booting %d clients...", len(owned_clients))
        for client in owned_clients:
            await client.boot()
        try:
            await check_connections(owned_clients)
            vector_size, distance = await embed.do_fetch_embedding_vector_size()
            await rag.do_ensure_index(vector_size, distance)
        except Exception:
            for client in owned_clients:
                await client.close()
            raise

        units = repository
        mirror = chunk_mirror
        if units is None or mirror is None:
            logging.warning("No persistent repositories configured, falling back to in-memory storage.")
            units = units or InMemoryDocumentUnitRepository()
            mirror = mirror or InMemoryChunkMirrorRepository()

        # Wire up services
        app.state.repository = units
        app.state.chunk_mirror = mirror
        app.state.embed_client = embed
        app.state.llm_client = llm
        app.state.rag_client = rag
        app.state.background_tasks = set()
        app.state.qa_keepalive_seconds = config.get_number_val("QA_KEEPALIVE_SECONDS", default=15)
        app.state.vectorizer = VectorizationService(
            helper_config=config,
            repository=units,
            chunk_mirror=mirror,
            embed_client=embed,
            rag_client=rag,
            llm_client=llm,
        )
        app.state.retriever = SecureRetriever(
            helper_config=config,
            repository=units,
            embed_client=embed,
            rag_client=rag,
        )
        app.state.orchestrator = PipelineOrchestrator(
            helper_config=config,
            repository=units,
            retriever=app.state.retriever,
            classifier=IntentClassifier(helper_config=config, llm_client=llm),
            document_synthesizer=DocumentSynthesizer(helper_config=config, llm_client=llm),
            external_synthesizer=ExternalSynthesizer(helper_config=config, llm_client=llm),
            hybrid_synthesizer=HybridSynthesizer(helper_config=config, llm_client=llm),
        )

        logging.info("Notes RAG bridge ready.", color="green")

        # while the app is running...
        yield

        # when the app shuts down, let running webhook jobs finish, then close all owned clients
        pending = list(app.state.background_tasks)
        if pending:
            logging.info("Waiting for %d background jobs to finish...", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
        for client in owned_clients:
            await client.close()
        logging.info("Notes RAG bridge shut down.")

    app = FastAPI(
        title="notes_rag_bridge",
        description=(
            "Retrieval-augmented question answering over notes and their attached library items. "
            "Content changes arrive via POST /webhook/..., questions via POST /notes/{note_id}/qa "
            "or the streaming GET /notes/{note_id}/qa/stream."
        ),
        version=app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(webhook_router)
    app.include_router(query_router)
    return app


async def check_connections(clients: list[ClientInterface]) -> None:
    """Check connectivity to all configured backends on startup.

    Raises:
        ClientRequestError: If a backend answers with a non-2xx status.
        httpx.HTTPError: If a backend is not reachable at all.
    """
    for client in clients:
        await client.do_healthcheck()
        logging.info(
            "%s client '%s' is reachable.",
            client.get_client_type().upper(),
            client.get_engine_name(),
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting notes_rag_bridge API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
