from abc import abstractmethod
from typing import Tuple

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import ClientRequestError, EmbeddingError
from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_distance = helper_config.get_string_val(f"{self.get_client_type().upper()}_DISTANCE", default="Cosine")
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=None)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    def get_model_name(self) -> str:
        """Returns the configured embedding model. Stored on every chunk for traceability."""
        return self.embed_model

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Response format differs by backend:
        - Ollama /api/embed: {"embeddings": [[...], [...]]}  (already ordered)
        - OpenAI-compatible: {"data": [{"embedding": [...], "index": 0}]} (needs sorting by index)

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            EmbeddingError: If the response format is invalid or embeddings are empty.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        """Determine the output vector dimension and distance metric of the configured model.

        The default implementation embeds a short probe text and measures the result,
        which works for every backend. Backends with a model-details endpoint may override.

        Returns:
            Tuple[int, str]: The vector dimension and the distance metric.
        """
        vector = await self.do_embed_one("dimension probe")
        return len(vector), self.embed_distance

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Send one embedding request for all texts and return the extracted vectors.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            EmbeddingError: If the request fails or the response holds the wrong number of vectors.
        """
        texts = [texts] if isinstance(texts, str) else texts
        if not texts:
            return []

        body = self.get_embed_payload(texts)
        try:
            response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        except (httpx.HTTPError, ClientRequestError) as exc:
            raise EmbeddingError(f"Embedding request to {self.get_engine_name()} failed: {exc}") from exc

        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingError(
                "Embedding request failed with status %d." % response.status_code,
                details={"engine": self.get_engine_name(), "model": self.embed_model},
            )

        vectors = self.extract_embeddings_from_response(response.json())
        if len(vectors) != len(texts):
            raise EmbeddingError(
                "Embedding backend returned %d vectors for %d inputs." % (len(vectors), len(texts)),
                details={"engine": self.get_engine_name(), "model": self.embed_model},
            )
        self.logging.debug("Generated %d embeddings (dimension: %d)", len(vectors), len(vectors[0]))
        return vectors

    async def do_embed_one(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: If the embedding request fails.
        """
        vectors = await self.do_embed([text])
        return vectors[0]
