from abc import abstractmethod
from typing import Any

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.models.VectorRecord import QueryMatch, VectorRecord
from shared.exceptions import ClientRequestError, VectorIndexError
from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    # top-k used when a filtered delete has to be emulated with a zero-vector query
    DELETE_SCAN_TOP_K = 10000

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.upsert_batch_size = int(helper_config.get_number_val("RAG_UPSERT_BATCH_SIZE", default=100))

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def supports_native_filter_delete(self) -> bool:
        """True if the backend can delete points by metadata filter in one request."""
        return self.get_delete_by_filter_payload({}) is not None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_upsert(self) -> str:
        """
        Returns the endpoint path for upsert requests.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points")
        """
        pass

    def _get_upsert_method(self) -> str:
        """HTTP method used for upsert requests."""
        return "POST"

    @abstractmethod
    def _get_endpoint_query(self) -> str:
        """
        Returns the endpoint path for similarity search requests.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points/search")
        """
        pass

    @abstractmethod
    def _get_endpoint_delete(self) -> str:
        """
        Returns the endpoint path for delete requests (by ids and, where supported, by filter).

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points/delete")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def build_filter(self, conditions: dict[str, Any]) -> dict:
        """
        Translates flat equality conditions into the backend filter format.

        Args:
            conditions (dict[str, Any]): Metadata field → required value,
                e.g. {"note_id": "n1", "user_id": "u1", "project_id": "p1"}.
                All conditions must match (logical AND).

        Returns:
            dict: The backend-specific filter.
        """
        pass

    @abstractmethod
    def get_upsert_payload(self, records: list[VectorRecord]) -> dict:
        """
        Builds the backend-specific request body for one upsert batch.

        Args:
            records (list[VectorRecord]): The vectors of this batch.

        Returns:
            dict: The payload for the upsert request.
        """
        pass

    @abstractmethod
    def get_query_payload(self, vector: list[float], top_k: int, filter: dict | None) -> dict:
        """
        Builds the backend-specific request body for a similarity search.

        Args:
            vector (list[float]): The query embedding.
            top_k (int): Maximum number of matches.
            filter (dict | None): A filter created by build_filter().

        Returns:
            dict: The payload for the query request.
        """
        pass

    @abstractmethod
    def get_fetch_request(self, ids: list[str]) -> dict:
        """
        Builds the keyword arguments of do_request() for fetching vectors by id.

        Backends differ in method and body (Qdrant POSTs a JSON body, Pinecone
        uses GET with repeated query parameters), so the full request is built here.

        Args:
            ids (list[str]): The vector ids to fetch.

        Returns:
            dict: Keyword arguments for do_request (method, endpoint, json/params).
        """
        pass

    @abstractmethod
    def get_delete_payload(self, ids: list[str]) -> dict:
        """
        Builds the backend-specific request body for deleting vectors by id.

        Args:
            ids (list[str]): The vector ids to delete.

        Returns:
            dict: The payload for the delete request.
        """
        pass

    @abstractmethod
    def get_delete_by_filter_payload(self, filter: dict) -> dict | None:
        """
        Builds the request body for a native filter-based delete.

        Args:
            filter (dict): A filter created by build_filter().

        Returns:
            dict | None: The payload, or None if the backend has no native
                filtered delete. do_delete_by_filter() then falls back to a
                zero-vector query followed by a delete by ids.
        """
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def extract_query_matches(self, raw_response: dict) -> list[QueryMatch]:
        """
        Extracts ranked matches from a raw similarity search response.

        Args:
            raw_response (dict): The parsed JSON response body.

        Returns:
            list[QueryMatch]: Matches ordered by descending score.
        """
        pass

    @abstractmethod
    def extract_fetched_records(self, raw_response: dict) -> list[VectorRecord]:
        """
        Extracts vectors (values and metadata) from a raw fetch response.

        Ids that were requested but are missing are simply absent from the result.

        Args:
            raw_response (dict): The parsed JSON response body.

        Returns:
            list[VectorRecord]: The fetched vectors.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_ensure_index(self, vector_size: int, distance: str = "Cosine") -> None:
        """Make sure the target index/collection exists with the given dimension.

        Args:
            vector_size (int): Dimension of the embedding vectors.
            distance (str): Distance metric.
        """
        pass

    @abstractmethod
    async def do_fetch_index_dimension(self) -> int:
        """Return the vector dimension of the target index/collection."""
        pass

    async def _do_index_request(self, operation: str, **kwargs) -> httpx.Response:
        """Send a request to the index and map transport and status failures to VectorIndexError.

        Args:
            operation (str): Short name of the operation, used in logs and errors.
            **kwargs: Passed to do_request().

        Raises:
            VectorIndexError: If the request fails or returns a non-2xx status.
        """
        try:
            return await self.do_request(raise_on_error=True, **kwargs)
        except (httpx.HTTPError, ClientRequestError) as exc:
            raise VectorIndexError(
                f"{self.get_engine_name()} {operation} request failed: {exc}",
                details={"engine": self.get_engine_name(), "operation": operation},
            ) from exc

    def _batches(self, items: list, size: int | None = None) -> list[list]:
        size = size or self.upsert_batch_size
        return [items[i:i + size] for i in range(0, len(items), size)]

    async def do_upsert(self, records: list[VectorRecord]) -> int:
        """Upsert vectors in sequential fixed-size batches.

        Inserts new vectors or replaces existing ones with the same id.

        Args:
            records (list[VectorRecord]): The vectors to upsert.

        Returns:
            int: Number of vectors upserted.

        Raises:
            VectorIndexError: On the first failing batch. details["upserted_ids"]
                lists the ids of all batches that were written before the failure.
        """
        upserted_ids: list[str] = []
        batches = self._batches(records)
        for batch_no, batch in enumerate(batches, start=1):
            try:
                await self._do_index_request(
                    "upsert",
                    method=self._get_upsert_method(),
                    endpoint=self._get_endpoint_upsert(),
                    json=self.get_upsert_payload(batch),
                )
            except VectorIndexError as exc:
                exc.details["batch"] = batch_no
                exc.details["upserted_ids"] = upserted_ids
                raise
            upserted_ids.extend(record.id for record in batch)
            self.logging.debug(
                "Upserted batch %d of %d (%d vectors) to %s",
                batch_no, len(batches), len(batch), self.get_engine_name(),
            )
        return len(upserted_ids)

    async def do_query(self, vector: list[float], top_k: int, conditions: dict[str, Any] | None = None) -> list[QueryMatch]:
        """Similarity search constrained by equality conditions on metadata.

        Args:
            vector (list[float]): The query embedding.
            top_k (int): Maximum number of matches.
            conditions (dict[str, Any] | None): Metadata equality conditions.

        Returns:
            list[QueryMatch]: Ranked matches.

        Raises:
            VectorIndexError: If the request fails.
        """
        filter = self.build_filter(conditions) if conditions else None
        response = await self._do_index_request(
            "query",
            method="POST",
            endpoint=self._get_endpoint_query(),
            json=self.get_query_payload(vector, top_k, filter),
        )
        return self.extract_query_matches(response.json())

    async def do_query_text(
        self,
        text: str,
        embed_client: EmbedClientInterface,
        top_k: int,
        conditions: dict[str, Any] | None = None,
    ) -> list[QueryMatch]:
        """Embed the text with the given client and run do_query() with the result.

        Raises:
            EmbeddingError: If the embedding request fails.
            VectorIndexError: If the query fails.
        """
        vector = await embed_client.do_embed_one(text)
        return await self.do_query(vector, top_k, conditions)

    async def do_fetch(self, ids: list[str]) -> list[VectorRecord]:
        """Fetch vectors by id. Missing ids are skipped with a warning.

        Raises:
            VectorIndexError: If a fetch request fails.
        """
        records: list[VectorRecord] = []
        for batch in self._batches(ids):
            response = await self._do_index_request("fetch", **self.get_fetch_request(batch))
            fetched = self.extract_fetched_records(response.json())
            found = {record.id for record in fetched}
            missing = [vector_id for vector_id in batch if vector_id not in found]
            if missing:
                self.logging.warning(
                    "%d of %d requested vectors not found in %s: %s",
                    len(missing), len(batch), self.get_engine_name(), missing[:10],
                )
            records.extend(fetched)
        return records

    async def do_delete_by_ids(self, ids: list[str]) -> int:
        """Delete vectors by id in fixed-size batches.

        Returns:
            int: Number of ids submitted for deletion.

        Raises:
            VectorIndexError: If a delete request fails.
        """
        for batch in self._batches(ids):
            await self._do_index_request(
                "delete",
                method="POST",
                endpoint=self._get_endpoint_delete(),
                json=self.get_delete_payload(batch),
            )
        if ids:
            self.logging.debug("Deleted %d vectors from %s", len(ids), self.get_engine_name())
        return len(ids)

    async def do_delete_by_filter(self, conditions: dict[str, Any]) -> int | None:
        """Delete every vector matching the equality conditions.

        Uses the native filtered delete where the backend offers one. Otherwise
        queries with a zero vector and a large top-k to collect the matching ids
        and deletes those, repeating until a scan comes back empty or returns
        only ids that were already deleted.

        Args:
            conditions (dict[str, Any]): Metadata equality conditions. Must not be empty.

        Returns:
            int | None: Number of deleted vectors, or None for native deletes
                where the backend does not report a count.

        Raises:
            ValueError: If conditions is empty.
            VectorIndexError: If a request fails.
        """
        if not conditions:
            raise ValueError("Refusing to delete by an empty filter.")

        filter = self.build_filter(conditions)
        payload = self.get_delete_by_filter_payload(filter)
        if payload is not None:
            await self._do_index_request("delete", method="POST", endpoint=self._get_endpoint_delete(), json=payload)
            self.logging.debug("Deleted vectors by filter %s from %s", conditions, self.get_engine_name())
            return None

        zero_vector = [0.0] * await self.do_fetch_index_dimension()
        deleted = 0
        seen: set[str] = set()
        while True:
            matches = await self.do_query(zero_vector, self.DELETE_SCAN_TOP_K, conditions)
            ids = [match.id for match in matches if match.id not in seen]
            if not ids:
                if matches:
                    # deletes not visible to queries yet
                    self.logging.warning(
                        "Filtered delete on %s returned only already deleted ids, stopping scan.",
                        self.get_engine_name(),
                    )
                break
            seen.update(ids)
            deleted += await self.do_delete_by_ids(ids)
            if len(matches) < self.DELETE_SCAN_TOP_K:
                break
        self.logging.debug("Deleted %d vectors by filter %s from %s", deleted, conditions, self.get_engine_name())
        return deleted

    async def do_update_metadata_by_ids(self, ids: list[str], patch: dict[str, Any]) -> int:
        """Patch metadata fields on existing vectors without touching their values.

        Implemented as fetch → merge → reupsert, batch by batch, because the
        backends have no partial-metadata-patch primitive. A failing batch is
        logged and skipped; the remaining batches still run.

        Args:
            ids (list[str]): Ids of the vectors to patch.
            patch (dict[str, Any]): Metadata fields to overwrite.

        Returns:
            int: Number of vectors actually updated.
        """
        updated = 0
        batches = self._batches(ids)
        for batch_no, batch in enumerate(batches, start=1):
            try:
                records = await self.do_fetch(batch)
                if not records:
                    continue
                merged = [
                    VectorRecord(id=record.id, values=record.values, metadata={**record.metadata, **patch})
                    for record in records
                ]
                await self._do_index_request(
                    "upsert",
                    method=self._get_upsert_method(),
                    endpoint=self._get_endpoint_upsert(),
                    json=self.get_upsert_payload(merged),
                )
                updated += len(merged)
            except VectorIndexError as exc:
                self.logging.error(
                    "Metadata patch batch %d of %d failed on %s, skipping: %s",
                    batch_no, len(batches), self.get_engine_name(), exc,
                )
        self.logging.info("Patched metadata on %d of %d vectors in %s", updated, len(ids), self.get_engine_name())
        return updated
