from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorRecord import QueryMatch, VectorRecord
from shared.models.config import EnvConfig


class RAGClientPinecone(RAGClientInterface):
    """Pinecone data-plane client.

    Talks to the index host directly (e.g. https://notes-abc123.svc.us-east1-gcp.pinecone.io).
    The index itself is provisioned out of band. Serverless indexes reject
    delete-by-metadata, so filtered deletes use the zero-vector query fallback.
    """

    API_VERSION = "2024-07"

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("INDEX_HOST", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._namespace = self.get_config_val("NAMESPACE", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Pinecone"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="INDEX_HOST", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="NAMESPACE", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Api-Key": self._api_key, "X-Pinecone-API-Version": self.API_VERSION}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        base_url = self._base_url
        if not base_url.startswith(("http://", "https://")):
            base_url = f"https://{base_url}"
        return base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/describe_index_stats"

    def _get_healthcheck_method(self) -> str:
        return "POST"

    def _get_endpoint_upsert(self) -> str:
        return "/vectors/upsert"

    def _get_endpoint_query(self) -> str:
        return "/query"

    def _get_endpoint_delete(self) -> str:
        return "/vectors/delete"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def build_filter(self, conditions: dict[str, Any]) -> dict:
        return {key: {"$eq": value} for key, value in conditions.items()}

    def _with_namespace(self, payload: dict) -> dict:
        if self._namespace:
            payload["namespace"] = self._namespace
        return payload

    def get_upsert_payload(self, records: list[VectorRecord]) -> dict:
        # Pinecone rejects null metadata values
        return self._with_namespace({
            "vectors": [
                {
                    "id": record.id,
                    "values": record.values,
                    "metadata": {k: v for k, v in record.metadata.items() if v is not None},
                }
                for record in records
            ]
        })

    def get_query_payload(self, vector: list[float], top_k: int, filter: dict | None) -> dict:
        payload = {
            "vector": vector,
            "topK": top_k,
            "includeMetadata": True,
            "includeValues": False,
        }
        if filter:
            payload["filter"] = filter
        return self._with_namespace(payload)

    def get_fetch_request(self, ids: list[str]) -> dict:
        params: list[tuple[str, str]] = [("ids", vector_id) for vector_id in ids]
        if self._namespace:
            params.append(("namespace", self._namespace))
        return {"method": "GET", "endpoint": "/vectors/fetch", "params": params}

    def get_delete_payload(self, ids: list[str]) -> dict:
        return self._with_namespace({"ids": ids})

    def get_delete_by_filter_payload(self, filter: dict) -> dict | None:
        return None

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_matches(self, raw_response: dict) -> list[QueryMatch]:
        return [
            QueryMatch(id=match["id"], score=match.get("score", 0.0), metadata=match.get("metadata") or {})
            for match in raw_response.get("matches", [])
        ]

    def extract_fetched_records(self, raw_response: dict) -> list[VectorRecord]:
        return [
            VectorRecord(id=vector.get("id", vector_id), values=vector.get("values") or [], metadata=vector.get("metadata") or {})
            for vector_id, vector in (raw_response.get("vectors") or {}).items()
        ]

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_describe_index_stats(self) -> dict:
        resp = await self._do_index_request("describe_index_stats", method="POST", endpoint="/describe_index_stats", json={})
        return resp.json()

    async def do_ensure_index(self, vector_size: int, distance: str = "Cosine") -> None:
        dimension = await self.do_fetch_index_dimension()
        if dimension and dimension != vector_size:
            self.logging.warning(
                "Pinecone index dimension %d does not match embedding dimension %d",
                dimension, vector_size,
            )

    async def do_fetch_index_dimension(self) -> int:
        stats = await self.do_describe_index_stats()
        return int(stats.get("dimension", 0))
