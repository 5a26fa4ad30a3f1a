from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorRecord import QueryMatch, VectorRecord
from shared.models.config import EnvConfig


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default=None)
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    def _get_endpoint_upsert(self) -> str:
        return f"/collections/{self._collection_name}/points?wait=true"

    def _get_upsert_method(self) -> str:
        return "PUT"

    def _get_endpoint_query(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_delete(self) -> str:
        return f"/collections/{self._collection_name}/points/delete?wait=true"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def build_filter(self, conditions: dict[str, Any]) -> dict:
        return {"must": [{"key": key, "match": {"value": value}} for key, value in conditions.items()]}

    def get_upsert_payload(self, records: list[VectorRecord]) -> dict:
        return {
            "points": [
                {"id": record.id, "vector": record.values, "payload": record.metadata}
                for record in records
            ]
        }

    def get_query_payload(self, vector: list[float], top_k: int, filter: dict | None) -> dict:
        payload = {
            "vector": vector,
            "limit": top_k,
            "with_payload": True,
            "with_vector": False,
        }
        if filter:
            payload["filter"] = filter
        return payload

    def get_fetch_request(self, ids: list[str]) -> dict:
        return {
            "method": "POST",
            "endpoint": f"/collections/{self._collection_name}/points",
            "json": {"ids": ids, "with_payload": True, "with_vector": True},
        }

    def get_delete_payload(self, ids: list[str]) -> dict:
        return {"points": ids}

    def get_delete_by_filter_payload(self, filter: dict) -> dict | None:
        return {"filter": filter}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_matches(self, raw_response: dict) -> list[QueryMatch]:
        return [
            QueryMatch(id=str(point["id"]), score=point.get("score", 0.0), metadata=point.get("payload") or {})
            for point in raw_response.get("result", [])
        ]

    def extract_fetched_records(self, raw_response: dict) -> list[VectorRecord]:
        return [
            VectorRecord(id=str(point["id"]), values=point.get("vector") or [], metadata=point.get("payload") or {})
            for point in raw_response.get("result", [])
        ]

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_existence_check(self) -> bool:
        """Check if the collection exists in Qdrant.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        resp = await self._do_index_request("exists", method="GET", endpoint=self._get_endpoint_check_collection_existence())
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_ensure_index(self, vector_size: int, distance: str = "Cosine") -> None:
        if await self.do_existence_check():
            self.logging.debug("Qdrant collection '%s' already exists", self._collection_name)
            return
        await self._do_index_request(
            "create_collection",
            method="PUT",
            endpoint=self._get_endpoint_collection(),
            json={"vectors": {"size": vector_size, "distance": distance}},
        )
        self.logging.info(
            "Created Qdrant collection '%s' (size=%d, distance=%s)",
            self._collection_name, vector_size, distance,
        )

    async def do_fetch_index_dimension(self) -> int:
        resp = await self._do_index_request("collection_info", method="GET", endpoint=self._get_endpoint_collection())
        vectors = resp.json().get("result", {}).get("config", {}).get("params", {}).get("vectors", {})
        return int(vectors.get("size", 0))
