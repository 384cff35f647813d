from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Query import MetadataFilter, VectorMatch
from shared.clients.rag.models.VectorRecord import VectorRecord
from shared.models.config import EnvConfig


class RAGClientPinecone(RAGClientInterface):
    """Pinecone data plane over REST. BASE_URL is the index host."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._namespace = self.get_config_val("NAMESPACE", default="", val_type="string")
        self._api_version = self.get_config_val("API_VERSION", default="2024-07", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Pinecone"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="NAMESPACE", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Api-Key": self._api_key, "X-Pinecone-API-Version": self._api_version}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/describe_index_stats"

    def _get_endpoint_upsert(self) -> str:
        return "/vectors/upsert"

    def _get_method_upsert(self) -> str:
        return "POST"

    def _get_endpoint_query(self) -> str:
        return "/query"

    def _get_endpoint_delete(self) -> str:
        return "/vectors/delete"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def _with_namespace(self, payload: dict) -> dict:
        if self._namespace:
            payload["namespace"] = self._namespace
        return payload

    def get_filter_payload(self, filter: MetadataFilter) -> dict:
        conditions = [{key: {"$eq": value}} for key, value in filter.must.items()]
        conditions += [{key: {"$ne": value}} for key, value in filter.must_not.items()]
        return {"$and": conditions}

    def get_upsert_payload(self, records: list[VectorRecord]) -> dict:
        vectors = [
            {"id": record.id, "values": record.embedding, "metadata": record.metadata.to_payload()}
            for record in records
        ]
        return self._with_namespace({"vectors": vectors})

    def get_query_payload(self, vector: list[float], filter: MetadataFilter, top_k: int, include_metadata: bool) -> dict:
        return self._with_namespace({
            "vector": vector,
            "topK": top_k,
            "filter": self.get_filter_payload(filter),
            "includeMetadata": include_metadata,
            "includeValues": False,
        })

    def get_delete_payload(self, ids: list[str]) -> dict:
        return self._with_namespace({"ids": ids})

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_matches(self, raw_response: dict, include_metadata: bool = True) -> list[VectorMatch]:
        return [
            VectorMatch(id=match["id"], score=match.get("score") or 0.0, metadata=match.get("metadata") if include_metadata else None)
            for match in raw_response.get("matches", [])
        ]
