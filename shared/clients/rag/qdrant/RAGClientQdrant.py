import uuid

import httpx
from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Query import MetadataFilter, VectorMatch
from shared.clients.rag.models.Scroll import ScrollResult
from shared.clients.rag.models.VectorRecord import VectorRecord
from shared.exceptions.IndexExceptions import VectorStoreError
from shared.models.config import EnvConfig

# Fixed namespace for deterministic UUIDv5 point IDs.
# Changing this value would invalidate all existing point IDs in Qdrant.
_POINT_ID_NAMESPACE = uuid.UUID("6f4d3c2b-1a09-4e5f-8b7c-6d5e4f3a2b1c")

# Qdrant point ids must be UUIDs or integers; the readable id lives in the payload.
RECORD_ID_KEY = "recordId"


def make_point_id(record_id: str) -> str:
    """Map a readable record id to its deterministic Qdrant point id."""
    return str(uuid.uuid5(_POINT_ID_NAMESPACE, record_id))


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default=None, val_type="string")
        self._distance = self.get_config_val("DISTANCE", default="Cosine", val_type="string")

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

    def _get_endpoint_upsert(self) -> str:
        return f"/collections/{self._collection_name}/points?wait=true"

    def _get_method_upsert(self) -> str:
        return "PUT"

    def _get_endpoint_query(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_delete(self) -> str:
        return f"/collections/{self._collection_name}/points/delete?wait=true"

    def _get_endpoint_scroll(self) -> str:
        return f"/collections/{self._collection_name}/points/scroll"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    def _get_endpoint_create_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_filter_payload(self, filter: MetadataFilter) -> dict:
        payload: dict = {"must": [{"key": key, "match": {"value": value}} for key, value in filter.must.items()]}
        if filter.must_not:
            payload["must_not"] = [{"key": key, "match": {"value": value}} for key, value in filter.must_not.items()]
        return payload

    def get_upsert_payload(self, records: list[VectorRecord]) -> dict:
        points = []
        for record in records:
            payload = record.metadata.to_payload()
            payload[RECORD_ID_KEY] = record.id
            points.append({"id": make_point_id(record.id), "vector": record.embedding, "payload": payload})
        return {"points": points}

    def _get_with_payload(self, include_metadata: bool) -> bool | list[str]:
        # the readable id is always needed to report matches
        return True if include_metadata else [RECORD_ID_KEY]

    def get_query_payload(self, vector: list[float], filter: MetadataFilter, top_k: int, include_metadata: bool) -> dict:
        return {
            "vector": vector,
            "filter": self.get_filter_payload(filter),
            "limit": top_k,
            "with_payload": self._get_with_payload(include_metadata),
            "with_vector": False,
        }

    def get_delete_payload(self, ids: list[str]) -> dict:
        return {"points": [make_point_id(record_id) for record_id in ids]}

    def get_scroll_payload(self, filter: MetadataFilter, include_metadata: bool, limit: int, offset: str | None = None) -> dict:
        payload = {
            "filter": self.get_filter_payload(filter),
            "limit": limit,
            "with_payload": self._get_with_payload(include_metadata),
            "with_vector": False,
        }
        if offset is not None:
            payload["offset"] = offset
        return payload

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _point_to_match(self, point: dict, include_metadata: bool = True) -> VectorMatch:
        payload = dict(point.get("payload") or {})
        record_id = payload.pop(RECORD_ID_KEY, None) or str(point.get("id"))
        return VectorMatch(
            id=record_id,
            score=point.get("score") or 0.0,
            metadata=payload if include_metadata else None,
        )

    def extract_query_matches(self, raw_response: dict, include_metadata: bool = True) -> list[VectorMatch]:
        return [self._point_to_match(point, include_metadata) for point in raw_response.get("result", [])]

    def extract_scroll_content(self, raw_response: dict, include_metadata: bool) -> ScrollResult:
        result = raw_response.get("result", {})
        return ScrollResult(
            matches=[self._point_to_match(point, include_metadata) for point in result.get("points", [])],
            next_page_offset=result.get("next_page_offset"),
        )

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_existence_check(self) -> bool:
        """Check if the collection exists in Qdrant.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_create_collection(self) -> httpx.Response:
        """Create the collection sized to the configured embedding dimension."""
        return await self.do_request(
            method="PUT",
            json={"vectors": {"size": self.dimensions, "distance": self._distance}},
            endpoint=self._get_endpoint_create_collection(),
            raise_on_error=True,
        )

    async def do_ensure_ready(self) -> None:
        if not await self.do_existence_check():
            self.logging.info("Creating Qdrant collection '%s' (%d dimensions).", self._collection_name, self.dimensions)
            await self.do_create_collection()

    async def do_scroll(self, filter: MetadataFilter, include_metadata: bool, limit: int, offset: str | None = None) -> ScrollResult:
        """Scroll a single page of records matching the filter.

        Args:
            filter (MetadataFilter): Conditions every record must satisfy; must include userId.
            include_metadata (bool): Whether to return the stored tag set.
            limit (int): Maximum number of records per page.
            offset (str | None): Cursor from the previous page's next_page_offset.

        Returns:
            ScrollResult: The page, including next_page_offset when further pages exist.
        """
        self.validate_filter(filter)
        try:
            resp = await self.do_request(
                method="POST",
                json=self.get_scroll_payload(filter, include_metadata, limit, offset),
                endpoint=self._get_endpoint_scroll(),
                raise_on_error=True,
            )
        except httpx.HTTPError as exc:
            raise VectorStoreError(f"Scroll against qdrant failed: {exc}", operation="scroll", original=exc) from exc
        return self.extract_scroll_content(resp.json(), include_metadata)

    async def do_fetch_all(self, filter: MetadataFilter, include_metadata: bool = True) -> list[VectorMatch]:
        """Scroll through ALL records matching the filter, paginating on next_page_offset.

        Qdrant supports cursors, so no ceiling applies here.
        """
        matches: list[VectorMatch] = []
        offset: str | None = None
        page = 1
        while True:
            page_result = await self.do_scroll(filter, include_metadata, limit=self.query_ceiling, offset=offset)
            matches.extend(page_result.matches)
            self.logging.debug("Fetched Qdrant page %d, %d records so far.", page, len(matches))
            offset = page_result.next_page_offset
            if not offset:
                break
            page += 1
        return matches
