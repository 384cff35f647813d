from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.exceptions.IndexExceptions import DimensionMismatchError, EmbeddingError

from shared.helper.HelperConfig import HelperConfig

DEFAULT_EMBED_DIMENSIONS = 3072  # text-embedding-3-large


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=self._get_default_model())
        self.embed_dimensions = helper_config.get_int_val(f"{self.get_client_type().upper()}_DIMENSIONS", default=self._get_default_dimensions(), minimum=1)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "embed"
        """
        return "embed"

    def _get_default_dimensions(self) -> int | None:
        """
        Returns the dimension used when EMBED_DIMENSIONS is not set, or None if the engine has no safe default and the variable is required.
        """
        return DEFAULT_EMBED_DIMENSIONS

    @abstractmethod
    def _get_default_model(self) -> str:
        """
        Returns the embedding model used when EMBED_MODEL is not set.
        """
        pass

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
        - Ollama /api/embed: {"embeddings": [[...], [...]]}  — already ordered
        - OpenAI /v1/embeddings: {"data": [{"embedding": [...], "index": 0}]} — needs sorting

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    def validate_dimensions(self, vectors: list[list[float]]) -> None:
        """Fail fast on any vector whose length differs from the configured dimension.

        Raises:
            DimensionMismatchError: On the first vector with the wrong length.
        """
        for vector in vectors:
            if len(vector) != self.embed_dimensions:
                raise DimensionMismatchError(expected=self.embed_dimensions, actual=len(vector))

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Send an embedding request and return the validated vectors.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            EmbeddingError: If the request fails or the response carries no usable embeddings.
            DimensionMismatchError: If any vector has the wrong dimension.
        """
        texts = [texts] if isinstance(texts, str) else texts
        body = self.get_embed_payload(texts)
        try:
            response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request to {self.get_engine_name()} failed: {exc}", original=exc) from exc
        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingError(f"Embedding request failed with status {response.status_code}.")
        try:
            vectors = self.extract_embeddings_from_response(response.json())
        except ValueError as exc:
            raise EmbeddingError(str(exc), original=exc) from exc
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Embedding backend returned {len(vectors)} vectors for {len(texts)} texts.")
        self.validate_dimensions(vectors)
        return vectors

    async def do_verify_dimensions(self) -> int:
        """Embed a short sample text and check the backend produces the configured dimension.

        Returns:
            int: The verified dimension.

        Raises:
            DimensionMismatchError: If the model produces vectors of another size.
        """
        vectors = await self.do_embed("dimension check")
        self.logging.info("Embedding model '%s' produces %d-dimensional vectors.", self.embed_model, len(vectors[0]))
        return len(vectors[0])
