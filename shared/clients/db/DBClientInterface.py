from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.clients.db.models.Attachment import AttachmentRecord
from shared.exceptions.IndexExceptions import NotFoundError, RelationalStoreError
from shared.helper.HelperConfig import HelperConfig


class DBClientInterface(ClientInterface):
    """Relational store access needed by the index: project attachments and completed documents."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "db"
        """
        return "db"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_project(self, project_id: str) -> str:
        """
        Returns the endpoint path addressing the attachments of one project.

        Returns:
            str: The endpoint path (e.g. "/rest/v1/research_projects?id=eq.42&select=attachments")
        """
        pass

    @abstractmethod
    def _get_endpoint_project_update(self, project_id: str) -> str:
        """
        Returns the endpoint path used to write the attachments of one project.
        """
        pass

    @abstractmethod
    def _get_endpoint_completed_documents(self, project_id: str) -> str:
        """
        Returns the endpoint path listing the completed documents of one project.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_update_attachments_payload(self, attachments: dict[str, AttachmentRecord]) -> dict:
        """
        Builds the request body writing the whole attachments map.
        """
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def extract_attachments(self, raw_response: list | dict) -> dict | None:
        """
        Extracts the raw attachments map from a project response.

        Returns:
            dict | None: The raw map keyed by document id, or None if the project does not exist.
        """
        pass

    @abstractmethod
    def extract_completed_document_ids(self, raw_response: list | dict) -> set[str]:
        """
        Extracts the document ids of all completed-document rows.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_attachments(self, project_id: str) -> dict[str, AttachmentRecord]:
        """Load the attachments map of a project.

        Args:
            project_id (str): The project to load.

        Returns:
            dict[str, AttachmentRecord]: Attachments keyed by document id (empty if the project has none).

        Raises:
            NotFoundError: If the project does not exist.
            RelationalStoreError: If the request fails.
        """
        resp = await self._do_read("fetch_attachments", self._get_endpoint_project(project_id))
        raw = self.extract_attachments(resp.json())
        if raw is None:
            raise NotFoundError(f"Project '{project_id}' not found.", detail={"project_id": project_id})
        return {str(doc_id): AttachmentRecord.model_validate(entry or {}) for doc_id, entry in raw.items()}

    async def do_fetch_completed_document_ids(self, project_id: str) -> set[str]:
        """Load the ids of all documents that have a completed-document row for the project.

        Raises:
            RelationalStoreError: If the request fails.
        """
        resp = await self._do_read("fetch_completed_documents", self._get_endpoint_completed_documents(project_id))
        return self.extract_completed_document_ids(resp.json())

    async def do_update_attachments(self, project_id: str, attachments: dict[str, AttachmentRecord]) -> None:
        """Write the whole attachments map of a project in a single request.

        Raises:
            RelationalStoreError: If the request fails.
        """
        try:
            await self.do_request(
                method="PATCH",
                json=self.get_update_attachments_payload(attachments),
                endpoint=self._get_endpoint_project_update(project_id),
                additional_headers={"Prefer": "return=minimal"},
                raise_on_error=True,
            )
        except httpx.HTTPError as exc:
            raise RelationalStoreError(f"Updating attachments of project '{project_id}' failed: {exc}", operation="update_attachments", original=exc) from exc

    async def _do_read(self, operation: str, endpoint: str) -> httpx.Response:
        try:
            return await self.do_request(method="GET", endpoint=endpoint, raise_on_error=True)
        except httpx.HTTPError as exc:
            raise RelationalStoreError(f"Relational read '{operation}' failed: {exc}", operation=operation, original=exc) from exc
