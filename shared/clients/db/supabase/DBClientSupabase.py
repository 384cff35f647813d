from urllib.parse import quote

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.clients.db.models.Attachment import AttachmentRecord
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class DBClientSupabase(DBClientInterface):
    """Supabase over its PostgREST interface."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._projects_table = self.get_config_val("PROJECTS_TABLE", default="research_projects", val_type="string")
        self._completed_table = self.get_config_val("COMPLETED_TABLE", default="completed_documents", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Supabase"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"apikey": self._api_key, "Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/rest/v1/"

    def _get_endpoint_project(self, project_id: str) -> str:
        return f"/rest/v1/{self._projects_table}?id=eq.{quote(project_id, safe='')}&select=attachments"

    def _get_endpoint_project_update(self, project_id: str) -> str:
        return f"/rest/v1/{self._projects_table}?id=eq.{quote(project_id, safe='')}"

    def _get_endpoint_completed_documents(self, project_id: str) -> str:
        return f"/rest/v1/{self._completed_table}?project_id=eq.{quote(project_id, safe='')}&select=document_id"

    ################ PAYLOAD BUILDER ##################
    def get_update_attachments_payload(self, attachments: dict[str, AttachmentRecord]) -> dict:
        return {"attachments": {doc_id: record.to_payload() for doc_id, record in attachments.items()}}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_attachments(self, raw_response: list | dict) -> dict | None:
        # PostgREST returns a list of rows
        if not raw_response:
            return None
        row = raw_response[0] if isinstance(raw_response, list) else raw_response
        return row.get("attachments") or {}

    def extract_completed_document_ids(self, raw_response: list | dict) -> set[str]:
        rows = raw_response if isinstance(raw_response, list) else [raw_response]
        return {str(row["document_id"]) for row in rows if row.get("document_id") is not None}
